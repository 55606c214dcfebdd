"""Tests for database URL normalisation."""

from tour_insight.db.connection import database_url


class TestDatabaseUrl:
    def test_sync_schemes_use_async_driver(self):
        assert database_url("postgres://u:p@localhost/db") == "postgresql+psycopg://u:p@localhost/db"
        assert database_url("postgresql://u:p@localhost/db") == "postgresql+psycopg://u:p@localhost/db"

    def test_async_url_unchanged(self):
        url = "postgresql+psycopg://u:p@127.0.0.1:5432/db"
        assert database_url(url) == url

    def test_remote_host_requires_ssl(self):
        assert database_url("postgresql://u:p@db.example.com/db").endswith("?sslmode=require")
        assert database_url("postgresql://u:p@db.example.com/db?x=1").endswith("&sslmode=require")

    def test_explicit_sslmode_kept(self):
        url = "postgresql+psycopg://u:p@db.example.com/db?sslmode=disable"
        assert database_url(url) == url

    def test_ssl_can_be_turned_off(self):
        url = database_url("postgresql://u:p@db.internal/db", require_ssl=False)
        assert url == "postgresql+psycopg://u:p@db.internal/db"
