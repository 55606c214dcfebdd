"""Tests for the saved MAD (preparation delay) list store."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from tour_insight.analysis.filters import FilterError
from tour_insight.memory.mad_delay_store import add, list_keys, remove, replace


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _session():
    session = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    session.get = AsyncMock(return_value=None)
    return session


def _entry(key):
    entry = MagicMock()
    entry.key = key
    return entry


class TestAdd:
    @pytest.mark.asyncio
    async def test_add_new_key(self):
        session = _session()
        entry = await add(session, "Rungis 1|2024-03-04")
        assert entry.key == "Rungis 1|2024-03-04"
        assert entry.warehouse == "Rungis 1"
        assert entry.date == date(2024, 3, 4)
        session.add.assert_called_once_with(entry)
        session.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_add_normalises_the_date(self):
        session = _session()
        entry = await add(session, "Rungis 1| 2024-03-04 ")
        assert entry.key == "Rungis 1|2024-03-04"

    @pytest.mark.asyncio
    async def test_existing_key_is_returned_unchanged(self):
        session = _session()
        existing = _entry("Rungis 1|2024-03-04")
        session.get = AsyncMock(return_value=existing)
        assert await add(session, "Rungis 1|2024-03-04") is existing
        session.add.assert_not_called()
        session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_key(self):
        session = _session()
        with pytest.raises(FilterError):
            await add(session, "Rungis 1")
        session.commit.assert_not_called()


class TestReplace:
    @pytest.mark.asyncio
    async def test_replaces_whole_list(self):
        session = _session()
        keys = await replace(session, [
            "Rungis 1|2024-03-04",
            "Aix 1|2024-03-05",
            "Rungis 1|2024-03-04",
        ])
        assert keys == ["Rungis 1|2024-03-04", "Aix 1|2024-03-05"]
        session.execute.assert_called_once()
        (saved,), _ = session.add_all.call_args
        assert [e.key for e in saved] == keys
        session.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_validates_before_deleting(self):
        session = _session()
        with pytest.raises(FilterError):
            await replace(session, ["Rungis 1|2024-03-04", "bad"])
        session.execute.assert_not_called()
        session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_list_clears(self):
        session = _session()
        assert await replace(session, []) == []
        session.execute.assert_called_once()


class TestListAndRemove:
    @pytest.mark.asyncio
    async def test_list_keys(self):
        session = _session()
        result = MagicMock()
        result.scalars.return_value.all.return_value = [
            _entry("Rungis 1|2024-03-05"),
            _entry("Aix 1|2024-03-04"),
        ]
        session.execute = AsyncMock(return_value=result)
        assert await list_keys(session) == ["Rungis 1|2024-03-05", "Aix 1|2024-03-04"]

    @pytest.mark.asyncio
    async def test_remove(self):
        session = _session()
        result = MagicMock()
        result.rowcount = 1
        session.execute = AsyncMock(return_value=result)
        assert await remove(session, "Rungis 1|2024-03-04") is True
        session.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_remove_missing(self):
        session = _session()
        result = MagicMock()
        result.rowcount = 0
        session.execute = AsyncMock(return_value=result)
        assert await remove(session, "Rungis 1|2024-03-04") is False
