"""Async SQLAlchemy engine and session factory for the MAD list store."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config.settings import settings

ASYNC_SCHEME = "postgresql+psycopg://"
_SYNC_SCHEMES = ("postgres://", "postgresql://")
_LOCAL_HOSTS = ("localhost", "127.0.0.1")


def _host(url: str) -> str:
    if "@" not in url:
        return ""
    return url.split("@")[-1].split("/")[0].split(":")[0]


def database_url(url: str, require_ssl: bool = True) -> str:
    """Rewrite *url* for the async psycopg driver.

    Remote hosts get ``sslmode=require`` unless the URL already sets one.
    """
    for scheme in _SYNC_SCHEMES:
        if url.startswith(scheme):
            url = ASYNC_SCHEME + url[len(scheme):]
            break
    host = _host(url)
    if require_ssl and host and host not in _LOCAL_HOSTS and "sslmode" not in url:
        url += ("&" if "?" in url else "?") + "sslmode=require"
    return url


engine = create_async_engine(
    database_url(settings.database_url, settings.database_require_ssl),
    echo=settings.database_echo,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncSession:
    """Yield an async database session."""
    async with async_session() as session:
        yield session
