"""Core utility functions."""

from urllib.parse import urlparse, urlunparse

DEFAULT_REDIS_PORT = 6379


def convert_async_db_url_to_sync(database_url: str) -> str:
    """
    Convert an async database URL to a sync database URL.

    Alembic runs migrations with psycopg (v3), so postgresql+asyncpg:// becomes
    postgresql+psycopg://. Other URLs are returned unchanged.

    Args:
        database_url: The async database URL (e.g., postgresql+asyncpg://...)

    Returns:
        The sync database URL (e.g., postgresql+psycopg://...)
    """
    parsed_url = urlparse(database_url)
    if "+asyncpg" in parsed_url.scheme:
        sync_scheme = parsed_url.scheme.replace("+asyncpg", "+psycopg")
        return urlunparse(parsed_url._replace(scheme=sync_scheme))
    return database_url


def parse_redis_endpoint(redis_url: str) -> tuple[str, int, int]:
    """
    Split a redis:// URL into host, port and database number.

    >>> parse_redis_endpoint("redis://cache:6380/2")
    ('cache', 6380, 2)
    >>> parse_redis_endpoint("redis://localhost")
    ('localhost', 6379, 0)
    """
    parsed = urlparse(redis_url)
    db_path = parsed.path.lstrip("/")
    return (
        parsed.hostname or "localhost",
        parsed.port or DEFAULT_REDIS_PORT,
        int(db_path) if db_path.isdigit() else 0,
    )
