"""Tests for main API endpoints."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest
from httpx import AsyncClient
from railwatch import __version__
from railwatch.core.config import settings
from railwatch.main import _check_alembic_migrations, app, lifespan


def _mock_engine(conn: AsyncMock | None = None, error: Exception | None = None) -> Mock:
    """Engine whose connect() and begin() yield ``conn`` or raise ``error``."""
    ctx = AsyncMock()
    if error is not None:
        ctx.__aenter__.side_effect = error
    else:
        ctx.__aenter__.return_value = conn or AsyncMock()
    ctx.__aexit__.return_value = None

    engine = Mock()
    engine.connect.return_value = ctx
    engine.begin.return_value = ctx
    engine.dispose = AsyncMock()
    return engine


async def test_root_endpoint(async_client: AsyncClient) -> None:
    """Test root endpoint returns correct response."""
    response = await async_client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "RailWatch API"
    assert data["version"] == __version__


async def test_health_check(async_client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_readiness_check(async_client: AsyncClient) -> None:
    """Test readiness check endpoint - happy path."""
    with (
        patch("railwatch.main.get_engine", return_value=_mock_engine()),
        patch("railwatch.main.create_redis_client") as mock_create_redis,
    ):
        mock_redis_client = AsyncMock()
        mock_create_redis.return_value = mock_redis_client

        response = await async_client.get("/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ready", "database": "ok", "redis": "ok"}
    mock_redis_client.ping.assert_awaited_once()
    mock_redis_client.aclose.assert_awaited_once()


async def test_readiness_check_database_failure(async_client: AsyncClient) -> None:
    """Test readiness check returns 503 when the database is unavailable."""
    with (
        patch("railwatch.main.get_engine", return_value=_mock_engine(error=OSError("connection refused"))),
        patch("railwatch.main.create_redis_client", return_value=AsyncMock()),
    ):
        response = await async_client.get("/ready")

    assert response.status_code == 503
    data = response.json()
    assert data == {"status": "not_ready", "database": "unavailable", "redis": "ok"}
    # Error details are logged, not returned
    assert "connection refused" not in response.text


async def test_readiness_check_closes_redis_on_error(async_client: AsyncClient) -> None:
    """Test readiness check closes Redis client even when ping fails."""
    mock_redis_client = AsyncMock()
    mock_redis_client.ping.side_effect = ConnectionError("Redis connection failed")

    with (
        patch("railwatch.main.get_engine", return_value=_mock_engine()),
        patch("railwatch.main.create_redis_client", return_value=mock_redis_client),
    ):
        response = await async_client.get("/ready")

    assert response.status_code == 503
    assert response.json()["redis"] == "unavailable"
    mock_redis_client.aclose.assert_awaited_once()


async def test_request_id_header_on_responses(async_client: AsyncClient) -> None:
    """Every response carries a request id."""
    response = await async_client.get("/health")
    assert len(response.headers["x-request-id"]) == 32


# ==================== Alembic validation ====================


class TestCheckAlembicMigrations:
    """Tests for the startup migration check."""

    @pytest.fixture
    def alembic_ini(self, tmp_path: Path) -> Path:
        """Point ALEMBIC_INI_PATH at an existing file."""
        path = tmp_path / "alembic.ini"
        path.write_text("[alembic]\nscript_location = alembic\n")
        return path

    def _patch_revisions(self, current: str | None, head: str) -> tuple[MagicMock, MagicMock]:
        context = patch("railwatch.main.migration.MigrationContext.configure")
        scripts = patch("railwatch.main.script.ScriptDirectory.from_config")
        mock_configure = context.start()
        mock_from_config = scripts.start()
        mock_configure.return_value.get_current_revision.return_value = current
        mock_from_config.return_value.get_current_head.return_value = head
        return mock_configure, mock_from_config

    def teardown_method(self) -> None:
        """Stop patches started by _patch_revisions."""
        patch.stopall()

    def test_at_head(self, alembic_ini: Path) -> None:
        """Test that the current revision is returned when it is the head."""
        self._patch_revisions("a3f91c2d7e40", "a3f91c2d7e40")

        with patch.object(settings, "ALEMBIC_INI_PATH", str(alembic_ini)):
            assert _check_alembic_migrations(Mock()) == "a3f91c2d7e40"

    def test_uninitialised_database(self, alembic_ini: Path) -> None:
        """Test that an empty database refuses to start."""
        self._patch_revisions(None, "a3f91c2d7e40")

        with (
            patch.object(settings, "ALEMBIC_INI_PATH", str(alembic_ini)),
            pytest.raises(RuntimeError, match="not been initialized"),
        ):
            _check_alembic_migrations(Mock())

    def test_pending_migration(self, alembic_ini: Path) -> None:
        """Test that a database behind head refuses to start."""
        self._patch_revisions("0000old", "a3f91c2d7e40")

        with (
            patch.object(settings, "ALEMBIC_INI_PATH", str(alembic_ini)),
            pytest.raises(RuntimeError, match="migration required"),
        ):
            _check_alembic_migrations(Mock())

    def test_missing_ini_skips_validation(self, tmp_path: Path) -> None:
        """Test that a missing alembic.ini only logs a warning."""
        _, mock_from_config = self._patch_revisions("0000old", "a3f91c2d7e40")

        with patch.object(settings, "ALEMBIC_INI_PATH", str(tmp_path / "missing.ini")):
            assert _check_alembic_migrations(Mock()) == "0000old"
        mock_from_config.assert_not_called()


# ==================== Lifespan ====================


async def test_lifespan_validates_database_outside_debug() -> None:
    """Test that startup checks the schema revision and shutdown disposes the engine."""
    conn = AsyncMock()
    conn.run_sync.return_value = "a3f91c2d7e40"
    engine = _mock_engine(conn)

    with patch.object(settings, "DEBUG", False), patch("railwatch.main.get_engine", return_value=engine):
        async with lifespan(app):
            conn.execute.assert_awaited_once()
            conn.run_sync.assert_awaited_once_with(_check_alembic_migrations)

    engine.dispose.assert_awaited_once()


async def test_lifespan_startup_failure_propagates() -> None:
    """Test that a failed database check aborts startup."""
    conn = AsyncMock()
    conn.run_sync.side_effect = RuntimeError("Database migration required")

    with (
        patch.object(settings, "DEBUG", False),
        patch("railwatch.main.get_engine", return_value=_mock_engine(conn)),
        pytest.raises(RuntimeError, match="migration required"),
    ):
        async with lifespan(app):
            pass


async def test_lifespan_debug_skips_database() -> None:
    """Test that DEBUG mode never touches the database."""
    with patch.object(settings, "DEBUG", True), patch("railwatch.main.get_engine") as mock_get_engine:
        async with lifespan(app):
            pass

    mock_get_engine.assert_not_called()
