"""
Tests del ciclo de vida de la aplicacion (startup / shutdown).
"""
from unittest.mock import AsyncMock

import pytest

from roster_sync.core import events
from roster_sync.core.config import settings


@pytest.fixture
def patched_resources(monkeypatch, tmp_path):
    """Base de datos y cliente FileMaker reemplazados por mocks."""
    init_db = AsyncMock()
    close_db = AsyncMock()
    close_client = AsyncMock(return_value=False)
    cancel_all = AsyncMock(return_value=0)

    monkeypatch.setattr(events, "init_db", init_db)
    monkeypatch.setattr(events, "close_db", close_db)
    monkeypatch.setattr(events.FileMakerClientManager, "close", close_client)
    monkeypatch.setattr(events.sync_run_registry, "cancel_all", cancel_all)
    monkeypatch.setattr(settings, "LOG_FILE", str(tmp_path / "app.log"))
    return init_db, close_db, close_client, cancel_all


@pytest.mark.asyncio
async def test_application_lifespan_runs_startup_and_shutdown(patched_resources):
    from main import create_application

    init_db, close_db, close_client, cancel_all = patched_resources
    app = create_application()

    async with app.router.lifespan_context(app):
        init_db.assert_awaited_once()
        close_db.assert_not_awaited()

    cancel_all.assert_awaited_once()
    close_client.assert_awaited_once()
    close_db.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_runs_even_if_serving_fails(patched_resources):
    init_db, close_db, _, cancel_all = patched_resources

    with pytest.raises(RuntimeError):
        async with events.lifespan(None):
            raise RuntimeError("fallo sirviendo")

    init_db.assert_awaited_once()
    cancel_all.assert_awaited_once()
    close_db.assert_awaited_once()
