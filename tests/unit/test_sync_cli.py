"""
Tests del CLI de sincronizacion (scripts/sync_entities.py).
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from roster_sync.application.dto.sync_dto import SyncRequestDTO
from roster_sync.application.use_cases.sync_entities import list_entity_names
from roster_sync.shared.exceptions.filemaker import LayoutNotFoundError
from scripts import sync_entities as cli


def test_parse_args_accepts_known_entities_and_flags():
    args = cli._parse_args(["hubs", "student", "--purge", "--date", "01152024"])

    assert args.entities == ["hubs", "student"]
    assert args.purge is True
    assert args.date == "01152024"


def test_parse_args_rejects_unknown_entity():
    with pytest.raises(SystemExit):
        cli._parse_args(["instructors"])


def test_main_rejects_malformed_date():
    with pytest.raises(SystemExit):
        cli.main(["hubs", "--date", "2024-01-15"])


@pytest.fixture
def fake_runtime(monkeypatch):
    """Reemplaza cliente, base y casos de uso del CLI."""
    use_cases = MagicMock()
    use_cases.start_sync = AsyncMock(return_value=(3, "run-1"))
    use_cases.registry.wait = AsyncMock(
        return_value=MagicMock(state="done", loaded_records=3, error=None)
    )

    manager = MagicMock()
    manager.close = AsyncMock(return_value=True)

    monkeypatch.setattr(cli, "SyncUseCases", lambda client, factory: use_cases)
    monkeypatch.setattr(cli, "FileMakerClientManager", manager)
    monkeypatch.setattr(cli, "close_db", AsyncMock())
    return use_cases, manager


@pytest.mark.asyncio
async def test_run_syncs_entities_in_order_and_waits(fake_runtime):
    use_cases, manager = fake_runtime
    dto = SyncRequestDTO(purge=True)

    failures = await cli.run(["hubs", "sections"], dto)

    assert failures == 0
    assert [c.args[0] for c in use_cases.start_sync.call_args_list] == ["hubs", "sections"]
    assert use_cases.registry.wait.await_count == 2
    manager.close.assert_awaited_once()
    cli.close_db.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_counts_failed_and_errored_entities(fake_runtime):
    use_cases, _ = fake_runtime
    use_cases.start_sync.side_effect = [LayoutNotFoundError("hub", []), (2, "run-2")]
    use_cases.registry.wait.return_value = MagicMock(state="errored", loaded_records=0, error="boom")

    failures = await cli.run(["hubs", "sections"], SyncRequestDTO())

    assert failures == 2


def test_main_expands_all(monkeypatch):
    seen = {}

    async def fake_run(entities, dto):
        seen["entities"] = entities
        return 0

    monkeypatch.setattr(cli, "run", fake_run)

    assert cli.main(["all"]) == 0
    assert seen["entities"] == list_entity_names()
