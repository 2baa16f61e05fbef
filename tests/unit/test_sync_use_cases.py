"""
Tests del orquestador de sincronizacion.

Usa el cliente real contra el servidor FileMaker falso y SQLite en memoria:
- paginacion (N=1, C, C+1, 2C-1)
- corto circuito con foundCount=0 y verificacion de layout
- semantica purge / upsert
- estados del run (done, errored, cancelled) y guard por entidad
"""
from __future__ import annotations

import asyncio
import math

import pytest

from roster_sync.application.dto.sync_dto import SyncRequestDTO
from roster_sync.application.use_cases.sync_entities import EntitySyncConfig, get_entity_config
from roster_sync.application.use_cases.sync_use_cases import (
    SyncRunRegistry,
    SyncState,
    SyncUseCases,
    build_query,
    page_offsets,
)
from roster_sync.infrastructure.database.models import HubModel
from roster_sync.infrastructure.repositories.entity_sync_repository import EntitySyncRepository
from roster_sync.shared.exceptions.filemaker import LayoutNotFoundError
from roster_sync.shared.exceptions.sync import SyncAlreadyRunningError, UnknownSyncEntityError
from tests.fakes import make_records


@pytest.fixture
def registry() -> SyncRunRegistry:
    return SyncRunRegistry()


@pytest.fixture
def use_cases(filemaker_client, session_factory, registry) -> SyncUseCases:
    return SyncUseCases(
        filemaker_client,
        session_factory,
        registry=registry,
        service_identity="node-server",
        insert_batch_size=2,
    )


@pytest.fixture
def hub_server(fake_filemaker):
    fake_filemaker.layouts = [{"name": "Sync", "isFolder": True, "folderLayoutNames": [{"name": "hub"}]}]
    return fake_filemaker


async def _hub_rows(session_factory):
    async with session_factory() as session:
        repo = EntitySyncRepository(session)
        count = await repo.count(HubModel)
        rows = {}
        for record_id in ("1", "2", "3", "999"):
            row = await repo.get_by_record_id(HubModel, record_id)
            if row is not None:
                rows[record_id] = row
        return count, rows


async def _seed_unrelated_hub(session_factory):
    async with session_factory() as session:
        async with session.begin():
            session.add(HubModel(filemaker_record_id="999", filemaker_mod_id="1", ID="OLD", name="Legacy"))


# ---------------------------------------------------------------------------
# Query y paginacion
# ---------------------------------------------------------------------------

def test_query_always_contains_anti_feedback_clause():
    config = get_entity_config("sections")

    without_date = build_query(config, None, "node-server")
    with_date = build_query(config, "01152024", "node-server")

    assert [c.to_wire() for c in without_date] == [{"ModifiedBy": "node-server", "omit": "true"}]
    assert [c.to_wire() for c in with_date] == [
        {"zzModifiedTS": "≥01/15/2024"},
        {"ModifiedBy": "node-server", "omit": "true"},
    ]


def test_hub_query_uses_its_own_modified_by_field():
    clauses = build_query(get_entity_config("hubs"), None, "node-server")

    assert clauses[-1].to_wire() == {"zzModifiedBy": "node-server", "omit": "true"}


def test_page_offsets_are_one_based_without_gaps():
    assert page_offsets(0, 1000) == []
    assert page_offsets(1, 1000) == [1]
    assert page_offsets(2000, 1000) == [1, 1001]
    assert page_offsets(2001, 1000) == [1, 1001, 2001]


@pytest.mark.asyncio
@pytest.mark.parametrize("total", [1, 3, 4, 5])
async def test_fetch_all_covers_every_record_exactly_once(use_cases, fake_filemaker, total):
    chunk = 3
    config = EntitySyncConfig(name="hubs", label="hubs", layout="hub", model=HubModel, chunk_size=chunk)
    fake_filemaker.records["hub"] = make_records(total)

    records = await use_cases.fetch_all(config, build_query(config, None, "node-server"), total)

    offsets = [int(body["offset"]) for _, body in fake_filemaker.find_calls]
    assert len(fake_filemaker.find_calls) == math.ceil(total / chunk)
    assert offsets == sorted(offsets)
    assert all(body["limit"] == str(chunk) for _, body in fake_filemaker.find_calls)
    ids = [r.record_id for r in records]
    assert ids == [str(i) for i in range(1, total + 1)]


def test_unknown_entity_is_rejected():
    with pytest.raises(UnknownSyncEntityError):
        get_entity_config("instructors")


# ---------------------------------------------------------------------------
# Fase sincrona
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_zero_count_short_circuits_without_pagination(use_cases, hub_server, session_factory):
    hub_server.records["hub"] = []

    total, run_id = await use_cases.start_sync("hubs", SyncRequestDTO(purge=True))

    assert total == 0
    assert len(hub_server.find_calls) == 1
    run = await use_cases.get_run(run_id)
    assert run.state == SyncState.DONE.value
    count, _ = await _hub_rows(session_factory)
    assert count == 0


@pytest.mark.asyncio
async def test_probe_requests_a_single_record_from_offset_one(use_cases, hub_server):
    hub_server.records["hub"] = make_records(3)

    total, run_id = await use_cases.start_sync("hubs", SyncRequestDTO())
    await use_cases.registry.wait(run_id)

    _, probe = hub_server.find_calls[0]
    assert total == 3
    assert probe["limit"] == "1"
    assert probe["offset"] == "1"


@pytest.mark.asyncio
async def test_missing_layout_fails_before_any_find(use_cases, fake_filemaker, registry):
    fake_filemaker.layouts = [{"name": "sections"}, {"name": "student"}]
    fake_filemaker.records["hub"] = make_records(2)

    with pytest.raises(LayoutNotFoundError) as exc_info:
        await use_cases.start_sync("hubs", SyncRequestDTO())

    assert exc_info.value.layout == "hub"
    assert exc_info.value.available == ["sections", "student"]
    assert fake_filemaker.find_calls == []

    runs = await registry.list("hubs")
    assert runs[0].state == SyncState.ERRORED.value
    # El guard se libero: un nuevo intento vuelve a fallar por el layout, no por concurrencia
    with pytest.raises(LayoutNotFoundError):
        await use_cases.start_sync("hubs", SyncRequestDTO())


@pytest.mark.asyncio
async def test_second_sync_of_same_entity_is_rejected_while_running(use_cases, hub_server, registry):
    active = await registry.reserve("hubs", SyncRequestDTO())

    with pytest.raises(SyncAlreadyRunningError) as exc_info:
        await use_cases.start_sync("hubs", SyncRequestDTO())

    assert exc_info.value.run_id == active.run_id
    assert hub_server.requests == []


@pytest.mark.asyncio
async def test_cancelled_request_during_layout_check_releases_entity(use_cases, hub_server, registry):
    hub_server.records["hub"] = make_records(1)
    started = asyncio.Event()
    verify_layout = use_cases.verify_layout

    async def blocking_verify(layout):
        started.set()
        await asyncio.Event().wait()

    use_cases.verify_layout = blocking_verify
    request = asyncio.create_task(use_cases.start_sync("hubs", SyncRequestDTO()))
    await started.wait()
    request.cancel()

    with pytest.raises(asyncio.CancelledError):
        await request

    runs = await registry.list("hubs")
    assert runs[0].state == SyncState.CANCELLED.value
    assert runs[0].completed_at is not None

    use_cases.verify_layout = verify_layout
    total, run_id = await use_cases.start_sync("hubs", SyncRequestDTO())
    assert total == 1
    assert (await registry.wait(run_id)).state == SyncState.DONE.value


# ---------------------------------------------------------------------------
# Carga
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_purge_replaces_local_collection_with_fetched_set(use_cases, hub_server, session_factory):
    await _seed_unrelated_hub(session_factory)
    hub_server.records["hub"] = make_records(3)

    total, run_id = await use_cases.start_sync("hubs", SyncRequestDTO(purge=True))
    run = await use_cases.registry.wait(run_id)

    assert total == 3
    assert run.state == SyncState.DONE.value
    assert run.loaded_records == 3
    count, rows = await _hub_rows(session_factory)
    assert count == 3
    assert set(rows) == {"1", "2", "3"}


@pytest.mark.asyncio
async def test_upsert_is_idempotent_and_overwrites_by_record_id(use_cases, hub_server, session_factory):
    await _seed_unrelated_hub(session_factory)
    hub_server.records["hub"] = make_records(3)

    _, first_run = await use_cases.start_sync("hubs", SyncRequestDTO(purge=False))
    await use_cases.registry.wait(first_run)
    count_first, rows_first = await _hub_rows(session_factory)

    _, second_run = await use_cases.start_sync("hubs", SyncRequestDTO(purge=False))
    await use_cases.registry.wait(second_run)
    count_second, rows_second = await _hub_rows(session_factory)

    assert count_first == count_second == 4
    assert {k: (r.ID, r.name, r.id) for k, r in rows_first.items()} == {
        k: (r.ID, r.name, r.id) for k, r in rows_second.items()
    }

    hub_server.records["hub"][0]["fieldData"]["name"] = "Hub Renombrado"
    _, third_run = await use_cases.start_sync("hubs", SyncRequestDTO(purge=False))
    await use_cases.registry.wait(third_run)
    count_third, rows_third = await _hub_rows(session_factory)

    assert count_third == 4
    assert rows_third["1"].name == "Hub Renombrado"
    assert rows_third["1"].id == rows_first["1"].id
    assert rows_third["999"].name == "Legacy"


# ---------------------------------------------------------------------------
# Estados del run en background
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_background_failure_is_recorded_in_run_status(use_cases, hub_server, registry):
    hub_server.records["hub"] = make_records(2)

    async def failing_load(config, rows, purge):
        raise RuntimeError("base de datos no disponible")

    use_cases.load = failing_load

    total, run_id = await use_cases.start_sync("hubs", SyncRequestDTO())
    run = await registry.wait(run_id)

    assert total == 2
    assert run.state == SyncState.ERRORED.value
    assert run.error == "base de datos no disponible"
    assert run.fetched_records == 2
    # Guard liberado tras el error
    _, next_run = await use_cases.start_sync("hubs", SyncRequestDTO())
    await registry.wait(next_run)


@pytest.mark.asyncio
async def test_running_sync_can_be_cancelled(use_cases, hub_server, registry):
    hub_server.records["hub"] = make_records(2)
    started = asyncio.Event()

    async def blocking_fetch(config, clauses, total, run_id=None):
        started.set()
        await asyncio.Event().wait()

    use_cases.fetch_all = blocking_fetch

    _, run_id = await use_cases.start_sync("hubs", SyncRequestDTO())
    await started.wait()
    run = await use_cases.cancel_run(run_id)

    assert run.state == SyncState.CANCELLED.value
    assert run.completed_at is not None
    assert [r.run_id for r in await registry.list("hubs")] == [run_id]


@pytest.mark.asyncio
async def test_cancel_all_stops_every_running_sync(use_cases, fake_filemaker, registry):
    fake_filemaker.layouts = [{"name": "hub"}, {"name": "sections"}]
    fake_filemaker.records["hub"] = make_records(1)
    fake_filemaker.records["sections"] = make_records(1)

    async def blocking_fetch(config, clauses, total, run_id=None):
        await asyncio.Event().wait()

    use_cases.fetch_all = blocking_fetch

    _, hub_run = await use_cases.start_sync("hubs", SyncRequestDTO())
    _, section_run = await use_cases.start_sync("sections", SyncRequestDTO())

    cancelled = await registry.cancel_all()

    assert cancelled == 2
    assert (await registry.get(hub_run)).state == SyncState.CANCELLED.value
    assert (await registry.get(section_run)).state == SyncState.CANCELLED.value
