"""
Tests del gestor de token de FileMaker.

Cubre: reutilizacion dentro de la ventana, expiracion, ventana deslizante,
reintento unico ante token rechazado, reintentos con backoff y errores de configuracion/autenticacion.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from roster_sync.infrastructure.filemaker.token_manager import (
    FileMakerCredentials,
    TokenManager,
    mask_token,
)
from roster_sync.shared.exceptions.filemaker import (
    AuthenticationError,
    ConfigurationError,
    FileMakerApiError,
    UnauthorizedError,
)
from tests.fakes import TEST_CREDENTIALS, FakeFileMakerServer


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += timedelta(minutes=minutes)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def http_client(fake_filemaker: FakeFileMakerServer):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_filemaker.handler))
    yield client
    await client.aclose()


def _manager(http_client, clock, credentials=TEST_CREDENTIALS, **kwargs) -> TokenManager:
    return TokenManager(credentials, http_client=http_client, clock=clock, **kwargs)


@pytest.mark.asyncio
async def test_token_reused_within_validity_window(http_client, clock, fake_filemaker):
    manager = _manager(http_client, clock)

    first = await manager.get_valid_token()
    clock.advance(5)
    second = await manager.get_valid_token()

    assert first == second
    assert fake_filemaker.auth_calls == 1


@pytest.mark.asyncio
async def test_expired_token_triggers_exactly_one_new_authentication(http_client, clock, fake_filemaker):
    manager = _manager(http_client, clock)

    first = await manager.get_valid_token()
    clock.advance(13)
    second = await manager.get_valid_token()

    assert first != second
    assert fake_filemaker.auth_calls == 2


@pytest.mark.asyncio
async def test_validity_window_slides_from_last_use(http_client, clock, fake_filemaker):
    manager = _manager(http_client, clock)

    token = await manager.get_valid_token()
    clock.advance(10)
    assert await manager.get_valid_token() == token
    clock.advance(10)
    assert await manager.get_valid_token() == token

    assert fake_filemaker.auth_calls == 1


@pytest.mark.asyncio
async def test_authentication_posts_basic_auth_to_sessions(http_client, clock, fake_filemaker):
    manager = _manager(http_client, clock)

    await manager.authenticate()

    request = fake_filemaker.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://fm.example.test/fmi/data/vLatest/databases/Roster/sessions"
    assert request.headers["Authorization"].startswith("Basic ")


@pytest.mark.asyncio
async def test_concurrent_callers_share_a_single_authentication(http_client, clock, fake_filemaker):
    manager = _manager(http_client, clock)

    tokens = await asyncio.gather(*(manager.get_valid_token() for _ in range(5)))

    assert len(set(tokens)) == 1
    assert fake_filemaker.auth_calls == 1


@pytest.mark.asyncio
async def test_missing_credentials_raise_configuration_error(http_client, clock, fake_filemaker):
    credentials = FileMakerCredentials(server="fm.example.test", database="", username="u", password="")
    manager = _manager(http_client, clock, credentials=credentials)

    with pytest.raises(ConfigurationError) as exc_info:
        await manager.get_valid_token()

    assert exc_info.value.missing == ["FILEMAKER_DATABASE", "FILEMAKER_PASSWORD"]
    assert fake_filemaker.requests == []


@pytest.mark.asyncio
async def test_authentication_failure_without_retry_by_default(http_client, clock, fake_filemaker):
    fake_filemaker.fail_auth = True
    sleeps = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    manager = _manager(http_client, clock, sleep=fake_sleep)

    with pytest.raises(AuthenticationError):
        await manager.get_valid_token()

    assert len(fake_filemaker.requests) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_authentication_retries_with_exponential_backoff(http_client, clock, fake_filemaker):
    fake_filemaker.fail_auth = True
    sleeps = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    manager = _manager(http_client, clock, max_retries=3, sleep=fake_sleep)

    with pytest.raises(AuthenticationError) as exc_info:
        await manager.get_valid_token()

    assert len(fake_filemaker.requests) == 3
    assert sleeps == [2, 4]
    assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)


@pytest.mark.asyncio
async def test_unauthorized_operation_reauthenticates_and_retries_once(http_client, clock, fake_filemaker):
    manager = _manager(http_client, clock)
    seen_tokens = []

    async def operation(token: str) -> str:
        seen_tokens.append(token)
        if len(seen_tokens) == 1:
            raise UnauthorizedError("Invalid FileMaker Data API token (*)")
        return "ok"

    result = await manager.run_authenticated(operation)

    assert result == "ok"
    assert len(seen_tokens) == 2
    assert seen_tokens[0] != seen_tokens[1]
    assert fake_filemaker.auth_calls == 2


@pytest.mark.asyncio
async def test_second_unauthorized_failure_is_not_retried(http_client, clock, fake_filemaker):
    manager = _manager(http_client, clock)
    calls = []

    async def operation(token: str) -> str:
        calls.append(token)
        raise UnauthorizedError("Invalid FileMaker Data API token (*)")

    with pytest.raises(UnauthorizedError):
        await manager.run_authenticated(operation)

    assert len(calls) == 2
    assert fake_filemaker.auth_calls == 2


@pytest.mark.asyncio
async def test_failed_operation_retries_with_exponential_backoff(http_client, clock, fake_filemaker):
    sleeps = []
    calls = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    async def operation(token: str) -> str:
        calls.append(token)
        raise FileMakerApiError("find", "HTTP 502", http_status=502)

    manager = _manager(http_client, clock, max_retries=3, sleep=fake_sleep)

    with pytest.raises(FileMakerApiError):
        await manager.run_authenticated(operation)

    assert len(calls) == 3
    assert sleeps == [2, 4]
    assert fake_filemaker.auth_calls == 1


@pytest.mark.asyncio
async def test_failed_operation_succeeds_on_a_later_attempt(http_client, clock, fake_filemaker):
    sleeps = []
    calls = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    async def operation(token: str) -> str:
        calls.append(token)
        if len(calls) < 3:
            raise httpx.ConnectError("conexion rechazada")
        return "ok"

    manager = _manager(http_client, clock, max_retries=3, sleep=fake_sleep)

    assert await manager.run_authenticated(operation) == "ok"
    assert len(calls) == 3
    assert sleeps == [2, 4]


@pytest.mark.asyncio
async def test_second_unauthorized_failure_stops_even_with_retries_left(http_client, clock, fake_filemaker):
    sleeps = []
    calls = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    async def operation(token: str) -> str:
        calls.append(token)
        raise UnauthorizedError("Invalid FileMaker Data API token (*)")

    manager = _manager(http_client, clock, max_retries=3, sleep=fake_sleep)

    with pytest.raises(UnauthorizedError):
        await manager.run_authenticated(operation)

    assert len(calls) == 2
    assert sleeps == []
    assert fake_filemaker.auth_calls == 2


def test_mask_token_keeps_only_prefix_and_suffix():
    token = "abcdefghij0123456789XYZWV"
    masked = mask_token(token)

    assert masked == "abcdefghij...XYZWV"
    assert "0123456789" not in masked
