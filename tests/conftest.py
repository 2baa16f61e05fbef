"""
Configuración de fixtures para pytest.

- Base de datos: SQLite en memoria (aiosqlite), tablas creadas por test.
- FileMaker: servidor falso servido con httpx.MockTransport.
"""
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from roster_sync.infrastructure.database import models  # noqa: F401
from roster_sync.infrastructure.database.session import Base
from roster_sync.infrastructure.filemaker.client import FileMakerClient
from tests.fakes import TEST_CREDENTIALS, FakeFileMakerServer


# URL de base de datos de prueba
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def fake_filemaker() -> FakeFileMakerServer:
    return FakeFileMakerServer()


@pytest_asyncio.fixture
async def filemaker_client(fake_filemaker: FakeFileMakerServer) -> AsyncGenerator[FileMakerClient, None]:
    """Cliente real apuntando al servidor falso."""
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_filemaker.handler))
    client = FileMakerClient(TEST_CREDENTIALS, http_client=http)
    yield client
    await http.aclose()


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Factory de sesiones sobre la base en memoria (para la fase de background)."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Fixture que proporciona una sesión de base de datos para tests.
    Crea una base de datos en memoria para cada test.
    """
    async with session_factory() as session:
        yield session
