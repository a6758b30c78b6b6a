"""Pytest bootstrap configuration.

Shared fixtures: an in-memory fake repository, a SQLite-backed repository
and an in-process gRPC server on an ephemeral port.
"""
import asyncio
from typing import List, Optional, Tuple

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from core.config import DatabaseSettings, GrpcSettings
from core.telemetry import Telemetry, noop_telemetry
from domain.common.exceptions import StoreError
from domain.user.entity import User
from domain.user.repository import UserRepository
from grpc_app.server import bind, create_server
from grpc_app.services.user_service import UserService
from infrastructure.database import create_tables, drop_tables
from infrastructure.repositories.user_repository import open_store


pytestmark = pytest.mark.asyncio


class FakeUserRepository(UserRepository):
    """In-memory repository.

    `error` is raised by every data operation, `close_error` by close().
    When `release` is set, create_user blocks until the event fires.
    """

    def __init__(
        self,
        *,
        error: Optional[StoreError] = None,
        close_error: Optional[StoreError] = None,
    ) -> None:
        self.users: List[User] = []
        self.error = error
        self.close_error = close_error
        self.closed = False
        self.create_started = asyncio.Event()
        self.release: Optional[asyncio.Event] = None

    async def create_user(self, email: str, name: str) -> User:
        self.create_started.set()
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        user = User(id=len(self.users) + 1, email=email, name=name)
        self.users.append(user)
        return user

    async def list_users(self) -> List[User]:
        if self.error is not None:
            raise self.error
        return list(self.users)

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


@pytest.fixture
def fake_repository() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def sqlite_settings(tmp_path) -> DatabaseSettings:
    return DatabaseSettings(dsn=f"sqlite+aiosqlite:///{tmp_path / 'users.db'}")


@pytest.fixture
async def user_repository(sqlite_settings):
    repo = await open_store(sqlite_settings)
    await create_tables(repo.engine)
    try:
        yield repo
    finally:
        await drop_tables(repo.engine)
        await repo.close()


async def start_grpc_server(repository: UserRepository, telemetry: Optional[Telemetry] = None) -> Tuple[str, object]:
    servicer = UserService(repository, telemetry or noop_telemetry())
    server, _ = await create_server(servicer, GrpcSettings(host="127.0.0.1", port=0))
    port = bind(server, "127.0.0.1", 0)
    await server.start()
    return f"127.0.0.1:{port}", server


@pytest.fixture
async def grpc_target(fake_repository) -> str:
    """Full interceptor chain + UserService over the fake repository."""
    target, server = await start_grpc_server(fake_repository)
    try:
        yield target
    finally:
        await server.stop(grace=None)


@pytest.fixture
def recording_telemetry():
    """Telemetry whose finished spans land in an in-memory exporter."""
    spans = InMemorySpanExporter()
    tracer_provider = TracerProvider()
    tracer_provider.add_span_processor(SimpleSpanProcessor(spans))
    telemetry = Telemetry(tracer_provider, MeterProvider(), shutdown_timeout=1.0)
    try:
        yield telemetry, spans
    finally:
        telemetry.shutdown()


@pytest.fixture
async def traced_grpc_target(fake_repository, recording_telemetry) -> str:
    telemetry, _ = recording_telemetry
    target, server = await start_grpc_server(fake_repository, telemetry)
    try:
        yield target
    finally:
        await server.stop(grace=None)
