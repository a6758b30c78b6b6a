"""Process lifecycle: startup order, graceful drain and exit codes."""
import asyncio
import socket

import grpc
import httpx
import pytest

from core.config import DatabaseSettings, GatewaySettings, GrpcSettings, MigrationSettings, Settings
from core.telemetry import Telemetry, noop_telemetry
from domain.common.exceptions import ListenerError, MigrationError, StoreError
from grpc_app.proto import users_pb2, users_pb2_grpc
from infrastructure.database import create_engine, create_tables
from supervisor import Supervisor, SupervisorState, bind_socket


pytestmark = pytest.mark.asyncio

TIMEOUT = 10


def make_settings(**overrides) -> Settings:
    values = dict(
        grpc=GrpcSettings(host="127.0.0.1", port=0),
        gateway=GatewaySettings(host="127.0.0.1", port=0, drain_timeout=3.0),
        migrations=MigrationSettings(enabled=False),
    )
    values.update(overrides)
    return Settings(**values)


async def no_migrations(settings):
    return None


def make_supervisor(settings, repository, **kwargs) -> Supervisor:
    async def store_factory(config):
        return repository

    kwargs.setdefault("migrate", no_migrations)
    kwargs.setdefault("telemetry_factory", lambda config: noop_telemetry())
    return Supervisor(settings, store_factory=store_factory, **kwargs)


async def start(supervisor: Supervisor) -> asyncio.Task:
    task = asyncio.create_task(supervisor.run())
    serving = asyncio.create_task(supervisor.serving.wait())
    done, _ = await asyncio.wait({task, serving}, timeout=TIMEOUT, return_when=asyncio.FIRST_COMPLETED)
    assert serving in done, "supervisor did not reach SERVING"
    return task


class RecordingTelemetry(Telemetry):
    def __init__(self, *, fail: bool = False) -> None:
        base = noop_telemetry()
        super().__init__(base.tracer_provider, base.meter_provider, shutdown_timeout=1.0)
        self.fail = fail
        self.shutdown_calls = 0

    def shutdown(self) -> bool:
        self.shutdown_calls += 1
        if self.fail:
            raise RuntimeError("exporter unreachable")
        return super().shutdown()


async def test_end_to_end_over_http_with_sqlite_store(sqlite_settings):
    async def create_schema(settings):
        engine = create_engine(settings.database)
        try:
            await create_tables(engine)
        finally:
            await engine.dispose()

    supervisor = Supervisor(
        make_settings(database=sqlite_settings),
        migrate=create_schema,
        telemetry_factory=lambda config: noop_telemetry(),
    )
    task = await start(supervisor)
    assert supervisor.state is SupervisorState.SERVING

    base_url = f"http://127.0.0.1:{supervisor.http_port}"
    async with httpx.AsyncClient(base_url=base_url, timeout=TIMEOUT) as client:
        resp = await client.post("/api/v1/users", json={"email": "jdoe@example.com", "name": "John Doe"})
        assert resp.status_code == 200
        assert resp.json() == {"user": {"id": 1, "email": "jdoe@example.com", "name": "John Doe"}}

        resp = await client.get("/api/v1/users")
        assert resp.json() == {"users": [{"id": 1, "email": "jdoe@example.com", "name": "John Doe"}]}

    supervisor.request_shutdown()
    assert await asyncio.wait_for(task, TIMEOUT) == 0
    assert supervisor.state is SupervisorState.STOPPED


async def test_in_flight_call_completes_after_shutdown_request(fake_repository):
    fake_repository.release = asyncio.Event()
    supervisor = make_supervisor(make_settings(), fake_repository)
    task = await start(supervisor)

    target = f"127.0.0.1:{supervisor.rpc_port}"
    async with grpc.aio.insecure_channel(target) as channel:
        stub = users_pb2_grpc.UserServiceStub(channel)
        call = asyncio.ensure_future(stub.CreateUser(
            users_pb2.CreateUserRequest(email="jdoe@example.com", name="John Doe"), timeout=TIMEOUT,
        ))
        await asyncio.wait_for(fake_repository.create_started.wait(), TIMEOUT)

        supervisor.request_shutdown()
        while supervisor.state is not SupervisorState.DRAINING:
            await asyncio.sleep(0.01)
        # let the gateway finish and the RPC listener enter its grace period
        await asyncio.sleep(0.5)
        assert not task.done()

        fake_repository.release.set()
        reply = await asyncio.wait_for(call, TIMEOUT)
        assert reply.user.id == 1

        assert await asyncio.wait_for(task, TIMEOUT) == 0

        with pytest.raises(grpc.aio.AioRpcError) as ei:
            await stub.ListUsers(users_pb2.ListUsersRequest(), timeout=2)
        assert ei.value.code() in (grpc.StatusCode.UNAVAILABLE, grpc.StatusCode.DEADLINE_EXCEEDED)

    assert fake_repository.closed


async def test_migration_failure_exits_without_listeners(fake_repository):
    opened = []

    async def failing_migrate(settings):
        raise MigrationError("failed to run migrations: syntax error")

    async def store_factory(config):
        opened.append(config)
        return fake_repository

    telemetry = RecordingTelemetry()
    supervisor = Supervisor(
        make_settings(),
        migrate=failing_migrate,
        store_factory=store_factory,
        telemetry_factory=lambda config: telemetry,
    )
    assert await asyncio.wait_for(supervisor.run(), TIMEOUT) == 1
    assert opened == []
    assert supervisor.rpc_port is None
    assert supervisor.http_port is None
    assert supervisor.state is SupervisorState.STOPPED
    assert telemetry.shutdown_calls == 1


async def test_store_open_failure_exits_1():
    async def store_factory(config):
        raise StoreError("connection refused")

    supervisor = Supervisor(
        make_settings(),
        migrate=no_migrations,
        store_factory=store_factory,
        telemetry_factory=lambda config: noop_telemetry(),
    )
    assert await asyncio.wait_for(supervisor.run(), TIMEOUT) == 1
    assert supervisor.rpc_port is None


async def test_store_close_failure_exits_1(fake_repository):
    fake_repository.close_error = StoreError("close failed")
    supervisor = make_supervisor(make_settings(), fake_repository)
    task = await start(supervisor)

    supervisor.request_shutdown()
    assert await asyncio.wait_for(task, TIMEOUT) == 1
    assert fake_repository.closed
    assert supervisor.state is SupervisorState.STOPPED


async def test_telemetry_shutdown_failure_is_not_fatal(fake_repository):
    telemetry = RecordingTelemetry(fail=True)
    supervisor = make_supervisor(make_settings(), fake_repository, telemetry_factory=lambda config: telemetry)
    task = await start(supervisor)

    supervisor.request_shutdown()
    assert await asyncio.wait_for(task, TIMEOUT) == 0
    assert telemetry.shutdown_calls == 1


async def test_busy_http_port_exits_1(fake_repository):
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen()
    port = blocker.getsockname()[1]
    try:
        settings = make_settings(gateway=GatewaySettings(host="127.0.0.1", port=port))
        supervisor = make_supervisor(settings, fake_repository)
        assert await asyncio.wait_for(supervisor.run(), TIMEOUT) == 1
        assert fake_repository.closed
        assert not supervisor.serving.is_set()
    finally:
        blocker.close()


async def test_bind_socket_reports_address():
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen()
    port = blocker.getsockname()[1]
    try:
        with pytest.raises(ListenerError) as ei:
            bind_socket("127.0.0.1", port)
        assert ei.value.address == f"127.0.0.1:{port}"
    finally:
        blocker.close()


async def test_request_shutdown_is_idempotent(fake_repository):
    supervisor = make_supervisor(make_settings(), fake_repository)
    task = await start(supervisor)

    supervisor.request_shutdown()
    supervisor.request_shutdown()
    assert await asyncio.wait_for(task, TIMEOUT) == 0


async def test_unreachable_database_exits_1():
    supervisor = Supervisor(
        make_settings(database=DatabaseSettings(host="127.0.0.1", port=1)),
        migrate=no_migrations,
        telemetry_factory=lambda config: noop_telemetry(),
    )
    assert await asyncio.wait_for(supervisor.run(), TIMEOUT) == 1
    assert supervisor.rpc_port is None
    assert supervisor.state is SupervisorState.STOPPED
