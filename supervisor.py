"""
进程管理器

启动顺序：telemetry -> 数据库迁移 -> 连接存储 -> gRPC 监听 + REST 网关监听。
收到 SIGINT/SIGTERM 后按固定顺序关闭：
网关停止接收并等待在途请求 -> 健康检查置为 NOT_SERVING -> gRPC 优雅停止
-> 关闭 loopback 通道 -> 关闭存储 -> flush telemetry。
"""
from __future__ import annotations

import asyncio
import contextlib
import enum
import signal
import socket
from typing import Awaitable, Callable, Optional

import grpc
import uvicorn

from api.app import create_gateway_app
from core.config import DatabaseSettings, Settings, TelemetrySettings
from core.logging_config import get_logger
from core.telemetry import Telemetry, init_telemetry, noop_telemetry
from domain.common.exceptions import ListenerError, MigrationError, StoreError
from domain.user.repository import UserRepository
from grpc_app.server import bind, create_server, loopback_target
from grpc_app.services.user_service import UserService
from infrastructure.migrations import run_migrations
from infrastructure.repositories.user_repository import open_store


logger = get_logger(__name__)

MigrateFn = Callable[[Settings], Awaitable[None]]
StoreFactory = Callable[[DatabaseSettings], Awaitable[UserRepository]]
TelemetryFactory = Callable[[TelemetrySettings], Telemetry]


class SupervisorState(str, enum.Enum):
    STARTING = "starting"
    SERVING = "serving"
    DRAINING = "draining"
    STOPPED = "stopped"


class GatewayServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the supervisor."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind the gateway listening socket up front so a busy port fails fast."""
    address = f"{host}:{port}"
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError as exc:
        sock.close()
        raise ListenerError(address, exc.strerror or str(exc)) from exc
    sock.set_inheritable(True)
    return sock


class Supervisor:
    """
    进程生命周期管理

    状态机：STARTING -> SERVING -> DRAINING -> STOPPED。
    run() 返回进程退出码：正常关闭为 0，任一启动或关闭步骤失败为 1。

    Example:
        >>> supervisor = Supervisor(settings)
        >>> supervisor.install_signal_handlers()
        >>> code = await supervisor.run()
    """

    def __init__(
        self,
        settings: Settings,
        *,
        migrate: MigrateFn = run_migrations,
        store_factory: StoreFactory = open_store,
        telemetry_factory: TelemetryFactory = init_telemetry,
    ) -> None:
        self.settings = settings
        self._migrate = migrate
        self._store_factory = store_factory
        self._telemetry_factory = telemetry_factory

        self.state = SupervisorState.STARTING
        self.serving = asyncio.Event()
        self.rpc_port: Optional[int] = None
        self.http_port: Optional[int] = None

        self._shutdown_event = asyncio.Event()
        self._telemetry: Optional[Telemetry] = None
        self._store: Optional[UserRepository] = None

    def request_shutdown(self) -> None:
        """Request graceful shutdown (idempotent)."""
        if not self._shutdown_event.is_set():
            logger.info("shutdown_requested", state=self.state.value)
        self._shutdown_event.set()

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        loop = loop or asyncio.get_running_loop()

        def handle_signal(sig: int) -> None:
            logger.info("signal_received", signal=signal.Signals(sig).name)
            self.request_shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, handle_signal, sig)

    async def run(self) -> int:
        self._set_state(SupervisorState.STARTING)
        self._telemetry = self._start_telemetry()
        try:
            return await self._run()
        finally:
            await self._shutdown_telemetry()
            self._set_state(SupervisorState.STOPPED)

    async def _run(self) -> int:
        try:
            await self._migrate(self.settings)
        except MigrationError as exc:
            logger.error("startup_failed", step="migrations", error=exc.message)
            return 1

        try:
            self._store = await self._store_factory(self.settings.database)
        except StoreError as exc:
            logger.error("startup_failed", step="store", error=exc.message)
            return 1

        code = 1
        try:
            code = await self._serve(self._store)
        finally:
            if not await self._close_store():
                code = 1
        return code

    async def _serve(self, store: UserRepository) -> int:
        settings = self.settings
        servicer = UserService(store, self._telemetry)
        server, health_svc = await create_server(servicer, settings.grpc)

        try:
            self.rpc_port = bind(server, settings.grpc.host, settings.grpc.port)
            sock = bind_socket(settings.gateway.host, settings.gateway.port)
        except ListenerError as exc:
            logger.error("startup_failed", step="listen", address=exc.address, error=exc.message)
            await server.stop(None)
            return 1
        self.http_port = sock.getsockname()[1]

        await server.start()
        logger.info("grpc_started", address=f"{settings.grpc.host}:{self.rpc_port}")

        channel = grpc.aio.insecure_channel(loopback_target(settings.grpc.host, self.rpc_port))
        app = create_gateway_app(channel, settings, self._telemetry)
        gateway = GatewayServer(uvicorn.Config(
            app,
            log_config=None,
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=max(1, int(settings.gateway.drain_timeout)),
        ))
        gateway_task = asyncio.create_task(gateway.serve(sockets=[sock]), name="gateway")
        grpc_task = asyncio.create_task(server.wait_for_termination(), name="grpc")
        shutdown_task = asyncio.create_task(self._shutdown_event.wait(), name="shutdown")

        code = 0
        try:
            while not gateway.started:
                if gateway_task.done():
                    logger.error("startup_failed", step="gateway", error=_task_error(gateway_task))
                    code = 1
                    break
                await asyncio.sleep(0.05)
            else:
                logger.info("gateway_started", address=f"{settings.gateway.host}:{self.http_port}")
                self._set_state(SupervisorState.SERVING)
                self.serving.set()

                done, _ = await asyncio.wait(
                    {gateway_task, grpc_task, shutdown_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if shutdown_task not in done:
                    stopped = "gateway" if gateway_task in done else "grpc"
                    logger.error("listener_stopped_unexpectedly", listener=stopped)
                    code = 1
        finally:
            self._set_state(SupervisorState.DRAINING)
            await self._stop_gateway(gateway, gateway_task)
            await health_svc.enter_graceful_shutdown()
            await server.stop(grace=settings.gateway.drain_timeout)
            logger.info("grpc_stopped")
            for task in (grpc_task, shutdown_task):
                task.cancel()
            await asyncio.gather(grpc_task, shutdown_task, return_exceptions=True)
            await channel.close()
            sock.close()
        return code

    async def _stop_gateway(self, gateway: GatewayServer, gateway_task: asyncio.Task) -> None:
        """停止接收新连接，等待在途 HTTP 请求结束（最多 drain_timeout 秒）"""
        gateway.should_exit = True
        drain_timeout = self.settings.gateway.drain_timeout
        try:
            await asyncio.wait_for(asyncio.shield(gateway_task), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning("gateway_drain_timeout", timeout=drain_timeout)
            gateway.force_exit = True
            gateway_task.cancel()
            await asyncio.gather(gateway_task, return_exceptions=True)
        except Exception as exc:
            logger.error("gateway_stopped_with_error", error=str(exc), exc_info=True)
        else:
            logger.info("gateway_stopped")

    async def _close_store(self) -> bool:
        if self._store is None:
            return True
        try:
            await self._store.close()
        except StoreError as exc:
            logger.error("store_close_failed", error=exc.message)
            return False
        finally:
            self._store = None
        logger.info("store_closed")
        return True

    def _start_telemetry(self) -> Telemetry:
        try:
            return self._telemetry_factory(self.settings.telemetry)
        except Exception as exc:
            logger.warning("otel_init_failed", error=str(exc), exc_info=True)
            return noop_telemetry()

    async def _shutdown_telemetry(self) -> None:
        """telemetry flush 失败只记录日志，不影响退出码"""
        if self._telemetry is None:
            return
        telemetry, self._telemetry = self._telemetry, None
        try:
            flushed = await asyncio.to_thread(telemetry.shutdown)
        except Exception as exc:
            logger.warning("otel_shutdown_failed", error=str(exc), exc_info=True)
            return
        if not flushed:
            logger.warning("otel_flush_incomplete", timeout=telemetry.shutdown_timeout)

    def _set_state(self, state: SupervisorState) -> None:
        if state is not self.state:
            logger.info("supervisor_state", previous=self.state.value, state=state.value)
        self.state = state


def _task_error(task: asyncio.Task) -> str:
    if task.cancelled():
        return "cancelled"
    exc = task.exception()
    return str(exc) if exc else "exited before startup completed"
