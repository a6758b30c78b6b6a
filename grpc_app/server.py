from __future__ import annotations

from typing import Sequence, Tuple
import grpc
from grpc_health.v1 import health, health_pb2, health_pb2_grpc

from core.config import GrpcSettings
from core.logging_config import get_logger
from domain.common.exceptions import ListenerError
from grpc_app.interceptors.request_id import RequestIdInterceptor
from grpc_app.interceptors.logging import LoggingInterceptor
from grpc_app.interceptors.exceptions import ExceptionMappingInterceptor
from grpc_app.proto import users_pb2_grpc


logger = get_logger(__name__)


async def create_server(
    servicer: users_pb2_grpc.UserServiceServicer,
    config: GrpcSettings,
) -> Tuple[grpc.aio.Server, health.aio.HealthServicer]:
    """Build the aio server with interceptors, UserService and the health service.

    The server is not bound to any port yet; see `bind`.
    """
    interceptors: Sequence[grpc.aio.ServerInterceptor] = (
        RequestIdInterceptor(),
        LoggingInterceptor(),
        ExceptionMappingInterceptor(),  # maps StoreError and unexpected exceptions
    )

    options = [
        ("grpc.max_concurrent_streams", max(1, config.max_concurrent_streams)),
    ]
    server = grpc.aio.server(interceptors=interceptors, options=options)

    users_pb2_grpc.add_UserServiceServicer_to_server(servicer, server)

    health_svc = health.aio.HealthServicer()
    health_pb2_grpc.add_HealthServicer_to_server(health_svc, server)
    await health_svc.set("", health_pb2.HealthCheckResponse.SERVING)
    await health_svc.set(users_pb2_grpc.SERVICE_NAME, health_pb2.HealthCheckResponse.SERVING)

    return server, health_svc


def bind(server: grpc.aio.Server, host: str, port: int) -> int:
    """Bind an insecure port and return the actual port (useful with port 0)."""
    address = f"{host}:{port}"
    try:
        bound = server.add_insecure_port(address)
    except RuntimeError as exc:
        raise ListenerError(address, str(exc)) from exc
    # older grpcio signals bind failure by returning 0
    if not bound:
        raise ListenerError(address, "address unavailable")
    logger.info("grpc_bound", address=f"{host}:{bound}")
    return bound


def loopback_target(host: str, port: int) -> str:
    """Address the in-process gateway uses to reach this server."""
    if host in ("", "0.0.0.0", "[::]", "::"):
        host = "127.0.0.1"
    return f"{host}:{port}"
