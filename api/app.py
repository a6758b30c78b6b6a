"""
REST/JSON 网关应用

将 /api/v1/users 的HTTP请求翻译为对本进程 gRPC 监听的调用
"""
from typing import Optional

import grpc
from fastapi import FastAPI

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import user
from core.config import Settings
from core.exceptions import register_exception_handlers
from core.telemetry import Telemetry, noop_telemetry
from grpc_app.proto.users_pb2_grpc import UserServiceStub


def create_gateway_app(
    channel: grpc.aio.Channel,
    settings: Optional[Settings] = None,
    telemetry: Optional[Telemetry] = None,
) -> FastAPI:
    """
    创建网关应用

    Args:
        channel: 指向 RPC 监听 loopback 地址的 grpc.aio 通道（由调用方负责关闭）
        settings: 应用配置，仅用于标题/版本/调试开关
        telemetry: 网关 span 使用的 provider；未传入时不导出
    """
    title = settings.PROJECT_NAME if settings else "users-api"
    version = settings.VERSION if settings else "1.0.0"
    debug = settings.DEBUG if settings else False

    app = FastAPI(
        title=title,
        version=version,
        debug=debug,
        description="Users REST gateway over the users.v1.UserService RPC API",
    )
    app.state.user_stub = UserServiceStub(channel)
    app.state.tracer = (telemetry or noop_telemetry()).tracer("api.gateway")

    # 添加中间件（注意顺序：后添加的先执行）
    # 1. 日志中间件（需要在RequestID之后执行，以便获取request_id）
    app.add_middleware(LoggingMiddleware)
    # 2. Request ID中间件（最外层）
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(user.router, prefix="/api/v1")

    return app
