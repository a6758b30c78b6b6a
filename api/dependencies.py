"""
API依赖项 - gRPC 客户端、tracer 与调用元数据
"""
from typing import Dict, List, Tuple

from fastapi import Request
from opentelemetry import trace

from api.middleware import get_request_id
from core.telemetry import PROPAGATOR
from grpc_app.interceptors.request_id import REQUEST_ID_META_KEY
from grpc_app.proto.users_pb2_grpc import UserServiceStub


def get_user_stub(request: Request) -> UserServiceStub:
    """网关共享的 loopback gRPC 客户端（由 create_gateway_app 放入 app.state）"""
    return request.app.state.user_stub


def get_tracer(request: Request) -> trace.Tracer:
    return request.app.state.tracer


def call_metadata(request: Request) -> List[Tuple[str, str]]:
    """
    构造下游 RPC 的调用元数据

    - x-request-id：便于跨监听串联日志
    - traceparent/tracestate/baggage：当前 span 的 W3C 上下文，需在 span 内调用
    """
    metadata: List[Tuple[str, str]] = []
    request_id = getattr(request.state, "request_id", None) or get_request_id()
    if request_id:
        metadata.append((REQUEST_ID_META_KEY, request_id))

    carrier: Dict[str, str] = {}
    PROPAGATOR.inject(carrier)
    metadata.extend((key.lower(), value) for key, value in carrier.items())
    return metadata
