"""
网关异常映射与全局异常处理器

gRPC 状态码 -> HTTP 状态码，错误体沿用 gRPC-gateway 的 {code, message, details}
"""
from typing import Dict

import grpc
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status as http_status

from core.logging_config import get_logger


GRPC_TO_HTTP_STATUS: Dict[grpc.StatusCode, int] = {
    grpc.StatusCode.OK: http_status.HTTP_200_OK,
    grpc.StatusCode.CANCELLED: 499,
    grpc.StatusCode.UNKNOWN: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    grpc.StatusCode.INVALID_ARGUMENT: http_status.HTTP_400_BAD_REQUEST,
    grpc.StatusCode.DEADLINE_EXCEEDED: http_status.HTTP_504_GATEWAY_TIMEOUT,
    grpc.StatusCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    grpc.StatusCode.ALREADY_EXISTS: http_status.HTTP_409_CONFLICT,
    grpc.StatusCode.PERMISSION_DENIED: http_status.HTTP_403_FORBIDDEN,
    grpc.StatusCode.UNAUTHENTICATED: http_status.HTTP_401_UNAUTHORIZED,
    grpc.StatusCode.RESOURCE_EXHAUSTED: http_status.HTTP_429_TOO_MANY_REQUESTS,
    grpc.StatusCode.FAILED_PRECONDITION: http_status.HTTP_400_BAD_REQUEST,
    grpc.StatusCode.ABORTED: http_status.HTTP_409_CONFLICT,
    grpc.StatusCode.OUT_OF_RANGE: http_status.HTTP_400_BAD_REQUEST,
    grpc.StatusCode.UNIMPLEMENTED: http_status.HTTP_501_NOT_IMPLEMENTED,
    grpc.StatusCode.INTERNAL: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    grpc.StatusCode.UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    grpc.StatusCode.DATA_LOSS: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def grpc_status_to_http(code: grpc.StatusCode) -> int:
    """根据 gRPC 状态码映射 HTTP 状态码（未知默认500）"""
    return GRPC_TO_HTTP_STATUS.get(code, http_status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_body(code: grpc.StatusCode, message: str) -> dict:
    return {"code": code.value[0], "message": message, "details": []}


def register_exception_handlers(app: FastAPI):
    """
    注册全局异常处理器

    Args:
        app: FastAPI应用实例
    """

    logger = get_logger(__name__)

    @app.exception_handler(grpc.aio.AioRpcError)
    async def rpc_error_handler(request: Request, exc: grpc.aio.AioRpcError):
        """处理下游 gRPC 调用返回的错误状态"""
        code = exc.code()
        status_code = grpc_status_to_http(code)
        logger.warning(
            "gateway_rpc_error",
            grpc_code=code.name,
            status_code=status_code,
            message=exc.details(),
        )
        return JSONResponse(status_code=status_code, content=error_body(code, exc.details() or ""))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理参数验证异常（包括非法JSON与未知字段）"""
        errors = exc.errors()
        first_error = errors[0] if errors else {}
        message = first_error.get("msg", "invalid request body")
        logger.info("gateway_invalid_body", reason=message)
        return JSONResponse(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            content=error_body(grpc.StatusCode.INVALID_ARGUMENT, message),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """处理所有未捕获的异常"""
        request_id = getattr(request.state, "request_id", None)
        logger.error(
            "unhandled_exception",
            request_id=request_id,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(grpc.StatusCode.INTERNAL, "internal error"),
        )
