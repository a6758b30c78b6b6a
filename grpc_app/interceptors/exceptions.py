from __future__ import annotations

from typing import Callable, Awaitable
import contextvars

import grpc

from core.logging_config import get_logger
from grpc_app.interceptors.request_id import REQUEST_ID_META_KEY, get_request_id
from domain.common.exceptions import AppException


logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "internal error"

# Mark that the current request has been mapped to a gRPC status
_mapped_error: contextvars.ContextVar[bool] = contextvars.ContextVar("grpc_mapped_error", default=False)


def set_mapped_error() -> None:
    _mapped_error.set(True)


def is_mapped_error() -> bool:
    return bool(_mapped_error.get())


def exception_to_status(exc: Exception) -> tuple[grpc.StatusCode, str]:
    """StoreError carries the database driver's message verbatim; anything else is opaque."""
    if isinstance(exc, AppException):
        return grpc.StatusCode.INTERNAL, exc.message
    return grpc.StatusCode.INTERNAL, INTERNAL_ERROR_MESSAGE


class ExceptionMappingInterceptor(grpc.aio.ServerInterceptor):
    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        handler = await continuation(handler_call_details)
        if handler is None or not handler.unary_unary:
            return handler

        async def _unary_unary(request, context: grpc.aio.ServicerContext):
            try:
                return await handler.unary_unary(request, context)
            except grpc.aio.AbortError:
                # Servicer already aborted with an explicit status
                raise
            except Exception as exc:
                status, message = exception_to_status(exc)
                error_type = exc.error_type if isinstance(exc, AppException) else "SystemError"
                trailers = [("x-error-type", error_type)]
                if get_request_id():
                    trailers.append((REQUEST_ID_META_KEY, get_request_id()))
                context.set_trailing_metadata(tuple(trailers))
                set_mapped_error()
                logger.error(
                    "grpc_mapped_error",
                    method=handler_call_details.method,
                    status=str(status),
                    error_type=error_type,
                    message=str(exc),
                    request_id=get_request_id(),
                    exc_info=not isinstance(exc, AppException),
                )
                await context.abort(status, message)

        return grpc.unary_unary_rpc_method_handler(
            _unary_unary,
            request_deserializer=handler.request_deserializer,
            response_serializer=handler.response_serializer,
        )
