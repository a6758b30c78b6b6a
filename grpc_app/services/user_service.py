from __future__ import annotations

import grpc
from opentelemetry import context as otel_context
from opentelemetry import trace

from core.telemetry import PROPAGATOR, Telemetry
from domain.user.repository import UserRepository
from grpc_app.mappers.user import user_entity_to_proto
from grpc_app.proto import users_pb2, users_pb2_grpc


def remote_context(context: grpc.aio.ServicerContext) -> otel_context.Context:
    """Parent context carried in traceparent/baggage metadata (the REST gateway injects it)."""
    carrier = {key: value for key, value in (context.invocation_metadata() or ()) if isinstance(value, str)}
    return PROPAGATOR.extract(carrier)


class UserService(users_pb2_grpc.UserServiceServicer):
    """Thin adapter from UserService RPCs to the user repository.

    Repository errors (StoreError) propagate unchanged; the exception mapping
    interceptor turns them into gRPC statuses.
    """

    def __init__(self, repository: UserRepository, telemetry: Telemetry) -> None:
        self._repository = repository
        self._tracer = telemetry.tracer(__name__)
        self._requests = telemetry.meter(__name__).create_counter(
            "users.rpc.requests",
            unit="1",
            description="UserService RPCs received",
        )

    async def CreateUser(self, request: users_pb2.CreateUserRequest, context: grpc.aio.ServicerContext) -> users_pb2.CreateUserResponse:
        self._requests.add(1, {"rpc.method": "CreateUser"})
        with self._tracer.start_as_current_span(
            "users.CreateUser", context=remote_context(context), kind=trace.SpanKind.SERVER
        ):
            user = await self._repository.create_user(email=request.email, name=request.name)
        return users_pb2.CreateUserResponse(user=user_entity_to_proto(user))

    async def ListUsers(self, request: users_pb2.ListUsersRequest, context: grpc.aio.ServicerContext) -> users_pb2.ListUsersResponse:
        self._requests.add(1, {"rpc.method": "ListUsers"})
        with self._tracer.start_as_current_span(
            "users.ListUsers", context=remote_context(context), kind=trace.SpanKind.SERVER
        ):
            users = await self._repository.list_users()
        return users_pb2.ListUsersResponse(users=[user_entity_to_proto(u) for u in users])
