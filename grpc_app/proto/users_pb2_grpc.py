"""Client stub, service contract and server registration for users.v1.UserService."""

from __future__ import annotations

from abc import ABC, abstractmethod

import grpc

from grpc_app.proto import users_pb2


SERVICE_NAME = "users.v1.UserService"
CREATE_USER_METHOD = f"/{SERVICE_NAME}/CreateUser"
LIST_USERS_METHOD = f"/{SERVICE_NAME}/ListUsers"


class UserServiceStub:
    """Client for UserService; works with both sync and `grpc.aio` channels."""

    def __init__(self, channel) -> None:
        self.CreateUser = channel.unary_unary(
            CREATE_USER_METHOD,
            request_serializer=users_pb2.CreateUserRequest.SerializeToString,
            response_deserializer=users_pb2.CreateUserResponse.FromString,
        )
        self.ListUsers = channel.unary_unary(
            LIST_USERS_METHOD,
            request_serializer=users_pb2.ListUsersRequest.SerializeToString,
            response_deserializer=users_pb2.ListUsersResponse.FromString,
        )


class UserServiceServicer(ABC):
    """Server-side contract: exactly CreateUser and ListUsers."""

    @abstractmethod
    async def CreateUser(
        self, request: users_pb2.CreateUserRequest, context: grpc.aio.ServicerContext
    ) -> users_pb2.CreateUserResponse:
        ...

    @abstractmethod
    async def ListUsers(
        self, request: users_pb2.ListUsersRequest, context: grpc.aio.ServicerContext
    ) -> users_pb2.ListUsersResponse:
        ...


def add_UserServiceServicer_to_server(servicer: UserServiceServicer, server: grpc.aio.Server) -> None:
    rpc_method_handlers = {
        "CreateUser": grpc.unary_unary_rpc_method_handler(
            servicer.CreateUser,
            request_deserializer=users_pb2.CreateUserRequest.FromString,
            response_serializer=users_pb2.CreateUserResponse.SerializeToString,
        ),
        "ListUsers": grpc.unary_unary_rpc_method_handler(
            servicer.ListUsers,
            request_deserializer=users_pb2.ListUsersRequest.FromString,
            response_serializer=users_pb2.ListUsersResponse.SerializeToString,
        ),
    }
    generic_handler = grpc.method_handlers_generic_handler(SERVICE_NAME, rpc_method_handlers)
    server.add_generic_rpc_handlers((generic_handler,))
