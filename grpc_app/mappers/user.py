from __future__ import annotations

from domain.user.entity import User
from grpc_app.proto import users_pb2


def user_entity_to_proto(user: User) -> users_pb2.User:
    return users_pb2.User(id=int(user.id), email=user.email, name=user.name)
