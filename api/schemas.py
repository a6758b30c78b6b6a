"""
网关 JSON 模型 - 字段与 users.v1 消息一一对应
"""
from typing import List

from pydantic import BaseModel, ConfigDict, StrictStr

from grpc_app.proto import users_pb2


class UserSchema(BaseModel):
    id: int
    email: str
    name: str

    @classmethod
    def from_proto(cls, msg: users_pb2.User) -> "UserSchema":
        return cls(id=msg.id, email=msg.email, name=msg.name)


class CreateUserBody(BaseModel):
    """POST /api/v1/users 请求体；缺失字段取 proto3 默认值（空字符串），未知字段拒绝"""
    model_config = ConfigDict(extra="forbid")

    email: StrictStr = ""
    name: StrictStr = ""

    def to_proto(self) -> users_pb2.CreateUserRequest:
        return users_pb2.CreateUserRequest(email=self.email, name=self.name)


class CreateUserReply(BaseModel):
    user: UserSchema


class ListUsersReply(BaseModel):
    users: List[UserSchema]
