"""
用户API路由 - 将 REST 请求翻译为 UserService RPC
"""
from fastapi import APIRouter, Depends, Request
from opentelemetry import trace

from api.dependencies import call_metadata, get_tracer, get_user_stub
from api.schemas import CreateUserBody, CreateUserReply, ListUsersReply, UserSchema
from grpc_app.proto import users_pb2
from grpc_app.proto.users_pb2_grpc import SERVICE_NAME, UserServiceStub

router = APIRouter(
    prefix="/users",
    tags=["users"]
)


@router.post("", summary="CreateUser", response_model=CreateUserReply)
async def create_user(
    request: Request,
    body: CreateUserBody,
    stub: UserServiceStub = Depends(get_user_stub),
    tracer: trace.Tracer = Depends(get_tracer),
):
    """
    创建用户

    - **email**: 邮箱（不校验格式，不要求唯一）
    - **name**: 名称
    """
    with tracer.start_as_current_span(f"{SERVICE_NAME}/CreateUser", kind=trace.SpanKind.CLIENT):
        reply = await stub.CreateUser(body.to_proto(), metadata=call_metadata(request))
    return CreateUserReply(user=UserSchema.from_proto(reply.user))


@router.get("", summary="ListUsers", response_model=ListUsersReply)
async def list_users(
    request: Request,
    stub: UserServiceStub = Depends(get_user_stub),
    tracer: trace.Tracer = Depends(get_tracer),
):
    """返回全部用户，无分页"""
    with tracer.start_as_current_span(f"{SERVICE_NAME}/ListUsers", kind=trace.SpanKind.CLIENT):
        reply = await stub.ListUsers(users_pb2.ListUsersRequest(), metadata=call_metadata(request))
    return ListUsersReply(users=[UserSchema.from_proto(u) for u in reply.users])
