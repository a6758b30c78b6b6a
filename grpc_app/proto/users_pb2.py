"""Message classes for users.v1 (mirrors users.proto).

The file descriptor is assembled with `descriptor_pb2` and registered in the
default descriptor pool, the same registration step protoc-generated modules
perform.
"""

from __future__ import annotations

from google.protobuf import descriptor, descriptor_pb2, descriptor_pool, message_factory


FILE_NAME = "users/v1/users.proto"
PACKAGE = "users.v1"

_Field = descriptor_pb2.FieldDescriptorProto


def _add_field(message, name: str, number: int, field_type: int, *, repeated: bool = False, type_name: str = "") -> None:
    field = message.field.add(
        name=name,
        number=number,
        type=field_type,
        label=_Field.LABEL_REPEATED if repeated else _Field.LABEL_OPTIONAL,
        json_name=name,
    )
    if type_name:
        field.type_name = type_name


def build_file_descriptor_proto() -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto(name=FILE_NAME, package=PACKAGE, syntax="proto3")

    user = fdp.message_type.add(name="User")
    _add_field(user, "id", 1, _Field.TYPE_INT64)
    _add_field(user, "email", 2, _Field.TYPE_STRING)
    _add_field(user, "name", 3, _Field.TYPE_STRING)

    create_req = fdp.message_type.add(name="CreateUserRequest")
    _add_field(create_req, "email", 1, _Field.TYPE_STRING)
    _add_field(create_req, "name", 2, _Field.TYPE_STRING)

    create_resp = fdp.message_type.add(name="CreateUserResponse")
    _add_field(create_resp, "user", 1, _Field.TYPE_MESSAGE, type_name=f".{PACKAGE}.User")

    fdp.message_type.add(name="ListUsersRequest")

    list_resp = fdp.message_type.add(name="ListUsersResponse")
    _add_field(list_resp, "users", 1, _Field.TYPE_MESSAGE, repeated=True, type_name=f".{PACKAGE}.User")

    service = fdp.service.add(name="UserService")
    service.method.add(
        name="CreateUser",
        input_type=f".{PACKAGE}.CreateUserRequest",
        output_type=f".{PACKAGE}.CreateUserResponse",
    )
    service.method.add(
        name="ListUsers",
        input_type=f".{PACKAGE}.ListUsersRequest",
        output_type=f".{PACKAGE}.ListUsersResponse",
    )
    return fdp


def _register() -> descriptor.FileDescriptor:
    pool = descriptor_pool.Default()
    try:
        return pool.FindFileByName(FILE_NAME)
    except KeyError:
        return pool.AddSerializedFile(build_file_descriptor_proto().SerializeToString())


DESCRIPTOR = _register()

User = message_factory.GetMessageClass(DESCRIPTOR.message_types_by_name["User"])
CreateUserRequest = message_factory.GetMessageClass(DESCRIPTOR.message_types_by_name["CreateUserRequest"])
CreateUserResponse = message_factory.GetMessageClass(DESCRIPTOR.message_types_by_name["CreateUserResponse"])
ListUsersRequest = message_factory.GetMessageClass(DESCRIPTOR.message_types_by_name["ListUsersRequest"])
ListUsersResponse = message_factory.GetMessageClass(DESCRIPTOR.message_types_by_name["ListUsersResponse"])
