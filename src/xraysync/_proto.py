"""Xray API protobuf messages built at import time.

Only a handful of messages from Xray's ``app/proxyman/command``,
``common/protocol``, ``common/serial`` and ``proxy/*`` packages are needed to
add and remove inbound users. They are declared here as descriptors and
materialized through a private :class:`DescriptorPool`, which avoids a
``protoc`` step and keeps these names out of the default pool.

Field numbers follow the upstream ``.proto`` files.
"""

from __future__ import annotations

from typing import Any

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import Message

_FIELD = descriptor_pb2.FieldDescriptorProto

# (name, number, type, message type name or None)
_FieldSpec = tuple[str, int, int, str | None]

_FILES: tuple[tuple[str, str, tuple[str, ...], dict[str, tuple[_FieldSpec, ...]]], ...] = (
    (
        "common/serial/typed_message.proto",
        "xray.common.serial",
        (),
        {
            "TypedMessage": (
                ("type", 1, _FIELD.TYPE_STRING, None),
                ("value", 2, _FIELD.TYPE_BYTES, None),
            ),
        },
    ),
    (
        "common/protocol/user.proto",
        "xray.common.protocol",
        ("common/serial/typed_message.proto",),
        {
            "User": (
                ("level", 1, _FIELD.TYPE_UINT32, None),
                ("email", 2, _FIELD.TYPE_STRING, None),
                ("account", 3, _FIELD.TYPE_MESSAGE, ".xray.common.serial.TypedMessage"),
            ),
        },
    ),
    (
        "app/proxyman/command/command.proto",
        "xray.app.proxyman.command",
        ("common/protocol/user.proto", "common/serial/typed_message.proto"),
        {
            "AddUserOperation": (("user", 1, _FIELD.TYPE_MESSAGE, ".xray.common.protocol.User"),),
            "RemoveUserOperation": (("email", 1, _FIELD.TYPE_STRING, None),),
            "AlterInboundRequest": (
                ("tag", 1, _FIELD.TYPE_STRING, None),
                ("operation", 2, _FIELD.TYPE_MESSAGE, ".xray.common.serial.TypedMessage"),
            ),
            "AlterInboundResponse": (),
        },
    ),
    (
        "proxy/vless/account.proto",
        "xray.proxy.vless",
        (),
        {
            "Account": (
                ("id", 1, _FIELD.TYPE_STRING, None),
                ("flow", 2, _FIELD.TYPE_STRING, None),
                ("encryption", 3, _FIELD.TYPE_STRING, None),
            ),
        },
    ),
    (
        "proxy/trojan/config.proto",
        "xray.proxy.trojan",
        (),
        {
            "Account": (("password", 1, _FIELD.TYPE_STRING, None),),
        },
    ),
)


def _build_pool() -> descriptor_pool.DescriptorPool:
    pool = descriptor_pool.DescriptorPool()
    for file_name, package, dependencies, messages in _FILES:
        file_proto = descriptor_pb2.FileDescriptorProto(
            name=file_name,
            package=package,
            syntax="proto3",
            dependency=list(dependencies),
        )
        for message_name, fields in messages.items():
            message_proto = file_proto.message_type.add(name=message_name)
            for field_name, number, field_type, type_name in fields:
                field_proto = message_proto.field.add(
                    name=field_name,
                    number=number,
                    type=field_type,
                    label=_FIELD.LABEL_OPTIONAL,
                )
                if type_name is not None:
                    field_proto.type_name = type_name
        pool.AddSerializedFile(file_proto.SerializeToString())
    return pool


_POOL = _build_pool()


def _message_class(full_name: str) -> Any:
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(full_name))


TypedMessage = _message_class("xray.common.serial.TypedMessage")
User = _message_class("xray.common.protocol.User")
AddUserOperation = _message_class("xray.app.proxyman.command.AddUserOperation")
RemoveUserOperation = _message_class("xray.app.proxyman.command.RemoveUserOperation")
AlterInboundRequest = _message_class("xray.app.proxyman.command.AlterInboundRequest")
AlterInboundResponse = _message_class("xray.app.proxyman.command.AlterInboundResponse")
VlessAccount = _message_class("xray.proxy.vless.Account")
TrojanAccount = _message_class("xray.proxy.trojan.Account")


def to_typed_message(message: Message) -> Any:
    """Wrap *message* the way Xray's ``serial.ToTypedMessage`` does."""
    return TypedMessage(type=message.DESCRIPTOR.full_name, value=message.SerializeToString())


def from_typed_message(typed: Any) -> Message:
    """Inverse of :func:`to_typed_message` for messages declared in this module."""
    cls = _message_class(typed.type)
    decoded: Message = cls.FromString(typed.value)
    return decoded
