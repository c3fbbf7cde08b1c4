"""Tagwire runtime: records, schemas, and the wire codec."""

from .framing import Framer, decode_delimited, encode_delimited, iter_delimited
from .objects import ToObjectOptions, ValidationError, from_plain_object, to_plain_object, verify
from .registry import SchemaRegistry
from .serialization import (
    DEFAULT_RECURSION_LIMIT,
    Message,
    ProtoEnum,
    decode_message,
    encode_message,
    proto_field,
)
from .types import (
    DuplicateFieldNumber,
    EnumDescriptor,
    EnumValueDescriptor,
    FieldDescriptor,
    MessageDescriptor,
    SchemaError,
    UnknownType,
)
from .wire import (
    DecodeError,
    EncodeError,
    FieldOutOfRange,
    InvalidUtf8,
    MalformedLength,
    MalformedVarint,
    NestingTooDeep,
    SerializationError,
    TruncatedInput,
    UnknownWireType,
    ValueOutOfRange,
    WireType,
    WireTypeMismatch,
)

__all__ = [
    "DEFAULT_RECURSION_LIMIT",
    "DecodeError",
    "DuplicateFieldNumber",
    "EncodeError",
    "EnumDescriptor",
    "EnumValueDescriptor",
    "FieldDescriptor",
    "FieldOutOfRange",
    "Framer",
    "InvalidUtf8",
    "MalformedLength",
    "MalformedVarint",
    "Message",
    "MessageDescriptor",
    "NestingTooDeep",
    "ProtoEnum",
    "SchemaError",
    "SchemaRegistry",
    "SerializationError",
    "ToObjectOptions",
    "TruncatedInput",
    "UnknownType",
    "UnknownWireType",
    "ValidationError",
    "ValueOutOfRange",
    "WireType",
    "WireTypeMismatch",
    "decode_delimited",
    "decode_message",
    "encode_delimited",
    "encode_message",
    "from_plain_object",
    "iter_delimited",
    "proto_field",
    "to_plain_object",
    "verify",
]
