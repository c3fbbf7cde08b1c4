"""Schema-description records (google/protobuf/descriptor.proto) and their loader.

The descriptor types are ordinary records under this codec. They are declared
here by hand, before any other schema exists, so a FileDescriptorSet can be
decoded with the same machinery it describes. Only the parts of
descriptor.proto a schema loader needs are declared; anything else in an
incoming set is skipped as an unknown field.
"""

from __future__ import annotations

import ast
import logging
import math
from collections.abc import Container
from dataclasses import dataclass

from .registry import SchemaRegistry, python_name
from .serialization import Message, ProtoEnum, proto_field
from .types import PACKABLE_TYPES, EnumDescriptor, EnumValueDescriptor, FieldDescriptor, MessageDescriptor, SchemaError

logger = logging.getLogger(__name__)

DESCRIPTOR_REGISTRY = SchemaRegistry()

_PKG = "google.protobuf"


@DESCRIPTOR_REGISTRY.enum(f"{_PKG}.FieldDescriptorProto.Type")
class FieldType(ProtoEnum):
    TYPE_DOUBLE = 1
    TYPE_FLOAT = 2
    TYPE_INT64 = 3
    TYPE_UINT64 = 4
    TYPE_INT32 = 5
    TYPE_FIXED64 = 6
    TYPE_FIXED32 = 7
    TYPE_BOOL = 8
    TYPE_STRING = 9
    TYPE_GROUP = 10
    TYPE_MESSAGE = 11
    TYPE_BYTES = 12
    TYPE_UINT32 = 13
    TYPE_ENUM = 14
    TYPE_SFIXED32 = 15
    TYPE_SFIXED64 = 16
    TYPE_SINT32 = 17
    TYPE_SINT64 = 18


@DESCRIPTOR_REGISTRY.enum(f"{_PKG}.FieldDescriptorProto.Label")
class FieldLabel(ProtoEnum):
    LABEL_OPTIONAL = 1
    LABEL_REQUIRED = 2
    LABEL_REPEATED = 3


@DESCRIPTOR_REGISTRY.enum(f"{_PKG}.FileOptions.OptimizeMode")
class OptimizeMode(ProtoEnum):
    SPEED = 1
    CODE_SIZE = 2
    LITE_RUNTIME = 3


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.FileOptions")
@dataclass
class FileOptions(Message):
    java_package: str = proto_field(1, "string")
    java_outer_classname: str = proto_field(8, "string")
    optimize_for: int = proto_field(9, "enum", type_name=f"{_PKG}.FileOptions.OptimizeMode", default=OptimizeMode.SPEED)
    go_package: str = proto_field(11, "string")
    cc_generic_services: bool = proto_field(16, "bool")
    py_generic_services: bool = proto_field(18, "bool")
    deprecated: bool = proto_field(23, "bool")


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.MessageOptions")
@dataclass
class MessageOptions(Message):
    message_set_wire_format: bool = proto_field(1, "bool")
    deprecated: bool = proto_field(3, "bool")
    map_entry: bool = proto_field(7, "bool")


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.FieldOptions")
@dataclass
class FieldOptions(Message):
    packed: bool | None = proto_field(2, "bool", default=None)
    deprecated: bool = proto_field(3, "bool")
    lazy: bool = proto_field(5, "bool")


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.EnumOptions")
@dataclass
class EnumOptions(Message):
    allow_alias: bool = proto_field(2, "bool")
    deprecated: bool = proto_field(3, "bool")


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.EnumValueOptions")
@dataclass
class EnumValueOptions(Message):
    deprecated: bool = proto_field(1, "bool")


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.FieldDescriptorProto")
@dataclass
class FieldDescriptorProto(Message):
    name: str = proto_field(1, "string")
    extendee: str = proto_field(2, "string")
    number: int = proto_field(3, "int32")
    label: int = proto_field(4, "enum", type_name=f"{_PKG}.FieldDescriptorProto.Label", default=FieldLabel.LABEL_OPTIONAL)
    type: int = proto_field(5, "enum", type_name=f"{_PKG}.FieldDescriptorProto.Type", default=FieldType.TYPE_DOUBLE)
    type_name: str = proto_field(6, "string")
    default_value: str = proto_field(7, "string")
    options: FieldOptions | None = proto_field(8, "message", type_name=f"{_PKG}.FieldOptions")
    # -1 stands for "not in a oneof" so that index 0 still reaches the wire
    oneof_index: int = proto_field(9, "int32", default=-1)
    json_name: str = proto_field(10, "string")
    proto3_optional: bool = proto_field(17, "bool")


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.OneofDescriptorProto")
@dataclass
class OneofDescriptorProto(Message):
    name: str = proto_field(1, "string")


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.EnumValueDescriptorProto")
@dataclass
class EnumValueDescriptorProto(Message):
    name: str = proto_field(1, "string")
    number: int = proto_field(2, "int32")
    options: EnumValueOptions | None = proto_field(3, "message", type_name=f"{_PKG}.EnumValueOptions")


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.EnumDescriptorProto.EnumReservedRange")
@dataclass
class EnumReservedRange(Message):
    start: int = proto_field(1, "int32")
    end: int = proto_field(2, "int32")  # inclusive


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.EnumDescriptorProto")
@dataclass
class EnumDescriptorProto(Message):
    name: str = proto_field(1, "string")
    value: list[EnumValueDescriptorProto] = proto_field(
        2, "message", repeated=True, type_name=f"{_PKG}.EnumValueDescriptorProto"
    )
    options: EnumOptions | None = proto_field(3, "message", type_name=f"{_PKG}.EnumOptions")
    reserved_range: list[EnumReservedRange] = proto_field(
        4, "message", repeated=True, type_name=f"{_PKG}.EnumDescriptorProto.EnumReservedRange"
    )
    reserved_name: list[str] = proto_field(5, "string", repeated=True)


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.DescriptorProto.ExtensionRange")
@dataclass
class ExtensionRange(Message):
    start: int = proto_field(1, "int32")
    end: int = proto_field(2, "int32")  # exclusive


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.DescriptorProto.ReservedRange")
@dataclass
class ReservedRange(Message):
    start: int = proto_field(1, "int32")
    end: int = proto_field(2, "int32")  # exclusive


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.DescriptorProto")
@dataclass
class DescriptorProto(Message):
    name: str = proto_field(1, "string")
    field: list[FieldDescriptorProto] = proto_field(
        2, "message", repeated=True, type_name=f"{_PKG}.FieldDescriptorProto"
    )
    nested_type: list[DescriptorProto] = proto_field(
        3, "message", repeated=True, type_name=f"{_PKG}.DescriptorProto"
    )
    enum_type: list[EnumDescriptorProto] = proto_field(
        4, "message", repeated=True, type_name=f"{_PKG}.EnumDescriptorProto"
    )
    extension_range: list[ExtensionRange] = proto_field(
        5, "message", repeated=True, type_name=f"{_PKG}.DescriptorProto.ExtensionRange"
    )
    extension: list[FieldDescriptorProto] = proto_field(
        6, "message", repeated=True, type_name=f"{_PKG}.FieldDescriptorProto"
    )
    options: MessageOptions | None = proto_field(7, "message", type_name=f"{_PKG}.MessageOptions")
    oneof_decl: list[OneofDescriptorProto] = proto_field(
        8, "message", repeated=True, type_name=f"{_PKG}.OneofDescriptorProto"
    )
    reserved_range: list[ReservedRange] = proto_field(
        9, "message", repeated=True, type_name=f"{_PKG}.DescriptorProto.ReservedRange"
    )
    reserved_name: list[str] = proto_field(10, "string", repeated=True)


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.FileDescriptorProto")
@dataclass
class FileDescriptorProto(Message):
    name: str = proto_field(1, "string")
    package: str = proto_field(2, "string")
    dependency: list[str] = proto_field(3, "string", repeated=True)
    message_type: list[DescriptorProto] = proto_field(
        4, "message", repeated=True, type_name=f"{_PKG}.DescriptorProto"
    )
    enum_type: list[EnumDescriptorProto] = proto_field(
        5, "message", repeated=True, type_name=f"{_PKG}.EnumDescriptorProto"
    )
    extension: list[FieldDescriptorProto] = proto_field(
        7, "message", repeated=True, type_name=f"{_PKG}.FieldDescriptorProto"
    )
    options: FileOptions | None = proto_field(8, "message", type_name=f"{_PKG}.FileOptions")
    public_dependency: list[int] = proto_field(10, "int32", repeated=True)
    weak_dependency: list[int] = proto_field(11, "int32", repeated=True)
    syntax: str = proto_field(12, "string")


@DESCRIPTOR_REGISTRY.message(f"{_PKG}.FileDescriptorSet")
@dataclass
class FileDescriptorSet(Message):
    file: list[FileDescriptorProto] = proto_field(
        1, "message", repeated=True, type_name=f"{_PKG}.FileDescriptorProto"
    )


DESCRIPTOR_REGISTRY.check()


# Map descriptor field types to semantic type names
TYPE_NAMES: dict[int, str] = {
    FieldType.TYPE_DOUBLE: "double",
    FieldType.TYPE_FLOAT: "float",
    FieldType.TYPE_INT64: "int64",
    FieldType.TYPE_UINT64: "uint64",
    FieldType.TYPE_INT32: "int32",
    FieldType.TYPE_FIXED64: "fixed64",
    FieldType.TYPE_FIXED32: "fixed32",
    FieldType.TYPE_BOOL: "bool",
    FieldType.TYPE_STRING: "string",
    FieldType.TYPE_MESSAGE: "message",
    FieldType.TYPE_BYTES: "bytes",
    FieldType.TYPE_UINT32: "uint32",
    FieldType.TYPE_ENUM: "enum",
    FieldType.TYPE_SFIXED32: "sfixed32",
    FieldType.TYPE_SFIXED64: "sfixed64",
    FieldType.TYPE_SINT32: "sint32",
    FieldType.TYPE_SINT64: "sint64",
}

FIELD_TYPES: dict[str, FieldType] = {name: FieldType(number) for number, name in TYPE_NAMES.items()}


def parse_default(type_name: str, text: str, enum_cls: type[ProtoEnum] | None = None) -> object:
    """Parse a default_value string as written by protoc."""
    if type_name == "enum":
        if enum_cls is None or enum_cls.value_for(text) is None:
            raise SchemaError(f"default {text!r} is not a value of the enum")
        return enum_cls.value_for(text)
    if type_name == "bool":
        if text not in ("true", "false"):
            raise SchemaError(f"invalid bool default {text!r}")
        return text == "true"
    if type_name in ("float", "double"):
        special = {"inf": math.inf, "-inf": -math.inf, "nan": math.nan}
        try:
            return special[text] if text in special else float(text)
        except ValueError:
            raise SchemaError(f"invalid {type_name} default {text!r}") from None
    if type_name == "string":
        return text
    if type_name == "bytes":
        # protoc C-escapes bytes defaults
        try:
            return ast.literal_eval(f"b'{text}'")
        except (SyntaxError, ValueError):
            raise SchemaError(f"invalid bytes default {text!r}") from None
    try:
        return int(text, 0)
    except ValueError:
        raise SchemaError(f"invalid {type_name} default {text!r}") from None


def walk_messages(prefix: str, messages: list[DescriptorProto]):
    """Yield (full_name, record) for messages and their nested messages, depth first."""
    for msg in messages:
        full_name = f"{prefix}.{msg.name}" if prefix else msg.name
        yield full_name, msg
        yield from walk_messages(full_name, msg.nested_type)


def walk_enums(prefix: str, enums: list[EnumDescriptorProto], messages: list[DescriptorProto]):
    """Yield (full_name, record) for enums declared at this level and inside messages."""
    for enum in enums:
        yield (f"{prefix}.{enum.name}" if prefix else enum.name), enum
    for msg in messages:
        full_name = f"{prefix}.{msg.name}" if prefix else msg.name
        yield from walk_enums(full_name, msg.enum_type, msg.nested_type)


def resolve_type_name(type_name: str, scope: str, known: Container[str]) -> str:
    """Resolve a type reference relative to a scope, innermost scope first."""
    if type_name.startswith("."):
        return type_name[1:]
    parts = scope.split(".") if scope else []
    for i in range(len(parts), -1, -1):
        candidate = ".".join([*parts[:i], type_name])
        if candidate in known:
            return candidate
    raise SchemaError(f"cannot resolve type {type_name!r} from scope {scope!r}")


def _field_descriptor(
    fdp: FieldDescriptorProto,
    scope: str,
    syntax: str,
    known: set[str],
    registry: SchemaRegistry,
    oneofs: list[OneofDescriptorProto],
) -> FieldDescriptor:
    if fdp.type == FieldType.TYPE_GROUP:
        raise SchemaError(f"{scope}.{fdp.name}: groups are not supported")
    type_name = TYPE_NAMES.get(int(fdp.type))
    if type_name is None:
        raise SchemaError(f"{scope}.{fdp.name}: unknown field type {fdp.type}")

    repeated = fdp.label == FieldLabel.LABEL_REPEATED
    ref = resolve_type_name(fdp.type_name, scope, known) if type_name in ("enum", "message") else None

    packed = False
    if repeated and type_name in PACKABLE_TYPES:
        explicit = fdp.options.packed if fdp.options is not None else None
        packed = explicit if explicit is not None else syntax == "proto3"

    default = None
    if not repeated and type_name != "message":
        enum_cls = registry.enum_type(ref) if type_name == "enum" else None
        if fdp.default_value:
            default = parse_default(type_name, fdp.default_value, enum_cls)
        elif enum_cls is not None:
            default = int(next(iter(enum_cls)))

    oneof = None
    if 0 <= fdp.oneof_index < len(oneofs) and not fdp.proto3_optional:
        oneof = oneofs[fdp.oneof_index].name

    return FieldDescriptor(
        name=fdp.name,
        number=fdp.number,
        type=type_name,
        repeated=repeated,
        packed=packed,
        type_name=ref,
        default=default,
        attr=python_name(fdp.name),
        oneof=oneof,
    )


def load_file_descriptor_set(
    data: bytes | FileDescriptorSet | FileDescriptorProto,
    registry: SchemaRegistry | None = None,
) -> SchemaRegistry:
    """Build record and enum types from a FileDescriptorSet.

    Args:
        data: An encoded FileDescriptorSet, or a decoded set or single file.
        registry: Registry to add the types to; a new one by default.

    Returns:
        The registry holding the loaded types.
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        data = FileDescriptorSet.decode(data)
    files = data.file if isinstance(data, FileDescriptorSet) else [data]
    if registry is None:
        registry = SchemaRegistry()

    known = set(registry.names())
    pending: list[tuple[str, DescriptorProto, str]] = []

    for fdp in files:
        syntax = fdp.syntax or "proto2"
        for full_name, enum in walk_enums(fdp.package, fdp.enum_type, fdp.message_type):
            registry.add_enum_descriptor(
                EnumDescriptor(full_name, tuple(EnumValueDescriptor(v.name, v.number) for v in enum.value))
            )
            known.add(full_name)
        for full_name, msg in walk_messages(fdp.package, fdp.message_type):
            pending.append((full_name, msg, syntax))
            known.add(full_name)
        logger.debug("loaded file %s (package %s)", fdp.name, fdp.package or "<none>")

    for full_name, msg, syntax in pending:
        fields = tuple(
            _field_descriptor(f, full_name, syntax, known, registry, msg.oneof_decl) for f in msg.field
        )
        registry.add_message_descriptor(MessageDescriptor(full_name, fields))

    registry.check()
    return registry
