"""Conversion of parsed schema files into descriptor records."""

import logging
import math
from typing import Any

from ..proto.descriptor import (
    FIELD_TYPES,
    DescriptorProto,
    EnumDescriptorProto,
    EnumOptions,
    EnumReservedRange,
    EnumValueDescriptorProto,
    EnumValueOptions,
    FieldDescriptorProto,
    FieldLabel,
    FieldOptions,
    FieldType,
    FileDescriptorProto,
    FileDescriptorSet,
    FileOptions,
    MessageOptions,
    OneofDescriptorProto,
    OptimizeMode,
    ReservedRange,
    resolve_type_name,
)
from ..proto.types import PACKABLE_TYPES, SchemaError
from ..proto.wire import MAX_FIELD_NUMBER
from .parser import SchemaValidationError
from .types import ProtoEnum, ProtoField, ProtoFile, ProtoMessage, ProtoOption, is_scalar

logger = logging.getLogger(__name__)

_LABELS = {
    "optional": FieldLabel.LABEL_OPTIONAL,
    "required": FieldLabel.LABEL_REQUIRED,
    "repeated": FieldLabel.LABEL_REPEATED,
}

_FILE_OPTIONS = frozenset(
    [
        "java_package",
        "java_outer_classname",
        "optimize_for",
        "go_package",
        "cc_generic_services",
        "py_generic_services",
        "deprecated",
    ]
)

_MESSAGE_OPTIONS = frozenset(["message_set_wire_format", "deprecated"])


def _join(scope: str, name: str) -> str:
    return f"{scope}.{name}" if scope else name


def map_entry_name(field_name: str) -> str:
    """Name of the entry record synthesized for a map field, e.g. "attrs_by_id" -> "AttrsByIdEntry"."""
    return "".join(part[:1].upper() + part[1:] for part in field_name.split("_")) + "Entry"


def collect_types(proto_file: ProtoFile) -> dict[str, str]:
    """Map the full name of every type a file declares to "message" or "enum"."""
    known: dict[str, str] = {}

    def walk(scope: str, messages: list[ProtoMessage], enums: list[ProtoEnum]) -> None:
        for enum in enums:
            known[_join(scope, enum.name)] = "enum"
        for message in messages:
            full_name = _join(scope, message.name)
            known[full_name] = "message"
            for f in message.fields:
                if f.key_type is not None:
                    known[_join(full_name, map_entry_name(f.name))] = "message"
            walk(full_name, message.messages, message.enums)

    walk(proto_file.package or "", proto_file.messages, proto_file.enums)
    return known


def _c_escape(data: bytes) -> str:
    return "".join(chr(b) if 0x20 <= b < 0x7F and b not in b"\\'\"" else f"\\{b:03o}" for b in data)


def _default_text(value: Any, type_name: str, where: str) -> str:
    """Render a default value the way descriptor default_value strings are written."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if type_name == "bytes":
        try:
            return _c_escape(value.encode("latin-1"))
        except (AttributeError, UnicodeEncodeError):
            raise SchemaValidationError(f"{where}: invalid bytes default {value!r}") from None
    if isinstance(value, float):
        if math.isnan(value):
            return "nan"
        if math.isinf(value):
            return "inf" if value > 0 else "-inf"
        return repr(value)
    return str(value)


def _ignored(options: list[ProtoOption], handled: frozenset[str], where: str) -> None:
    for opt in options:
        if opt.name not in handled:
            logger.debug("%s: ignoring option %s", where, opt.name)


def _field_proto(
    f: ProtoField,
    scope: str,
    syntax: str,
    known: dict[str, str],
    oneofs: list[str],
) -> FieldDescriptorProto:
    where = _join(scope, f.name)
    fdp = FieldDescriptorProto(name=f.name, number=f.number, label=_LABELS[f.label or "optional"])

    if f.key_type is not None:
        fdp.type = FieldType.TYPE_MESSAGE
        fdp.type_name = "." + _join(scope, map_entry_name(f.name))
    elif is_scalar(f.type):
        fdp.type = FIELD_TYPES[f.type]
    else:
        try:
            full_name = resolve_type_name(f.type, scope, known)
        except SchemaError:
            raise SchemaValidationError(f"{where}: unknown type {f.type}") from None
        if full_name not in known:
            raise SchemaValidationError(f"{where}: unknown type {f.type}")
        fdp.type = FieldType.TYPE_ENUM if known[full_name] == "enum" else FieldType.TYPE_MESSAGE
        fdp.type_name = "." + full_name

    default = f.option("default")
    if default is not None:
        if fdp.label == FieldLabel.LABEL_REPEATED or fdp.type == FieldType.TYPE_MESSAGE:
            raise SchemaValidationError(f"{where}: only singular scalar fields can have a default")
        fdp.default_value = _default_text(default, f.type, where)

    packed = f.option("packed")
    packable = f.key_type is None and (f.type in PACKABLE_TYPES or fdp.type == FieldType.TYPE_ENUM)
    if packed and not packable:
        raise SchemaValidationError(f"{where}: {f.type} fields cannot be packed")
    if packed is None and syntax == "proto3" and packable and fdp.label == FieldLabel.LABEL_REPEATED:
        packed = True

    deprecated = f.option("deprecated", False)
    if packed is not None or deprecated:
        fdp.options = FieldOptions(packed=None if packed is None else bool(packed), deprecated=bool(deprecated))

    json_name = f.option("json_name")
    if json_name is not None:
        fdp.json_name = json_name

    if f.oneof is not None:
        fdp.oneof_index = oneofs.index(f.oneof)
    elif syntax == "proto3" and f.label == "optional":
        fdp.proto3_optional = True
        fdp.oneof_index = oneofs.index("_" + f.name)

    _ignored(f.options, frozenset(["default", "packed", "deprecated", "json_name"]), where)
    return fdp


def _map_entry(f: ProtoField, scope: str, known: dict[str, str]) -> DescriptorProto:
    entry_scope = _join(scope, map_entry_name(f.name))
    key = ProtoField(name="key", number=1, type=f.key_type or "", label="optional")
    value = ProtoField(name="value", number=2, type=f.type, label="optional")
    return DescriptorProto(
        name=map_entry_name(f.name),
        field=[
            _field_proto(key, entry_scope, "proto2", known, []),
            _field_proto(value, entry_scope, "proto2", known, []),
        ],
        options=MessageOptions(map_entry=True),
    )


def _reserved_ranges(proto: ProtoMessage) -> list[ReservedRange]:
    # Descriptor ranges for messages are end-exclusive
    return [
        ReservedRange(start=r.start, end=(r.end if r.end is not None else MAX_FIELD_NUMBER) + 1)
        for r in proto.reserved_ranges
    ]


def _message_proto(message: ProtoMessage, scope: str, syntax: str, known: dict[str, str]) -> DescriptorProto:
    full_name = _join(scope, message.name)
    oneofs = list(message.oneofs)
    if syntax == "proto3":
        oneofs.extend("_" + f.name for f in message.fields if f.label == "optional")

    dp = DescriptorProto(
        name=message.name,
        oneof_decl=[OneofDescriptorProto(name=name) for name in oneofs],
        reserved_range=_reserved_ranges(message),
        reserved_name=list(message.reserved_names),
    )
    for f in message.fields:
        if f.key_type is not None:
            dp.nested_type.append(_map_entry(f, full_name, known))
        dp.field.append(_field_proto(f, full_name, syntax, known, oneofs))

    dp.nested_type.extend(_message_proto(child, full_name, syntax, known) for child in message.messages)
    dp.enum_type.extend(_enum_proto(child, full_name) for child in message.enums)

    values = {opt.name: opt.value for opt in message.options if opt.name in _MESSAGE_OPTIONS}
    if values:
        dp.options = MessageOptions(**values)
    _ignored(message.options, _MESSAGE_OPTIONS, full_name)
    return dp


def _enum_proto(enum: ProtoEnum, scope: str) -> EnumDescriptorProto:
    full_name = _join(scope, enum.name)
    ep = EnumDescriptorProto(
        name=enum.name,
        reserved_range=[
            EnumReservedRange(start=r.start, end=r.end if r.end is not None else (1 << 31) - 1)
            for r in enum.reserved_ranges
        ],
        reserved_name=list(enum.reserved_names),
    )
    for value in enum.values:
        evp = EnumValueDescriptorProto(name=value.name, number=value.number)
        if any(opt.name == "deprecated" and opt.value for opt in value.options):
            evp.options = EnumValueOptions(deprecated=True)
        ep.value.append(evp)

    values = {opt.name: opt.value for opt in enum.options if opt.name in ("allow_alias", "deprecated")}
    if values:
        ep.options = EnumOptions(**values)
    _ignored(enum.options, frozenset(["allow_alias", "deprecated"]), full_name)
    return ep


def _file_options(options: list[ProtoOption], name: str) -> FileOptions | None:
    values = {opt.name: opt.value for opt in options if opt.name in _FILE_OPTIONS}
    _ignored(options, _FILE_OPTIONS, name)
    if not values:
        return None
    if "optimize_for" in values:
        mode = OptimizeMode.value_for(str(values["optimize_for"]))
        if mode is None:
            raise SchemaValidationError(f"{name}: invalid optimize_for {values['optimize_for']!r}")
        values["optimize_for"] = OptimizeMode(mode)
    return FileOptions(**values)


def file_descriptor(proto_file: ProtoFile, name: str, known: dict[str, str] | None = None) -> FileDescriptorProto:
    """Convert a parsed file to a FileDescriptorProto.

    Args:
        proto_file: The parsed file.
        name: The file's import path, e.g. "gcsdk_gcmessages.proto".
        known: Full names of every type visible to the file (its own and its
            imports'), mapped to "message" or "enum". Defaults to the file's own.

    Raises:
        SchemaValidationError: A type reference does not resolve or an option is invalid.
    """
    if known is None:
        known = collect_types(proto_file)
    scope = proto_file.package or ""
    syntax = proto_file.syntax

    return FileDescriptorProto(
        name=name,
        package=scope,
        dependency=[imp.path for imp in proto_file.imports],
        public_dependency=[i for i, imp in enumerate(proto_file.imports) if imp.modifier == "public"],
        weak_dependency=[i for i, imp in enumerate(proto_file.imports) if imp.modifier == "weak"],
        message_type=[_message_proto(m, scope, syntax, known) for m in proto_file.messages],
        enum_type=[_enum_proto(e, scope) for e in proto_file.enums],
        options=_file_options(proto_file.options, name),
        syntax=syntax,
    )


def build_descriptor_set(files: list[tuple[str, ProtoFile]]) -> FileDescriptorSet:
    """Convert parsed files, dependencies first, into one FileDescriptorSet."""
    known: dict[str, str] = {}
    for name, proto_file in files:
        for type_name, kind in collect_types(proto_file).items():
            if type_name in known:
                raise SchemaValidationError(f"{name}: type {type_name} is already defined")
            known[type_name] = kind

    return FileDescriptorSet(file=[file_descriptor(proto_file, name, known) for name, proto_file in files])
