"""Schema file parser using Lark."""

import ast
import os
from dataclasses import dataclass
from typing import Any, TypeVar

from lark import Lark, Token
from lark.exceptions import UnexpectedInput, VisitError
from lark.visitors import Transformer

from ..proto.types import RESERVED_NUMBERS, SchemaError
from ..proto.wire import MAX_FIELD_NUMBER
from .types import (
    MAP_KEY_TYPES,
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoFile,
    ProtoImport,
    ProtoMessage,
    ProtoOption,
    ProtoReservedRange,
)

_g_parser: Lark | None = None


class SchemaValidationError(SchemaError):
    """Raised when a schema file is malformed or breaks a schema rule."""


class ParseError(SchemaValidationError):
    """Raised when a schema file does not match the grammar."""


@dataclass
class _Name:
    value: str


@dataclass
class _Number:
    value: int


@dataclass
class _Value:
    value: Any


@dataclass
class _Type:
    value: str


@dataclass
class _MapKey:
    value: str


@dataclass
class _Label:
    value: str


@dataclass
class _Syntax:
    value: str


@dataclass
class _Package:
    value: str


@dataclass
class _FieldOptions:
    options: list[ProtoOption]


@dataclass
class _Oneof:
    name: str
    fields: list[ProtoField]


@dataclass
class _Reserved:
    ranges: list[ProtoReservedRange]
    names: list[str]


@dataclass
class _Ignored:
    """A construct that is parsed but does not contribute to the result."""

    kind: str


TFilter = TypeVar("TFilter", bound=object)


def _filter(args: list[Any], class_type: type[TFilter]) -> list[TFilter]:
    return [v for v in args if isinstance(v, class_type)]


def _find_one(args: list[Any], class_type: type[object]) -> Any:
    filtered = _filter(args, class_type)
    if len(filtered) == 0:
        return None
    if len(filtered) > 1:
        raise RuntimeError(f"Found more than one {class_type}")

    if hasattr(filtered[0], "value"):
        return filtered[0].value
    return filtered[0]


TMany = TypeVar("TMany")


def _find_many(args: list[Any], class_type: type[TMany]) -> list[TMany]:
    return _filter(args, class_type)


def _int(text: str) -> int:
    """Parse a decimal, hex (0x..) or octal (0..) integer literal."""
    if len(text) > 1 and text[0] == "0" and text[1] not in "xX":
        return int(text, 8)
    return int(text, 0)


def _field_options(args: list[Any]) -> list[ProtoOption]:
    found = _find_one(args, _FieldOptions)
    return found.options if found else []


class TreeTransformer(Transformer):
    """Transform parse tree into schema types."""

    def start(self, args: list[Any]) -> ProtoFile:
        return ProtoFile(
            syntax=_find_one(args, _Syntax) or "proto2",
            package=_find_one(args, _Package),
            imports=_find_many(args, ProtoImport),
            options=_find_many(args, ProtoOption),
            messages=_find_many(args, ProtoMessage),
            enums=_find_many(args, ProtoEnum),
        )

    def syntax(self, args: list[Any]) -> _Syntax:
        return _Syntax(value=args[0].value)

    def package(self, args: list[Any]) -> _Package:
        return _Package(value=args[0])

    def import_(self, args: list[Any]) -> ProtoImport:
        modifier = _find_one(args, Token)
        return ProtoImport(path=args[-1].value, modifier=modifier)

    def import_modifier(self, args: list[Any]) -> Token:
        return args[0]

    def option(self, args: list[Any]) -> ProtoOption:
        return ProtoOption(name=args[0], value=_find_one(args, _Value))

    def option_name(self, args: list[Any]) -> str:
        return ".".join(args)

    def simple_option_part(self, args: list[Any]) -> str:
        return str(args[0])

    def custom_option_part(self, args: list[Any]) -> str:
        return f"({args[-1]})"

    def message(self, args: list[Any]) -> ProtoMessage:
        fields: list[ProtoField] = []
        oneofs: list[str] = []
        for item in args:
            if isinstance(item, ProtoField):
                fields.append(item)
            elif isinstance(item, _Oneof):
                oneofs.append(item.name)
                fields.extend(item.fields)

        reserved = _find_many(args, _Reserved)
        return ProtoMessage(
            name=_find_one(args, _Name),
            fields=fields,
            messages=_find_many(args, ProtoMessage),
            enums=_find_many(args, ProtoEnum),
            oneofs=oneofs,
            options=_find_many(args, ProtoOption),
            reserved_ranges=[r for res in reserved for r in res.ranges],
            reserved_names=[n for res in reserved for n in res.names],
        )

    def field(self, args: list[Any]) -> ProtoField:
        return ProtoField(
            name=_find_one(args, _Name),
            number=_find_one(args, _Number),
            type=_find_one(args, _Type),
            label=_find_one(args, _Label),
            options=_field_options(args),
        )

    def map_field(self, args: list[Any]) -> ProtoField:
        return ProtoField(
            name=_find_one(args, _Name),
            number=_find_one(args, _Number),
            type=_find_one(args, _Type),
            label="repeated",
            options=_field_options(args),
            key_type=_find_one(args, _MapKey),
        )

    def group(self, args: list[Any]) -> ProtoField:
        raise SchemaValidationError(f"group {_find_one(args, _Name)}: groups are not supported")

    def oneof(self, args: list[Any]) -> _Oneof:
        name = _find_one(args, _Name)
        fields = _find_many(args, ProtoField)
        for f in fields:
            if f.label is not None:
                raise SchemaValidationError(f"{f.name}: fields in oneof {name} cannot have a label")
            f.oneof = name
        return _Oneof(name=name, fields=fields)

    def label(self, args: list[Any]) -> _Label:
        return _Label(value=str(args[0]))

    def scalar_type(self, args: list[Any]) -> _Type:
        return _Type(value=str(args[0]))

    def type_ref(self, args: list[Any]) -> _Type:
        return _Type(value="".join(str(a) for a in args))

    def map_key(self, args: list[Any]) -> _MapKey:
        return _MapKey(value=args[0].value)

    def field_options(self, args: list[Any]) -> _FieldOptions:
        return _FieldOptions(options=list(args))

    def field_option(self, args: list[Any]) -> ProtoOption:
        return ProtoOption(name=args[0], value=_find_one(args, _Value))

    def reserved(self, args: list[Any]) -> _Reserved:
        return _Reserved(ranges=_find_many(args[0], ProtoReservedRange), names=_find_many(args[0], str))

    def reserved_ranges(self, args: list[Any]) -> list[ProtoReservedRange]:
        return list(args)

    def reserved_names(self, args: list[Any]) -> list[str]:
        return [a.value for a in args]

    def reserved_range(self, args: list[Any]) -> ProtoReservedRange:
        start = args[0].value
        if len(args) == 1:
            return ProtoReservedRange(start=start, end=start)
        end = args[1]
        return ProtoReservedRange(start=start, end=None if end == "max" else _int(end))

    def range_end(self, args: list[Any]) -> str:
        return str(args[0])

    def extensions(self, args: list[Any]) -> _Ignored:
        return _Ignored("extensions")

    def extend(self, args: list[Any]) -> _Ignored:
        return _Ignored("extend")

    def service(self, args: list[Any]) -> _Ignored:
        return _Ignored("service")

    def rpc(self, args: list[Any]) -> _Ignored:
        return _Ignored("rpc")

    def enum(self, args: list[Any]) -> ProtoEnum:
        reserved = _find_many(args, _Reserved)
        return ProtoEnum(
            name=_find_one(args, _Name),
            values=_find_many(args, ProtoEnumValue),
            options=_find_many(args, ProtoOption),
            reserved_ranges=[r for res in reserved for r in res.ranges],
            reserved_names=[n for res in reserved for n in res.names],
        )

    def enum_value(self, args: list[Any]) -> ProtoEnumValue:
        return ProtoEnumValue(
            name=_find_one(args, _Name),
            number=_find_one(args, _Value),
            options=_field_options(args),
        )

    def ident_constant(self, args: list[Any]) -> _Value:
        text = "".join(str(a) for a in args)
        if text in ("true", "false"):
            return _Value(value=text == "true")
        return _Value(value=text)

    def signed_int(self, args: list[Any]) -> _Value:
        value = _int(str(args[-1]))
        return _Value(value=-value if args[0] == "-" else value)

    def signed_float(self, args: list[Any]) -> _Value:
        value = float(args[-1])
        return _Value(value=-value if args[0] == "-" else value)

    def string(self, args: list[Any]) -> _Value:
        # Escapes in .proto strings follow C; Python literals accept the same forms
        return _Value(value="".join(ast.literal_eval(str(tok)) for tok in args))

    def aggregate(self, args: list[Any]) -> _Value:
        return _Value(value=dict(args))

    def aggregate_entry(self, args: list[Any]) -> tuple[str, Any]:
        return str(args[0]), args[1].value

    def name(self, args: list[Any]) -> _Name:
        return _Name(value=str(args[0]))

    def number(self, args: list[Any]) -> _Number:
        return _Number(value=_int(str(args[0])))

    def full_ident(self, args: list[Any]) -> str:
        return ".".join(str(a) for a in args)


def _option_value(options: list[ProtoOption], name: str, default: Any = None) -> Any:
    for opt in options:
        if opt.name == name:
            return opt.value
    return default


def _validate_enum(enum: ProtoEnum, syntax: str, scope: str) -> None:
    full_name = f"{scope}.{enum.name}" if scope else enum.name
    if not enum.values:
        raise SchemaValidationError(f"enum {full_name} has no values")
    if syntax == "proto3" and enum.values[0].number != 0:
        raise SchemaValidationError(f"enum {full_name}: the first value must be zero in proto3")

    allow_alias = _option_value(enum.options, "allow_alias", False)
    names: set[str] = set()
    numbers: set[int] = set()
    for value in enum.values:
        if value.name in names:
            raise SchemaValidationError(f"enum {full_name}: duplicate value name {value.name}")
        if value.number in numbers and not allow_alias:
            raise SchemaValidationError(f"enum {full_name}: duplicate value {value.number} ({value.name})")
        if not -(1 << 31) <= value.number < 1 << 31:
            raise SchemaValidationError(f"enum {full_name}: {value.name} is out of int32 range")
        if value.name in enum.reserved_names:
            raise SchemaValidationError(f"enum {full_name}: value name {value.name} is reserved")
        for r in enum.reserved_ranges:
            if r.start <= value.number <= (r.end if r.end is not None else (1 << 31) - 1):
                raise SchemaValidationError(f"enum {full_name}: value {value.number} is reserved")
        names.add(value.name)
        numbers.add(value.number)


def _validate_message(message: ProtoMessage, syntax: str, scope: str) -> None:
    full_name = f"{scope}.{message.name}" if scope else message.name
    numbers: dict[int, str] = {}
    names: set[str] = set()

    for f in message.fields:
        where = f"{full_name}.{f.name}"
        if not 1 <= f.number <= MAX_FIELD_NUMBER:
            raise SchemaValidationError(f"{where}: field number {f.number} is out of range")
        if f.number in RESERVED_NUMBERS:
            raise SchemaValidationError(f"{where}: field numbers 19000-19999 are reserved")
        if f.number in numbers:
            raise SchemaValidationError(f"{where}: field number {f.number} is already used by {numbers[f.number]}")
        if f.name in names:
            raise SchemaValidationError(f"{where}: duplicate field name")
        if f.name in message.reserved_names:
            raise SchemaValidationError(f"{where}: field name is reserved")
        for r in message.reserved_ranges:
            if r.start <= f.number <= (r.end if r.end is not None else MAX_FIELD_NUMBER):
                raise SchemaValidationError(f"{where}: field number {f.number} is reserved")
        if f.key_type is not None and f.key_type not in MAP_KEY_TYPES:
            raise SchemaValidationError(f"{where}: {f.key_type} cannot be a map key")
        if syntax == "proto3":
            if f.label == "required":
                raise SchemaValidationError(f"{where}: required fields are not allowed in proto3")
            if f.option("default") is not None:
                raise SchemaValidationError(f"{where}: explicit defaults are not allowed in proto3")
        elif f.label is None and f.oneof is None and f.key_type is None:
            raise SchemaValidationError(f"{where}: proto2 fields need a label")
        if f.option("packed") is not None and f.label != "repeated":
            raise SchemaValidationError(f"{where}: only repeated fields can be packed")
        numbers[f.number] = f.name
        names.add(f.name)

    nested: set[str] = set()
    for child in [*message.messages, *message.enums]:
        if child.name in nested:
            raise SchemaValidationError(f"{full_name}: type {child.name} is defined twice")
        nested.add(child.name)
    for child_enum in message.enums:
        _validate_enum(child_enum, syntax, full_name)
    for child_message in message.messages:
        _validate_message(child_message, syntax, full_name)


def validate(proto_file: ProtoFile) -> None:
    """Validate a parsed schema file."""
    if proto_file.syntax not in ("proto2", "proto3"):
        raise SchemaValidationError(f"unsupported syntax {proto_file.syntax!r}")

    scope = proto_file.package or ""
    top: set[str] = set()
    for item in [*proto_file.messages, *proto_file.enums]:
        if item.name in top:
            raise SchemaValidationError(f"type {item.name} is defined twice")
        top.add(item.name)
    for enum in proto_file.enums:
        _validate_enum(enum, proto_file.syntax, scope)
    for message in proto_file.messages:
        _validate_message(message, proto_file.syntax, scope)


def parse(text: str) -> ProtoFile:
    """Parse a .proto schema file.

    Raises:
        ParseError: The text does not match the grammar.
        SchemaValidationError: The schema breaks a rule (duplicate numbers, groups, ...).
    """
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/protodef.lark", encoding="utf-8") as f:
            grammar = f.read()

        _g_parser = Lark(grammar, parser="lalr")

    try:
        tree = _g_parser.parse(text)
    except UnexpectedInput as exc:
        raise ParseError(f"line {exc.line}, column {exc.column}: {exc.get_context(text).strip()}") from exc

    try:
        proto_file = TreeTransformer().transform(tree)
    except VisitError as exc:
        if isinstance(exc.orig_exc, SchemaValidationError):
            raise exc.orig_exc from None
        raise

    validate(proto_file)
    return proto_file
