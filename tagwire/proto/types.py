"""Runtime type descriptors for tagwire records.

These frozen dataclasses describe the shape of record and enum types at
runtime. The codec walks them to encode and decode; they never change once a
type is registered.
"""

from dataclasses import dataclass, field
from typing import Any

from .wire import MAX_FIELD_NUMBER, WireType

RESERVED_NUMBERS = range(19000, 20000)

# Map semantic types to the wire type of a single value
WIRE_TYPES: dict[str, WireType] = {
    "int32": WireType.VARINT,
    "int64": WireType.VARINT,
    "uint32": WireType.VARINT,
    "uint64": WireType.VARINT,
    "sint32": WireType.VARINT,
    "sint64": WireType.VARINT,
    "bool": WireType.VARINT,
    "enum": WireType.VARINT,
    "fixed64": WireType.I64,
    "sfixed64": WireType.I64,
    "double": WireType.I64,
    "fixed32": WireType.I32,
    "sfixed32": WireType.I32,
    "float": WireType.I32,
    "string": WireType.LEN,
    "bytes": WireType.LEN,
    "message": WireType.LEN,
}

PACKABLE_TYPES = frozenset(t for t, w in WIRE_TYPES.items() if w != WireType.LEN)

LONG_TYPES = frozenset(["int64", "uint64", "sint64", "fixed64", "sfixed64"])

UNSIGNED_TYPES = frozenset(["uint32", "uint64", "fixed32", "fixed64"])

ZERO_VALUES: dict[str, Any] = {
    **{t: 0 for t in PACKABLE_TYPES},
    "bool": False,
    "float": 0.0,
    "double": 0.0,
    "string": "",
    "bytes": b"",
}


class SchemaError(RuntimeError):
    """Raised when a schema is invalid. Reported at registration, not per message."""


class DuplicateFieldNumber(SchemaError):
    """Two fields of one record type share a number."""


class UnknownType(SchemaError):
    """A field references a record or enum type that is not registered."""


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """Describes one field of a record type."""

    name: str
    number: int
    type: str
    repeated: bool = False
    packed: bool = False
    type_name: str | None = None
    default: Any = None
    attr: str = ""
    oneof: str | None = None

    @property
    def wire_type(self) -> WireType:
        return WIRE_TYPES[self.type]

    @property
    def is_message(self) -> bool:
        return self.type == "message"

    @property
    def is_packable(self) -> bool:
        return self.repeated and self.type in PACKABLE_TYPES


@dataclass(frozen=True, slots=True)
class MessageDescriptor:
    """Describes a record type: its full name and fields ordered by number."""

    name: str
    fields: tuple[FieldDescriptor, ...]
    by_number: dict[int, FieldDescriptor] = field(init=False, repr=False, compare=False)
    by_name: dict[str, FieldDescriptor] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.fields, key=lambda f: f.number))
        object.__setattr__(self, "fields", ordered)
        object.__setattr__(self, "by_number", {f.number: f for f in ordered})
        object.__setattr__(self, "by_name", {f.name: f for f in ordered})


@dataclass(frozen=True, slots=True)
class EnumValueDescriptor:
    """Maps a symbolic enum name to its number."""

    name: str
    number: int


@dataclass(frozen=True, slots=True)
class EnumDescriptor:
    """Describes an enum type."""

    name: str
    values: tuple[EnumValueDescriptor, ...]


def validate_message_descriptor(desc: MessageDescriptor) -> None:
    """Check a record type for schema-authoring errors."""
    numbers: dict[int, str] = {}
    names: set[str] = set()

    for f in desc.fields:
        if f.type not in WIRE_TYPES:
            raise SchemaError(f"{desc.name}.{f.name}: unknown type {f.type!r}")
        if not 1 <= f.number <= MAX_FIELD_NUMBER:
            raise SchemaError(f"{desc.name}.{f.name}: field number {f.number} outside 1..{MAX_FIELD_NUMBER}")
        if f.number in RESERVED_NUMBERS:
            raise SchemaError(f"{desc.name}.{f.name}: field number {f.number} is reserved")
        if f.number in numbers:
            raise DuplicateFieldNumber(
                f"{desc.name}: {f.name} and {numbers[f.number]} both use field number {f.number}"
            )
        if f.name in names:
            raise SchemaError(f"{desc.name}: duplicate field name {f.name}")
        if f.type in ("enum", "message") and not f.type_name:
            raise SchemaError(f"{desc.name}.{f.name}: {f.type} field needs a type_name")
        if f.packed and not f.is_packable:
            raise SchemaError(f"{desc.name}.{f.name}: only repeated scalar fields can be packed")
        numbers[f.number] = f.name
        names.add(f.name)


def validate_enum_descriptor(desc: EnumDescriptor) -> None:
    names: set[str] = set()
    for v in desc.values:
        if v.name in names:
            raise SchemaError(f"{desc.name}: duplicate enum value {v.name}")
        if not -(1 << 31) <= v.number < (1 << 31):
            raise SchemaError(f"{desc.name}.{v.name}: value {v.number} is not a 32-bit integer")
        names.add(v.name)
    if not desc.values:
        raise SchemaError(f"{desc.name}: enum must declare at least one value")
