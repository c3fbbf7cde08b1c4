"""Type definitions for parsed .proto files."""

from dataclasses import dataclass, field
from typing import Any

from dataclasses_json import DataClassJsonMixin


@dataclass
class ProtoOption(DataClassJsonMixin):
    """An option assignment, e.g. `option optimize_for = SPEED;` or `[packed = true]`.

    Custom options keep their parentheses in the name, e.g. "(key_field)".
    """

    name: str
    value: Any


@dataclass
class ProtoReservedRange(DataClassJsonMixin):
    """A reserved number range. Both ends are inclusive; end=None means max."""

    start: int
    end: int | None


@dataclass
class ProtoField(DataClassJsonMixin):
    """Represents a field of a message.

    type is a scalar type name ("uint32", "string", ...) or a type reference
    as written, with a leading "." when it is fully qualified. key_type is set
    for map fields, in which case type is the value type.
    """

    name: str
    number: int
    type: str
    label: str | None = None
    options: list[ProtoOption] = field(default_factory=list)
    oneof: str | None = None
    key_type: str | None = None

    def option(self, name: str, default: Any = None) -> Any:
        for opt in self.options:
            if opt.name == name:
                return opt.value
        return default


@dataclass
class ProtoEnumValue(DataClassJsonMixin):
    """Represents a single enum value."""

    name: str
    number: int
    options: list[ProtoOption] = field(default_factory=list)


@dataclass
class ProtoEnum(DataClassJsonMixin):
    """Represents an enum type definition."""

    name: str
    values: list[ProtoEnumValue]
    options: list[ProtoOption] = field(default_factory=list)
    reserved_ranges: list[ProtoReservedRange] = field(default_factory=list)
    reserved_names: list[str] = field(default_factory=list)


@dataclass
class ProtoMessage(DataClassJsonMixin):
    """Represents a message type definition, with its nested types."""

    name: str
    fields: list[ProtoField]
    messages: list["ProtoMessage"] = field(default_factory=list)
    enums: list[ProtoEnum] = field(default_factory=list)
    oneofs: list[str] = field(default_factory=list)
    options: list[ProtoOption] = field(default_factory=list)
    reserved_ranges: list[ProtoReservedRange] = field(default_factory=list)
    reserved_names: list[str] = field(default_factory=list)


@dataclass
class ProtoImport(DataClassJsonMixin):
    """An import statement; modifier is "public", "weak" or None."""

    path: str
    modifier: str | None = None


@dataclass
class ProtoFile(DataClassJsonMixin):
    """Represents a complete .proto file."""

    syntax: str = "proto2"
    package: str | None = None
    imports: list[ProtoImport] = field(default_factory=list)
    options: list[ProtoOption] = field(default_factory=list)
    messages: list[ProtoMessage] = field(default_factory=list)
    enums: list[ProtoEnum] = field(default_factory=list)


SCALAR_TYPES = frozenset(
    [
        "double",
        "float",
        "int32",
        "int64",
        "uint32",
        "uint64",
        "sint32",
        "sint64",
        "fixed32",
        "fixed64",
        "sfixed32",
        "sfixed64",
        "bool",
        "string",
        "bytes",
    ]
)

# Types allowed as map keys
MAP_KEY_TYPES = SCALAR_TYPES - {"double", "float", "bytes"}


def is_scalar(type_name: str) -> bool:
    """Check if a field type is a scalar type."""
    return type_name in SCALAR_TYPES
