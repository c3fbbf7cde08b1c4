"""Schema registry: the set of record and enum types a codec can resolve."""

import keyword
import logging
from collections.abc import Callable, Iterator
from dataclasses import is_dataclass, make_dataclass
from typing import Any, TypeVar

from .serialization import Message, ProtoEnum, build_descriptor, proto_field
from .types import (
    EnumDescriptor,
    EnumValueDescriptor,
    MessageDescriptor,
    SchemaError,
    UnknownType,
    validate_enum_descriptor,
    validate_message_descriptor,
)

logger = logging.getLogger(__name__)

TMessage = TypeVar("TMessage", bound=type[Message])
TEnum = TypeVar("TEnum", bound=type[ProtoEnum])

# Attribute names a record field may not take without clobbering Message behaviour
_RESERVED_ATTRS = frozenset(n for n in dir(Message) if not n.startswith("__"))


def python_name(name: str) -> str:
    """Return an attribute name for a field, avoiding keywords and Message methods."""
    if keyword.iskeyword(name) or name in _RESERVED_ATTRS:
        return name + "_"
    return name


def _short_name(full_name: str) -> str:
    return full_name.rsplit(".", 1)[-1]


class SchemaRegistry:
    """Holds record and enum types by full name.

    Types are registered once, while schemas are loaded; afterwards the
    registry is only read and may be shared between threads.

    Example:
        registry = SchemaRegistry()

        @registry.message("CMsgGCGiftedItems")
        @dataclass
        class CMsgGCGiftedItems(Message):
            accountid: int = proto_field(1, "uint32")
    """

    def __init__(self) -> None:
        self._messages: dict[str, type[Message]] = {}
        self._enums: dict[str, type[ProtoEnum]] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._messages or name in self._enums

    def __len__(self) -> int:
        return len(self._messages) + len(self._enums)

    def names(self) -> list[str]:
        """Full names of every registered type."""
        return [*self._messages, *self._enums]

    def messages(self) -> Iterator[type[Message]]:
        return iter(self._messages.values())

    def enums(self) -> Iterator[type[ProtoEnum]]:
        return iter(self._enums.values())

    def message(self, full_name: str | None = None) -> Callable[[TMessage], TMessage]:
        """Class decorator registering a record dataclass.

        Args:
            full_name: Fully qualified type name; defaults to the class name.
        """

        def register(cls: TMessage) -> TMessage:
            if not is_dataclass(cls) or not issubclass(cls, Message):
                raise SchemaError(f"{cls.__name__} must be a Message dataclass")
            name = full_name or cls.__name__
            desc = build_descriptor(cls, name)
            validate_message_descriptor(desc)
            self._claim(name)
            cls._descriptor = desc
            cls._registry = self
            self._messages[name] = cls
            logger.debug("registered message %s (%d fields)", name, len(desc.fields))
            return cls

        return register

    def enum(self, full_name: str | None = None) -> Callable[[TEnum], TEnum]:
        """Class decorator registering a ProtoEnum subclass."""

        def register(cls: TEnum) -> TEnum:
            name = full_name or cls.__name__
            validate_enum_descriptor(enum_descriptor(cls, name))
            self._claim(name)
            self._enums[name] = cls
            logger.debug("registered enum %s", name)
            return cls

        return register

    def _claim(self, name: str) -> None:
        if name in self:
            raise SchemaError(f"type {name} is already registered")

    def message_type(self, name: str | None) -> type[Message]:
        try:
            return self._messages[name]  # type: ignore[index]
        except KeyError:
            raise UnknownType(f"unknown message type {name}") from None

    def enum_type(self, name: str | None) -> type[ProtoEnum]:
        try:
            return self._enums[name]  # type: ignore[index]
        except KeyError:
            raise UnknownType(f"unknown enum type {name}") from None

    def add_enum_descriptor(self, desc: EnumDescriptor) -> type[ProtoEnum]:
        """Build and register an enum type from a descriptor."""
        validate_enum_descriptor(desc)
        cls = ProtoEnum(_short_name(desc.name), [(v.name, v.number) for v in desc.values])
        cls.__qualname__ = desc.name
        return self.enum(desc.name)(cls)

    def add_message_descriptor(self, desc: MessageDescriptor) -> type[Message]:
        """Build and register a record dataclass from a descriptor.

        Enum types referenced by the descriptor must already be registered so
        enum defaults can be expressed as members.
        """
        validate_message_descriptor(desc)
        specs: list[tuple[str, Any, Any]] = []
        for f in desc.fields:
            default = f.default
            if f.type == "enum" and not f.repeated:
                enum_cls = self.enum_type(f.type_name)
                default = enum_cls.coerce(default if default is not None else first_enum_value(enum_cls))
            kwargs: dict[str, Any] = {
                "repeated": f.repeated,
                "packed": f.packed,
                "type_name": f.type_name,
                "oneof": f.oneof,
            }
            attr = f.attr or python_name(f.name)
            if attr != f.name:
                kwargs["name"] = f.name
            if not f.repeated and not f.is_message and default is not None:
                kwargs["default"] = default
            specs.append((attr, _annotation(f.type, f.repeated), proto_field(f.number, f.type, **kwargs)))

        cls = make_dataclass(_short_name(desc.name), specs, bases=(Message,))
        cls.__qualname__ = desc.name
        return self.message(desc.name)(cls)

    def check(self) -> None:
        """Verify every enum and message reference resolves."""
        for cls in self._messages.values():
            for f in cls._descriptor.fields:
                if f.type == "message":
                    self.message_type(f.type_name)
                elif f.type == "enum":
                    self.enum_type(f.type_name)


def first_enum_value(cls: type[ProtoEnum]) -> int:
    """Default of an enum field without an explicit one: its first declared value."""
    return int(next(iter(cls)))


def enum_descriptor(cls: type[ProtoEnum], full_name: str) -> EnumDescriptor:
    values = tuple(EnumValueDescriptor(name, int(member)) for name, member in cls.__members__.items())
    return EnumDescriptor(full_name, values)


_ANNOTATIONS: dict[str, Any] = {
    "bool": bool,
    "float": float,
    "double": float,
    "string": str,
    "bytes": bytes,
    "message": Any,
}


def _annotation(type_name: str, repeated: bool) -> Any:
    base = _ANNOTATIONS.get(type_name, int)
    return list[base] if repeated else base
