"""Conversion between records and plain objects (dicts, lists, scalars).

This is the human/JSON interchange boundary. It is not bit-exact; only the
byte encoding is.
"""

import base64
import binascii
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from .serialization import Message
from .types import LONG_TYPES, UNSIGNED_TYPES, FieldDescriptor

logger = logging.getLogger(__name__)

TMessage = TypeVar("TMessage", bound=Message)

LongFormat = Literal["int", "str", "pair"]
BinaryFormat = Literal["base64", "raw", "list"]
EnumFormat = Literal["name", "int"]

_RANGES: dict[str, range] = {
    "int32": range(-(1 << 31), 1 << 31),
    "sint32": range(-(1 << 31), 1 << 31),
    "sfixed32": range(-(1 << 31), 1 << 31),
    "enum": range(-(1 << 31), 1 << 31),
    "uint32": range(0, 1 << 32),
    "fixed32": range(0, 1 << 32),
    "int64": range(-(1 << 63), 1 << 63),
    "sint64": range(-(1 << 63), 1 << 63),
    "sfixed64": range(-(1 << 63), 1 << 63),
    "uint64": range(0, 1 << 64),
    "fixed64": range(0, 1 << 64),
}


class ValidationError(ValueError):
    """Raised when a plain object does not match a record type."""


@dataclass(frozen=True)
class ToObjectOptions:
    """Controls how records render as plain objects.

    Attributes:
        longs: 64-bit integers as "int", decimal "str", or a {low, high,
            unsigned} "pair" of 32-bit halves.
        binary: bytes fields as "base64" strings, "raw" bytes, or a "list"
            of ints.
        enums: enum fields as symbolic "name" (raw int when unknown) or "int".
        defaults: include fields equal to their default.
        arrays: include empty repeated fields.
        nulls: render unset zero-valued singular fields and unset records as
            None. Implies defaults.
    """

    longs: LongFormat = "int"
    binary: BinaryFormat = "base64"
    enums: EnumFormat = "name"
    defaults: bool = False
    arrays: bool = False
    nulls: bool = False


def _is_zero_like(value: Any) -> bool:
    if isinstance(value, (bytes, bytearray)):
        return len(value) == 0
    return not value


def _long_to_pair(value: int, unsigned: bool) -> dict[str, Any]:
    def signed32(v: int) -> int:
        return v - (1 << 32) if v & 0x80000000 else v

    return {
        "low": signed32(value & 0xFFFFFFFF),
        "high": signed32((value >> 32) & 0xFFFFFFFF),
        "unsigned": unsigned,
    }


def _scalar_to_plain(fd: FieldDescriptor, value: Any, options: ToObjectOptions, registry: Any) -> Any:
    if fd.type in LONG_TYPES:
        if options.longs == "str":
            return str(value)
        if options.longs == "pair":
            return _long_to_pair(value, fd.type in UNSIGNED_TYPES)
        return int(value)
    if fd.type == "enum":
        if options.enums == "name":
            name = registry.enum_type(fd.type_name).name_for(value)
            return int(value) if name is None else name
        return int(value)
    if fd.type == "bytes":
        if options.binary == "base64":
            return base64.b64encode(value).decode("ascii")
        if options.binary == "list":
            return list(value)
        return bytes(value)
    if fd.type in ("float", "double"):
        return float(value)
    if fd.type == "bool":
        return bool(value)
    if fd.type in ("int32", "uint32", "sint32", "fixed32", "sfixed32"):
        return int(value)
    return value


def to_plain_object(message: Message, options: ToObjectOptions | None = None) -> dict[str, Any]:
    """Render a record as a dict keyed by field name."""
    if options is None:
        options = ToObjectOptions()
    cls = type(message)
    registry = cls._registry
    include_defaults = options.defaults or options.nulls
    out: dict[str, Any] = {}

    for fd in cls._descriptor.fields:
        value = getattr(message, fd.attr)

        if fd.repeated:
            if value or options.arrays or include_defaults:
                if fd.is_message:
                    out[fd.name] = [to_plain_object(item, options) for item in value]
                else:
                    out[fd.name] = [_scalar_to_plain(fd, item, options, registry) for item in value]
        elif fd.is_message:
            if value is not None:
                out[fd.name] = to_plain_object(value, options)
            elif include_defaults:
                out[fd.name] = None
        elif value != fd.default:
            out[fd.name] = _scalar_to_plain(fd, value, options, registry)
        elif options.nulls and _is_zero_like(fd.default):
            out[fd.name] = None
        elif include_defaults:
            out[fd.name] = _scalar_to_plain(fd, value, options, registry)

    return out


def _fail(path: str, reason: str) -> ValidationError:
    return ValidationError(f"{path}: {reason}")


def _integer_from_plain(fd: FieldDescriptor, value: Any, path: str) -> int:
    if isinstance(value, bool):
        raise _fail(path, "integer expected")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float) and value.is_integer():
        result = int(value)
    elif isinstance(value, str) and fd.type in LONG_TYPES:
        try:
            result = int(value, 10)
        except ValueError:
            raise _fail(path, "integer|Long expected") from None
    elif isinstance(value, Mapping) and fd.type in LONG_TYPES:
        low, high = value.get("low"), value.get("high")
        if not isinstance(low, int) or not isinstance(high, int):
            raise _fail(path, "integer|Long expected")
        result = ((high & 0xFFFFFFFF) << 32) | (low & 0xFFFFFFFF)
        if not value.get("unsigned", fd.type in UNSIGNED_TYPES) and result >= 1 << 63:
            result -= 1 << 64
    else:
        raise _fail(path, "integer|Long expected" if fd.type in LONG_TYPES else "integer expected")

    if result not in _RANGES[fd.type]:
        raise _fail(path, f"{result} out of range for {fd.type}")
    return result


def _enum_from_plain(fd: FieldDescriptor, value: Any, path: str, registry: Any) -> Any:
    enum_cls = registry.enum_type(fd.type_name)
    if isinstance(value, str):
        number = enum_cls.value_for(value)
        if number is None:
            raise _fail(path, f"enum value expected, {value!r} is not a member of {fd.type_name}")
        return enum_cls(number)
    if isinstance(value, int) and not isinstance(value, bool):
        if value not in _RANGES["enum"]:
            raise _fail(path, f"{value} out of range for enum")
        return enum_cls.coerce(value)
    raise _fail(path, "enum value expected")


def _bytes_from_plain(value: Any, path: str) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise _fail(path, "buffer expected, string is not valid base64") from None
    if isinstance(value, list) and all(isinstance(b, int) and 0 <= b < 256 for b in value):
        return bytes(value)
    raise _fail(path, "buffer expected")


def _scalar_from_plain(fd: FieldDescriptor, value: Any, path: str, registry: Any) -> Any:
    if fd.type == "enum":
        return _enum_from_plain(fd, value, path, registry)
    if fd.type in _RANGES:
        return _integer_from_plain(fd, value, path)
    if fd.type == "bool":
        if not isinstance(value, bool):
            raise _fail(path, "boolean expected")
        return value
    if fd.type in ("float", "double"):
        if isinstance(value, bool):
            raise _fail(path, "number expected")
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str) and value in ("NaN", "Infinity", "-Infinity"):
            return {"NaN": math.nan, "Infinity": math.inf, "-Infinity": -math.inf}[value]
        raise _fail(path, "number expected")
    if fd.type == "string":
        if not isinstance(value, str):
            raise _fail(path, "string expected")
        return value
    return _bytes_from_plain(value, path)


def _field_from_plain(fd: FieldDescriptor, value: Any, path: str, registry: Any) -> Any:
    if fd.is_message:
        sub_cls = registry.message_type(fd.type_name)
        if isinstance(value, sub_cls):
            return value
        return _from_plain(sub_cls, value, path)
    return _scalar_from_plain(fd, value, path, registry)


def _from_plain(cls: type[TMessage], obj: Any, path: str) -> TMessage:
    if isinstance(obj, cls):
        return obj
    if not isinstance(obj, Mapping):
        raise _fail(path or cls._descriptor.name, "object expected")

    desc = cls._descriptor
    registry = cls._registry
    kwargs: dict[str, Any] = {}

    for key, value in obj.items():
        fd = desc.by_name.get(key)
        if fd is None:
            logger.debug("%s: ignoring unknown key %r", desc.name, key)
            continue
        if value is None:
            continue
        field_path = f"{path}.{key}" if path else key
        if fd.repeated:
            if not isinstance(value, (list, tuple)):
                raise _fail(field_path, "array expected")
            kwargs[fd.attr] = [
                _field_from_plain(fd, item, f"{field_path}[{i}]", registry) for i, item in enumerate(value)
            ]
        else:
            kwargs[fd.attr] = _field_from_plain(fd, value, field_path, registry)

    return cls(**kwargs)


def from_plain_object(cls: type[TMessage], obj: Any) -> TMessage:
    """Build a record from a plain object.

    Only known field names are copied; unknown keys are ignored. None values
    count as absent.

    Raises:
        ValidationError: A value does not match its field's type.
    """
    return _from_plain(cls, obj, "")


def verify(cls: type[Message], obj: Any) -> str | None:
    """Describe the first problem found in obj, or return None if it is valid."""
    try:
        _from_plain(cls, obj, "")
    except ValidationError as exc:
        return str(exc)
    return None
