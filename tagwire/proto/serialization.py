"""Record types and the schema-driven wire codec."""

import logging
import math
from collections.abc import Callable
from dataclasses import MISSING, dataclass, field, fields
from enum import IntEnum
from typing import TYPE_CHECKING, Any, ClassVar, Self

from .types import ZERO_VALUES, FieldDescriptor, MessageDescriptor
from .wire import (
    DecodeError,
    EncodeError,
    InvalidUtf8,
    NestingTooDeep,
    Reader,
    UnknownWireType,
    ValueOutOfRange,
    WireType,
    WireTypeMismatch,
    Writer,
    decode_zigzag,
    encode_zigzag,
)

if TYPE_CHECKING:
    from .objects import ToObjectOptions
    from .registry import SchemaRegistry

logger = logging.getLogger(__name__)

DEFAULT_RECURSION_LIMIT = 100

_INT32 = range(-(1 << 31), 1 << 31)
_INT64 = range(-(1 << 63), 1 << 63)
_UINT32 = range(0, 1 << 32)
_UINT64 = range(0, 1 << 64)

_VALID_WIRE_TYPES = frozenset(int(w) for w in WireType)


@dataclass(frozen=True)
class ProtoFieldInfo:
    """Wire metadata for a record field."""

    number: int
    type: str
    repeated: bool = False
    packed: bool = False
    type_name: str | None = None
    name: str | None = None  # wire/interchange name when it differs from the attribute
    oneof: str | None = None


# Sentinel for missing default
_MISSING: Any = object()


def proto_field(
    number: int,
    type: str,
    *,
    repeated: bool = False,
    packed: bool = False,
    type_name: str | None = None,
    name: str | None = None,
    oneof: str | None = None,
    default: Any = _MISSING,
) -> Any:
    """Define a record field with wire metadata.

    Args:
        number: The field number used in tags.
        type: The semantic type (e.g., "uint32", "sint64", "string", "message").
        repeated: Whether the field holds a list of values.
        packed: Write repeated scalars as one length-delimited run.
        type_name: Full name of the enum or record type for enum/message fields.
        name: Field name on the wire and in plain objects, if not the attribute name.
        oneof: Name of the oneof group the field belongs to.
        default: Schema default for singular scalar fields.

    Returns:
        A dataclass field with tagwire metadata attached.
    """
    metadata = {"tagwire": ProtoFieldInfo(number, type, repeated, packed, type_name, name, oneof)}

    if repeated:
        return field(default_factory=list, metadata=metadata)
    if type == "message":
        return field(default=None, metadata=metadata)
    if default is _MISSING:
        default = ZERO_VALUES.get(type)
    return field(default=default, metadata=metadata)


def build_descriptor(cls: type, full_name: str) -> MessageDescriptor:
    """Derive a MessageDescriptor from a record dataclass."""
    result: list[FieldDescriptor] = []
    for f in fields(cls):
        info = f.metadata.get("tagwire")
        if info is None:
            continue
        default = None if f.default is MISSING else f.default
        result.append(
            FieldDescriptor(
                name=info.name or f.name,
                number=info.number,
                type=info.type,
                repeated=info.repeated,
                packed=info.packed,
                type_name=info.type_name,
                default=default,
                attr=f.name,
                oneof=info.oneof,
            )
        )
    return MessageDescriptor(full_name, tuple(result))


class Message:
    """Base class for record types.

    Subclasses are @dataclass decorated, declare fields with proto_field(),
    and are registered with a SchemaRegistry, which attaches the descriptor.

    Example:
        @registry.message("CMsgGCGiftedItems")
        @dataclass
        class CMsgGCGiftedItems(Message):
            accountid: int = proto_field(1, "uint32")
            recipients_accountids: list[int] = proto_field(5, "uint32", repeated=True)
    """

    _registry: ClassVar["SchemaRegistry"]
    _descriptor: ClassVar[MessageDescriptor]

    @classmethod
    def descriptor(cls) -> MessageDescriptor:
        return cls._descriptor

    def encode(self) -> bytes:
        """Encode this record to bytes."""
        return encode_message(self)

    @classmethod
    def decode(
        cls,
        data: bytes | bytearray | memoryview,
        *,
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    ) -> Self:
        """Decode a record from bytes."""
        return decode_message(cls, data, recursion_limit=recursion_limit)

    def encode_delimited(self) -> bytes:
        """Encode this record prefixed with its varint length."""
        from .framing import encode_delimited

        return encode_delimited(self)

    @classmethod
    def decode_delimited(
        cls,
        data: bytes | bytearray | memoryview,
        offset: int = 0,
        *,
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    ) -> tuple[Self, int]:
        """Decode one length-prefixed record.

        Args:
            data: The bytes to decode from.
            offset: Starting offset in data.

        Returns:
            Tuple of (instance, bytes_consumed).
        """
        from .framing import decode_delimited

        return decode_delimited(cls, data, offset, recursion_limit=recursion_limit)

    def to_dict(self, options: "ToObjectOptions | None" = None, **kwargs: Any) -> dict[str, Any]:
        """Convert to a plain object. See ToObjectOptions for keyword options."""
        from .objects import ToObjectOptions, to_plain_object

        if options is None:
            options = ToObjectOptions(**kwargs)
        return to_plain_object(self, options)

    @classmethod
    def from_dict(cls, obj: Any) -> Self:
        from .objects import from_plain_object

        return from_plain_object(cls, obj)

    @classmethod
    def verify(cls, obj: Any) -> str | None:
        """Return a description of the first problem in obj, or None."""
        from .objects import verify

        return verify(cls, obj)


class ProtoEnum(IntEnum):
    """Base class for enum types.

    Values outside the declared members are kept as plain ints, so records
    stay decodable when a newer producer extends the enum.

    Example:
        @registry.enum("EGCConnectionStatus")
        class EGCConnectionStatus(ProtoEnum):
            HAVE_SESSION = 0
            GC_GOING_DOWN = 1
    """

    @classmethod
    def coerce(cls, value: int) -> "ProtoEnum | int":
        try:
            return cls(value)
        except ValueError:
            return value

    @classmethod
    def name_for(cls, value: int) -> str | None:
        try:
            return cls(value).name
        except ValueError:
            return None

    @classmethod
    def value_for(cls, name: str) -> int | None:
        member = cls.__members__.get(name)
        return None if member is None else int(member)


def _checked(value: int, valid: range, type_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueOutOfRange(f"{type_name} field expects an integer, got {type(value).__name__}")
    if value not in valid:
        raise ValueOutOfRange(f"{value} out of range for {type_name}")
    return value


def _write_int32(w: Writer, v: Any) -> None:
    w.write_varint(_checked(v, _INT32, "int32"))


def _write_bool(w: Writer, v: Any) -> None:
    if not isinstance(v, bool):
        raise ValueOutOfRange(f"bool field expects a bool, got {type(v).__name__}")
    w.write_varint(1 if v else 0)


def _write_raw(w: Writer, v: Any) -> None:
    if not isinstance(v, (bytes, bytearray, memoryview)):
        raise ValueOutOfRange(f"bytes field expects a buffer, got {type(v).__name__}")
    w.write_bytes(bytes(v))


def _write_utf8(w: Writer, v: str) -> None:
    if not isinstance(v, str):
        raise EncodeError(f"string field expects str, got {type(v).__name__}")
    w.write_bytes(v.encode("utf-8"))


_WRITERS: dict[str, Callable[[Writer, Any], None]] = {
    "int32": _write_int32,
    "enum": _write_int32,
    "int64": lambda w, v: w.write_varint(_checked(v, _INT64, "int64")),
    "uint32": lambda w, v: w.write_varint(_checked(v, _UINT32, "uint32")),
    "uint64": lambda w, v: w.write_varint(_checked(v, _UINT64, "uint64")),
    "sint32": lambda w, v: w.write_varint(encode_zigzag(_checked(v, _INT32, "sint32"), 32)),
    "sint64": lambda w, v: w.write_varint(encode_zigzag(_checked(v, _INT64, "sint64"), 64)),
    "bool": _write_bool,
    "fixed32": lambda w, v: w.write_fixed32(v),
    "sfixed32": lambda w, v: w.write_sfixed32(v),
    "fixed64": lambda w, v: w.write_fixed64(v),
    "sfixed64": lambda w, v: w.write_sfixed64(v),
    "float": lambda w, v: w.write_float(v),
    "double": lambda w, v: w.write_double(v),
    "string": _write_utf8,
    "bytes": _write_raw,
}


def _signed(value: int, bits: int) -> int:
    value &= (1 << bits) - 1
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def _read_string(r: Reader) -> str:
    start = r.pos
    raw = r.read_bytes()
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidUtf8(f"string is not valid UTF-8: {exc.reason}", start) from exc


_READERS: dict[str, Callable[[Reader], Any]] = {
    "int32": lambda r: _signed(r.read_varint(), 32),
    "enum": lambda r: _signed(r.read_varint(), 32),
    "int64": lambda r: _signed(r.read_varint(), 64),
    "uint32": lambda r: r.read_varint() & 0xFFFFFFFF,
    "uint64": lambda r: r.read_varint(),
    "sint32": lambda r: decode_zigzag(r.read_varint() & 0xFFFFFFFF),
    "sint64": lambda r: decode_zigzag(r.read_varint()),
    "bool": lambda r: r.read_varint() != 0,
    "fixed32": Reader.read_fixed32,
    "sfixed32": Reader.read_sfixed32,
    "fixed64": Reader.read_fixed64,
    "sfixed64": Reader.read_sfixed64,
    "float": Reader.read_float,
    "double": Reader.read_double,
    "string": _read_string,
    "bytes": Reader.read_bytes,
}


def encode_message(message: Message) -> bytes:
    """Encode a record to bytes. Unset fields are omitted."""
    writer = Writer()
    _encode_into(message, writer)
    return writer.getvalue()


def _encode_into(message: Message, writer: Writer) -> None:
    for fd in type(message)._descriptor.fields:
        value = getattr(message, fd.attr)

        if fd.repeated:
            if not value:
                continue
            if fd.packed:
                payload = Writer()
                write = _WRITERS[fd.type]
                for item in value:
                    write(payload, item)
                writer.write_tag(fd.number, WireType.LEN)
                writer.write_bytes(payload.getvalue())
            else:
                for item in value:
                    _write_value(writer, fd, item)
        elif fd.is_message:
            if value is not None:
                _write_value(writer, fd, value)
        elif value != fd.default or _is_negative_zero(value):
            _write_value(writer, fd, value)


def _is_negative_zero(value: Any) -> bool:
    return isinstance(value, float) and value == 0.0 and math.copysign(1.0, value) < 0


def _write_value(writer: Writer, fd: FieldDescriptor, value: Any) -> None:
    writer.write_tag(fd.number, fd.wire_type)
    if fd.is_message:
        sub = Writer()
        _encode_into(value, sub)
        writer.write_bytes(sub.getvalue())
    else:
        _WRITERS[fd.type](writer, value)


def decode_message(
    cls: type[Message],
    data: bytes | bytearray | memoryview,
    *,
    recursion_limit: int = DEFAULT_RECURSION_LIMIT,
) -> Any:
    """Decode a whole buffer as one record of type cls.

    Raises DecodeError (or a subclass) on malformed input; nothing partial is
    returned.
    """
    reader = Reader(data)
    message = cls()
    decode_into(message, reader, recursion_limit)
    return message


def decode_into(message: Message, reader: Reader, depth: int) -> None:
    """Decode fields from reader into message until the reader's limit.

    Fields already set on message are overwritten (scalars), extended
    (repeated) or merged (records).
    """
    cls = type(message)
    desc = cls._descriptor
    registry = cls._registry

    while not reader.at_end():
        tag_offset = reader.pos
        number, wire_type = reader.read_tag()
        if wire_type not in _VALID_WIRE_TYPES:
            raise UnknownWireType(f"unknown wire type {wire_type} for field {number}", tag_offset)
        if number == 0:
            raise DecodeError("invalid field number 0", tag_offset)

        fd = desc.by_number.get(number)
        if fd is None:
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("%s: skipping unknown field %d (wire type %d)", desc.name, number, wire_type)
            reader.skip(wire_type)
            continue

        if fd.is_packable and wire_type == WireType.LEN:
            _read_packed(message, fd, reader, registry)
            continue

        if wire_type != fd.wire_type:
            raise WireTypeMismatch(
                f"{desc.name}.{fd.name} ({fd.type}) cannot use wire type {wire_type}", tag_offset
            )

        if fd.is_message:
            sub_cls = registry.message_type(fd.type_name)
            current = None if fd.repeated else getattr(message, fd.attr)
            sub = current if current is not None else sub_cls()
            if depth <= 0:
                raise NestingTooDeep(f"{desc.name}.{fd.name} nests deeper than the recursion limit", tag_offset)
            length = reader.read_varint()
            old_limit = reader.push_limit(length)
            decode_into(sub, reader, depth - 1)
            reader.pop_limit(old_limit)
            value = sub
        else:
            value = _READERS[fd.type](reader)
            if fd.type == "enum":
                value = registry.enum_type(fd.type_name).coerce(value)

        if fd.repeated:
            getattr(message, fd.attr).append(value)
        else:
            setattr(message, fd.attr, value)


def _read_packed(message: Message, fd: FieldDescriptor, reader: Reader, registry: "SchemaRegistry") -> None:
    read = _READERS[fd.type]
    target = getattr(message, fd.attr)
    length = reader.read_varint()
    old_limit = reader.push_limit(length)
    if fd.type == "enum":
        coerce = registry.enum_type(fd.type_name).coerce
        while not reader.at_end():
            target.append(coerce(read(reader)))
    else:
        while not reader.at_end():
            target.append(read(reader))
    reader.pop_limit(old_limit)
