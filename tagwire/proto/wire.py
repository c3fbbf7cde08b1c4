"""Wire-level primitives: varints, zigzag, tags, and buffer cursors."""

import struct
from enum import IntEnum

MAX_FIELD_NUMBER = (1 << 29) - 1
MAX_VARINT_BYTES = 10

_UINT64_MASK = (1 << 64) - 1


class WireType(IntEnum):
    """Payload framing category carried in the low 3 bits of a tag."""

    VARINT = 0
    I64 = 1
    LEN = 2
    I32 = 5


class SerializationError(RuntimeError):
    """Raised when encoding or decoding fails."""

    def __init__(self, message: str, offset: int | None = None) -> None:
        if offset is not None:
            message = f"{message} (at byte {offset})"
        super().__init__(message)
        self.offset = offset


class EncodeError(SerializationError):
    """Raised when a record cannot be encoded."""


class FieldOutOfRange(EncodeError):
    """Field number cannot be represented in a tag."""


class ValueOutOfRange(EncodeError):
    """Field value does not fit its declared type."""


class DecodeError(SerializationError):
    """Raised when a buffer cannot be decoded."""


class TruncatedInput(DecodeError):
    """Buffer ended in the middle of a field."""


class MalformedLength(DecodeError):
    """A length-delimited payload overruns its enclosing bound."""


class MalformedVarint(DecodeError):
    """A varint is longer than 10 bytes."""


class UnknownWireType(DecodeError):
    """Tag carries a wire type outside the four defined ones."""


class WireTypeMismatch(DecodeError):
    """A known field arrived with a wire type its type cannot use."""


class NestingTooDeep(DecodeError):
    """Nested messages exceed the recursion limit."""


class InvalidUtf8(DecodeError):
    """A string field holds bytes that are not valid UTF-8."""


def encode_varint(value: int) -> bytes:
    """Encode a non-negative integer as a varint.

    Negative values are sign-extended to 64 bits first, which is how
    int32 and int64 fields put negative numbers on the wire.
    """
    value &= _UINT64_MASK
    out = bytearray()
    while value > 0x7F:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def decode_varint(data: bytes | memoryview, offset: int = 0, end: int | None = None) -> tuple[int, int]:
    """Decode a varint.

    Args:
        data: The buffer to read from.
        offset: Position of the first varint byte.
        end: Exclusive bound; defaults to the end of data.

    Returns:
        Tuple of (value, bytes_consumed).
    """
    if end is None:
        end = len(data)
    result = 0
    shift = 0
    pos = offset
    while True:
        if pos >= end:
            raise TruncatedInput("buffer ended inside a varint", offset)
        if pos - offset >= MAX_VARINT_BYTES:
            raise MalformedVarint("varint exceeds 10 bytes", offset)
        byte = data[pos]
        result |= (byte & 0x7F) << shift
        pos += 1
        if not byte & 0x80:
            break
        shift += 7
    return result & _UINT64_MASK, pos - offset


def encode_zigzag(value: int, bits: int = 64) -> int:
    """Map a signed integer onto an unsigned one, small magnitudes first."""
    return ((value << 1) ^ (value >> (bits - 1))) & ((1 << bits) - 1)


def decode_zigzag(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


def encode_tag(field_number: int, wire_type: WireType) -> bytes:
    if not 1 <= field_number <= MAX_FIELD_NUMBER:
        raise FieldOutOfRange(f"field number {field_number} outside 1..{MAX_FIELD_NUMBER}")
    return encode_varint((field_number << 3) | wire_type)


def decode_tag(data: bytes | memoryview, offset: int = 0) -> tuple[int, int, int]:
    """Decode a tag.

    Returns:
        Tuple of (field_number, wire_type, bytes_consumed).
    """
    tag, consumed = decode_varint(data, offset)
    return tag >> 3, tag & 0x7, consumed


class Writer:
    """Append-only output buffer."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def getvalue(self) -> bytes:
        return bytes(self._buf)

    def write_raw(self, data: bytes) -> None:
        self._buf.extend(data)

    def write_varint(self, value: int) -> None:
        self._buf.extend(encode_varint(value))

    def write_tag(self, field_number: int, wire_type: WireType) -> None:
        self._buf.extend(encode_tag(field_number, wire_type))

    def write_bytes(self, data: bytes) -> None:
        """Write a varint length prefix followed by data."""
        self._buf.extend(encode_varint(len(data)))
        self._buf.extend(data)

    def write_fixed32(self, value: int) -> None:
        self._pack("<I", value)

    def write_sfixed32(self, value: int) -> None:
        self._pack("<i", value)

    def write_fixed64(self, value: int) -> None:
        self._pack("<Q", value)

    def write_sfixed64(self, value: int) -> None:
        self._pack("<q", value)

    def write_float(self, value: float) -> None:
        self._pack("<f", value)

    def write_double(self, value: float) -> None:
        self._pack("<d", value)

    def _pack(self, fmt: str, value: int | float) -> None:
        try:
            self._buf.extend(struct.pack(fmt, value))
        except (struct.error, OverflowError) as exc:
            raise ValueOutOfRange(f"{value!r} does not fit format {fmt}") from exc


class Reader:
    """Cursor over an input buffer.

    Reads are bounded by the current limit. Nested and packed payloads push
    a tighter limit for their duration; reading past a pushed limit is a
    MalformedLength error, reading past the end of the buffer is a
    TruncatedInput error.
    """

    def __init__(self, data: bytes | bytearray | memoryview, offset: int = 0) -> None:
        self._data = memoryview(data).cast("B") if not isinstance(data, bytes) else data
        self.pos = offset
        self.limit = len(data)

    @property
    def data_length(self) -> int:
        return len(self._data)

    def at_end(self) -> bool:
        return self.pos >= self.limit

    def push_limit(self, length: int) -> int:
        """Restrict reads to the next length bytes; returns the previous limit."""
        new_limit = self.pos + length
        if new_limit > self.limit:
            raise MalformedLength(
                f"declared length {length} exceeds the {self.limit - self.pos} bytes remaining",
                self.pos,
            )
        old_limit = self.limit
        self.limit = new_limit
        return old_limit

    def pop_limit(self, old_limit: int) -> None:
        if self.pos != self.limit:
            raise MalformedLength("payload did not end on its declared length", self.pos)
        self.limit = old_limit

    def _require(self, size: int) -> None:
        if self.pos + size > self.limit:
            if self.limit < len(self._data):
                raise MalformedLength(f"read of {size} bytes crosses a length boundary", self.pos)
            raise TruncatedInput(f"needed {size} bytes, {self.limit - self.pos} remaining", self.pos)

    def read_varint(self) -> int:
        try:
            value, consumed = decode_varint(self._data, self.pos, self.limit)
        except TruncatedInput:
            if self.limit < len(self._data):
                raise MalformedLength("varint crosses a length boundary", self.pos) from None
            raise
        self.pos += consumed
        return value

    def read_tag(self) -> tuple[int, int]:
        """Read a tag; returns (field_number, wire_type)."""
        tag = self.read_varint()
        return tag >> 3, tag & 0x7

    def read_raw(self, size: int) -> bytes:
        self._require(size)
        start = self.pos
        self.pos += size
        return bytes(self._data[start : self.pos])

    def read_bytes(self) -> bytes:
        """Read a varint length prefix and that many bytes."""
        start = self.pos
        length = self.read_varint()
        if self.pos + length > self.limit:
            raise MalformedLength(
                f"declared length {length} exceeds the {self.limit - self.pos} bytes remaining",
                start,
            )
        return self.read_raw(length)

    def _unpack(self, fmt: str, size: int) -> int | float:
        self._require(size)
        (value,) = struct.unpack_from(fmt, self._data, self.pos)
        self.pos += size
        return value

    def read_fixed32(self) -> int:
        return self._unpack("<I", 4)

    def read_sfixed32(self) -> int:
        return self._unpack("<i", 4)

    def read_fixed64(self) -> int:
        return self._unpack("<Q", 8)

    def read_sfixed64(self) -> int:
        return self._unpack("<q", 8)

    def read_float(self) -> float:
        return self._unpack("<f", 4)

    def read_double(self) -> float:
        return self._unpack("<d", 8)

    def skip(self, wire_type: int) -> None:
        """Skip one payload of the given wire type."""
        if wire_type == WireType.VARINT:
            self.read_varint()
        elif wire_type == WireType.I64:
            self._require(8)
            self.pos += 8
        elif wire_type == WireType.LEN:
            self.read_bytes()
        elif wire_type == WireType.I32:
            self._require(4)
            self.pos += 4
        else:
            raise UnknownWireType(f"unknown wire type {wire_type}", self.pos)
