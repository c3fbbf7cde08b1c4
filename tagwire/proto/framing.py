"""Length-delimited framing for streams of concatenated records."""

from collections.abc import Iterator
from typing import TypeVar

from .serialization import DEFAULT_RECURSION_LIMIT, Message, decode_into
from .wire import MalformedLength, MalformedVarint, Reader, TruncatedInput, decode_varint, encode_varint

TMessage = TypeVar("TMessage", bound=Message)


def encode_delimited(message: Message) -> bytes:
    """Encode a record prefixed with the varint length of its payload."""
    payload = message.encode()
    return encode_varint(len(payload)) + payload


def decode_delimited(
    cls: type[TMessage],
    data: bytes | bytearray | memoryview,
    offset: int = 0,
    *,
    recursion_limit: int = DEFAULT_RECURSION_LIMIT,
) -> tuple[TMessage, int]:
    """Decode one length-prefixed record starting at offset.

    Returns:
        Tuple of (instance, bytes_consumed).
    """
    reader = Reader(data, offset)
    length = reader.read_varint()
    old_limit = reader.push_limit(length)
    message = cls()
    decode_into(message, reader, recursion_limit)
    reader.pop_limit(old_limit)
    return message, reader.pos - offset


def iter_delimited(
    cls: type[TMessage],
    data: bytes | bytearray | memoryview,
    *,
    recursion_limit: int = DEFAULT_RECURSION_LIMIT,
) -> Iterator[TMessage]:
    """Yield every length-prefixed record in a buffer."""
    offset = 0
    while offset < len(data):
        message, consumed = decode_delimited(cls, data, offset, recursion_limit=recursion_limit)
        offset += consumed
        yield message


class Framer:
    """Splits an incoming byte stream into length-prefixed payloads.

    Data arrives in arbitrary chunks through append_buffer(); decode_frame()
    returns the next complete payload, or None until enough bytes are
    buffered.
    """

    def __init__(self, max_length: int | None = None) -> None:
        self._max_length = max_length
        self._buffer = bytearray()

    def encode_frame(self, data: bytes) -> bytes:
        """Prefix a payload with its varint length."""
        if self._max_length is not None and len(data) > self._max_length:
            raise MalformedLength(f"frame of {len(data)} bytes exceeds limit {self._max_length}")
        return encode_varint(len(data)) + data

    def decode_frame(self) -> bytes | None:
        """Attempt to take one complete payload from the buffer."""
        if not self._buffer:
            return None

        try:
            length, header = decode_varint(self._buffer)
        except TruncatedInput:
            return None
        except MalformedVarint:
            self.clear_buffer()
            raise

        if self._max_length is not None and length > self._max_length:
            self.clear_buffer()
            raise MalformedLength(f"frame of {length} bytes exceeds limit {self._max_length}")

        end = header + length
        if len(self._buffer) < end:
            return None

        frame = bytes(self._buffer[header:end])
        del self._buffer[:end]
        return frame

    def frames(self) -> Iterator[bytes]:
        """Yield every complete payload currently buffered."""
        while (frame := self.decode_frame()) is not None:
            yield frame

    def clear_buffer(self) -> None:
        """Clear the receive buffer."""
        self._buffer.clear()

    def append_buffer(self, data: bytes) -> None:
        """Append data to the receive buffer."""
        self._buffer.extend(data)

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet returned as frames."""
        return len(self._buffer)
