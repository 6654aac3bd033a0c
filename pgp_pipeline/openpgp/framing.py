"""
OpenPGP packet framing.

Encodes and decodes packet headers in both the old and the new format,
including partial body lengths, and exposes packet bodies as streams so
large packets are never held in memory.
"""

from enum import IntEnum
from types import TracebackType
from typing import BinaryIO, Self

from pgp_pipeline.exceptions import MessageFormatError

_READ_SIZE = 0x2000
_NEW_FORMAT_MASK = 0xC0
_OLD_FORMAT_MASK = 0x80
_PARTIAL_MIN = 224
_PARTIAL_MAX = 254


class PacketTag(IntEnum):
    """OpenPGP packet tags handled by the pipeline."""

    PUBLIC_KEY_ENCRYPTED_SESSION_KEY = 1
    SIGNATURE = 2
    SYMMETRIC_KEY_ENCRYPTED_SESSION_KEY = 3
    ONE_PASS_SIGNATURE = 4
    SECRET_KEY = 5
    PUBLIC_KEY = 6
    SECRET_SUBKEY = 7
    COMPRESSED_DATA = 8
    SYMMETRICALLY_ENCRYPTED_DATA = 9
    MARKER = 10
    LITERAL_DATA = 11
    TRUST = 12
    USER_ID = 13
    PUBLIC_SUBKEY = 14
    USER_ATTRIBUTE = 17
    SYM_ENCRYPTED_INTEGRITY_PROTECTED_DATA = 18
    MODIFICATION_DETECTION_CODE = 19


class ChunkedReader:
    """
    Read-only binary stream fed by a chunk producer.

    Subclasses implement ``_next_chunk``, returning bytes (possibly empty)
    while data remains and None once exhausted.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._exhausted = False

    def _next_chunk(self) -> bytes | None:
        raise NotImplementedError

    def _fill(self, size: int) -> None:
        while not self._exhausted and (size < 0 or len(self._buffer) < size):
            chunk = self._next_chunk()
            if chunk is None:
                self._exhausted = True
            else:
                self._buffer += chunk

    def read(self, size: int = -1) -> bytes:
        self._fill(size)
        if size < 0 or size >= len(self._buffer):
            data = bytes(self._buffer)
            self._buffer.clear()
            return data
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def readline(self, size: int = -1) -> bytes:
        while True:
            newline = self._buffer.find(b"\n")
            if newline >= 0:
                end = newline + 1
                break
            if self._exhausted or (0 <= size <= len(self._buffer)):
                end = len(self._buffer)
                break
            self._fill(len(self._buffer) + _READ_SIZE)
        if 0 <= size < end:
            end = size
        data = bytes(self._buffer[:end])
        del self._buffer[:end]
        return data

    def drain(self) -> None:
        """Consume and discard everything left."""
        while self.read(_READ_SIZE):
            pass

    @property
    def at_eof(self) -> bool:
        self._fill(1)
        return not self._buffer

    def readable(self) -> bool:
        return True


class PrefixedReader(ChunkedReader):
    """Re-attaches bytes already consumed from ``stream`` by a sniffing read."""

    def __init__(self, prefix: bytes, stream: BinaryIO) -> None:
        super().__init__()
        self._buffer += prefix
        self._stream = stream

    def _next_chunk(self) -> bytes | None:
        return self._stream.read(_READ_SIZE) or None


class PacketBodyReader(ChunkedReader):
    """
    Stream over one packet body.

    Handles definite lengths, new-format partial body lengths and old-format
    indeterminate lengths (``length`` None and ``partial`` False).
    """

    def __init__(self, stream: BinaryIO, length: int | None, *, partial: bool = False) -> None:
        super().__init__()
        self._stream = stream
        self._remaining = length
        self._partial = partial

    def _next_chunk(self) -> bytes | None:
        if self._remaining is None:
            return self._stream.read(_READ_SIZE) or None
        while self._remaining == 0:
            if not self._partial:
                return None
            self._remaining, self._partial = read_new_format_length(self._stream)
        data = self._stream.read(min(self._remaining, _READ_SIZE))
        if not data:
            msg = "Truncated packet body"
            raise MessageFormatError(msg, missing=self._remaining)
        self._remaining -= len(data)
        return data


def read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read exactly ``size`` bytes or raise MessageFormatError."""
    data = stream.read(size)
    while len(data) < size:
        more = stream.read(size - len(data))
        if not more:
            msg = f"Unexpected end of data: need {size} bytes, have {len(data)}"
            raise MessageFormatError(msg)
        data += more
    return data


def read_new_format_length(stream: BinaryIO) -> tuple[int, bool]:
    """
    Read a new-format length.

    Returns:
        Tuple of (length, is_partial).
    """
    first_byte = read_exact(stream, 1)[0]
    if first_byte < 192:
        return first_byte, False
    if first_byte < _PARTIAL_MIN:
        second_byte = read_exact(stream, 1)[0]
        return ((first_byte - 192) << 8) + second_byte + 192, False
    if first_byte == 255:
        return int.from_bytes(read_exact(stream, 4), "big"), False
    return 1 << (first_byte & 0x1F), True


def read_packet_header(stream: BinaryIO) -> tuple[int, PacketBodyReader] | None:
    """
    Read the next packet header.

    Returns:
        Tuple of (tag, body reader), or None at end of stream.

    Raises:
        MessageFormatError: If the header is invalid.
    """
    first = stream.read(1)
    if not first:
        return None
    first_byte = first[0]

    if (first_byte & _NEW_FORMAT_MASK) == _NEW_FORMAT_MASK:
        tag = first_byte & 0x3F
        length, partial = read_new_format_length(stream)
        return tag, PacketBodyReader(stream, length, partial=partial)

    if (first_byte & _OLD_FORMAT_MASK) == _OLD_FORMAT_MASK:
        tag = (first_byte & 0x3C) >> 2
        match first_byte & 0x03:
            case 0:
                length = read_exact(stream, 1)[0]
            case 1:
                length = int.from_bytes(read_exact(stream, 2), "big")
            case 2:
                length = int.from_bytes(read_exact(stream, 4), "big")
            case _:
                length = None
        return tag, PacketBodyReader(stream, length)

    msg = f"Invalid packet header: 0x{first_byte:02x}"
    raise MessageFormatError(msg)


def encode_new_format_length(length: int) -> bytes:
    if length < 192:
        return bytes([length])
    if length < 8384:
        length -= 192
        return bytes([(length >> 8) + 192, length & 0xFF])
    return b"\xff" + length.to_bytes(4, "big")


def encode_header(tag: int, length: int, *, old_format: bool = False) -> bytes:
    """Encode a packet header for a body of ``length`` bytes."""
    if not old_format:
        return bytes([0xC0 | tag]) + encode_new_format_length(length)
    if tag > 15:
        msg = f"Tag {tag} cannot be written in the old packet format"
        raise ValueError(msg)
    if length < 0x100:
        return bytes([0x80 | (tag << 2), length])
    if length < 0x10000:
        return bytes([0x80 | (tag << 2) | 1]) + length.to_bytes(2, "big")
    return bytes([0x80 | (tag << 2) | 2]) + length.to_bytes(4, "big")


def encode_packet(tag: int, body: bytes, *, old_format: bool = False) -> bytes:
    return encode_header(tag, len(body), old_format=old_format) + body


class PacketWriter:
    """Base for streamed packet bodies; closing finishes the packet, never ``out``."""

    def __init__(self, out: BinaryIO) -> None:
        self._out = out
        self._closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.close()
        else:
            self._closed = True

    def write(self, data: bytes) -> int:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    @property
    def closed(self) -> bool:
        return self._closed


class PartialBodyWriter(PacketWriter):
    """
    New-format packet written with partial body lengths.

    Every full ``chunk_size`` buffer is emitted as a partial chunk; the
    remainder is emitted with a definite length on close.
    """

    def __init__(self, out: BinaryIO, tag: int, chunk_size: int) -> None:
        super().__init__(out)
        if chunk_size < 512 or chunk_size & (chunk_size - 1):
            msg = "Partial body chunk size must be a power of two of at least 512"
            raise ValueError(msg)
        self._out.write(bytes([0xC0 | tag]))
        self._chunk_size = chunk_size
        self._partial_header = bytes([_PARTIAL_MIN + chunk_size.bit_length() - 1])
        self._buffer = bytearray()

    def write(self, data: bytes) -> int:
        self._buffer += data
        while len(self._buffer) >= self._chunk_size:
            self._out.write(self._partial_header)
            self._out.write(self._buffer[: self._chunk_size])
            del self._buffer[: self._chunk_size]
        return len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._out.write(encode_new_format_length(len(self._buffer)))
        self._out.write(self._buffer)
        self._buffer.clear()


class DefiniteBodyWriter(PacketWriter):
    """Packet whose body length is known before writing starts."""

    def __init__(self, out: BinaryIO, tag: int, length: int, *, old_format: bool = False) -> None:
        super().__init__(out)
        self._out.write(encode_header(tag, length, old_format=old_format))
        self._remaining = length

    def write(self, data: bytes) -> int:
        if len(data) > self._remaining:
            msg = "Data exceeds declared packet length"
            raise ValueError(msg)
        self._out.write(data)
        self._remaining -= len(data)
        return len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._remaining:
            msg = f"Packet closed with {self._remaining} bytes missing"
            raise ValueError(msg)
