"""
ASCII armor codec.

Armor wraps binary packets in base64 between ``-----BEGIN PGP <TYPE>-----``
and ``-----END PGP <TYPE>-----`` lines, with optional ``Key: Value`` header
lines and a CRC-24 checksum line.
"""

import base64
import binascii
from collections.abc import Mapping
from types import TracebackType
from typing import BinaryIO, Self

from pgp_pipeline.exceptions import MessageFormatError
from pgp_pipeline.openpgp.framing import ChunkedReader, PrefixedReader

MESSAGE = "MESSAGE"
SIGNATURE = "SIGNATURE"
SIGNED_MESSAGE = "SIGNED MESSAGE"
BEGIN_PREFIX = b"-----BEGIN PGP "
END_PREFIX = b"-----END PGP "

_LINE_BYTES = 48  # 64 base64 characters
_SNIFF_SIZE = 64
_CRC24_INIT = 0xB704CE
_CRC24_POLY = 0x1864CFB


def _build_crc24_table() -> tuple[int, ...]:
    table = []
    for index in range(256):
        crc = index << 16
        for _ in range(8):
            crc <<= 1
            if crc & 0x1000000:
                crc ^= _CRC24_POLY
        table.append(crc & 0xFFFFFF)
    return tuple(table)


_CRC24_TABLE = _build_crc24_table()


def crc24(data: bytes, crc: int = _CRC24_INIT) -> int:
    """CRC-24 as used by the armor checksum; pass the previous value to continue."""
    for byte in data:
        crc = ((crc << 8) & 0xFFFFFF) ^ _CRC24_TABLE[((crc >> 16) ^ byte) & 0xFF]
    return crc


def build_headers(version: str | None, headers: Mapping[str, str | None] | None = None) -> dict[str, str]:
    """
    Merge caller headers over the default ``Version`` header.

    A caller value replaces the default in place; other keys follow in the
    caller's order. A None value removes the header.
    """
    merged: dict[str, str | None] = {"Version": version}
    if headers:
        merged.update(headers)
    return {key: value for key, value in merged.items() if value is not None}


def begin_line(block_type: str) -> bytes:
    return BEGIN_PREFIX + block_type.encode("ascii") + b"-----"


def end_line(block_type: str) -> bytes:
    return END_PREFIX + block_type.encode("ascii") + b"-----"


def encode_header_lines(headers: Mapping[str, str]) -> bytes:
    return b"".join(f"{key}: {value}\n".encode("utf-8") for key, value in headers.items())


class ArmoredWriter:
    """
    Streams binary data out as an armored block.

    Closing writes the checksum and end line; the underlying stream is left open.
    """

    def __init__(
        self,
        out: BinaryIO,
        *,
        block_type: str = MESSAGE,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self._out = out
        self._block_type = block_type
        self._buffer = bytearray()
        self._crc = _CRC24_INIT
        self._closed = False
        self._out.write(begin_line(block_type) + b"\n")
        self._out.write(encode_header_lines(headers or {}))
        self._out.write(b"\n")

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
        self._crc = crc24(data, self._crc)
        self._buffer += data
        full = len(self._buffer) - len(self._buffer) % _LINE_BYTES
        for offset in range(0, full, _LINE_BYTES):
            self._out.write(base64.b64encode(self._buffer[offset : offset + _LINE_BYTES]) + b"\n")
        del self._buffer[:full]
        return len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._buffer:
            self._out.write(base64.b64encode(self._buffer) + b"\n")
        checksum = base64.b64encode(self._crc.to_bytes(3, "big"))
        self._out.write(b"=" + checksum + b"\n")
        self._out.write(end_line(self._block_type) + b"\n")


class ArmoredReader(ChunkedReader):
    """
    Decodes one armored block from ``stream``.

    Args:
        stream: Text stream positioned at or before the begin line.
        first_line: Begin line already consumed by the caller, if any.

    Attributes:
        block_type: Armor type, e.g. ``MESSAGE`` or ``SIGNATURE``.
        headers: Armor headers in order of appearance.

    Raises:
        MessageFormatError: If no armored block is found or the checksum fails.
    """

    def __init__(self, stream: BinaryIO, *, first_line: bytes | None = None) -> None:
        super().__init__()
        self._stream = stream
        line = first_line if first_line is not None else self._find_begin_line()
        stripped = line.strip()
        if not (stripped.startswith(BEGIN_PREFIX) and stripped.endswith(b"-----")):
            msg = "Invalid armor header line"
            raise MessageFormatError(msg)
        self.block_type = stripped[len(BEGIN_PREFIX) : -5].decode("ascii", errors="replace")
        self.headers: dict[str, str] = {}
        self._pending_line = self._read_headers()
        self._residue = b""
        self._crc = _CRC24_INIT
        self._expected_crc: int | None = None
        self._done = False

    def _find_begin_line(self) -> bytes:
        while line := self._stream.readline():
            if line.lstrip().startswith(BEGIN_PREFIX):
                return line
        msg = "No armored data found"
        raise MessageFormatError(msg)

    def _read_headers(self) -> bytes | None:
        while line := self._stream.readline():
            text = line.strip()
            if not text:
                return None
            key, sep, value = text.partition(b":")
            if not sep or text.startswith(b"-----"):
                return line
            self.headers[key.strip().decode("utf-8", errors="replace")] = value.strip().decode(
                "utf-8", errors="replace"
            )
        msg = "Armored data ended inside the header block"
        raise MessageFormatError(msg)

    def _next_line(self) -> bytes:
        if self._pending_line is not None:
            line, self._pending_line = self._pending_line, None
            return line
        return self._stream.readline()

    def _next_chunk(self) -> bytes | None:
        if self._done:
            return None
        line = self._next_line()
        if not line:
            msg = "Armored data ended without an end line"
            raise MessageFormatError(msg)
        text = line.strip()
        if text.startswith(END_PREFIX):
            self._finish()
            return None
        if text.startswith(b"=") and len(text) == 5:
            self._expected_crc = int.from_bytes(self._decode(text[1:]), "big")
            return b""
        data = self._decode_body(text)
        self._crc = crc24(data, self._crc)
        return data

    def _decode_body(self, text: bytes) -> bytes:
        chars = self._residue + text
        usable = len(chars) - len(chars) % 4
        self._residue = chars[usable:]
        return self._decode(chars[:usable])

    @staticmethod
    def _decode(chars: bytes) -> bytes:
        try:
            return base64.b64decode(chars, validate=True)
        except (binascii.Error, ValueError) as e:
            msg = f"Invalid base64 in armored data: {e}"
            raise MessageFormatError(msg) from e

    def _finish(self) -> None:
        self._done = True
        if self._residue:
            msg = "Truncated base64 in armored data"
            raise MessageFormatError(msg)
        if self._expected_crc is not None and self._expected_crc != self._crc:
            msg = "Armor checksum mismatch"
            raise MessageFormatError(msg)


def is_armored(head: bytes) -> bool:
    return head.lstrip().startswith(BEGIN_PREFIX)


def open_packet_stream(stream: BinaryIO) -> tuple[BinaryIO, ArmoredReader | None]:
    """
    Sniff ``stream`` and return a binary packet stream over it.

    Returns:
        Tuple of (packet stream, armored reader when the input was armored).

    Raises:
        MessageFormatError: If the input is neither armored nor binary OpenPGP.
    """
    head = stream.read(_SNIFF_SIZE)
    source = PrefixedReader(head, stream)
    if is_armored(head) or (head[:1].isspace() and not head.strip()):
        armored = ArmoredReader(source)
        return armored, armored
    if head and head[0] & 0x80:
        return source, None
    msg = "Failed to detect encrypted content format."
    raise MessageFormatError(msg)
