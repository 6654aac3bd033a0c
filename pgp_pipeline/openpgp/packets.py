"""
Message-level packet handling.

PGPObjectFactory turns a packet stream into the message objects the
pipeline walks over, grouping consecutive session key, one-pass signature
and signature packets. The writer classes build the matching containers
when encoding.
"""

import bz2
import zlib
from datetime import UTC, datetime
from typing import BinaryIO

import structlog

from pgp_pipeline.crypto.symmetric import PacketDecryptor, PacketEncryptor
from pgp_pipeline.exceptions import MessageFormatError, UnsupportedAlgorithmError
from pgp_pipeline.models.crypto import CompressionAlgorithm, LiteralFormat, PublicKeyAlgorithm, SessionKey
from pgp_pipeline.models.message import (
    CompressedData,
    EncryptedDataList,
    EncryptedSessionKey,
    LiteralData,
    OnePassSignatureList,
    PGPObject,
    SignatureList,
)
from pgp_pipeline.openpgp.framing import (
    ChunkedReader,
    DefiniteBodyWriter,
    PacketBodyReader,
    PacketTag,
    PacketWriter,
    PartialBodyWriter,
    encode_packet,
    read_exact,
    read_packet_header,
)
from pgp_pipeline.openpgp.signatures import parse_one_pass_signature, parse_signature

logger = structlog.get_logger(__name__)

_READ_SIZE = 0x2000
_MAX_INFLATE_CHUNK = 0x10000
_PKESK_VERSION = 3
_ENCRYPTED_DATA_TAGS = (
    PacketTag.SYMMETRICALLY_ENCRYPTED_DATA,
    PacketTag.SYM_ENCRYPTED_INTEGRITY_PROTECTED_DATA,
)
_SESSION_KEY_TAGS = (
    PacketTag.PUBLIC_KEY_ENCRYPTED_SESSION_KEY,
    PacketTag.SYMMETRIC_KEY_ENCRYPTED_SESSION_KEY,
)

_Packet = tuple[int, PacketBodyReader]


class PGPObjectFactory:
    """
    Reads message objects one at a time from a packet stream.

    The body of the previously returned object is drained before the next
    packet header is read, so callers may leave container bodies partly read.

    Example:
        factory = PGPObjectFactory(stream)
        while (obj := factory.next_object()) is not None:
            ...
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._pending: _Packet | None = None
        self._has_pending = False
        self._last_body: PacketBodyReader | None = None

    def next_object(self) -> PGPObject | None:
        """
        Read the next message object.

        Returns:
            The next object, or None at end of stream.

        Raises:
            MessageFormatError: If the packet sequence is malformed.
        """
        while (packet := self._next_packet()) is not None:
            tag, body = packet
            match tag:
                case PacketTag.MARKER:
                    continue
                case PacketTag.PUBLIC_KEY_ENCRYPTED_SESSION_KEY | PacketTag.SYMMETRIC_KEY_ENCRYPTED_SESSION_KEY:
                    return self._read_encrypted_data_list(packet)
                case PacketTag.SYMMETRICALLY_ENCRYPTED_DATA | PacketTag.SYM_ENCRYPTED_INTEGRITY_PROTECTED_DATA:
                    return _encrypted_data_list((), tag, body)
                case PacketTag.COMPRESSED_DATA:
                    return _read_compressed_data(body)
                case PacketTag.ONE_PASS_SIGNATURE:
                    return self._read_one_pass_signatures(body)
                case PacketTag.SIGNATURE:
                    return self._read_signatures(body)
                case PacketTag.LITERAL_DATA:
                    return _read_literal_data(body)
                case _:
                    msg = f"Unexpected packet in message: tag {tag}"
                    raise MessageFormatError(msg, tag=tag)
        return None

    def _next_packet(self) -> _Packet | None:
        if self._has_pending:
            self._has_pending = False
            return self._pending
        if self._last_body is not None:
            self._last_body.drain()
        packet = read_packet_header(self._stream)
        self._last_body = packet[1] if packet is not None else None
        return packet

    def _peek_tag(self) -> int | None:
        if not self._has_pending:
            self._pending = self._next_packet()
            self._has_pending = True
        return self._pending[0] if self._pending is not None else None

    def _read_encrypted_data_list(self, first: _Packet) -> EncryptedDataList:
        entries = []
        packet = first
        while True:
            tag, body = packet
            if tag == PacketTag.PUBLIC_KEY_ENCRYPTED_SESSION_KEY:
                entry = _parse_session_key(body.read())
                if entry is not None:
                    entries.append(entry)
            else:
                body.drain()
                logger.debug("Skipping symmetric-key encrypted session key")
            if self._peek_tag() not in _SESSION_KEY_TAGS:
                break
            packet = self._next_packet()

        packet = self._next_packet()
        if packet is None or packet[0] not in _ENCRYPTED_DATA_TAGS:
            msg = "Encrypted session keys are not followed by encrypted data"
            raise MessageFormatError(msg)
        return _encrypted_data_list(tuple(entries), packet[0], packet[1])

    def _read_one_pass_signatures(self, body: PacketBodyReader) -> OnePassSignatureList:
        signatures = [parse_one_pass_signature(body.read())]
        while self._peek_tag() == PacketTag.ONE_PASS_SIGNATURE:
            signatures.append(parse_one_pass_signature(self._next_packet()[1].read()))
        return OnePassSignatureList(signatures=tuple(signatures))

    def _read_signatures(self, body: PacketBodyReader) -> SignatureList:
        signatures = [parse_signature(body.read())]
        while self._peek_tag() == PacketTag.SIGNATURE:
            signatures.append(parse_signature(self._next_packet()[1].read()))
        return SignatureList(signatures=tuple(signatures))


def _parse_session_key(body: bytes) -> EncryptedSessionKey | None:
    if len(body) < 10:
        msg = f"PKESK body too short: {len(body)} bytes"
        raise MessageFormatError(msg)
    if body[0] != _PKESK_VERSION:
        logger.debug("Skipping session key packet", version=body[0])
        return None
    try:
        algorithm = PublicKeyAlgorithm(body[9])
    except ValueError:
        logger.debug("Skipping session key for unknown algorithm", algorithm=body[9])
        return None
    return EncryptedSessionKey(
        key_id=body[1:9].hex().upper(),
        algorithm=algorithm,
        packet=encode_packet(PacketTag.PUBLIC_KEY_ENCRYPTED_SESSION_KEY, body),
    )


def _encrypted_data_list(
    entries: tuple[EncryptedSessionKey, ...], tag: int, body: PacketBodyReader
) -> EncryptedDataList:
    return EncryptedDataList(
        session_keys=entries,
        integrity_protected=tag == PacketTag.SYM_ENCRYPTED_INTEGRITY_PROTECTED_DATA,
        body=body,
    )


def _read_compressed_data(body: PacketBodyReader) -> CompressedData:
    algorithm_id = read_exact(body, 1)[0]
    try:
        algorithm = CompressionAlgorithm(algorithm_id)
    except ValueError:
        msg = f"Unsupported compression algorithm: {algorithm_id}"
        raise UnsupportedAlgorithmError(msg, algorithm=algorithm_id) from None
    return CompressedData(algorithm=algorithm, body=body)


def _read_literal_data(body: PacketBodyReader) -> LiteralData:
    format_id, name_length = read_exact(body, 2)
    file_name = read_exact(body, name_length).decode("utf-8", errors="replace")
    timestamp = int.from_bytes(read_exact(body, 4), "big")
    try:
        literal_format = LiteralFormat(format_id)
    except ValueError:
        msg = f"Unknown literal data format: 0x{format_id:02x}"
        raise MessageFormatError(msg) from None
    return LiteralData(
        format=literal_format,
        file_name=file_name,
        modification_time=datetime.fromtimestamp(timestamp, tz=UTC) if timestamp else None,
        body=body,
    )


class DecryptingReader(ChunkedReader):
    """Plaintext stream over an encrypted data packet body."""

    def __init__(self, encrypted: EncryptedDataList, session_key: SessionKey) -> None:
        super().__init__()
        self._body = encrypted.body
        self._decryptor = PacketDecryptor(
            session_key, integrity_protected=encrypted.integrity_protected
        )
        self._done = False

    def _next_chunk(self) -> bytes | None:
        if self._done:
            return None
        data = self._body.read(_READ_SIZE)
        if data:
            return self._decryptor.update(data)
        self._done = True
        return self._decryptor.finalize()

    def verify_integrity(self) -> None:
        """
        Consume the rest of the packet and check its modification detection code.

        Raises:
            IntegrityError: If the check fails.
        """
        self.drain()
        self._decryptor.verify_integrity()


class DecompressingReader(ChunkedReader):
    """Decompressed stream over a compressed data packet body."""

    def __init__(self, compressed: CompressedData) -> None:
        super().__init__()
        self._body = compressed.body
        self._algorithm = compressed.algorithm
        self._tail = b""
        match compressed.algorithm:
            case CompressionAlgorithm.ZIP:
                self._decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
            case CompressionAlgorithm.ZLIB:
                self._decompressor = zlib.decompressobj()
            case CompressionAlgorithm.BZIP2:
                self._decompressor = bz2.BZ2Decompressor()
            case _:
                self._decompressor = None

    def _next_chunk(self) -> bytes | None:
        try:
            match self._algorithm:
                case CompressionAlgorithm.UNCOMPRESSED:
                    return self._body.read(_READ_SIZE) or None
                case CompressionAlgorithm.BZIP2:
                    return self._next_bzip2_chunk()
                case _:
                    return self._next_zlib_chunk()
        except (zlib.error, OSError, EOFError) as e:
            msg = f"Corrupt {self._algorithm.name} compressed data: {e}"
            raise MessageFormatError(msg) from e

    def _next_zlib_chunk(self) -> bytes | None:
        data = self._tail or self._body.read(_READ_SIZE)
        if not data:
            return self._decompressor.flush() or None
        chunk = self._decompressor.decompress(data, _MAX_INFLATE_CHUNK)
        self._tail = self._decompressor.unconsumed_tail
        return chunk

    def _next_bzip2_chunk(self) -> bytes | None:
        if self._decompressor.eof:
            return None
        data = b""
        if self._decompressor.needs_input:
            data = self._body.read(_READ_SIZE)
            if not data:
                return None
        return self._decompressor.decompress(data, _MAX_INFLATE_CHUNK)


class CompressedDataWriter(PacketWriter):
    """Compressed data packet streamed with partial body lengths."""

    def __init__(self, out: BinaryIO, algorithm: CompressionAlgorithm, chunk_size: int) -> None:
        super().__init__(out)
        match algorithm:
            case CompressionAlgorithm.ZIP:
                self._compressor = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -zlib.MAX_WBITS)
            case CompressionAlgorithm.ZLIB:
                self._compressor = zlib.compressobj()
            case CompressionAlgorithm.BZIP2:
                self._compressor = bz2.BZ2Compressor()
            case _:
                msg = f"Unsupported compression algorithm: {algorithm.name}"
                raise UnsupportedAlgorithmError(msg, algorithm=algorithm.name)
        self._packet = PartialBodyWriter(out, PacketTag.COMPRESSED_DATA, chunk_size)
        self._packet.write(bytes([algorithm]))

    def write(self, data: bytes) -> int:
        self._packet.write(self._compressor.compress(data))
        return len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._packet.write(self._compressor.flush())
        self._packet.close()


class EncryptedDataWriter(PacketWriter):
    """Symmetrically encrypted data packet (integrity protected by default)."""

    def __init__(
        self,
        out: BinaryIO,
        session_key: SessionKey,
        chunk_size: int,
        *,
        integrity_protected: bool = True,
    ) -> None:
        super().__init__(out)
        tag = (
            PacketTag.SYM_ENCRYPTED_INTEGRITY_PROTECTED_DATA
            if integrity_protected
            else PacketTag.SYMMETRICALLY_ENCRYPTED_DATA
        )
        self._encryptor = PacketEncryptor(session_key, integrity_protected=integrity_protected)
        self._packet = PartialBodyWriter(out, tag, chunk_size)
        self._packet.write(self._encryptor.start())

    def write(self, data: bytes) -> int:
        self._packet.write(self._encryptor.update(data))
        return len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._packet.write(self._encryptor.finalize())
        self._packet.close()


def open_literal_writer(
    out: BinaryIO,
    *,
    literal_format: LiteralFormat,
    file_name: str,
    modification_time: datetime,
    length: int | None,
    chunk_size: int,
    old_format: bool = False,
) -> PacketWriter:
    """
    Start a literal data packet and return a writer for its content.

    A definite length is used when ``length`` is known; otherwise the content
    is streamed with partial body lengths, which the old format cannot express.
    """
    name = file_name.encode("utf-8")
    if len(name) > 255:
        msg = "Literal data file name must encode to at most 255 bytes"
        raise ValueError(msg)
    header = (
        bytes([literal_format, len(name)])
        + name
        + int(modification_time.timestamp()).to_bytes(4, "big")
    )
    if length is None:
        if old_format:
            msg = "Old packet format requires a known content length"
            raise ValueError(msg)
        writer: PacketWriter = PartialBodyWriter(out, PacketTag.LITERAL_DATA, chunk_size)
    else:
        writer = DefiniteBodyWriter(
            out, PacketTag.LITERAL_DATA, len(header) + length, old_format=old_format
        )
    writer.write(header)
    return writer
