"""
Encode pipeline.

Builds, outermost first: armor, encrypted data (one wrapped session key per
recipient ring), compressed data, one-pass signature, literal data and the
trailing signature. Content is read once; the literal packet and the
signature digest are fed from the same pass.
"""

import tempfile
from collections.abc import Callable, Mapping
from contextlib import ExitStack
from datetime import UTC, datetime
from typing import BinaryIO

import structlog

from pgp_pipeline.config import PGPConfig
from pgp_pipeline.crypto.signature import SignatureGenerator
from pgp_pipeline.exceptions import InvalidArgumentError
from pgp_pipeline.keys.keyring import EncryptionKeys
from pgp_pipeline.models.crypto import CompressionAlgorithm, SessionKey
from pgp_pipeline.openpgp.armor import MESSAGE, ArmoredWriter, build_headers
from pgp_pipeline.openpgp.packets import (
    CompressedDataWriter,
    EncryptedDataWriter,
    open_literal_writer,
)
from pgp_pipeline.pipeline.streams import copy_stream, remaining_length

logger = structlog.get_logger(__name__)


class MessageEncoder:
    """
    Writes literal data wrapped in the configured layers.

    Example:
        encoder = MessageEncoder(keys, PGPConfig())
        encoder.encode(source, sink, encrypt=True, sign=True)
    """

    def __init__(self, keys: EncryptionKeys, config: PGPConfig) -> None:
        self._keys = keys
        self._config = config
        self._backend = keys.backend

    def encode(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        *,
        encrypt: bool,
        sign: bool,
        armor: bool = True,
        with_integrity_check: bool = True,
        name: str | None = None,
        headers: Mapping[str, str | None] | None = None,
        old_format: bool = False,
        modification_time: datetime | None = None,
    ) -> None:
        """
        Encode ``source`` into ``sink``.

        Args:
            source: Plaintext stream.
            sink: Output stream, left open.
            encrypt: Wrap the message for every public key ring.
            sign: Add a one-pass signature made with the signing key.
            armor: ASCII armor the output.
            with_integrity_check: Use integrity protected encrypted data.
            name: Literal data file name, the configured default when None.
            headers: Armor headers merged over ``Version``; None values remove.
            old_format: Use an old-format header for the literal packet.
            modification_time: Literal data timestamp, now when None.

        Raises:
            InvalidArgumentError: If the keys needed for a layer are missing.
        """
        if encrypt and not self._keys.public_key_rings:
            msg = "Public key not supplied for encryption"
            raise InvalidArgumentError(msg)
        generator = self._signature_generator() if sign else None

        with ExitStack() as stack:
            length = remaining_length(source)
            if length is None and old_format:
                source, length = self._spool(source, stack)

            out = sink
            if armor:
                out = stack.enter_context(
                    ArmoredWriter(
                        out,
                        block_type=MESSAGE,
                        headers=build_headers(self._config.version_header, headers),
                    )
                )
            if encrypt:
                out = stack.enter_context(self._open_encrypted_data(out, with_integrity_check))
            if self._config.compression != CompressionAlgorithm.UNCOMPRESSED:
                out = stack.enter_context(
                    CompressedDataWriter(out, self._config.compression, self._config.chunk_size)
                )
            if generator is not None:
                out.write(generator.one_pass_packet())

            literal = open_literal_writer(
                out,
                literal_format=self._config.file_type,
                file_name=name or self._config.default_file_name,
                modification_time=modification_time or datetime.now(UTC),
                length=length,
                chunk_size=self._config.chunk_size,
                old_format=old_format,
            )
            with literal:
                written = copy_stream(
                    source,
                    _tee(literal, generator),
                    chunk_size=self._config.chunk_size,
                )

            if generator is not None:
                with self._keys.unlocked(self._keys.signing_secret_key):
                    out.write(generator.generate())

        logger.debug(
            "Encoded message",
            size=written,
            encrypted=encrypt,
            signed=sign,
            armored=armor,
            compression=self._config.compression.name,
        )

    def _signature_generator(self) -> SignatureGenerator:
        secret_key = self._keys.signing_secret_key
        logger.debug("Selected signing key", key_id=secret_key.key_id)
        return SignatureGenerator(
            self._backend,
            secret_key,
            self._config.hash_algorithm,
            self._config.signature_type,
            user_id=self._keys.signing_user_id,
        )

    def _open_encrypted_data(self, out: BinaryIO, integrity_protected: bool) -> EncryptedDataWriter:
        session_key = SessionKey.generate(self._config.symmetric_algorithm)
        for public_key in self._keys.encrypt_keys:
            out.write(self._backend.encrypt_session_key(session_key, public_key))
            logger.debug("Wrapped session key", key_id=public_key.key_id)
        return EncryptedDataWriter(
            out,
            session_key,
            self._config.chunk_size,
            integrity_protected=integrity_protected,
        )

    def _spool(self, source: BinaryIO, stack: ExitStack) -> tuple[BinaryIO, int]:
        # Old-format headers cannot express partial lengths, so measure first.
        spool = stack.enter_context(
            tempfile.SpooledTemporaryFile(max_size=self._config.chunk_size * 16)
        )
        length = copy_stream(source, spool.write, chunk_size=self._config.chunk_size)
        spool.seek(0)
        return spool, length


def _tee(
    literal: BinaryIO, generator: SignatureGenerator | None
) -> Callable[[bytes], object]:
    if generator is None:
        return literal.write

    def write(chunk: bytes) -> None:
        generator.update(chunk)
        literal.write(chunk)

    return write
