"""
Clear-sign processor.

The signed text stays readable. Each line is digested without its trailing
spaces and tabs, with CRLF between lines and none after the last; the
output keeps the original line, dash-escaped, followed by CRLF. The
signature follows as an armored SIGNATURE block.
"""

import re
from collections.abc import Iterator, Mapping
from typing import BinaryIO

import structlog

from pgp_pipeline.config import PGPConfig
from pgp_pipeline.crypto.signature import SignatureGenerator, SignatureVerifier
from pgp_pipeline.exceptions import (
    InvalidArgumentError,
    MessageFormatError,
    UnsupportedAlgorithmError,
)
from pgp_pipeline.keys.keyring import EncryptionKeys
from pgp_pipeline.models.crypto import HashAlgorithm, SignatureType
from pgp_pipeline.models.message import SignatureList
from pgp_pipeline.openpgp.armor import (
    SIGNATURE,
    SIGNED_MESSAGE,
    ArmoredReader,
    ArmoredWriter,
    begin_line,
    build_headers,
)
from pgp_pipeline.openpgp.packets import PGPObjectFactory
from pgp_pipeline.pipeline.streams import iter_chunks

logger = structlog.get_logger(__name__)

_LINE_ENDING = re.compile(rb"\r\n|\r|\n")
_DASH_ESCAPE = b"- "
_CRLF = b"\r\n"


def iter_text_lines(stream: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    """
    Yield the lines of ``stream`` without their terminators.

    CRLF, CR and LF all end a line; a terminator at the very end does not
    start an extra empty line.
    """
    pending = b""
    for chunk in iter_chunks(stream, chunk_size):
        pending += chunk
        held_cr = pending.endswith(b"\r")
        *lines, rest = _LINE_ENDING.split(pending[:-1] if held_cr else pending)
        yield from lines
        pending = rest + b"\r" if held_cr else rest
    if pending.endswith(b"\r"):
        yield pending[:-1]
    elif pending:
        yield pending


def canonical_line(line: bytes) -> bytes:
    return line.rstrip(b" \t")


def dash_escape(line: bytes) -> bytes:
    return _DASH_ESCAPE + line if line.startswith(b"-") else line


def dash_unescape(line: bytes) -> bytes:
    return line[len(_DASH_ESCAPE) :] if line.startswith(_DASH_ESCAPE) else line


class ClearSigner:
    def __init__(self, keys: EncryptionKeys, config: PGPConfig) -> None:
        self._keys = keys
        self._config = config

    def clear_sign(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        *,
        headers: Mapping[str, str | None] | None = None,
    ) -> None:
        """
        Write ``source`` as clear-signed text to ``sink``.

        Raises:
            InvalidArgumentError: If no private key was supplied.
            KeySelectionError: If no secret key can sign.
        """
        secret_key = self._keys.signing_secret_key
        hash_algorithm = self._config.hash_algorithm
        generator = SignatureGenerator(
            self._keys.backend,
            secret_key,
            hash_algorithm,
            SignatureType.CANONICAL_TEXT_DOCUMENT,
            user_id=self._keys.signing_user_id,
        )

        sink.write(begin_line(SIGNED_MESSAGE) + b"\n")
        sink.write(f"Hash: {hash_algorithm.armor_name}\n\n".encode("ascii"))
        count = 0
        for line in iter_text_lines(source, self._config.chunk_size):
            if count:
                generator.update(_CRLF)
            generator.update(canonical_line(line))
            sink.write(dash_escape(line) + _CRLF)
            count += 1

        with self._keys.unlocked(secret_key):
            packet = generator.generate()
        with ArmoredWriter(
            sink,
            block_type=SIGNATURE,
            headers=build_headers(self._config.version_header, headers),
        ) as armored:
            armored.write(packet)
        logger.debug("Clear-signed text", lines=count, key_id=secret_key.key_id)

    def verify_clear(self, source: BinaryIO, sink: BinaryIO | None = None) -> bool:
        """
        Verify clear-signed text with the first verification key only.

        The recovered text (original lines joined by LF) goes to ``sink``.

        Raises:
            InvalidArgumentError: If no verification key is available.
            MessageFormatError: If the input is not clear-signed text.
        """
        verification_keys = self._keys.verification_keys
        if not verification_keys:
            msg = "Verification key not supplied"
            raise InvalidArgumentError(msg)
        public_key = verification_keys[0]

        verifier = SignatureVerifier(
            self._keys.backend,
            self._read_preamble(source),
            SignatureType.CANONICAL_TEXT_DOCUMENT,
        )
        signature_line = self._read_text(source, verifier, sink)

        signatures = PGPObjectFactory(ArmoredReader(source, first_line=signature_line)).next_object()
        if not isinstance(signatures, SignatureList):
            msg = "Clear-signed text is not followed by a signature"
            raise MessageFormatError(msg)
        verified = any(verifier.verify(signature, public_key) for signature in signatures)
        logger.debug("Verified clear-signed text", verified=verified, key_id=public_key.key_id)
        return verified

    @staticmethod
    def _read_preamble(source: BinaryIO) -> HashAlgorithm:
        while line := source.readline():
            if line.strip() == begin_line(SIGNED_MESSAGE):
                break
        else:
            msg = "No clear-signed message found"
            raise MessageFormatError(msg)

        hash_algorithm = HashAlgorithm.MD5
        while line := source.readline().strip():
            key, _, value = line.partition(b":")
            if key.strip() == b"Hash":
                name = value.strip().split(b",")[0].decode("ascii")
                try:
                    hash_algorithm = HashAlgorithm.from_armor_name(name)
                except ValueError as e:
                    msg = f"Unsupported clear-sign hash algorithm: {name}"
                    raise UnsupportedAlgorithmError(msg, algorithm=name) from e
        return hash_algorithm

    @staticmethod
    def _read_text(
        source: BinaryIO, verifier: SignatureVerifier, sink: BinaryIO | None
    ) -> bytes:
        """Digest the text lines and return the signature begin line that ends them."""
        signature_begin = begin_line(SIGNATURE)
        first = True
        while line := source.readline():
            if line.rstrip(b"\r\n") == signature_begin:
                return line
            text = dash_unescape(line.rstrip(b"\r\n"))
            if not first:
                verifier.update(_CRLF)
                if sink is not None:
                    sink.write(b"\n")
            verifier.update(canonical_line(text))
            if sink is not None:
                sink.write(text)
            first = False
        msg = "Clear-signed text ended without a signature"
        raise MessageFormatError(msg)
