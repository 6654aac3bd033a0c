"""
PGP pipeline facade.

This is the main entry point for users of the library. Every operation is
offered over streams, files and in-memory data, each with an async
counterpart that runs the blocking pipeline in a worker thread.
"""

import asyncio
import io
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, BinaryIO

import structlog

from pgp_pipeline.config import PGPConfig
from pgp_pipeline.crypto.passphrase import Passphrase
from pgp_pipeline.crypto.pgpy_backend import PgpyBackend
from pgp_pipeline.crypto.protocol import PGPBackend
from pgp_pipeline.exceptions import InvalidArgumentError
from pgp_pipeline.keys.keyring import EncryptionKeys
from pgp_pipeline.models.message import InspectResult, VerificationResult
from pgp_pipeline.pipeline.clearsign import ClearSigner
from pgp_pipeline.pipeline.decoder import MessageDecoder
from pgp_pipeline.pipeline.encoder import MessageEncoder
from pgp_pipeline.pipeline.inspector import MessageInspector
from pgp_pipeline.pipeline.streams import open_sink, open_source, require_file
from pgp_pipeline.pipeline.verifier import MessageVerifier

logger = structlog.get_logger(__name__)

PathLike = str | Path


class PGP:
    """
    OpenPGP message pipeline.

    Instances hold only the immutable keys and configuration, so one
    instance can serve concurrent calls.

    Example:
        ```python
        keys = EncryptionKeys(public_keys=[Path("bob.asc")], private_key=Path("me.asc"), passphrase="pw")
        pgp = PGP(keys)

        encrypted = pgp.encrypt_and_sign(b"hello")
        plaintext = pgp.decrypt_and_verify(encrypted)

        await pgp.encrypt_file_async("report.pdf", "report.pdf.pgp")
        ```

    Args:
        keys: Key material. Only key generation and inspection of
            unencrypted messages work without it.
        config: Pipeline configuration. Uses defaults if not provided.
        backend: Primitive library backend for key generation.
    """

    def __init__(
        self,
        keys: EncryptionKeys | None = None,
        config: PGPConfig | None = None,
        *,
        backend: PGPBackend | None = None,
    ) -> None:
        self._keys = keys
        self._config = config or PGPConfig()
        self._backend = backend or (keys.backend if keys is not None else PgpyBackend())

    @property
    def keys(self) -> EncryptionKeys | None:
        return self._keys

    @property
    def config(self) -> PGPConfig:
        return self._config

    def _require_keys(self) -> EncryptionKeys:
        if self._keys is None:
            msg = "Encryption keys not supplied"
            raise InvalidArgumentError(msg)
        return self._keys

    def _encode_stream(
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
        MessageEncoder(self._require_keys(), self._config).encode(
            source,
            sink,
            encrypt=encrypt,
            sign=sign,
            armor=armor,
            with_integrity_check=with_integrity_check,
            name=name,
            headers=headers,
            old_format=old_format,
            modification_time=modification_time,
        )

    def _encode_file(
        self, input_path: PathLike, output_path: PathLike, event: str, **options: Any
    ) -> None:
        self._require_keys()
        source_path = require_file(Path(input_path))
        modified = datetime.fromtimestamp(source_path.stat().st_mtime, tz=UTC)
        options.setdefault("modification_time", modified)
        with open_source(source_path) as source, open_sink(Path(output_path)) as sink:
            self._encode_stream(source, sink, **options)
        logger.info(event, input=str(input_path), output=str(output_path))

    def _encode_bytes(self, data: bytes | str, **options: Any) -> bytes:
        sink = io.BytesIO()
        with open_source(data) as source:
            self._encode_stream(source, sink, **options)
        return sink.getvalue()

    # Encryption

    def encrypt_stream(self, source: BinaryIO, sink: BinaryIO, **options: Any) -> None:
        """
        Encrypt ``source`` to every public key ring into ``sink``.

        Options:
            armor: ASCII armor the output (default True).
            with_integrity_check: Integrity protect the encrypted data (default True).
            name: Literal data file name (default ``config.default_file_name``).
            headers: Armor headers merged over ``Version``; None values remove.
            old_format: Old-format header for the literal packet.

        Raises:
            InvalidArgumentError: If no public key was supplied.
        """
        self._encode_stream(source, sink, encrypt=True, sign=False, **options)

    def encrypt_file(self, input_path: PathLike, output_path: PathLike, **options: Any) -> None:
        self._encode_file(input_path, output_path, "Encrypted file", encrypt=True, sign=False, **options)

    def encrypt(self, data: bytes | str, **options: Any) -> bytes:
        return self._encode_bytes(data, encrypt=True, sign=False, **options)

    def encrypt_and_sign_stream(self, source: BinaryIO, sink: BinaryIO, **options: Any) -> None:
        """
        Encrypt and sign ``source`` into ``sink``; options as for ``encrypt_stream``.

        Raises:
            InvalidArgumentError: If the public or private key is missing.
            KeyDecryptionError: If the signing key cannot be unlocked.
        """
        self._encode_stream(source, sink, encrypt=True, sign=True, **options)

    def encrypt_and_sign_file(
        self, input_path: PathLike, output_path: PathLike, **options: Any
    ) -> None:
        self._encode_file(
            input_path, output_path, "Encrypted and signed file", encrypt=True, sign=True, **options
        )

    def encrypt_and_sign(self, data: bytes | str, **options: Any) -> bytes:
        return self._encode_bytes(data, encrypt=True, sign=True, **options)

    # Signing

    def sign_stream(self, source: BinaryIO, sink: BinaryIO, **options: Any) -> None:
        """Sign ``source`` into ``sink`` as a one-pass signed message."""
        self._encode_stream(source, sink, encrypt=False, sign=True, **options)

    def sign_file(self, input_path: PathLike, output_path: PathLike, **options: Any) -> None:
        self._encode_file(input_path, output_path, "Signed file", encrypt=False, sign=True, **options)

    def sign(self, data: bytes | str, **options: Any) -> bytes:
        return self._encode_bytes(data, encrypt=False, sign=True, **options)

    def clear_sign_stream(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        *,
        headers: Mapping[str, str | None] | None = None,
    ) -> None:
        """Write ``source`` as clear-signed text."""
        ClearSigner(self._require_keys(), self._config).clear_sign(source, sink, headers=headers)

    def clear_sign_file(
        self,
        input_path: PathLike,
        output_path: PathLike,
        *,
        headers: Mapping[str, str | None] | None = None,
    ) -> None:
        self._require_keys()
        with open_source(Path(input_path)) as source, open_sink(Path(output_path)) as sink:
            self.clear_sign_stream(source, sink, headers=headers)
        logger.info("Clear-signed file", input=str(input_path), output=str(output_path))

    def clear_sign(
        self, data: bytes | str, *, headers: Mapping[str, str | None] | None = None
    ) -> bytes:
        sink = io.BytesIO()
        with open_source(data) as source:
            self.clear_sign_stream(source, sink, headers=headers)
        return sink.getvalue()

    # Decryption

    def decrypt_stream(self, source: BinaryIO, sink: BinaryIO) -> None:
        """
        Decrypt ``source`` into ``sink``.

        The integrity check runs after the content was written; on failure
        ``sink`` holds untrusted partial output.

        Raises:
            KeyNotFoundError: If no secret key matches the message.
            IntegrityError: If the message was modified.
            MessageFormatError: If the input is not a simple OpenPGP message.
        """
        MessageDecoder(self._require_keys(), self._config).decrypt(source, sink)

    def decrypt_file(self, input_path: PathLike, output_path: PathLike) -> None:
        self._require_keys()
        with open_source(Path(input_path)) as source, open_sink(Path(output_path)) as sink:
            self.decrypt_stream(source, sink)
        logger.info("Decrypted file", input=str(input_path), output=str(output_path))

    def decrypt(self, data: bytes | str) -> bytes:
        sink = io.BytesIO()
        with open_source(data) as source:
            self.decrypt_stream(source, sink)
        return sink.getvalue()

    def decrypt_and_verify_stream(self, source: BinaryIO, sink: BinaryIO) -> None:
        """
        Decrypt ``source`` into ``sink`` and require a valid signature.

        Raises:
            MessageFormatError: If the message is not signed.
            SignatureVerificationError: If the signature does not verify.
        """
        MessageDecoder(self._require_keys(), self._config).decrypt_and_verify(source, sink)

    def decrypt_and_verify_file(self, input_path: PathLike, output_path: PathLike) -> None:
        self._require_keys()
        with open_source(Path(input_path)) as source, open_sink(Path(output_path)) as sink:
            self.decrypt_and_verify_stream(source, sink)
        logger.info("Decrypted and verified file", input=str(input_path), output=str(output_path))

    def decrypt_and_verify(self, data: bytes | str) -> bytes:
        sink = io.BytesIO()
        with open_source(data) as source:
            self.decrypt_and_verify_stream(source, sink)
        return sink.getvalue()

    # Verification

    def verify_stream(
        self,
        source: BinaryIO,
        sink: BinaryIO | None = None,
        *,
        throw_if_encrypted: bool = False,
    ) -> bool:
        """
        Verify a signed message, writing its content to ``sink`` if given.

        Returns:
            True if the signature verifies, False otherwise.
        """
        return MessageVerifier(self._require_keys(), self._config).verify(
            source, sink, throw_if_encrypted=throw_if_encrypted
        )

    def verify_file(
        self,
        input_path: PathLike,
        output_path: PathLike | None = None,
        *,
        throw_if_encrypted: bool = False,
    ) -> bool:
        with open_source(Path(input_path)) as source:
            if output_path is None:
                verified = self.verify_stream(source, throw_if_encrypted=throw_if_encrypted)
            else:
                with open_sink(Path(output_path)) as sink:
                    verified = self.verify_stream(
                        source, sink, throw_if_encrypted=throw_if_encrypted
                    )
        logger.info("Verified file", input=str(input_path), verified=verified)
        return verified

    def verify(self, data: bytes | str, *, throw_if_encrypted: bool = False) -> bool:
        with open_source(data) as source:
            return self.verify_stream(source, throw_if_encrypted=throw_if_encrypted)

    def verify_and_read_stream(
        self, source: BinaryIO, *, throw_if_encrypted: bool = False
    ) -> VerificationResult:
        sink = io.BytesIO()
        verified = self.verify_stream(source, sink, throw_if_encrypted=throw_if_encrypted)
        return VerificationResult(is_verified=verified, content=sink.getvalue())

    def verify_and_read_file(
        self, input_path: PathLike, *, throw_if_encrypted: bool = False
    ) -> VerificationResult:
        with open_source(Path(input_path)) as source:
            return self.verify_and_read_stream(source, throw_if_encrypted=throw_if_encrypted)

    def verify_and_read(
        self, data: bytes | str, *, throw_if_encrypted: bool = False
    ) -> VerificationResult:
        """Verify a signed message and return its content with the outcome."""
        with open_source(data) as source:
            return self.verify_and_read_stream(source, throw_if_encrypted=throw_if_encrypted)

    def verify_clear_stream(self, source: BinaryIO, sink: BinaryIO | None = None) -> bool:
        """
        Verify clear-signed text against the first verification key.

        Raises:
            InvalidArgumentError: If no public key was supplied.
        """
        return ClearSigner(self._require_keys(), self._config).verify_clear(source, sink)

    def verify_clear_file(self, input_path: PathLike, output_path: PathLike | None = None) -> bool:
        with open_source(Path(input_path)) as source:
            if output_path is None:
                verified = self.verify_clear_stream(source)
            else:
                with open_sink(Path(output_path)) as sink:
                    verified = self.verify_clear_stream(source, sink)
        logger.info("Verified clear-signed file", input=str(input_path), verified=verified)
        return verified

    def verify_clear(self, data: bytes | str) -> bool:
        with open_source(data) as source:
            return self.verify_clear_stream(source)

    def verify_and_read_clear_stream(self, source: BinaryIO) -> VerificationResult:
        sink = io.BytesIO()
        verified = self.verify_clear_stream(source, sink)
        return VerificationResult(is_verified=verified, content=sink.getvalue())

    def verify_and_read_clear_file(self, input_path: PathLike) -> VerificationResult:
        with open_source(Path(input_path)) as source:
            return self.verify_and_read_clear_stream(source)

    def verify_and_read_clear(self, data: bytes | str) -> VerificationResult:
        """Verify clear-signed text and return the text lines joined by LF."""
        with open_source(data) as source:
            return self.verify_and_read_clear_stream(source)

    # Inspection

    def inspect_stream(self, source: BinaryIO) -> InspectResult:
        """
        Classify a message.

        Raises:
            KeyNotFoundError: If the message is encrypted to keys we do not hold.
        """
        return MessageInspector(self._keys, self._config).inspect(source)

    def inspect_file(self, input_path: PathLike) -> InspectResult:
        with open_source(Path(input_path)) as source:
            return self.inspect_stream(source)

    def inspect(self, data: bytes | str) -> InspectResult:
        with open_source(data) as source:
            return self.inspect_stream(source)

    def get_recipients_stream(self, source: BinaryIO) -> tuple[str, ...]:
        return MessageInspector.get_recipients(source)

    def get_recipients_file(self, input_path: PathLike) -> tuple[str, ...]:
        with open_source(Path(input_path)) as source:
            return self.get_recipients_stream(source)

    def get_recipients(self, data: bytes | str) -> tuple[str, ...]:
        """Key ids the message is encrypted to; empty when not encrypted."""
        with open_source(data) as source:
            return self.get_recipients_stream(source)

    # Key generation

    def generate_key(
        self,
        name: str,
        email: str,
        passphrase: Passphrase | str | None = None,
        *,
        comment: str = "",
    ) -> tuple[str, str]:
        """
        Generate a key pair using ``config.key_algorithm`` and ``config.key_size``.

        Returns:
            Tuple of (armored public key, armored private key).
        """
        public_key, private_key = self._backend.generate_key(
            name,
            email,
            Passphrase.coerce(passphrase),
            algorithm=self._config.key_algorithm,
            key_size=self._config.key_size,
            comment=comment,
        )
        logger.debug("Generated key pair", algorithm=self._config.key_algorithm.name)
        return public_key, private_key

    def generate_key_file(
        self,
        public_key_path: PathLike,
        private_key_path: PathLike,
        name: str,
        email: str,
        passphrase: Passphrase | str | None = None,
        *,
        comment: str = "",
    ) -> None:
        public_key, private_key = self.generate_key(name, email, passphrase, comment=comment)
        Path(public_key_path).write_text(public_key, encoding="ascii")
        Path(private_key_path).write_text(private_key, encoding="ascii")
        logger.info("Wrote key pair", public_key=str(public_key_path), private_key=str(private_key_path))

    # Async variants

    async def encrypt_async(self, data: bytes | str, **options: Any) -> bytes:
        return await asyncio.to_thread(self.encrypt, data, **options)

    async def encrypt_stream_async(self, source: BinaryIO, sink: BinaryIO, **options: Any) -> None:
        await asyncio.to_thread(self.encrypt_stream, source, sink, **options)

    async def encrypt_file_async(
        self, input_path: PathLike, output_path: PathLike, **options: Any
    ) -> None:
        await asyncio.to_thread(self.encrypt_file, input_path, output_path, **options)

    async def encrypt_and_sign_async(self, data: bytes | str, **options: Any) -> bytes:
        return await asyncio.to_thread(self.encrypt_and_sign, data, **options)

    async def encrypt_and_sign_stream_async(
        self, source: BinaryIO, sink: BinaryIO, **options: Any
    ) -> None:
        await asyncio.to_thread(self.encrypt_and_sign_stream, source, sink, **options)

    async def encrypt_and_sign_file_async(
        self, input_path: PathLike, output_path: PathLike, **options: Any
    ) -> None:
        await asyncio.to_thread(self.encrypt_and_sign_file, input_path, output_path, **options)

    async def sign_async(self, data: bytes | str, **options: Any) -> bytes:
        return await asyncio.to_thread(self.sign, data, **options)

    async def sign_stream_async(self, source: BinaryIO, sink: BinaryIO, **options: Any) -> None:
        await asyncio.to_thread(self.sign_stream, source, sink, **options)

    async def sign_file_async(
        self, input_path: PathLike, output_path: PathLike, **options: Any
    ) -> None:
        await asyncio.to_thread(self.sign_file, input_path, output_path, **options)

    async def clear_sign_async(self, data: bytes | str, **options: Any) -> bytes:
        return await asyncio.to_thread(self.clear_sign, data, **options)

    async def clear_sign_stream_async(
        self, source: BinaryIO, sink: BinaryIO, **options: Any
    ) -> None:
        await asyncio.to_thread(self.clear_sign_stream, source, sink, **options)

    async def clear_sign_file_async(
        self, input_path: PathLike, output_path: PathLike, **options: Any
    ) -> None:
        await asyncio.to_thread(self.clear_sign_file, input_path, output_path, **options)

    async def decrypt_async(self, data: bytes | str) -> bytes:
        return await asyncio.to_thread(self.decrypt, data)

    async def decrypt_stream_async(self, source: BinaryIO, sink: BinaryIO) -> None:
        await asyncio.to_thread(self.decrypt_stream, source, sink)

    async def decrypt_file_async(self, input_path: PathLike, output_path: PathLike) -> None:
        await asyncio.to_thread(self.decrypt_file, input_path, output_path)

    async def decrypt_and_verify_async(self, data: bytes | str) -> bytes:
        return await asyncio.to_thread(self.decrypt_and_verify, data)

    async def decrypt_and_verify_stream_async(self, source: BinaryIO, sink: BinaryIO) -> None:
        await asyncio.to_thread(self.decrypt_and_verify_stream, source, sink)

    async def decrypt_and_verify_file_async(
        self, input_path: PathLike, output_path: PathLike
    ) -> None:
        await asyncio.to_thread(self.decrypt_and_verify_file, input_path, output_path)

    async def verify_async(self, data: bytes | str, **options: Any) -> bool:
        return await asyncio.to_thread(self.verify, data, **options)

    async def verify_stream_async(
        self, source: BinaryIO, sink: BinaryIO | None = None, **options: Any
    ) -> bool:
        return await asyncio.to_thread(self.verify_stream, source, sink, **options)

    async def verify_file_async(
        self, input_path: PathLike, output_path: PathLike | None = None, **options: Any
    ) -> bool:
        return await asyncio.to_thread(self.verify_file, input_path, output_path, **options)

    async def verify_and_read_async(self, data: bytes | str, **options: Any) -> VerificationResult:
        return await asyncio.to_thread(self.verify_and_read, data, **options)

    async def verify_and_read_stream_async(
        self, source: BinaryIO, **options: Any
    ) -> VerificationResult:
        return await asyncio.to_thread(self.verify_and_read_stream, source, **options)

    async def verify_and_read_file_async(
        self, input_path: PathLike, **options: Any
    ) -> VerificationResult:
        return await asyncio.to_thread(self.verify_and_read_file, input_path, **options)

    async def verify_clear_async(self, data: bytes | str) -> bool:
        return await asyncio.to_thread(self.verify_clear, data)

    async def verify_clear_stream_async(
        self, source: BinaryIO, sink: BinaryIO | None = None
    ) -> bool:
        return await asyncio.to_thread(self.verify_clear_stream, source, sink)

    async def verify_clear_file_async(
        self, input_path: PathLike, output_path: PathLike | None = None
    ) -> bool:
        return await asyncio.to_thread(self.verify_clear_file, input_path, output_path)

    async def verify_and_read_clear_async(self, data: bytes | str) -> VerificationResult:
        return await asyncio.to_thread(self.verify_and_read_clear, data)

    async def verify_and_read_clear_stream_async(self, source: BinaryIO) -> VerificationResult:
        return await asyncio.to_thread(self.verify_and_read_clear_stream, source)

    async def verify_and_read_clear_file_async(self, input_path: PathLike) -> VerificationResult:
        return await asyncio.to_thread(self.verify_and_read_clear_file, input_path)

    async def inspect_async(self, data: bytes | str) -> InspectResult:
        return await asyncio.to_thread(self.inspect, data)

    async def inspect_stream_async(self, source: BinaryIO) -> InspectResult:
        return await asyncio.to_thread(self.inspect_stream, source)

    async def inspect_file_async(self, input_path: PathLike) -> InspectResult:
        return await asyncio.to_thread(self.inspect_file, input_path)

    async def get_recipients_async(self, data: bytes | str) -> tuple[str, ...]:
        return await asyncio.to_thread(self.get_recipients, data)

    async def get_recipients_stream_async(self, source: BinaryIO) -> tuple[str, ...]:
        return await asyncio.to_thread(self.get_recipients_stream, source)

    async def get_recipients_file_async(self, input_path: PathLike) -> tuple[str, ...]:
        return await asyncio.to_thread(self.get_recipients_file, input_path)

    async def generate_key_async(
        self,
        name: str,
        email: str,
        passphrase: Passphrase | str | None = None,
        **options: Any,
    ) -> tuple[str, str]:
        return await asyncio.to_thread(self.generate_key, name, email, passphrase, **options)

    async def generate_key_file_async(
        self,
        public_key_path: PathLike,
        private_key_path: PathLike,
        name: str,
        email: str,
        passphrase: Passphrase | str | None = None,
        **options: Any,
    ) -> None:
        await asyncio.to_thread(
            self.generate_key_file,
            public_key_path,
            private_key_path,
            name,
            email,
            passphrase,
            **options,
        )
