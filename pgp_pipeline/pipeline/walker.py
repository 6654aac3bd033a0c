"""
Decode state machine.

A message is walked object by object. Encrypted and compressed containers
are opened and walked recursively; signature lists are recorded; literal
data ends the walk. The same walk serves decryption, verification and
inspection, which differ only in what they do with the literal content.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO

import structlog

from pgp_pipeline.config import PGPConfig
from pgp_pipeline.crypto.signature import SignatureVerifier
from pgp_pipeline.exceptions import (
    KeyNotFoundError,
    MessageFormatError,
    SizeLimitError,
)
from pgp_pipeline.keys import selector
from pgp_pipeline.keys.keyring import EncryptionKeys
from pgp_pipeline.models.crypto import (
    CompressionAlgorithm,
    HashAlgorithm,
    LiteralFormat,
    SessionKey,
    SignatureType,
    SymmetricAlgorithm,
)
from pgp_pipeline.models.keys import PublicKey
from pgp_pipeline.models.message import (
    CompressedData,
    EncryptedDataList,
    LiteralData,
    OnePassSignature,
    OnePassSignatureList,
    PGPObject,
    Signature,
    SignatureList,
)
from pgp_pipeline.openpgp.packets import DecompressingReader, DecryptingReader, PGPObjectFactory
from pgp_pipeline.pipeline.streams import copy_stream

logger = structlog.get_logger(__name__)

_DOCUMENT_SIGNATURE_TYPES = frozenset(
    {SignatureType.BINARY_DOCUMENT, SignatureType.CANONICAL_TEXT_DOCUMENT}
)
_NOT_SIMPLE = "Message is not a simple encrypted file."

_DigestKey = tuple[HashAlgorithm, SignatureType]


@dataclass(kw_only=True)
class MessageTrace:
    """What a walk found, filled in as the message is read."""

    is_encrypted: bool = False
    is_integrity_protected: bool = False
    is_compressed: bool = False
    symmetric_algorithm: SymmetricAlgorithm = SymmetricAlgorithm.PLAINTEXT
    compression_algorithm: CompressionAlgorithm = CompressionAlgorithm.UNCOMPRESSED
    recipient_key_ids: tuple[str, ...] = ()
    one_pass_signatures: list[OnePassSignature] = field(default_factory=list)
    signatures: list[Signature] = field(default_factory=list)
    has_literal: bool = False
    literal_format: LiteralFormat | None = None
    file_name: str = ""
    modification_time: datetime | None = None
    content_length: int = 0
    digests: dict[_DigestKey, SignatureVerifier] = field(default_factory=dict, repr=False)

    @property
    def is_signed(self) -> bool:
        return bool(self.one_pass_signatures or self.signatures)

    @property
    def signer_key_ids(self) -> tuple[str, ...]:
        key_ids = [ops.key_id for ops in self.one_pass_signatures]
        key_ids += [sig.issuer_key_id for sig in self.signatures if sig.issuer_key_id]
        return tuple(dict.fromkeys(key_ids))


def iter_objects(factory: PGPObjectFactory) -> Iterator[PGPObject]:
    return iter(factory.next_object, None)


class MessageWalker:
    """
    Walks message objects, streaming literal content to ``sink``.

    Args:
        keys: Keys used to open encrypted layers.
        config: Pipeline settings (chunk size, size and nesting limits).
        sink: Destination of the literal content, discarded when None.
        hash_content: Digest the content for the signatures announced before it.
        read_content: Stop at the literal header instead of reading the content.
        check_integrity: Check the modification detection code of encrypted data.
    """

    def __init__(
        self,
        keys: EncryptionKeys | None,
        config: PGPConfig,
        *,
        sink: BinaryIO | None = None,
        hash_content: bool = False,
        read_content: bool = True,
        check_integrity: bool = True,
    ) -> None:
        self._keys = keys
        self._config = config
        self._sink = sink
        self._hash_content = hash_content
        self._read_content = read_content
        self._check_integrity = check_integrity
        self._stopped = False
        self.trace = MessageTrace()

    def walk(self, objects: Iterable[PGPObject], *, depth: int = 1) -> None:
        """
        Dispatch over ``objects`` until they run out or the walk stops.

        Raises:
            MessageFormatError: If the objects do not form a simple message.
            SizeLimitError: If nesting or plaintext limits are exceeded.
            KeyNotFoundError: If no secret key opens an encrypted layer.
            IntegrityError: If the modification detection code does not match.
        """
        if depth > self._config.max_nesting_depth:
            msg = "Message nesting exceeds the configured depth"
            raise SizeLimitError(msg, limit=self._config.max_nesting_depth)

        for obj in objects:
            match obj:
                case EncryptedDataList():
                    self._open_encrypted(obj, depth)
                case CompressedData():
                    self._open_compressed(obj, depth)
                case OnePassSignatureList():
                    self._require_before_literal("one-pass signature")
                    self.trace.one_pass_signatures.extend(obj)
                case SignatureList():
                    self.trace.signatures.extend(obj)
                case LiteralData():
                    self._require_before_literal("literal data")
                    self._read_literal(obj)
                case _:
                    raise MessageFormatError(_NOT_SIMPLE, object=type(obj).__name__)
            if self._stopped:
                return

    def finish(self) -> MessageTrace:
        """
        Raises:
            MessageFormatError: If the walk found no literal data.
        """
        if not self.trace.has_literal:
            raise MessageFormatError(_NOT_SIMPLE, reason="no literal data")
        return self.trace

    def _require_before_literal(self, kind: str) -> None:
        if self.trace.has_literal:
            raise MessageFormatError(_NOT_SIMPLE, reason=f"{kind} after literal data")

    def _open_encrypted(self, encrypted: EncryptedDataList, depth: int) -> None:
        trace = self.trace
        if trace.is_encrypted or trace.is_compressed or trace.is_signed or trace.has_literal:
            raise MessageFormatError(_NOT_SIMPLE, reason="misplaced encrypted data")
        trace.is_encrypted = True
        trace.is_integrity_protected = encrypted.integrity_protected
        trace.recipient_key_ids = encrypted.key_ids

        session_key = self._session_key(encrypted)
        trace.symmetric_algorithm = session_key.algorithm
        logger.debug(
            "Opened encrypted data",
            algorithm=session_key.algorithm.name,
            integrity_protected=encrypted.integrity_protected,
        )
        reader = DecryptingReader(encrypted, session_key)
        verify = encrypted.integrity_protected and self._check_integrity
        try:
            self.walk(iter_objects(PGPObjectFactory(reader)), depth=depth + 1)
        except SizeLimitError:
            raise
        except MessageFormatError:
            # Tampered ciphertext decrypts to garbage packets; report the tampering.
            if verify:
                reader.verify_integrity()
            raise
        if verify and not self._stopped:
            reader.verify_integrity()
            logger.debug("Integrity check passed")

    def _session_key(self, encrypted: EncryptedDataList) -> SessionKey:
        if self._keys is not None:
            for entry in encrypted.session_keys:
                secret_key = self._keys.find_secret_key(entry.key_id)
                if secret_key is None:
                    continue
                with self._keys.unlocked(secret_key) as unlocked:
                    session_key = self._keys.backend.decrypt_session_key(entry, unlocked)
                logger.debug("Decrypted session key", key_id=entry.key_id)
                return session_key
        msg = "Secret key for message not found."
        raise KeyNotFoundError(msg, key_ids=encrypted.key_ids)

    def _open_compressed(self, compressed: CompressedData, depth: int) -> None:
        if self.trace.is_compressed or self.trace.has_literal:
            raise MessageFormatError(_NOT_SIMPLE, reason="misplaced compressed data")
        self.trace.is_compressed = True
        self.trace.compression_algorithm = compressed.algorithm
        logger.debug("Opened compressed data", algorithm=compressed.algorithm.name)
        reader = DecompressingReader(compressed)
        self.walk(iter_objects(PGPObjectFactory(reader)), depth=depth + 1)

    def _read_literal(self, literal: LiteralData) -> None:
        trace = self.trace
        trace.has_literal = True
        trace.literal_format = literal.format
        trace.file_name = literal.file_name
        trace.modification_time = literal.modification_time
        if not self._read_content:
            self._stopped = True
            return

        if self._hash_content:
            self._start_digests()
        digests = tuple(trace.digests.values())
        sink = self._sink

        def write(chunk: bytes) -> None:
            for digest in digests:
                digest.update(chunk)
            if sink is not None:
                sink.write(chunk)

        trace.content_length = copy_stream(
            literal.body,
            write,
            chunk_size=self._config.chunk_size,
            limit=self._config.max_plaintext_size,
        )
        logger.debug("Read literal data", size=trace.content_length, format=literal.format.name)

    def _start_digests(self) -> None:
        wanted = [(ops.hash_algorithm, ops.signature_type) for ops in self.trace.one_pass_signatures]
        wanted += [(sig.hash_algorithm, sig.signature_type) for sig in self.trace.signatures]
        for hash_algorithm, signature_type in wanted:
            if signature_type not in _DOCUMENT_SIGNATURE_TYPES:
                continue
            if (hash_algorithm, signature_type) not in self.trace.digests:
                self.trace.digests[hash_algorithm, signature_type] = SignatureVerifier(
                    self._keys.backend, hash_algorithm, signature_type
                )


def walk_message(
    packets: BinaryIO,
    keys: EncryptionKeys | None,
    config: PGPConfig,
    **options: object,
) -> MessageTrace:
    """Walk a whole packet stream; ``options`` are passed to MessageWalker."""
    walker = MessageWalker(keys, config, **options)
    walker.walk(iter_objects(PGPObjectFactory(packets)))
    return walker.finish()


def check_signatures(trace: MessageTrace, keys: EncryptionKeys) -> bool:
    """
    Check the recorded signatures against the digested content.

    Each signature's issuer is resolved against the verification keys,
    then against every public key; the first valid signature wins.
    """
    for signature in trace.signatures:
        key_id = signature.issuer_key_id or _single_one_pass_key_id(trace)
        verifier = trace.digests.get((signature.hash_algorithm, signature.signature_type))
        if key_id is None or verifier is None:
            continue
        candidates = _signer_candidates(key_id, keys)
        if not candidates:
            logger.warning("Signer key not found", key_id=key_id)
            continue
        for public_key in candidates:
            if verifier.verify(signature, public_key):
                logger.debug("Verified signature", key_id=public_key.key_id)
                return True
        logger.debug("Signature did not verify", key_id=key_id)
    return False


def _single_one_pass_key_id(trace: MessageTrace) -> str | None:
    if len(trace.one_pass_signatures) == 1:
        return trace.one_pass_signatures[0].key_id
    return None


def _signer_candidates(key_id: str, keys: EncryptionKeys) -> list[PublicKey]:
    """Verification keys first, then any key in the public rings with that key id."""
    candidates = []
    for public_key in (
        selector.find_public_key(key_id, keys.verification_keys),
        keys.find_public_key(key_id),
    ):
        if public_key is not None and public_key not in candidates:
            candidates.append(public_key)
    return candidates
