"""
Streaming signature generation and verification.

The digest is updated chunk by chunk while data flows through the
pipeline; only the finished digest is handed to the backend.
"""

import hashlib
import re
from datetime import UTC, datetime

import structlog

from pgp_pipeline.crypto.protocol import PGPBackend
from pgp_pipeline.exceptions import UnsupportedAlgorithmError
from pgp_pipeline.models.crypto import HashAlgorithm, SignatureType
from pgp_pipeline.models.keys import PublicKey, SecretKey
from pgp_pipeline.models.message import Signature
from pgp_pipeline.openpgp.signatures import (
    SubpacketType,
    build_hashed_data,
    encode_one_pass_signature,
    encode_signature,
    encode_subpacket,
    signature_trailer,
    v4_trailer,
)

logger = structlog.get_logger(__name__)

_LINE_ENDING = re.compile(rb"\r\n|\r|\n")


def _new_hash(algorithm: HashAlgorithm) -> "hashlib._Hash":
    try:
        return hashlib.new(algorithm.hashlib_name)
    except ValueError:
        msg = f"Hash algorithm not available: {algorithm.name}"
        raise UnsupportedAlgorithmError(msg, algorithm=algorithm.name) from None


class TextCanonicalizer:
    """
    Converts line endings to CRLF across chunk boundaries.

    A trailing CR is held back until the next chunk shows whether an LF follows.
    """

    def __init__(self) -> None:
        self._pending_cr = False

    def feed(self, data: bytes) -> bytes:
        if self._pending_cr:
            data = b"\r" + data
            self._pending_cr = False
        if data.endswith(b"\r"):
            data = data[:-1]
            self._pending_cr = True
        return _LINE_ENDING.sub(b"\r\n", data)

    def finish(self) -> bytes:
        if self._pending_cr:
            self._pending_cr = False
            return b"\r\n"
        return b""


class SignatureGenerator:
    """
    Produces a version 4 signature over streamed data.

    Canonical text signatures normalise line endings of the data as it is
    fed. ``generate`` must run while the secret key is unlocked.

    Example:
        generator = SignatureGenerator(backend, secret_key, HashAlgorithm.SHA256)
        out.write(generator.one_pass_packet())
        generator.update(data)
        with backend.unlock(secret_key, passphrase):
            out.write(generator.generate())
    """

    def __init__(
        self,
        backend: PGPBackend,
        secret_key: SecretKey,
        hash_algorithm: HashAlgorithm,
        signature_type: SignatureType = SignatureType.BINARY_DOCUMENT,
        *,
        user_id: str | None = None,
        created: datetime | None = None,
    ) -> None:
        self._backend = backend
        self._secret_key = secret_key
        self._user_id = user_id
        self._hash_algorithm = hash_algorithm
        self._signature_type = signature_type
        self._created = created or datetime.now(UTC)
        self._hash = _new_hash(hash_algorithm)
        self._canonicalizer = (
            TextCanonicalizer() if signature_type == SignatureType.CANONICAL_TEXT_DOCUMENT else None
        )

    @property
    def key_id(self) -> str:
        return self._secret_key.key_id

    def one_pass_packet(self, *, is_last: bool = True) -> bytes:
        return encode_one_pass_signature(
            self._signature_type,
            self._hash_algorithm,
            self._secret_key.public_key.algorithm,
            self._secret_key.key_id,
            is_last=is_last,
        )

    def update(self, data: bytes) -> None:
        if self._canonicalizer is not None:
            data = self._canonicalizer.feed(data)
        self._hash.update(data)

    def generate(self) -> bytes:
        """Finish the digest, sign it and return the encoded signature packet."""
        if self._canonicalizer is not None:
            self._hash.update(self._canonicalizer.finish())

        public_key = self._secret_key.public_key
        hashed_subpackets = encode_subpacket(
            SubpacketType.CREATION_TIME, int(self._created.timestamp()).to_bytes(4, "big")
        ) + encode_subpacket(
            SubpacketType.ISSUER_FINGERPRINT, b"\x04" + bytes.fromhex(public_key.fingerprint)
        )
        if self._user_id:
            hashed_subpackets += encode_subpacket(
                SubpacketType.SIGNER_USER_ID, self._user_id.encode("utf-8")
            )

        hashed_data = build_hashed_data(
            self._signature_type, public_key.algorithm, self._hash_algorithm, hashed_subpackets
        )
        digest_hash = self._hash.copy()
        digest_hash.update(v4_trailer(hashed_data))
        digest = digest_hash.digest()

        values = self._backend.sign_digest(self._secret_key, self._hash_algorithm, digest)
        unhashed_subpackets = encode_subpacket(SubpacketType.ISSUER, bytes.fromhex(public_key.key_id))
        logger.debug(
            "Generated signature",
            key_id=public_key.key_id,
            hash_algorithm=self._hash_algorithm.name,
            signature_type=self._signature_type.name,
        )
        return encode_signature(hashed_data, unhashed_subpackets, digest[:2], values)


class SignatureVerifier:
    """
    Checks signatures against streamed data.

    Several candidate signatures may be checked against the same digest
    state; each check works on a copy.
    """

    def __init__(
        self,
        backend: PGPBackend,
        hash_algorithm: HashAlgorithm,
        signature_type: SignatureType = SignatureType.BINARY_DOCUMENT,
    ) -> None:
        self._backend = backend
        self._hash_algorithm = hash_algorithm
        self._hash = _new_hash(hash_algorithm)
        self._canonicalizer = (
            TextCanonicalizer() if signature_type == SignatureType.CANONICAL_TEXT_DOCUMENT else None
        )
        self._finished = False

    def update(self, data: bytes) -> None:
        if self._finished:
            msg = "Cannot update a verifier after verification started"
            raise RuntimeError(msg)
        if self._canonicalizer is not None:
            data = self._canonicalizer.feed(data)
        self._hash.update(data)

    def verify(self, signature: Signature, public_key: PublicKey) -> bool:
        """
        Check ``signature`` made by ``public_key`` over the data fed so far.

        Returns:
            True if the signature is valid.
        """
        if not self._finished:
            self._finished = True
            if self._canonicalizer is not None:
                self._hash.update(self._canonicalizer.finish())
        if signature.hash_algorithm != self._hash_algorithm:
            logger.debug(
                "Signature hash algorithm differs from digest",
                expected=self._hash_algorithm.name,
                actual=signature.hash_algorithm.name,
            )
            return False

        digest_hash = self._hash.copy()
        digest_hash.update(signature_trailer(signature))
        digest = digest_hash.digest()
        if digest[:2] != signature.hash_prefix:
            logger.debug("Signature hash prefix mismatch", key_id=public_key.key_id)
            return False
        return self._backend.verify_digest(
            public_key, signature.hash_algorithm, digest, signature.values
        )
