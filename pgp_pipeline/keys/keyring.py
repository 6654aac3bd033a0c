"""
Key ring model.

EncryptionKeys gathers the caller's key material once and exposes the
candidate keys for each pipeline role.
"""

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

from pgp_pipeline.crypto.passphrase import Passphrase
from pgp_pipeline.crypto.pgpy_backend import PgpyBackend
from pgp_pipeline.crypto.protocol import PGPBackend
from pgp_pipeline.exceptions import InvalidArgumentError, KeySelectionError
from pgp_pipeline.keys import selector
from pgp_pipeline.models.keys import PublicKey, PublicKeyRing, SecretKey, SecretKeyRing

logger = structlog.get_logger(__name__)

KeySource = str | bytes | Path


def read_key_source(source: KeySource) -> str | bytes:
    """
    Return key material from an armored string, raw bytes or a key file path.

    Raises:
        InvalidArgumentError: If the file does not exist or the source type is wrong.
    """
    match source:
        case Path():
            if not source.is_file():
                msg = f"Key file not found: {source}"
                raise InvalidArgumentError(msg, path=str(source))
            return source.read_bytes()
        case str() | bytes():
            if not source.strip():
                msg = "Key material is empty"
                raise InvalidArgumentError(msg)
            return source
        case _:
            msg = f"Unsupported key source type: {type(source).__name__}"
            raise InvalidArgumentError(msg)


class EncryptionKeys:
    """
    Immutable set of keys used by a PGP pipeline.

    Public keys are recipients for encryption and candidates for signature
    verification; the private key signs and decrypts.

    Example:
        keys = EncryptionKeys(
            public_keys=[recipient_armored],
            private_key=Path("me.asc"),
            passphrase="secret",
        )

    Args:
        public_keys: Public key material, one or more rings per source.
        private_key: Secret key material for signing and decryption.
        passphrase: Passphrase protecting the secret key.
        preferred_encryption_key_ids: Key ids pinned as a ring's encryption key.
        backend: Primitive library backend.

    Raises:
        InvalidArgumentError: If no key material is given.
        KeyLoadError: If key material cannot be parsed.
        KeyDecryptionError: If the passphrase does not unlock the secret key.
    """

    def __init__(
        self,
        public_keys: Iterable[KeySource] | KeySource | None = None,
        private_key: KeySource | None = None,
        passphrase: Passphrase | str | None = None,
        *,
        preferred_encryption_key_ids: Iterable[str] = (),
        backend: PGPBackend | None = None,
    ) -> None:
        self._backend = backend or PgpyBackend()
        if isinstance(public_keys, (str, bytes, Path)):
            public_keys = [public_keys]
        public_sources = list(public_keys or ())
        if not public_sources and private_key is None:
            msg = "Encryption keys not supplied"
            raise InvalidArgumentError(msg)

        preferred = {key_id.upper() for key_id in preferred_encryption_key_ids}
        rings: list[PublicKeyRing] = []
        for source in public_sources:
            for ring in self._backend.load_public_key_rings(read_key_source(source)):
                rings.append(self._with_preferred_key(ring, preferred))
        self._public_key_rings = tuple(rings)

        self._passphrase = Passphrase.coerce(passphrase)
        self._secret_key_rings: tuple[SecretKeyRing, ...] = ()
        if private_key is not None:
            self._secret_key_rings = tuple(
                self._backend.load_secret_key_rings(read_key_source(private_key))
            )
            for ring in self._secret_key_rings:
                with self._backend.unlock(ring.keys[0], self._passphrase):
                    pass

        logger.debug(
            "Loaded keys",
            public_rings=len(self._public_key_rings),
            secret_rings=len(self._secret_key_rings),
        )

    @staticmethod
    def _with_preferred_key(ring: PublicKeyRing, preferred: set[str]) -> PublicKeyRing:
        pinned = next((key for key in ring if key.key_id in preferred), None)
        if pinned is None:
            return ring
        return PublicKeyRing(keys=ring.keys, preferred_encryption_key=pinned)

    @property
    def backend(self) -> PGPBackend:
        return self._backend

    @property
    def public_key_rings(self) -> tuple[PublicKeyRing, ...]:
        return self._public_key_rings

    @property
    def secret_key_rings(self) -> tuple[SecretKeyRing, ...]:
        return self._secret_key_rings

    @property
    def encrypt_keys(self) -> tuple[PublicKey, ...]:
        """The encryption key of each public key ring."""
        return tuple(selector.find_ring_encryption_key(ring) for ring in self._public_key_rings)

    @property
    def verification_keys(self) -> tuple[PublicKey, ...]:
        """The verification key of each public key ring that has one."""
        keys = []
        for ring in self._public_key_rings:
            try:
                keys.append(selector.find_verification_key(ring))
            except KeySelectionError:
                logger.debug("Key ring has no verification key", key_id=ring.key_id)
        return tuple(keys)

    @property
    def master_key(self) -> PublicKey | None:
        if not self._public_key_rings:
            return None
        return selector.find_master_key(self._public_key_rings[0])

    @property
    def signing_secret_key(self) -> SecretKey:
        """
        The secret key used for signing.

        Raises:
            InvalidArgumentError: If no private key was supplied.
            KeySelectionError: If no secret key can sign.
        """
        return self._signing_key()[0]

    @property
    def signing_user_id(self) -> str | None:
        """First user id of the signing key's ring."""
        ring = self._signing_key()[1]
        user_ids = ring.keys[0].user_ids
        return user_ids[0] if user_ids else None

    def _signing_key(self) -> tuple[SecretKey, SecretKeyRing]:
        if not self._secret_key_rings:
            msg = "Private key not supplied for signing"
            raise InvalidArgumentError(msg)
        return selector.find_signing_key(self._secret_key_rings)

    def find_secret_key(self, key_id: str) -> SecretKey | None:
        return selector.find_secret_key(key_id, self._secret_key_rings)

    def find_public_key(self, key_id: str) -> PublicKey | None:
        """Search every public key ring for ``key_id``."""
        return selector.find_public_key_in_rings(key_id, self._public_key_rings)

    def find_verification_key(self, key_id: str) -> PublicKey | None:
        return selector.find_public_key(key_id, self.verification_keys)

    @contextmanager
    def unlocked(self, secret_key: SecretKey) -> Iterator[SecretKey]:
        """Unlock ``secret_key`` with the stored passphrase for the duration of the context."""
        with self._backend.unlock(secret_key, self._passphrase) as key:
            yield key
