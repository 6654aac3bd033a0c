"""
PGP backend protocol definition.

This is the boundary with the OpenPGP primitive library: key parsing,
public-key wrapping of session keys, and signing or verifying a finished
digest. Everything above it (packet nesting, key selection, streaming) is
library independent.
"""

from contextlib import AbstractContextManager
from typing import Protocol, runtime_checkable

from pgp_pipeline.crypto.passphrase import Passphrase
from pgp_pipeline.models.crypto import HashAlgorithm, PublicKeyAlgorithm, SessionKey
from pgp_pipeline.models.keys import PublicKey, PublicKeyRing, SecretKey, SecretKeyRing
from pgp_pipeline.models.message import EncryptedSessionKey


@runtime_checkable
class PGPBackend(Protocol):
    """
    Abstract interface for OpenPGP primitive operations.

    Implementations can use pgpy or another library. Secret-key operations
    are only valid inside ``unlock``.
    """

    def load_public_key_rings(self, key_data: str | bytes) -> list[PublicKeyRing]:
        """
        Parse public key material (armored or binary).

        Raises:
            KeyLoadError: If the material cannot be parsed.
        """
        ...

    def load_secret_key_rings(self, key_data: str | bytes) -> list[SecretKeyRing]:
        """
        Parse secret key material (armored or binary).

        Raises:
            KeyLoadError: If the material cannot be parsed or holds no secret key.
        """
        ...

    def unlock(
        self, secret_key: SecretKey, passphrase: Passphrase | None
    ) -> AbstractContextManager[SecretKey]:
        """
        Unlock the ring holding ``secret_key`` for the duration of the context.

        Raises:
            KeyDecryptionError: If the passphrase is missing or incorrect.
        """
        ...

    def encrypt_session_key(self, session_key: SessionKey, public_key: PublicKey) -> bytes:
        """
        Wrap ``session_key`` to ``public_key``.

        Returns:
            A complete public-key encrypted session key packet.

        Raises:
            SessionKeyError: If wrapping fails.
        """
        ...

    def decrypt_session_key(self, entry: EncryptedSessionKey, secret_key: SecretKey) -> SessionKey:
        """
        Unwrap a session key with an unlocked secret key.

        Raises:
            SessionKeyError: If unwrapping fails.
        """
        ...

    def sign_digest(
        self, secret_key: SecretKey, hash_algorithm: HashAlgorithm, digest: bytes
    ) -> tuple[int, ...]:
        """
        Sign a finished digest with an unlocked secret key.

        Returns:
            The signature values (MPIs) for the key's algorithm.
        """
        ...

    def verify_digest(
        self,
        public_key: PublicKey,
        hash_algorithm: HashAlgorithm,
        digest: bytes,
        values: tuple[int, ...],
    ) -> bool:
        """Check signature values over a finished digest."""
        ...

    def generate_key(
        self,
        name: str,
        email: str,
        passphrase: Passphrase | None,
        *,
        algorithm: PublicKeyAlgorithm,
        key_size: int,
        comment: str = "",
    ) -> tuple[str, str]:
        """
        Generate a key pair with a signing master key and an encryption sub-key.

        Returns:
            Tuple of (armored public key, armored private key).
        """
        ...
