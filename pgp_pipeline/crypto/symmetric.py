"""
OpenPGP CFB encryption for symmetrically encrypted data packets.

Two packet flavours are handled:

- Symmetrically Encrypted Integrity Protected Data (SEIPD, tag 18): plain
  CFB over the random prefix, the data and a trailing Modification
  Detection Code packet (SHA-1 over everything before the hash).
- Symmetrically Encrypted Data (SED, tag 9): CFB with the OpenPGP resync
  after the random prefix, no integrity protection.

Both directions are incremental so packet bodies can be streamed.
"""

import hashlib
import hmac
import secrets

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.ciphers import Cipher, CipherContext, algorithms, modes

from pgp_pipeline.exceptions import DecryptionError, IntegrityError, UnsupportedAlgorithmError
from pgp_pipeline.models.crypto import SessionKey, SymmetricAlgorithm

SEIPD_VERSION = 1
MDC_PACKET_SIZE = 22  # 2-byte header + 20-byte SHA-1
_MDC_HEADER = b"\xd3\x14"


def _cipher_context(session_key: SessionKey, iv: bytes, *, encrypt: bool) -> CipherContext:
    match session_key.algorithm:
        case SymmetricAlgorithm.AES_128 | SymmetricAlgorithm.AES_192 | SymmetricAlgorithm.AES_256:
            algorithm = algorithms.AES(session_key.key_data)
        case (
            SymmetricAlgorithm.CAMELLIA_128
            | SymmetricAlgorithm.CAMELLIA_192
            | SymmetricAlgorithm.CAMELLIA_256
        ):
            algorithm = algorithms.Camellia(session_key.key_data)
        case other:
            msg = f"Unsupported symmetric algorithm: {other.name}"
            raise UnsupportedAlgorithmError(msg, algorithm=other.name)
    cipher = Cipher(algorithm, modes.CFB(iv), backend=default_backend())
    return cipher.encryptor() if encrypt else cipher.decryptor()


class PacketEncryptor:
    """
    Incremental encryptor producing an encrypted data packet body.

    Example:
        encryptor = PacketEncryptor(session_key, integrity_protected=True)
        body = encryptor.start() + encryptor.update(data) + encryptor.finalize()
    """

    def __init__(self, session_key: SessionKey, *, integrity_protected: bool = True) -> None:
        self._session_key = session_key
        self._integrity_protected = integrity_protected
        self._block_size = session_key.block_size
        self._context: CipherContext | None = None
        self._mdc = hashlib.sha1() if integrity_protected else None

    def start(self) -> bytes:
        """Return the packet body head: version byte (SEIPD) and encrypted prefix."""
        random_prefix = secrets.token_bytes(self._block_size)
        prefix = random_prefix + random_prefix[-2:]
        zero_iv = bytes(self._block_size)

        if self._mdc is not None:
            self._mdc.update(prefix)
            self._context = _cipher_context(self._session_key, zero_iv, encrypt=True)
            return bytes([SEIPD_VERSION]) + self._context.update(prefix)

        prefix_context = _cipher_context(self._session_key, zero_iv, encrypt=True)
        encrypted_prefix = prefix_context.update(prefix) + prefix_context.finalize()
        self._context = _cipher_context(self._session_key, encrypted_prefix[2:], encrypt=True)
        return encrypted_prefix

    def update(self, data: bytes) -> bytes:
        if self._context is None:
            msg = "start() must be called before update()"
            raise RuntimeError(msg)
        if self._mdc is not None:
            self._mdc.update(data)
        return self._context.update(data)

    def finalize(self) -> bytes:
        """Return the trailing ciphertext, including the MDC packet for SEIPD."""
        if self._context is None:
            msg = "start() must be called before finalize()"
            raise RuntimeError(msg)
        tail = b""
        if self._mdc is not None:
            self._mdc.update(_MDC_HEADER)
            tail = self._context.update(_MDC_HEADER + self._mdc.digest())
        return tail + self._context.finalize()


class PacketDecryptor:
    """
    Incremental decryptor for an encrypted data packet body.

    ``update`` returns plaintext as it becomes available. For integrity
    protected packets the final MDC packet is held back and checked by
    ``verify_integrity`` once the whole body has been fed.
    """

    def __init__(self, session_key: SessionKey, *, integrity_protected: bool = True) -> None:
        self._session_key = session_key
        self._integrity_protected = integrity_protected
        self._block_size = session_key.block_size
        if not self._block_size:
            msg = f"Unknown block size for {session_key.algorithm.name}"
            raise UnsupportedAlgorithmError(msg, algorithm=session_key.algorithm.name)
        self._prefix_size = self._block_size + 2
        self._pending = bytearray()
        self._prefix: bytes | None = None
        self._context: CipherContext | None = None
        self._mdc = hashlib.sha1() if integrity_protected else None
        self._finished = False

    def update(self, data: bytes) -> bytes:
        if self._prefix is None:
            self._pending += data
            if len(self._pending) < self._prefix_size + (1 if self._integrity_protected else 0):
                return b""
            data = self._open(bytes(self._pending))
            self._pending.clear()
        elif self._context is not None:
            data = self._context.update(data)
        return self._release(data)

    def finalize(self) -> bytes:
        """Signal end of ciphertext and return any releasable plaintext."""
        if self._prefix is None:
            msg = "Encrypted data too short"
            raise DecryptionError(msg, length=len(self._pending))
        self._finished = True
        return self._release(self._context.finalize())

    def verify_integrity(self) -> None:
        """
        Check the modification detection code.

        Raises:
            IntegrityError: If the MDC is missing or does not match.
        """
        if self._mdc is None:
            return
        if not self._finished:
            msg = "Integrity checked before the end of the encrypted data"
            raise IntegrityError(msg)
        msg = "Message failed integrity check."
        tail = bytes(self._pending)
        if len(tail) != MDC_PACKET_SIZE or tail[:2] != _MDC_HEADER:
            raise IntegrityError(msg)
        self._mdc.update(_MDC_HEADER)
        if not hmac.compare_digest(self._mdc.digest(), tail[2:]):
            raise IntegrityError(msg)

    def _open(self, data: bytes) -> bytes:
        zero_iv = bytes(self._block_size)
        if self._integrity_protected:
            if data[0] != SEIPD_VERSION:
                msg = f"Unsupported SEIPD version: {data[0]}"
                raise DecryptionError(msg)
            self._context = _cipher_context(self._session_key, zero_iv, encrypt=False)
            plaintext = self._context.update(data[1:])
            self._prefix = plaintext[: self._prefix_size]
            self._mdc.update(self._prefix)
            return plaintext[self._prefix_size :]

        encrypted_prefix = data[: self._prefix_size]
        prefix_context = _cipher_context(self._session_key, zero_iv, encrypt=False)
        prefix = prefix_context.update(encrypted_prefix) + prefix_context.finalize()
        if prefix[self._block_size - 2 : self._block_size] != prefix[self._block_size :]:
            msg = "CFB prefix verification failed, possibly wrong key"
            raise DecryptionError(msg)
        self._prefix = prefix
        self._context = _cipher_context(self._session_key, encrypted_prefix[2:], encrypt=False)
        return self._context.update(data[self._prefix_size :])

    def _release(self, plaintext: bytes) -> bytes:
        if self._mdc is None:
            return plaintext
        self._pending += plaintext
        releasable = len(self._pending) - MDC_PACKET_SIZE
        if releasable <= 0:
            return b""
        released = bytes(self._pending[:releasable])
        del self._pending[:releasable]
        self._mdc.update(released)
        return released
