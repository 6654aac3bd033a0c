"""
PGP backend implementation using pgpy library.

pgpy parses keys and wraps or unwraps session keys. Digest signatures are
computed with the ``cryptography`` key objects pgpy exposes, because pgpy
itself only signs whole in-memory messages.
"""

import re
import threading
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager

import pgpy
import structlog
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed25519, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)
from pgpy.constants import (
    CompressionAlgorithm,
    EllipticCurveOID,
    KeyFlags,
    PubKeyAlgorithm,
)
from pgpy.constants import HashAlgorithm as PgpyHashAlgorithm
from pgpy.constants import SymmetricKeyAlgorithm
from pgpy.packet import Packet
from pgpy.packet.packets import PKESessionKeyV3

from pgp_pipeline.crypto.passphrase import Passphrase
from pgp_pipeline.exceptions import (
    CryptoError,
    KeyDecryptionError,
    KeyLoadError,
    SessionKeyError,
    UnsupportedAlgorithmError,
)
from pgp_pipeline.models.crypto import (
    HashAlgorithm,
    KeyFlag,
    PublicKeyAlgorithm,
    SessionKey,
    SymmetricAlgorithm,
)
from pgp_pipeline.models.keys import (
    KeySignature,
    PublicKey,
    PublicKeyRing,
    SecretKey,
    SecretKeyRing,
)
from pgp_pipeline.models.message import EncryptedSessionKey

logger = structlog.get_logger(__name__)

_ED25519_HALF = 32
_KEY_BLOCK = re.compile(
    r"-----BEGIN PGP (PUBLIC|PRIVATE) KEY BLOCK-----.*?-----END PGP \1 KEY BLOCK-----", re.DOTALL
)


def _hash_for(algorithm: HashAlgorithm) -> hashes.HashAlgorithm:
    match algorithm:
        case HashAlgorithm.MD5:
            return hashes.MD5()
        case HashAlgorithm.SHA1:
            return hashes.SHA1()
        case HashAlgorithm.SHA224:
            return hashes.SHA224()
        case HashAlgorithm.SHA256:
            return hashes.SHA256()
        case HashAlgorithm.SHA384:
            return hashes.SHA384()
        case HashAlgorithm.SHA512:
            return hashes.SHA512()
        case other:
            msg = f"Unsupported hash algorithm for signatures: {other.name}"
            raise UnsupportedAlgorithmError(msg, algorithm=other.name)


class PgpyBackend:
    """
    PGP backend implementation using pgpy.

    Example:
        backend = PgpyBackend()
        rings = backend.load_secret_key_rings(armored_key)
        with backend.unlock(rings[0].keys[1], passphrase) as key:
            session_key = backend.decrypt_session_key(entry, key)
    """

    def __init__(self) -> None:
        self._unlock_lock = threading.RLock()

    def load_public_key_rings(self, key_data: str | bytes) -> list[PublicKeyRing]:
        """
        Load public key rings from armored or binary key material.

        Secret key material is accepted too; only its public half is described.

        Raises:
            KeyLoadError: If the key cannot be parsed.
        """
        return [
            PublicKeyRing(keys=tuple(self._describe_key(key) for key in self._iter_ring(primary)))
            for primary in self._parse_keys(key_data)
        ]

    def load_secret_key_rings(self, key_data: str | bytes) -> list[SecretKeyRing]:
        """
        Load secret key rings from armored or binary key material.

        Raises:
            KeyLoadError: If the key cannot be parsed or contains no secret key.
        """
        rings = []
        for primary in self._parse_keys(key_data):
            if primary.is_public:
                continue
            keys = tuple(
                SecretKey(public_key=self._describe_key(key), handle=key, root=primary)
                for key in self._iter_ring(primary)
            )
            rings.append(SecretKeyRing(keys=keys, handle=primary))
        if not rings:
            msg = "Key material contains no secret key"
            raise KeyLoadError(msg)
        return rings

    @contextmanager
    def unlock(self, secret_key: SecretKey, passphrase: Passphrase | None) -> Iterator[SecretKey]:
        """
        Unlock a key with its passphrase.

        pgpy unlocks the primary key together with all of its sub-keys, so the
        root of ``secret_key``'s ring is unlocked. The unlock is held under a
        lock for the duration of the context, so concurrent callers sharing a
        protected key take turns instead of relocking it under each other.

        Raises:
            KeyDecryptionError: If the passphrase is missing or incorrect.
        """
        root = self._root(secret_key)
        if not root.is_protected:
            yield secret_key
            return
        with self._unlock_lock:
            if root.is_unlocked:
                yield secret_key
                return
            if not passphrase:
                msg = "Passphrase required to unlock secret key"
                raise KeyDecryptionError(msg, key_id=secret_key.key_id)
            with ExitStack() as stack:
                try:
                    stack.enter_context(root.unlock(passphrase.reveal()))
                except Exception as e:
                    msg = f"Failed to unlock key: {e}"
                    raise KeyDecryptionError(msg, key_id=secret_key.key_id) from e
                yield secret_key

    def encrypt_session_key(self, session_key: SessionKey, public_key: PublicKey) -> bytes:
        """
        Wrap a session key to a recipient key.

        Raises:
            SessionKeyError: If wrapping fails.
        """
        handle = public_key.handle
        try:
            pkesk = PKESessionKeyV3()
            pkesk.encrypter = bytearray(bytes.fromhex(public_key.key_id))
            pkesk.pkalg = handle.key_algorithm
            pkesk.encrypt_sk(
                handle._key,
                SymmetricKeyAlgorithm(session_key.algorithm),
                session_key.key_data,
            )
            return bytes(pkesk)
        except Exception as e:
            msg = f"Failed to encrypt session key: {e}"
            raise SessionKeyError(msg) from e

    def decrypt_session_key(self, entry: EncryptedSessionKey, secret_key: SecretKey) -> SessionKey:
        """
        Unwrap a session key with an unlocked secret key.

        Raises:
            SessionKeyError: If unwrapping fails.
        """
        try:
            pkesk = Packet(bytearray(entry.packet))
            algorithm, key_data = pkesk.decrypt_sk(secret_key.handle._key)
            return SessionKey(algorithm=SymmetricAlgorithm(int(algorithm)), key_data=bytes(key_data))
        except Exception as e:
            msg = f"Failed to extract session key: {e}"
            raise SessionKeyError(msg) from e

    def sign_digest(
        self, secret_key: SecretKey, hash_algorithm: HashAlgorithm, digest: bytes
    ) -> tuple[int, ...]:
        """
        Sign a finished digest.

        Raises:
            UnsupportedAlgorithmError: If the key algorithm cannot sign.
            CryptoError: If signing fails.
        """
        prehashed = Prehashed(_hash_for(hash_algorithm))
        try:
            private_key = secret_key.handle._key.keymaterial.__privkey__()
        except Exception as e:
            msg = f"Secret key material unavailable: {e}"
            raise CryptoError(msg) from e

        match private_key:
            case rsa.RSAPrivateKey():
                signature = private_key.sign(digest, padding.PKCS1v15(), prehashed)
                return (int.from_bytes(signature, "big"),)
            case dsa.DSAPrivateKey():
                return decode_dss_signature(private_key.sign(digest, prehashed))
            case ec.EllipticCurvePrivateKey():
                return decode_dss_signature(private_key.sign(digest, ec.ECDSA(prehashed)))
            case ed25519.Ed25519PrivateKey():
                signature = private_key.sign(digest)
                return (
                    int.from_bytes(signature[:_ED25519_HALF], "big"),
                    int.from_bytes(signature[_ED25519_HALF:], "big"),
                )
            case _:
                msg = f"Key algorithm cannot sign: {secret_key.public_key.algorithm.name}"
                raise UnsupportedAlgorithmError(msg, algorithm=secret_key.public_key.algorithm.name)

    def verify_digest(
        self,
        public_key: PublicKey,
        hash_algorithm: HashAlgorithm,
        digest: bytes,
        values: tuple[int, ...],
    ) -> bool:
        """Check signature values over a finished digest."""
        prehashed = Prehashed(_hash_for(hash_algorithm))
        key = public_key.handle._key.keymaterial.__pubkey__()
        try:
            match key:
                case rsa.RSAPublicKey() if len(values) == 1:
                    signature = values[0].to_bytes((key.key_size + 7) // 8, "big")
                    key.verify(signature, digest, padding.PKCS1v15(), prehashed)
                case dsa.DSAPublicKey() if len(values) == 2:
                    key.verify(encode_dss_signature(*values), digest, prehashed)
                case ec.EllipticCurvePublicKey() if len(values) == 2:
                    key.verify(encode_dss_signature(*values), digest, ec.ECDSA(prehashed))
                case ed25519.Ed25519PublicKey() if len(values) == 2:
                    signature = b"".join(value.to_bytes(_ED25519_HALF, "big") for value in values)
                    key.verify(signature, digest)
                case _:
                    logger.debug("Signature does not match key type", key_id=public_key.key_id)
                    return False
        except (InvalidSignature, OverflowError):
            return False
        return True

    def generate_key(
        self,
        name: str,
        email: str,
        passphrase: Passphrase | None,
        *,
        algorithm: PublicKeyAlgorithm = PublicKeyAlgorithm.RSA_ENCRYPT_OR_SIGN,
        key_size: int = 2048,
        comment: str = "",
    ) -> tuple[str, str]:
        """
        Generate a key pair: a certify/sign master key and an encryption sub-key.

        Returns:
            Tuple of (armored public key, armored private key).

        Raises:
            UnsupportedAlgorithmError: If ``algorithm`` is not RSA, ECDSA or EdDSA.
        """
        match algorithm:
            case PublicKeyAlgorithm.RSA_ENCRYPT_OR_SIGN:
                primary = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, key_size)
                subkey = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, key_size)
            case PublicKeyAlgorithm.ECDSA:
                primary = pgpy.PGPKey.new(PubKeyAlgorithm.ECDSA, EllipticCurveOID.NIST_P256)
                subkey = pgpy.PGPKey.new(PubKeyAlgorithm.ECDH, EllipticCurveOID.NIST_P256)
            case PublicKeyAlgorithm.EDDSA:
                primary = pgpy.PGPKey.new(PubKeyAlgorithm.EdDSA, EllipticCurveOID.Ed25519)
                subkey = pgpy.PGPKey.new(PubKeyAlgorithm.ECDH, EllipticCurveOID.Curve25519)
            case _:
                msg = f"Key generation not supported for {algorithm.name}"
                raise UnsupportedAlgorithmError(msg, algorithm=algorithm.name)

        uid = pgpy.PGPUID.new(name, comment=comment, email=email)
        primary.add_uid(
            uid,
            usage={KeyFlags.Certify, KeyFlags.Sign},
            hashes=[PgpyHashAlgorithm.SHA256, PgpyHashAlgorithm.SHA512],
            ciphers=[SymmetricKeyAlgorithm.AES256, SymmetricKeyAlgorithm.AES128],
            compression=[CompressionAlgorithm.ZIP, CompressionAlgorithm.Uncompressed],
        )
        primary.add_subkey(
            subkey, usage={KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage}
        )
        if passphrase:
            primary.protect(
                passphrase.reveal(), SymmetricKeyAlgorithm.AES256, PgpyHashAlgorithm.SHA256
            )
        logger.debug("Generated key pair", key_id=primary.fingerprint.keyid, algorithm=algorithm.name)
        return str(primary.pubkey), str(primary)

    @classmethod
    def _parse_keys(cls, key_data: str | bytes) -> list[pgpy.PGPKey]:
        primaries = []
        seen = set()
        for block in cls._split_key_blocks(key_data):
            try:
                result = pgpy.PGPKey.from_blob(block)
            except Exception as e:
                msg = f"Failed to load key: {e}"
                raise KeyLoadError(msg) from e
            first, others = result if isinstance(result, tuple) else (result, {})
            for key in (first, *others.values()):
                identity = (str(key.fingerprint), key.is_public)
                if key.is_primary and identity not in seen:
                    seen.add(identity)
                    primaries.append(key)
        return primaries

    @staticmethod
    def _split_key_blocks(key_data: str | bytes) -> list[str | bytes]:
        """pgpy reads only the first armored block, so concatenated blocks are parsed one by one."""
        text = key_data
        if isinstance(key_data, bytes):
            if b"-----BEGIN PGP " not in key_data:
                return [key_data]
            text = key_data.decode("utf-8", errors="replace")
        blocks = [match.group(0) for match in _KEY_BLOCK.finditer(text)]
        return blocks or [key_data]

    @staticmethod
    def _iter_ring(primary: pgpy.PGPKey) -> list[pgpy.PGPKey]:
        return [primary, *primary.subkeys.values()]

    @staticmethod
    def _root(secret_key: SecretKey) -> pgpy.PGPKey:
        """
        Raises:
            KeyDecryptionError: If the sub-key's primary key is no longer available.
        """
        root = secret_key.root
        if root is None:
            key = secret_key.handle
            root = key if key.is_primary else key.parent
        if root is None:
            msg = "Primary key of secret sub-key is not available"
            raise KeyDecryptionError(msg, key_id=secret_key.key_id)
        return root

    @classmethod
    def _describe_key(cls, key: pgpy.PGPKey) -> PublicKey:
        if key.is_primary:
            user_ids = tuple(uid.userid for uid in key.userids)
            signatures = [*key.self_signatures]
            signatures += [uid.selfsig for uid in key.userids if uid.selfsig is not None]
        else:
            user_ids = ()
            signatures = [*key.self_signatures]
        try:
            algorithm = PublicKeyAlgorithm(int(key.key_algorithm))
        except ValueError:
            msg = f"Unsupported public key algorithm: {key.key_algorithm!r}"
            raise KeyLoadError(msg) from None
        return PublicKey(
            key_id=str(key.fingerprint.keyid).upper(),
            fingerprint=str(key.fingerprint).replace(" ", "").upper(),
            algorithm=algorithm,
            is_master=key.is_primary,
            created=key.created,
            user_ids=user_ids,
            signatures=tuple(cls._describe_signature(sig) for sig in signatures),
            handle=key,
        )

    @staticmethod
    def _describe_signature(signature: pgpy.PGPSignature) -> KeySignature:
        flags = KeyFlag(0)
        for flag in signature.key_flags:
            flags |= KeyFlag(int(flag))
        return KeySignature(
            signer_key_id=str(signature.signer).upper(),
            key_flags=flags,
            has_subpackets=getattr(signature._signature, "subpackets", None) is not None,
        )
