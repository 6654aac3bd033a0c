"""
Cryptographic domain models.
"""

import secrets
from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import Self


class SymmetricAlgorithm(IntEnum):
    """OpenPGP symmetric algorithm identifiers."""

    PLAINTEXT = 0
    IDEA = 1
    TRIPLE_DES = 2
    CAST5 = 3
    BLOWFISH = 4
    AES_128 = 7
    AES_192 = 8
    AES_256 = 9
    TWOFISH = 10
    CAMELLIA_128 = 11
    CAMELLIA_192 = 12
    CAMELLIA_256 = 13

    @property
    def key_size(self) -> int:
        """Get key size in bytes for this algorithm."""
        match self:
            case self.AES_128 | self.CAST5 | self.BLOWFISH | self.CAMELLIA_128 | self.IDEA:
                return 16
            case self.AES_192 | self.TRIPLE_DES | self.CAMELLIA_192:
                return 24
            case self.AES_256 | self.TWOFISH | self.CAMELLIA_256:
                return 32
            case _:
                return 0

    @property
    def block_size(self) -> int:
        """Get block size in bytes for this algorithm."""
        match self:
            case self.CAST5 | self.BLOWFISH | self.TRIPLE_DES | self.IDEA:
                return 8
            case (
                self.AES_128
                | self.AES_192
                | self.AES_256
                | self.TWOFISH
                | self.CAMELLIA_128
                | self.CAMELLIA_192
                | self.CAMELLIA_256
            ):
                return 16
            case _:
                return 0


class PublicKeyAlgorithm(IntEnum):
    """OpenPGP public key algorithm identifiers."""

    RSA_ENCRYPT_OR_SIGN = 1
    RSA_ENCRYPT_ONLY = 2
    RSA_SIGN_ONLY = 3
    ELGAMAL_ENCRYPT_ONLY = 16
    DSA = 17
    ECDH = 18
    ECDSA = 19
    ELGAMAL_ENCRYPT_OR_SIGN = 20
    EDDSA = 22

    @property
    def can_encrypt(self) -> bool:
        match self:
            case (
                self.RSA_ENCRYPT_OR_SIGN
                | self.RSA_ENCRYPT_ONLY
                | self.ELGAMAL_ENCRYPT_ONLY
                | self.ELGAMAL_ENCRYPT_OR_SIGN
                | self.ECDH
            ):
                return True
            case _:
                return False

    @property
    def can_sign(self) -> bool:
        match self:
            case (
                self.RSA_ENCRYPT_OR_SIGN
                | self.RSA_SIGN_ONLY
                | self.DSA
                | self.ECDSA
                | self.EDDSA
                | self.ELGAMAL_ENCRYPT_OR_SIGN
            ):
                return True
            case _:
                return False

    @property
    def signature_value_count(self) -> int:
        """Number of MPIs in a signature made with this algorithm."""
        match self:
            case self.RSA_ENCRYPT_OR_SIGN | self.RSA_SIGN_ONLY:
                return 1
            case self.DSA | self.ECDSA | self.EDDSA:
                return 2
            case _:
                return 0


class HashAlgorithm(IntEnum):
    """OpenPGP hash algorithm identifiers."""

    MD5 = 1
    SHA1 = 2
    RIPEMD160 = 3
    SHA256 = 8
    SHA384 = 9
    SHA512 = 10
    SHA224 = 11

    @property
    def hashlib_name(self) -> str:
        return self.name.lower()

    @property
    def armor_name(self) -> str:
        """Name used in the clear-signed ``Hash:`` header."""
        return self.name

    @classmethod
    def from_armor_name(cls, name: str) -> Self:
        try:
            return cls[name.strip().upper().replace("-", "")]
        except KeyError:
            msg = f"Unknown hash algorithm name: {name}"
            raise ValueError(msg) from None


class CompressionAlgorithm(IntEnum):
    """OpenPGP compression algorithm identifiers."""

    UNCOMPRESSED = 0
    ZIP = 1
    ZLIB = 2
    BZIP2 = 3


class SignatureType(IntEnum):
    """OpenPGP signature types."""

    BINARY_DOCUMENT = 0x00
    CANONICAL_TEXT_DOCUMENT = 0x01
    STANDALONE = 0x02
    GENERIC_CERTIFICATION = 0x10
    PERSONA_CERTIFICATION = 0x11
    CASUAL_CERTIFICATION = 0x12
    POSITIVE_CERTIFICATION = 0x13
    SUBKEY_BINDING = 0x18
    PRIMARY_KEY_BINDING = 0x19
    DIRECT_KEY = 0x1F
    KEY_REVOCATION = 0x20
    SUBKEY_REVOCATION = 0x28
    CERTIFICATION_REVOCATION = 0x30
    TIMESTAMP = 0x40
    THIRD_PARTY_CONFIRMATION = 0x50


class LiteralFormat(IntEnum):
    """Content type tag of a literal data packet."""

    BINARY = ord("b")
    TEXT = ord("t")
    UTF8 = ord("u")
    MIME = ord("m")


class KeyFlag(IntFlag):
    """Key usage flags carried in key signature subpackets."""

    CERTIFY = 0x01
    SIGN = 0x02
    ENCRYPT_COMMUNICATIONS = 0x04
    ENCRYPT_STORAGE = 0x08
    SPLIT = 0x10
    AUTHENTICATION = 0x20
    MULTI_PERSON = 0x80


@dataclass(frozen=True, kw_only=True)
class SessionKey:
    """
    A symmetric session key for one message.

    Attributes:
        algorithm: The symmetric algorithm used.
        key_data: The raw key bytes.
    """

    algorithm: SymmetricAlgorithm
    key_data: bytes

    def __post_init__(self) -> None:
        """Validate key size matches algorithm."""
        expected = self.algorithm.key_size
        if not expected or (len(self.key_data) == expected):
            return
        msg = f"Key size mismatch: {self.algorithm.name} expects {expected} bytes, got {len(self.key_data)}"
        raise ValueError(msg)

    def __repr__(self) -> str:
        return f"SessionKey(algorithm={self.algorithm.name}, key_data=<{len(self.key_data)} bytes>)"

    @property
    def block_size(self) -> int:
        """Get the block size for this key's algorithm."""
        return self.algorithm.block_size

    @classmethod
    def generate(cls, algorithm: SymmetricAlgorithm) -> Self:
        """Create a random session key for ``algorithm``."""
        if not algorithm.key_size:
            msg = f"Cannot generate a session key for {algorithm.name}"
            raise ValueError(msg)
        return cls(algorithm=algorithm, key_data=secrets.token_bytes(algorithm.key_size))
