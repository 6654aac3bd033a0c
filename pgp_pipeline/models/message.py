"""
Message structure models.

A decoded message is walked as a sequence of the objects below. Container
objects (encrypted and compressed data) expose their still-unread body as a
binary stream; the walk ends at LiteralData.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO

from pgp_pipeline.models.crypto import (
    CompressionAlgorithm,
    HashAlgorithm,
    LiteralFormat,
    PublicKeyAlgorithm,
    SignatureType,
    SymmetricAlgorithm,
)


@dataclass(frozen=True, kw_only=True)
class EncryptedSessionKey:
    """
    One public-key encrypted session key entry (PKESK).

    Attributes:
        key_id: Recipient key id, upper-case hex.
        algorithm: Recipient public key algorithm.
        packet: The complete packet, handed to the backend for unwrapping.
    """

    key_id: str
    algorithm: PublicKeyAlgorithm
    packet: bytes = field(repr=False)


@dataclass(frozen=True, kw_only=True)
class EncryptedDataList:
    """Session key entries followed by the symmetrically encrypted body."""

    session_keys: tuple[EncryptedSessionKey, ...]
    integrity_protected: bool
    body: BinaryIO = field(repr=False)

    @property
    def key_ids(self) -> tuple[str, ...]:
        return tuple(entry.key_id for entry in self.session_keys)


@dataclass(frozen=True, kw_only=True)
class CompressedData:
    algorithm: CompressionAlgorithm
    body: BinaryIO = field(repr=False)


@dataclass(frozen=True, kw_only=True)
class OnePassSignature:
    """
    One-pass signature announcement preceding the signed data.

    Attributes:
        signature_type: Type of the trailing signature.
        hash_algorithm: Digest algorithm to run over the data.
        key_algorithm: Signer's public key algorithm.
        key_id: Signer key id, upper-case hex.
        is_last: Whether no further one-pass signature follows.
    """

    signature_type: SignatureType
    hash_algorithm: HashAlgorithm
    key_algorithm: PublicKeyAlgorithm
    key_id: str
    is_last: bool = True


@dataclass(frozen=True, kw_only=True)
class Signature:
    """
    A parsed signature packet (version 3 or 4).

    Attributes:
        version: Packet version.
        signature_type: Signature type.
        key_algorithm: Signer's public key algorithm.
        hash_algorithm: Digest algorithm.
        hashed_data: Bytes appended to the signed data before hashing,
            without the version 4 trailer.
        hash_prefix: Left 16 bits of the digest.
        values: Signature MPIs.
        issuer_key_id: Issuer key id, if the packet names one.
        creation_time: Signature creation time.
        signer_user_id: Signer's user id subpacket, if present.
    """

    version: int
    signature_type: SignatureType
    key_algorithm: PublicKeyAlgorithm
    hash_algorithm: HashAlgorithm
    hashed_data: bytes = field(repr=False)
    hash_prefix: bytes
    values: tuple[int, ...] = field(repr=False)
    issuer_key_id: str | None = None
    creation_time: datetime | None = None
    signer_user_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class OnePassSignatureList:
    signatures: tuple[OnePassSignature, ...]

    def __iter__(self) -> Iterator[OnePassSignature]:
        return iter(self.signatures)


@dataclass(frozen=True, kw_only=True)
class SignatureList:
    signatures: tuple[Signature, ...]

    def __iter__(self) -> Iterator[Signature]:
        return iter(self.signatures)


@dataclass(frozen=True, kw_only=True)
class LiteralData:
    """
    Terminal plaintext packet.

    Attributes:
        format: Content type tag.
        file_name: Declared file name.
        modification_time: Declared modification time, None when zero.
        body: Stream over the content bytes.
    """

    format: LiteralFormat
    file_name: str
    modification_time: datetime | None
    body: BinaryIO = field(repr=False)


PGPObject = (
    EncryptedDataList | CompressedData | OnePassSignatureList | SignatureList | LiteralData
)


@dataclass(frozen=True, kw_only=True)
class InspectResult:
    """
    Classification of a message.

    Attributes:
        is_encrypted: Message carries an encrypted data layer.
        is_signed: Message carries one-pass or in-stream signatures.
        is_compressed: Message carries a compressed data layer.
        is_integrity_protected: Encrypted layer carries a modification detection code.
        is_armored: Message was ASCII armored.
        symmetric_algorithm: Session key algorithm, PLAINTEXT when not encrypted.
        file_name: Literal data file name.
        modification_time: Literal data modification time.
        message_headers: Armor headers in message order.
    """

    is_encrypted: bool
    is_signed: bool
    is_compressed: bool
    is_integrity_protected: bool
    is_armored: bool
    symmetric_algorithm: SymmetricAlgorithm
    file_name: str
    modification_time: datetime | None
    message_headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def version(self) -> str | None:
        return self.message_headers.get("Version")

    @property
    def comment(self) -> str | None:
        return self.message_headers.get("Comment")


@dataclass(frozen=True, kw_only=True)
class VerificationResult:
    """Verification outcome paired with the recovered content."""

    is_verified: bool
    content: bytes = b""

    def __bool__(self) -> bool:
        return self.is_verified

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")
