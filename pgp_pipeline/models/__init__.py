"""
Domain models for the PGP pipeline.

These are immutable (frozen) dataclasses and enums describing keys, algorithms
and message structure.
"""

from pgp_pipeline.models.crypto import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyFlag,
    LiteralFormat,
    PublicKeyAlgorithm,
    SessionKey,
    SignatureType,
    SymmetricAlgorithm,
)
from pgp_pipeline.models.keys import (
    KeySignature,
    PublicKey,
    PublicKeyRing,
    SecretKey,
    SecretKeyRing,
)
from pgp_pipeline.models.message import (
    CompressedData,
    EncryptedDataList,
    EncryptedSessionKey,
    InspectResult,
    LiteralData,
    OnePassSignature,
    OnePassSignatureList,
    PGPObject,
    Signature,
    SignatureList,
    VerificationResult,
)

__all__ = [
    # Crypto
    "CompressionAlgorithm",
    "HashAlgorithm",
    "KeyFlag",
    "LiteralFormat",
    "PublicKeyAlgorithm",
    "SessionKey",
    "SignatureType",
    "SymmetricAlgorithm",
    # Keys
    "KeySignature",
    "PublicKey",
    "PublicKeyRing",
    "SecretKey",
    "SecretKeyRing",
    # Message
    "CompressedData",
    "EncryptedDataList",
    "EncryptedSessionKey",
    "InspectResult",
    "LiteralData",
    "OnePassSignature",
    "OnePassSignatureList",
    "PGPObject",
    "Signature",
    "SignatureList",
    "VerificationResult",
]
