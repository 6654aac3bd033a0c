"""
PGP Pipeline.

OpenPGP message processing: encrypt, sign, decrypt, verify, clear-sign and
inspect messages, with score-based key selection over key rings.

Example:
    ```python
    from pathlib import Path

    from pgp_pipeline import PGP, EncryptionKeys

    keys = EncryptionKeys(
        public_keys=[Path("recipient.asc")],
        private_key=Path("me.asc"),
        passphrase="secret",
    )
    pgp = PGP(keys)

    encrypted = pgp.encrypt_and_sign(b"hello")
    assert pgp.decrypt_and_verify(encrypted) == b"hello"

    # Files and streams
    pgp.encrypt_file("report.pdf", "report.pdf.pgp")
    await pgp.decrypt_file_async("report.pdf.pgp", "report.pdf")
    ```
"""

from pgp_pipeline.client import PGP
from pgp_pipeline.config import PGPConfig
from pgp_pipeline.crypto.passphrase import Passphrase
from pgp_pipeline.exceptions import (
    CryptoError,
    DecryptionError,
    IntegrityError,
    InvalidArgumentError,
    KeyDecryptionError,
    KeyLoadError,
    KeyMaterialError,
    KeyNotFoundError,
    KeySelectionError,
    MessageFormatError,
    PGPPipelineError,
    SecurityError,
    SessionKeyError,
    SignatureVerificationError,
    SizeLimitError,
    UnsupportedAlgorithmError,
)
from pgp_pipeline.keys.keyring import EncryptionKeys
from pgp_pipeline.models.crypto import (
    CompressionAlgorithm,
    HashAlgorithm,
    LiteralFormat,
    PublicKeyAlgorithm,
    SignatureType,
    SymmetricAlgorithm,
)
from pgp_pipeline.models.message import InspectResult, VerificationResult

__version__ = "0.1.0"

__all__ = [
    # Main entry points
    "PGP",
    "PGPConfig",
    "EncryptionKeys",
    "Passphrase",
    # Models
    "CompressionAlgorithm",
    "HashAlgorithm",
    "LiteralFormat",
    "PublicKeyAlgorithm",
    "SignatureType",
    "SymmetricAlgorithm",
    "InspectResult",
    "VerificationResult",
    # Exceptions
    "PGPPipelineError",
    "InvalidArgumentError",
    "KeyMaterialError",
    "KeyLoadError",
    "KeyDecryptionError",
    "KeySelectionError",
    "MessageFormatError",
    "UnsupportedAlgorithmError",
    "SizeLimitError",
    "CryptoError",
    "SessionKeyError",
    "DecryptionError",
    "SecurityError",
    "IntegrityError",
    "SignatureVerificationError",
    "KeyNotFoundError",
]
