"""
PGP pipeline exception hierarchy.

All exceptions inherit from PGPPipelineError for easy catching. Security
failures (SecurityError) are kept apart from structural ones
(MessageFormatError) so callers can tell a malformed message from one that
failed cryptographic validation.
"""

from typing import Any


class PGPPipelineError(Exception):
    """Base exception for all pgp_pipeline errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class InvalidArgumentError(PGPPipelineError, ValueError):
    """A required argument, file or key is missing or unusable."""


class KeyMaterialError(PGPPipelineError):
    """Key material could not be used."""


class KeyLoadError(KeyMaterialError):
    """Key material could not be parsed."""


class KeyDecryptionError(KeyMaterialError):
    """Failed to unlock a secret key."""

    def __init__(self, message: str, *, key_id: str | None = None) -> None:
        super().__init__(message, key_id=key_id)
        self.key_id = key_id


class KeySelectionError(KeyMaterialError):
    """No key in the key ring qualifies for the requested role."""


class MessageFormatError(PGPPipelineError):
    """The message is not a well-formed packet sequence."""


class UnsupportedAlgorithmError(MessageFormatError):
    """Algorithm is not supported."""

    def __init__(self, message: str, *, algorithm: int | str | None = None) -> None:
        super().__init__(message, algorithm=algorithm)
        self.algorithm = algorithm


class SizeLimitError(MessageFormatError):
    """Message exceeds a configured size or nesting limit."""

    def __init__(self, message: str, *, limit: int) -> None:
        super().__init__(message, limit=limit)
        self.limit = limit


class CryptoError(PGPPipelineError):
    """Cryptographic operation failed."""


class SessionKeyError(CryptoError):
    """Failed to wrap, unwrap or use a session key."""


class DecryptionError(CryptoError):
    """Failed to decrypt a symmetrically encrypted packet."""


class SecurityError(PGPPipelineError):
    """Message failed cryptographic validation."""


class IntegrityError(SecurityError):
    """Modification detection code did not match."""


class SignatureVerificationError(SecurityError):
    """Signature could not be verified."""

    def __init__(self, message: str, *, key_id: str | None = None) -> None:
        super().__init__(message, key_id=key_id)
        self.key_id = key_id


class KeyNotFoundError(SecurityError):
    """No supplied key matches the message."""

    def __init__(self, message: str, *, key_ids: tuple[str, ...] = ()) -> None:
        super().__init__(message, key_ids=key_ids)
        self.key_ids = key_ids
