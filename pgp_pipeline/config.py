"""
PGP pipeline configuration.
"""

from dataclasses import dataclass

from pgp_pipeline.models.crypto import (
    CompressionAlgorithm,
    HashAlgorithm,
    LiteralFormat,
    PublicKeyAlgorithm,
    SignatureType,
    SymmetricAlgorithm,
)

_SUPPORTED_SYMMETRIC = frozenset(
    {
        SymmetricAlgorithm.AES_128,
        SymmetricAlgorithm.AES_192,
        SymmetricAlgorithm.AES_256,
        SymmetricAlgorithm.CAMELLIA_128,
        SymmetricAlgorithm.CAMELLIA_192,
        SymmetricAlgorithm.CAMELLIA_256,
    }
)
_MESSAGE_SIGNATURE_TYPES = frozenset(
    {SignatureType.BINARY_DOCUMENT, SignatureType.CANONICAL_TEXT_DOCUMENT}
)
_MIN_CHUNK_SIZE = 512


@dataclass(frozen=True, kw_only=True)
class PGPConfig:
    """
    Attributes:
        compression: Compression applied by the encode pipeline.
        symmetric_algorithm: Session key algorithm for encryption.
        hash_algorithm: Digest algorithm for signatures.
        signature_type: Type of message signatures (binary or canonical text).
        key_algorithm: Public key algorithm used by key generation.
        key_size: RSA key size in bits used by key generation.
        file_type: Content type tag of produced literal data packets.
        default_file_name: Literal data name used when none is given.
        version_header: Default value of the armor ``Version`` header.
        chunk_size: Streaming buffer size, also the partial body chunk size.
        max_plaintext_size: Maximum decoded plaintext bytes, None for no limit.
        max_nesting_depth: Maximum nesting of encrypted/compressed containers.
    """

    compression: CompressionAlgorithm = CompressionAlgorithm.UNCOMPRESSED
    symmetric_algorithm: SymmetricAlgorithm = SymmetricAlgorithm.AES_256
    hash_algorithm: HashAlgorithm = HashAlgorithm.SHA256
    signature_type: SignatureType = SignatureType.BINARY_DOCUMENT
    key_algorithm: PublicKeyAlgorithm = PublicKeyAlgorithm.RSA_ENCRYPT_OR_SIGN
    key_size: int = 2048
    file_type: LiteralFormat = LiteralFormat.BINARY
    default_file_name: str = "name"
    version_header: str = "pgp-pipeline v0.1.0"
    chunk_size: int = 0x10000
    max_plaintext_size: int | None = None
    max_nesting_depth: int = 8

    def __post_init__(self) -> None:
        if self.symmetric_algorithm not in _SUPPORTED_SYMMETRIC:
            msg = f"Unsupported symmetric algorithm: {self.symmetric_algorithm.name}"
            raise ValueError(msg)
        if self.signature_type not in _MESSAGE_SIGNATURE_TYPES:
            msg = f"signature_type must be a document signature type, got {self.signature_type.name}"
            raise ValueError(msg)
        if self.hash_algorithm in (HashAlgorithm.MD5, HashAlgorithm.RIPEMD160):
            msg = f"Refusing to sign with weak hash algorithm {self.hash_algorithm.name}"
            raise ValueError(msg)
        if self.file_type == LiteralFormat.MIME:
            msg = "file_type must be BINARY, TEXT or UTF8"
            raise ValueError(msg)
        if self.key_size < 1024:
            msg = "key_size must be at least 1024"
            raise ValueError(msg)
        if self.chunk_size < _MIN_CHUNK_SIZE or self.chunk_size & (self.chunk_size - 1):
            msg = f"chunk_size must be a power of two of at least {_MIN_CHUNK_SIZE}"
            raise ValueError(msg)
        if self.chunk_size > 1 << 30:
            msg = "chunk_size must not exceed 1 GiB"
            raise ValueError(msg)
        if self.max_plaintext_size is not None and self.max_plaintext_size <= 0:
            msg = "max_plaintext_size must be positive"
            raise ValueError(msg)
        if self.max_nesting_depth <= 0:
            msg = "max_nesting_depth must be positive"
            raise ValueError(msg)
        if len(self.default_file_name.encode("utf-8")) > 255:
            msg = "default_file_name must encode to at most 255 bytes"
            raise ValueError(msg)
