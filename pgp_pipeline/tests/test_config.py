import dataclasses

import pytest

from pgp_pipeline.config import PGPConfig
from pgp_pipeline.models.crypto import (
    CompressionAlgorithm,
    HashAlgorithm,
    LiteralFormat,
    SignatureType,
    SymmetricAlgorithm,
)


def test_config_defaults() -> None:
    config = PGPConfig()

    assert config.compression == CompressionAlgorithm.UNCOMPRESSED
    assert config.symmetric_algorithm == SymmetricAlgorithm.AES_256
    assert config.hash_algorithm == HashAlgorithm.SHA256
    assert config.signature_type == SignatureType.BINARY_DOCUMENT
    assert config.file_type == LiteralFormat.BINARY
    assert config.default_file_name == "name"
    assert config.max_plaintext_size is None


def test_config_is_frozen() -> None:
    config = PGPConfig()

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.chunk_size = 1024  # type: ignore[misc]


def test_config_rejects_unsupported_symmetric_algorithm() -> None:
    with pytest.raises(ValueError, match="Unsupported symmetric algorithm"):
        PGPConfig(symmetric_algorithm=SymmetricAlgorithm.CAST5)


def test_config_rejects_non_document_signature_type() -> None:
    with pytest.raises(ValueError, match="signature_type"):
        PGPConfig(signature_type=SignatureType.POSITIVE_CERTIFICATION)


def test_config_rejects_weak_hash() -> None:
    with pytest.raises(ValueError, match="weak hash"):
        PGPConfig(hash_algorithm=HashAlgorithm.MD5)


@pytest.mark.parametrize("chunk_size", [256, 1000, 3 << 20])
def test_config_rejects_bad_chunk_size(chunk_size: int) -> None:
    with pytest.raises(ValueError, match="chunk_size"):
        PGPConfig(chunk_size=chunk_size)


def test_config_rejects_non_positive_limits() -> None:
    with pytest.raises(ValueError, match="max_plaintext_size"):
        PGPConfig(max_plaintext_size=0)
    with pytest.raises(ValueError, match="max_nesting_depth"):
        PGPConfig(max_nesting_depth=0)


def test_config_rejects_mime_file_type() -> None:
    with pytest.raises(ValueError, match="file_type"):
        PGPConfig(file_type=LiteralFormat.MIME)
