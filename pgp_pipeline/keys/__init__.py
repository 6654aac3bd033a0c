"""
Key rings and key selection.
"""

from pgp_pipeline.keys.keyring import EncryptionKeys
from pgp_pipeline.keys.selector import (
    find_encryption_key,
    find_master_key,
    find_public_key,
    find_secret_key,
    find_signing_key,
    find_verification_key,
)

__all__ = [
    "EncryptionKeys",
    "find_encryption_key",
    "find_master_key",
    "find_public_key",
    "find_secret_key",
    "find_signing_key",
    "find_verification_key",
]
