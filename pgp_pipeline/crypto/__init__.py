"""
Cryptographic layer of the PGP pipeline.

This module provides:
- The primitive library boundary (PGPBackend) and its PGPy implementation
- OpenPGP CFB encryption with modification detection
- Streaming signature generation and verification
- Passphrase handling
"""

from pgp_pipeline.crypto.passphrase import Passphrase
from pgp_pipeline.crypto.pgpy_backend import PgpyBackend
from pgp_pipeline.crypto.protocol import PGPBackend

__all__ = [
    "Passphrase",
    "PGPBackend",
    "PgpyBackend",
]
