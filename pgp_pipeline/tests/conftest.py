import pgpy
import pytest
from pgpy.constants import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)

from pgp_pipeline.client import PGP
from pgp_pipeline.keys.keyring import EncryptionKeys

ALICE_PASSPHRASE = "alice-passphrase"


def _create_key(name: str, email: str, passphrase: str | None = None) -> pgpy.PGPKey:
    key = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    uid = pgpy.PGPUID.new(name, email=email)
    key.add_uid(
        uid,
        usage={KeyFlags.Certify, KeyFlags.Sign},
        hashes=[HashAlgorithm.SHA256],
        ciphers=[SymmetricKeyAlgorithm.AES256],
        compression=[CompressionAlgorithm.ZIP, CompressionAlgorithm.Uncompressed],
    )
    subkey = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    key.add_subkey(subkey, usage={KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage})
    if passphrase:
        key.protect(passphrase, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
    return key


@pytest.fixture(scope="session")
def alice_passphrase() -> str:
    return ALICE_PASSPHRASE


@pytest.fixture(scope="session")
def alice_key() -> pgpy.PGPKey:
    return _create_key("Alice", "alice@example.com", ALICE_PASSPHRASE)


@pytest.fixture(scope="session")
def bob_key() -> pgpy.PGPKey:
    return _create_key("Bob", "bob@example.com")


@pytest.fixture(scope="session")
def eve_key() -> pgpy.PGPKey:
    return _create_key("Eve", "eve@example.com")


@pytest.fixture(scope="session")
def alice_keys(alice_key: pgpy.PGPKey) -> EncryptionKeys:
    return EncryptionKeys(
        public_keys=str(alice_key.pubkey),
        private_key=str(alice_key),
        passphrase=ALICE_PASSPHRASE,
    )


@pytest.fixture(scope="session")
def bob_keys(bob_key: pgpy.PGPKey) -> EncryptionKeys:
    return EncryptionKeys(public_keys=str(bob_key.pubkey), private_key=str(bob_key))


@pytest.fixture(scope="session")
def eve_keys(eve_key: pgpy.PGPKey) -> EncryptionKeys:
    return EncryptionKeys(public_keys=str(eve_key.pubkey), private_key=str(eve_key))


@pytest.fixture(scope="session")
def alice_to_bob_keys(alice_key: pgpy.PGPKey, bob_key: pgpy.PGPKey) -> EncryptionKeys:
    """Alice signs, encrypts to Bob."""
    return EncryptionKeys(
        public_keys=[str(bob_key.pubkey)],
        private_key=str(alice_key),
        passphrase=ALICE_PASSPHRASE,
    )


@pytest.fixture(scope="session")
def bob_from_alice_keys(alice_key: pgpy.PGPKey, bob_key: pgpy.PGPKey) -> EncryptionKeys:
    """Bob decrypts, verifies Alice."""
    return EncryptionKeys(public_keys=[str(alice_key.pubkey)], private_key=str(bob_key))


@pytest.fixture
def alice_pgp(alice_keys: EncryptionKeys) -> PGP:
    return PGP(alice_keys)


@pytest.fixture
def bob_pgp(bob_keys: EncryptionKeys) -> PGP:
    return PGP(bob_keys)


@pytest.fixture
def eve_pgp(eve_keys: EncryptionKeys) -> PGP:
    return PGP(eve_keys)
