from pathlib import Path

import pgpy
import pytest

from pgp_pipeline.crypto.passphrase import Passphrase
from pgp_pipeline.exceptions import InvalidArgumentError, KeyDecryptionError, KeyLoadError
from pgp_pipeline.keys.keyring import EncryptionKeys, read_key_source


def _key_id(key: pgpy.PGPKey) -> str:
    return str(key.fingerprint.keyid).upper()


def _subkey_id(key: pgpy.PGPKey) -> str:
    return str(next(iter(key.subkeys.values())).fingerprint.keyid).upper()


def test_read_key_source_from_path(tmp_path: Path, bob_key: pgpy.PGPKey) -> None:
    path = tmp_path / "bob.asc"
    path.write_text(str(bob_key.pubkey))

    assert read_key_source(path) == path.read_bytes()


def test_read_key_source_rejects_missing_file(tmp_path: Path) -> None:
    with pytest.raises(InvalidArgumentError, match="Key file not found"):
        read_key_source(tmp_path / "missing.asc")


def test_read_key_source_rejects_empty_material() -> None:
    with pytest.raises(InvalidArgumentError, match="empty"):
        read_key_source("   ")


def test_read_key_source_rejects_other_types() -> None:
    with pytest.raises(InvalidArgumentError, match="Unsupported key source type"):
        read_key_source(42)  # type: ignore[arg-type]


def test_encryption_keys_require_material() -> None:
    with pytest.raises(InvalidArgumentError, match="Encryption keys not supplied"):
        EncryptionKeys()


def test_encryption_keys_select_subkey_for_encryption(bob_key: pgpy.PGPKey) -> None:
    keys = EncryptionKeys(public_keys=str(bob_key.pubkey))

    assert [key.key_id for key in keys.encrypt_keys] == [_subkey_id(bob_key)]
    assert [key.key_id for key in keys.verification_keys] == [_key_id(bob_key)]
    assert keys.master_key.key_id == _key_id(bob_key)


def test_encryption_keys_one_encrypt_key_per_ring(
    alice_key: pgpy.PGPKey, bob_key: pgpy.PGPKey, tmp_path: Path
) -> None:
    path = tmp_path / "alice.asc"
    path.write_text(str(alice_key.pubkey))

    keys = EncryptionKeys(public_keys=[path, str(bob_key.pubkey).encode()])

    assert len(keys.public_key_rings) == 2
    assert [key.key_id for key in keys.encrypt_keys] == [_subkey_id(alice_key), _subkey_id(bob_key)]
    assert keys.master_key.key_id == _key_id(alice_key)


def test_encryption_keys_preferred_encryption_key(bob_key: pgpy.PGPKey) -> None:
    keys = EncryptionKeys(
        public_keys=str(bob_key.pubkey),
        preferred_encryption_key_ids=[_key_id(bob_key).lower()],
    )

    assert [key.key_id for key in keys.encrypt_keys] == [_key_id(bob_key)]


def test_encryption_keys_private_key_only(bob_key: pgpy.PGPKey) -> None:
    keys = EncryptionKeys(private_key=str(bob_key))

    assert keys.public_key_rings == ()
    assert keys.master_key is None
    assert keys.signing_secret_key.key_id == _key_id(bob_key)
    assert keys.signing_user_id == "Bob <bob@example.com>"


def test_encryption_keys_signing_requires_private_key(bob_key: pgpy.PGPKey) -> None:
    keys = EncryptionKeys(public_keys=str(bob_key.pubkey))

    with pytest.raises(InvalidArgumentError, match="Private key not supplied"):
        keys.signing_secret_key


def test_encryption_keys_wrong_passphrase_fails_early(alice_key: pgpy.PGPKey) -> None:
    with pytest.raises(KeyDecryptionError):
        EncryptionKeys(private_key=str(alice_key), passphrase="wrong")


def test_encryption_keys_accept_passphrase_object(
    alice_key: pgpy.PGPKey, alice_passphrase: str
) -> None:
    keys = EncryptionKeys(private_key=str(alice_key), passphrase=Passphrase(alice_passphrase))

    with keys.unlocked(keys.signing_secret_key) as secret_key:
        assert secret_key.handle.is_unlocked


def test_encryption_keys_reject_public_key_as_private(bob_key: pgpy.PGPKey) -> None:
    with pytest.raises(KeyLoadError):
        EncryptionKeys(private_key=str(bob_key.pubkey))


def test_encryption_keys_find_keys(alice_keys: EncryptionKeys, alice_key: pgpy.PGPKey) -> None:
    subkey_id = _subkey_id(alice_key)

    assert alice_keys.find_secret_key(subkey_id).key_id == subkey_id
    assert alice_keys.find_public_key(subkey_id.lower()).key_id == subkey_id
    assert alice_keys.find_verification_key(_key_id(alice_key)).key_id == _key_id(alice_key)
    assert alice_keys.find_secret_key("FFFFFFFFFFFFFFFF") is None
