import io
from datetime import UTC, datetime

import pytest

from pgp_pipeline.config import PGPConfig
from pgp_pipeline.exceptions import KeyNotFoundError, MessageFormatError
from pgp_pipeline.keys.keyring import EncryptionKeys
from pgp_pipeline.models.crypto import CompressionAlgorithm, SymmetricAlgorithm
from pgp_pipeline.pipeline.encoder import MessageEncoder
from pgp_pipeline.pipeline.inspector import MessageInspector

MODIFIED = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)


def _encode(keys: EncryptionKeys, config: PGPConfig | None = None, **options: object) -> bytes:
    sink = io.BytesIO()
    MessageEncoder(keys, config or PGPConfig()).encode(
        io.BytesIO(b"inspected content"),
        sink,
        name="report.txt",
        modification_time=MODIFIED,
        **options,
    )
    return sink.getvalue()


def test_inspect_encrypted_signed_message(
    alice_to_bob_keys: EncryptionKeys, bob_from_alice_keys: EncryptionKeys
) -> None:
    message = _encode(
        alice_to_bob_keys,
        encrypt=True,
        sign=True,
        headers={"Version": "custom", "Comment": "hi"},
    )

    result = MessageInspector(bob_from_alice_keys, PGPConfig()).inspect(io.BytesIO(message))

    assert result.is_encrypted
    assert result.is_signed
    assert not result.is_compressed
    assert result.is_integrity_protected
    assert result.is_armored
    assert result.symmetric_algorithm == SymmetricAlgorithm.AES_256
    assert result.file_name == "report.txt"
    assert result.modification_time == MODIFIED
    assert list(result.message_headers.items()) == [("Version", "custom"), ("Comment", "hi")]
    assert result.version == "custom"
    assert result.comment == "hi"


def test_inspect_binary_compressed_message(bob_keys: EncryptionKeys) -> None:
    config = PGPConfig(compression=CompressionAlgorithm.ZLIB)
    message = _encode(bob_keys, config, encrypt=True, sign=False, armor=False)

    result = MessageInspector(bob_keys, PGPConfig()).inspect(io.BytesIO(message))

    assert result.is_encrypted
    assert result.is_compressed
    assert not result.is_signed
    assert not result.is_armored
    assert result.message_headers == {}
    assert result.version is None


def test_inspect_without_integrity_protection(bob_keys: EncryptionKeys) -> None:
    message = _encode(bob_keys, encrypt=True, sign=False, with_integrity_check=False)

    result = MessageInspector(bob_keys, PGPConfig()).inspect(io.BytesIO(message))

    assert result.is_encrypted
    assert not result.is_integrity_protected


def test_inspect_signed_message_without_keys(alice_keys: EncryptionKeys) -> None:
    message = _encode(alice_keys, encrypt=False, sign=True)

    result = MessageInspector(None, PGPConfig()).inspect(io.BytesIO(message))

    assert not result.is_encrypted
    assert result.is_signed
    assert result.symmetric_algorithm == SymmetricAlgorithm.PLAINTEXT
    assert result.file_name == "report.txt"


def test_inspect_encrypted_message_for_someone_else(
    bob_keys: EncryptionKeys, eve_keys: EncryptionKeys
) -> None:
    message = _encode(bob_keys, encrypt=True, sign=False)

    with pytest.raises(KeyNotFoundError):
        MessageInspector(eve_keys, PGPConfig()).inspect(io.BytesIO(message))


def test_inspect_rejects_non_pgp_input() -> None:
    with pytest.raises(MessageFormatError):
        MessageInspector(None, PGPConfig()).inspect(io.BytesIO(b"not a message"))


def test_get_recipients(alice_to_bob_keys: EncryptionKeys) -> None:
    message = _encode(alice_to_bob_keys, encrypt=True, sign=True)

    recipients = MessageInspector.get_recipients(io.BytesIO(message))

    assert recipients == tuple(key.key_id for key in alice_to_bob_keys.encrypt_keys)
    assert len(recipients) == 1


def test_get_recipients_of_unencrypted_message(alice_keys: EncryptionKeys) -> None:
    message = _encode(alice_keys, encrypt=False, sign=True)

    assert MessageInspector.get_recipients(io.BytesIO(message)) == ()
