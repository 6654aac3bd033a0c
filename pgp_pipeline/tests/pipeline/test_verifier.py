import io

import pgpy
import pytest

from pgp_pipeline.config import PGPConfig
from pgp_pipeline.exceptions import InvalidArgumentError, MessageFormatError
from pgp_pipeline.keys.keyring import EncryptionKeys
from pgp_pipeline.models.crypto import CompressionAlgorithm
from pgp_pipeline.pipeline.encoder import MessageEncoder
from pgp_pipeline.pipeline.verifier import MessageVerifier

CONTENT = b"hello world, this content is signed"


def _encode(keys: EncryptionKeys, config: PGPConfig | None = None, **options: bool) -> bytes:
    sink = io.BytesIO()
    MessageEncoder(keys, config or PGPConfig()).encode(
        io.BytesIO(CONTENT), sink, armor=False, **options
    )
    return sink.getvalue()


def _verify(keys: EncryptionKeys, message: bytes, sink: io.BytesIO | None = None, **options: bool) -> bool:
    return MessageVerifier(keys, PGPConfig()).verify(io.BytesIO(message), sink, **options)


@pytest.fixture(scope="module")
def signed_message(alice_keys: EncryptionKeys) -> bytes:
    return _encode(alice_keys, encrypt=False, sign=True)


def test_verify_with_own_keys(alice_keys: EncryptionKeys, signed_message: bytes) -> None:
    assert _verify(alice_keys, signed_message) is True


def test_verify_with_signer_public_key(
    bob_from_alice_keys: EncryptionKeys, signed_message: bytes
) -> None:
    assert _verify(bob_from_alice_keys, signed_message) is True


def test_verify_with_unknown_signer(eve_keys: EncryptionKeys, signed_message: bytes) -> None:
    assert _verify(eve_keys, signed_message) is False


def test_verify_streams_content_to_sink(alice_keys: EncryptionKeys, signed_message: bytes) -> None:
    sink = io.BytesIO()

    assert _verify(alice_keys, signed_message, sink)
    assert sink.getvalue() == CONTENT


def test_verify_detects_modified_content(alice_keys: EncryptionKeys, signed_message: bytes) -> None:
    tampered = signed_message.replace(b"hello", b"jello")

    assert tampered != signed_message
    assert _verify(alice_keys, tampered) is False


def test_verify_compressed_message(alice_keys: EncryptionKeys) -> None:
    config = PGPConfig(compression=CompressionAlgorithm.ZIP)
    message = _encode(alice_keys, config, encrypt=False, sign=True)
    sink = io.BytesIO()

    assert _verify(alice_keys, message, sink) is True
    assert sink.getvalue() == CONTENT


def test_verify_compressed_unsigned_message(alice_keys: EncryptionKeys) -> None:
    config = PGPConfig(compression=CompressionAlgorithm.ZIP)
    message = _encode(alice_keys, config, encrypt=False, sign=False)

    with pytest.raises(MessageFormatError, match="File was not signed"):
        _verify(alice_keys, message)


def test_verify_plain_literal_is_rejected(alice_keys: EncryptionKeys) -> None:
    message = _encode(alice_keys, encrypt=False, sign=False)

    with pytest.raises(MessageFormatError, match="simple signed file"):
        _verify(alice_keys, message)


def test_verify_encrypted_message_can_be_refused(bob_keys: EncryptionKeys) -> None:
    message = _encode(bob_keys, encrypt=True, sign=False)

    with pytest.raises(InvalidArgumentError, match="Decrypt the input first"):
        _verify(bob_keys, message, throw_if_encrypted=True)


def test_verify_encrypted_message_checks_recipients(
    bob_keys: EncryptionKeys, eve_keys: EncryptionKeys
) -> None:
    message = _encode(bob_keys, encrypt=True, sign=False)

    assert _verify(bob_keys, message) is True
    assert _verify(eve_keys, message) is False


def test_verify_message_signed_by_pgpy(
    alice_key: pgpy.PGPKey, alice_passphrase: str, alice_keys: EncryptionKeys
) -> None:
    message = pgpy.PGPMessage.new(b"\x00\x01signed by pgpy\xfe")
    with alice_key.unlock(alice_passphrase):
        message |= alice_key.sign(message)
    sink = io.BytesIO()

    assert _verify(alice_keys, bytes(message), sink) is True
    assert sink.getvalue() == b"\x00\x01signed by pgpy\xfe"
