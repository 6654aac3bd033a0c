import pytest

from pgp_pipeline.crypto.symmetric import MDC_PACKET_SIZE, PacketDecryptor, PacketEncryptor
from pgp_pipeline.exceptions import DecryptionError, IntegrityError, UnsupportedAlgorithmError
from pgp_pipeline.models.crypto import SessionKey, SymmetricAlgorithm


def _create_session_key(algorithm: SymmetricAlgorithm = SymmetricAlgorithm.AES_256) -> SessionKey:
    return SessionKey(algorithm=algorithm, key_data=bytes(range(algorithm.key_size)))


def _encrypt(session_key: SessionKey, data: bytes, *, integrity_protected: bool = True) -> bytes:
    encryptor = PacketEncryptor(session_key, integrity_protected=integrity_protected)
    return encryptor.start() + encryptor.update(data) + encryptor.finalize()


def _decrypt(
    session_key: SessionKey, body: bytes, *, integrity_protected: bool = True, step: int = 7
) -> tuple[bytes, PacketDecryptor]:
    decryptor = PacketDecryptor(session_key, integrity_protected=integrity_protected)
    plaintext = b"".join(
        decryptor.update(body[offset : offset + step]) for offset in range(0, len(body), step)
    )
    plaintext += decryptor.finalize()
    return plaintext, decryptor


@pytest.mark.parametrize(
    "algorithm",
    [
        SymmetricAlgorithm.AES_128,
        SymmetricAlgorithm.AES_192,
        SymmetricAlgorithm.AES_256,
        SymmetricAlgorithm.CAMELLIA_256,
    ],
)
def test_integrity_protected_decrypt_returns_plaintext(algorithm: SymmetricAlgorithm) -> None:
    session_key = _create_session_key(algorithm)
    data = b"Hello, World! " * 20

    body = _encrypt(session_key, data)
    plaintext, decryptor = _decrypt(session_key, body)

    assert plaintext == data
    decryptor.verify_integrity()


def test_integrity_protected_body_layout() -> None:
    session_key = _create_session_key()
    data = b"x" * 100

    body = _encrypt(session_key, data)

    assert body[0] == 1
    assert len(body) == 1 + 18 + len(data) + MDC_PACKET_SIZE


def test_unprotected_decrypt_returns_plaintext() -> None:
    session_key = _create_session_key(SymmetricAlgorithm.AES_128)
    data = b"legacy encrypted data"

    body = _encrypt(session_key, data, integrity_protected=False)
    plaintext, decryptor = _decrypt(session_key, body, integrity_protected=False)

    assert plaintext == data
    decryptor.verify_integrity()


def test_decrypt_detects_modified_ciphertext() -> None:
    session_key = _create_session_key()
    body = bytearray(_encrypt(session_key, b"x" * 100))
    body[60] ^= 0x01

    _, decryptor = _decrypt(session_key, bytes(body))

    with pytest.raises(IntegrityError, match="integrity check"):
        decryptor.verify_integrity()


def test_decrypt_detects_truncated_ciphertext() -> None:
    session_key = _create_session_key()
    body = _encrypt(session_key, b"x" * 100)

    _, decryptor = _decrypt(session_key, body[:-5])

    with pytest.raises(IntegrityError):
        decryptor.verify_integrity()


def test_verify_integrity_before_end_raises() -> None:
    session_key = _create_session_key()
    decryptor = PacketDecryptor(session_key)
    decryptor.update(_encrypt(session_key, b"data"))

    with pytest.raises(IntegrityError, match="before the end"):
        decryptor.verify_integrity()


def test_decrypt_rejects_too_short_data() -> None:
    decryptor = PacketDecryptor(_create_session_key())
    decryptor.update(b"\x01\x02\x03")

    with pytest.raises(DecryptionError, match="too short"):
        decryptor.finalize()


def test_decrypt_rejects_unknown_seipd_version() -> None:
    session_key = _create_session_key()
    body = b"\x02" + _encrypt(session_key, b"data")[1:]

    with pytest.raises(DecryptionError, match="SEIPD version"):
        _decrypt(session_key, body)


def test_encrypt_rejects_unsupported_algorithm() -> None:
    encryptor = PacketEncryptor(_create_session_key(SymmetricAlgorithm.TWOFISH))

    with pytest.raises(UnsupportedAlgorithmError, match="TWOFISH"):
        encryptor.start()


def test_update_before_start_raises() -> None:
    encryptor = PacketEncryptor(_create_session_key())

    with pytest.raises(RuntimeError, match="start"):
        encryptor.update(b"data")
