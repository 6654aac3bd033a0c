import pytest

from pgp_pipeline.exceptions import KeySelectionError
from pgp_pipeline.keys.selector import (
    encryption_score,
    find_encryption_key,
    find_master_key,
    find_public_key,
    find_ring_encryption_key,
    find_secret_key,
    find_signing_key,
    find_verification_key,
    signing_score,
    verification_score,
)
from pgp_pipeline.models.crypto import KeyFlag, PublicKeyAlgorithm
from pgp_pipeline.models.keys import (
    KeySignature,
    PublicKey,
    PublicKeyRing,
    SecretKey,
    SecretKeyRing,
)

MASTER_ID = "1111111111111111"
SUBKEY_ID = "2222222222222222"


def _create_key(
    key_id: str,
    algorithm: PublicKeyAlgorithm,
    *,
    is_master: bool,
    flags: KeyFlag = KeyFlag(0),
    signer: str = MASTER_ID,
) -> PublicKey:
    return PublicKey(
        key_id=key_id,
        fingerprint=key_id * 2 + "00000000",
        algorithm=algorithm,
        is_master=is_master,
        signatures=(KeySignature(signer_key_id=signer, key_flags=flags),),
    )


def _dsa_elgamal_ring() -> PublicKeyRing:
    master = _create_key(MASTER_ID, PublicKeyAlgorithm.DSA, is_master=True, flags=KeyFlag.SIGN | KeyFlag.CERTIFY)
    subkey = _create_key(
        SUBKEY_ID,
        PublicKeyAlgorithm.ELGAMAL_ENCRYPT_ONLY,
        is_master=False,
        flags=KeyFlag.ENCRYPT_COMMUNICATIONS | KeyFlag.ENCRYPT_STORAGE,
    )
    return PublicKeyRing(keys=(master, subkey))


def test_encryption_score_components() -> None:
    master, subkey = _dsa_elgamal_ring().keys

    assert encryption_score(master) == 1
    assert encryption_score(subkey) == 4


def test_encryption_score_of_flagged_encrypting_master() -> None:
    master = _create_key(
        MASTER_ID,
        PublicKeyAlgorithm.RSA_ENCRYPT_OR_SIGN,
        is_master=True,
        flags=KeyFlag.ENCRYPT_COMMUNICATIONS | KeyFlag.ENCRYPT_STORAGE,
    )

    assert encryption_score(master) == 5


def test_find_encryption_key_prefers_flagged_subkey() -> None:
    assert find_encryption_key(_dsa_elgamal_ring()).key_id == SUBKEY_ID


def test_find_encryption_key_falls_back_to_unflagged_subkey() -> None:
    master = _create_key(MASTER_ID, PublicKeyAlgorithm.DSA, is_master=True)
    subkey = _create_key(SUBKEY_ID, PublicKeyAlgorithm.ELGAMAL_ENCRYPT_ONLY, is_master=False)

    assert find_encryption_key(PublicKeyRing(keys=(master, subkey))).key_id == SUBKEY_ID


def test_find_encryption_key_prefers_rsa_master_over_unflagged_subkey() -> None:
    master = _create_key(MASTER_ID, PublicKeyAlgorithm.RSA_ENCRYPT_OR_SIGN, is_master=True)
    subkey = _create_key(SUBKEY_ID, PublicKeyAlgorithm.ELGAMAL_ENCRYPT_ONLY, is_master=False)

    assert find_encryption_key(PublicKeyRing(keys=(master, subkey))).key_id == MASTER_ID


def test_find_encryption_key_raises_without_candidates() -> None:
    master = _create_key(MASTER_ID, PublicKeyAlgorithm.DSA, is_master=True, flags=KeyFlag.SIGN)

    with pytest.raises(KeySelectionError, match="No encryption keys"):
        find_encryption_key(PublicKeyRing(keys=(master,)))


def test_find_ring_encryption_key_honours_pinned_key() -> None:
    ring = _dsa_elgamal_ring()
    pinned = PublicKeyRing(keys=ring.keys, preferred_encryption_key=ring.keys[0])

    assert find_ring_encryption_key(pinned).key_id == MASTER_ID


def test_verification_score_and_selection() -> None:
    ring = _dsa_elgamal_ring()
    master, subkey = ring.keys

    assert verification_score(master) == 3
    assert verification_score(subkey) == 0
    assert find_verification_key(ring).key_id == MASTER_ID


def test_find_verification_key_accepts_unflagged_master() -> None:
    master = _create_key(MASTER_ID, PublicKeyAlgorithm.DSA, is_master=True)

    assert find_verification_key(PublicKeyRing(keys=(master,))).key_id == MASTER_ID


def test_find_verification_key_raises_without_candidates() -> None:
    subkey = _create_key(SUBKEY_ID, PublicKeyAlgorithm.ELGAMAL_ENCRYPT_ONLY, is_master=False)

    with pytest.raises(KeySelectionError, match="No verification keys"):
        find_verification_key(PublicKeyRing(keys=(subkey,)))


def test_find_signing_key_picks_highest_score_across_rings() -> None:
    weak = SecretKey(
        public_key=_create_key("3333333333333333", PublicKeyAlgorithm.RSA_SIGN_ONLY, is_master=False)
    )
    strong = SecretKey(public_key=_dsa_elgamal_ring().keys[0])
    encrypt_only = SecretKey(public_key=_dsa_elgamal_ring().keys[1])
    first = SecretKeyRing(keys=(weak, encrypt_only))
    second = SecretKeyRing(keys=(strong,))

    key, ring = find_signing_key([first, second])

    assert signing_score(strong) == 5
    assert key is strong
    assert ring is second


def test_find_signing_key_raises_without_signing_keys() -> None:
    encrypt_only = SecretKey(public_key=_dsa_elgamal_ring().keys[1])

    with pytest.raises(KeySelectionError, match="signing keys"):
        find_signing_key([SecretKeyRing(keys=(encrypt_only,))])


def test_find_master_key() -> None:
    ring = _dsa_elgamal_ring()

    assert find_master_key(ring).key_id == MASTER_ID
    with pytest.raises(KeySelectionError, match="exactly one master"):
        find_master_key(PublicKeyRing(keys=(ring.keys[1],)))


def test_find_public_key_matches_own_id_case_insensitively() -> None:
    ring = _dsa_elgamal_ring()

    assert find_public_key(SUBKEY_ID.lower(), ring.keys[1:]) is ring.keys[1]
    assert find_public_key("FFFFFFFFFFFFFFFF", ring.keys) is None


def test_find_public_key_matches_signature_issuer() -> None:
    subkey = _create_key(SUBKEY_ID, PublicKeyAlgorithm.ELGAMAL_ENCRYPT_ONLY, is_master=False, signer="ABCDABCDABCDABCD")

    assert find_public_key("ABCDABCDABCDABCD", [subkey]) is subkey


def test_find_secret_key_searches_all_rings() -> None:
    master, subkey = _dsa_elgamal_ring().keys
    rings = [SecretKeyRing(keys=(SecretKey(public_key=master),)), SecretKeyRing(keys=(SecretKey(public_key=subkey),))]

    assert find_secret_key(SUBKEY_ID, rings).public_key is subkey
    assert find_secret_key("FFFFFFFFFFFFFFFF", rings) is None
