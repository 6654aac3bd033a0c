"""
Score-based key selection.

A key ring can carry several sub-keys with different, possibly missing,
capability flags, so each role picks the best scoring key rather than the
first plausible one. Ties go to the first key in ring order.
"""

from collections.abc import Callable, Iterable

from pgp_pipeline.exceptions import KeySelectionError
from pgp_pipeline.models.crypto import KeyFlag
from pgp_pipeline.models.keys import PublicKey, PublicKeyRing, SecretKey, SecretKeyRing

_ENCRYPTION_TIERS = (4, 3, 2)
_VERIFICATION_TIERS = (3, 1)


def encryption_score(key: PublicKey) -> int:
    """Master +1, encryption-capable algorithm +2, each encrypt flag +1 (max 5)."""
    score = 0
    if key.is_master:
        score += 1
    if key.is_encryption_key:
        score += 2
    if key.has_key_flag(KeyFlag.ENCRYPT_COMMUNICATIONS):
        score += 1
    if key.has_key_flag(KeyFlag.ENCRYPT_STORAGE):
        score += 1
    return score


def verification_score(key: PublicKey) -> int:
    """Master +1, sign-data flag +2 (max 3)."""
    score = 0
    if key.is_master:
        score += 1
    if key.has_key_flag(KeyFlag.SIGN):
        score += 2
    return score


def signing_score(key: SecretKey) -> int:
    """Verification score of the public half, signing-capable algorithm +2 (max 5)."""
    score = verification_score(key.public_key)
    if key.is_signing_key:
        score += 2
    return score


def _select_by_tiers(
    keys: Iterable[PublicKey], score_fn: Callable[[PublicKey], int], tiers: tuple[int, ...]
) -> PublicKey | None:
    scored = [(score_fn(key), key) for key in keys]
    for threshold in tiers:
        qualifying = [(score, key) for score, key in scored if score >= threshold]
        if qualifying:
            return max(qualifying, key=lambda item: item[0])[1]
    return None


def find_encryption_key(ring: PublicKeyRing) -> PublicKey:
    """
    Pick the encryption key of a ring: keys scoring 4 or more, else 3, else 2.

    Raises:
        KeySelectionError: If no key scores at least 2.
    """
    key = _select_by_tiers(ring, encryption_score, _ENCRYPTION_TIERS)
    if key is None:
        msg = "No encryption keys in keyring"
        raise KeySelectionError(msg, key_id=ring.key_id)
    return key


def find_ring_encryption_key(ring: PublicKeyRing) -> PublicKey:
    """The caller-pinned encryption key of a ring, or the best scoring one."""
    return ring.preferred_encryption_key or find_encryption_key(ring)


def find_verification_key(ring: PublicKeyRing) -> PublicKey:
    """
    Pick the verification key of a ring: keys scoring 3, else 1 or more.

    Raises:
        KeySelectionError: If no key scores at least 1.
    """
    key = _select_by_tiers(ring, verification_score, _VERIFICATION_TIERS)
    if key is None:
        msg = "No verification keys in keyring"
        raise KeySelectionError(msg, key_id=ring.key_id)
    return key


def find_signing_key(rings: Iterable[SecretKeyRing]) -> tuple[SecretKey, SecretKeyRing]:
    """
    Pick the highest scoring signing-capable secret key across all rings.

    Returns:
        Tuple of (secret key, ring holding it).

    Raises:
        KeySelectionError: If no ring holds a signing-capable key.
    """
    best: tuple[int, SecretKey, SecretKeyRing] | None = None
    for ring in rings:
        for key in ring:
            if not key.is_signing_key:
                continue
            score = signing_score(key)
            if best is None or score > best[0]:
                best = (score, key, ring)
    if best is None:
        msg = "Could not find any signing keys in keyring"
        raise KeySelectionError(msg)
    return best[1], best[2]


def find_master_key(ring: PublicKeyRing) -> PublicKey:
    """
    Return the single master key of a ring.

    Raises:
        KeySelectionError: If the ring has no master key or more than one.
    """
    masters = [key for key in ring if key.is_master]
    if len(masters) != 1:
        msg = "Key ring must contain exactly one master key"
        raise KeySelectionError(msg, count=len(masters))
    return masters[0]


def _matches(key: PublicKey, key_id: str) -> bool:
    return key.key_id == key_id or any(sig.signer_key_id == key_id for sig in key.signatures)


def find_public_key(key_id: str, keys: Iterable[PublicKey]) -> PublicKey | None:
    """
    First key whose id, or one of whose signatures' issuer id, equals ``key_id``.
    """
    key_id = key_id.upper()
    return next((key for key in keys if _matches(key, key_id)), None)


def find_public_key_in_rings(key_id: str, rings: Iterable[PublicKeyRing]) -> PublicKey | None:
    return find_public_key(key_id, (key for ring in rings for key in ring))


def find_secret_key(key_id: str, rings: Iterable[SecretKeyRing]) -> SecretKey | None:
    """
    First secret key matching ``key_id`` by its own id or a signature's issuer id.

    Sub-keys can surface only through their binding signature, so both are checked.
    """
    key_id = key_id.upper()
    return next(
        (key for ring in rings for key in ring if _matches(key.public_key, key_id)), None
    )
