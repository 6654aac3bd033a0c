"""
Immutable key ring view.

Key objects carry the capability information key selection needs, plus an
opaque ``handle`` owned by the backend that produced them.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pgp_pipeline.models.crypto import KeyFlag, PublicKeyAlgorithm


@dataclass(frozen=True, kw_only=True)
class KeySignature:
    """
    A self-signature (user id certification or sub-key binding) on a key.

    Attributes:
        signer_key_id: Key id of the issuer, upper-case hex.
        key_flags: Usage flags from the key flags subpacket, if any.
        has_subpackets: Whether the signature carried hashed subpackets.
    """

    signer_key_id: str
    key_flags: KeyFlag = KeyFlag(0)
    has_subpackets: bool = True


@dataclass(frozen=True, kw_only=True)
class PublicKey:
    """
    A public key (master or sub-key) inside a key ring.

    Attributes:
        key_id: 16 hex digit key id, upper-case.
        fingerprint: Hex fingerprint, upper-case.
        algorithm: Public key algorithm.
        is_master: Whether this is the ring's primary key.
        created: Key creation time.
        user_ids: User ids bound to the key (master keys only).
        signatures: Self-signatures describing the key.
        handle: Backend key object.
    """

    key_id: str
    fingerprint: str
    algorithm: PublicKeyAlgorithm
    is_master: bool
    created: datetime | None = None
    user_ids: tuple[str, ...] = ()
    signatures: tuple[KeySignature, ...] = ()
    handle: Any = field(default=None, compare=False, repr=False)

    @property
    def is_encryption_key(self) -> bool:
        return self.algorithm.can_encrypt

    def has_key_flag(self, flag: KeyFlag) -> bool:
        """Whether any signature with subpackets on this key grants ``flag``."""
        return any(sig.has_subpackets and flag in sig.key_flags for sig in self.signatures)


@dataclass(frozen=True, kw_only=True)
class SecretKey:
    """
    A secret key paired with its public key.

    ``handle`` is the backend object used for private-key operations;
    ``root`` holds the ring's primary backend object, which is what gets unlocked.
    """

    public_key: PublicKey
    handle: Any = field(default=None, compare=False, repr=False)
    root: Any = field(default=None, compare=False, repr=False)

    @property
    def key_id(self) -> str:
        return self.public_key.key_id

    @property
    def is_master(self) -> bool:
        return self.public_key.is_master

    @property
    def is_signing_key(self) -> bool:
        return self.public_key.algorithm.can_sign

    @property
    def user_ids(self) -> tuple[str, ...]:
        return self.public_key.user_ids


@dataclass(frozen=True, kw_only=True)
class PublicKeyRing:
    """
    A master public key with its sub-keys, master first.

    Attributes:
        keys: Keys in ring order.
        preferred_encryption_key: Key pinned by the caller for encryption.
    """

    keys: tuple[PublicKey, ...]
    preferred_encryption_key: PublicKey | None = None

    def __post_init__(self) -> None:
        if not self.keys:
            msg = "Key ring must contain at least one key"
            raise ValueError(msg)

    def __iter__(self) -> Iterator[PublicKey]:
        return iter(self.keys)

    def __len__(self) -> int:
        return len(self.keys)

    @property
    def key_id(self) -> str:
        """Key id of the first (master) key."""
        return self.keys[0].key_id

    def get_key(self, key_id: str) -> PublicKey | None:
        key_id = key_id.upper()
        return next((key for key in self.keys if key.key_id == key_id), None)


@dataclass(frozen=True, kw_only=True)
class SecretKeyRing:
    """
    A master secret key with its sub-keys, master first.

    Attributes:
        keys: Keys in ring order.
        handle: Backend object for the whole ring, unlocked as one unit.
    """

    keys: tuple[SecretKey, ...]
    handle: Any = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.keys:
            msg = "Key ring must contain at least one key"
            raise ValueError(msg)

    def __iter__(self) -> Iterator[SecretKey]:
        return iter(self.keys)

    def __len__(self) -> int:
        return len(self.keys)

    @property
    def key_id(self) -> str:
        return self.keys[0].key_id

    @property
    def public_keys(self) -> tuple[PublicKey, ...]:
        return tuple(key.public_key for key in self.keys)
