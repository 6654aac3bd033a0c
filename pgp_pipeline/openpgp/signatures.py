"""
Signature and one-pass signature packet codec.
"""

from datetime import UTC, datetime
from enum import IntEnum

from pgp_pipeline.exceptions import MessageFormatError, UnsupportedAlgorithmError
from pgp_pipeline.models.crypto import HashAlgorithm, PublicKeyAlgorithm, SignatureType
from pgp_pipeline.models.message import OnePassSignature, Signature
from pgp_pipeline.openpgp.framing import PacketTag, encode_packet

_V4_TRAILER_MARKER = b"\x04\xff"
_V3_HASHED_LENGTH = 5
_ONE_PASS_VERSION = 3


class SubpacketType(IntEnum):
    """Signature subpacket types read or written by the pipeline."""

    CREATION_TIME = 2
    ISSUER = 16
    KEY_FLAGS = 27
    SIGNER_USER_ID = 28
    ISSUER_FINGERPRINT = 33


def encode_mpi(value: int) -> bytes:
    bit_count = value.bit_length()
    return bit_count.to_bytes(2, "big") + value.to_bytes((bit_count + 7) // 8, "big")


def parse_mpi(data: bytes, offset: int) -> tuple[int, int]:
    """
    Parse an MPI (Multi-Precision Integer) at ``offset``.

    MPI format: [bit_count(2 bytes)] + [data]

    Returns:
        Tuple of (value, offset after the MPI).
    """
    if len(data) < offset + 2:
        msg = "MPI too short"
        raise MessageFormatError(msg)
    bit_count = int.from_bytes(data[offset : offset + 2], "big")
    end = offset + 2 + (bit_count + 7) // 8
    if len(data) < end:
        msg = f"MPI data incomplete: need {end - offset - 2}, have {len(data) - offset - 2}"
        raise MessageFormatError(msg)
    return int.from_bytes(data[offset + 2 : end], "big"), end


def encode_subpacket(subpacket_type: SubpacketType, data: bytes, *, critical: bool = False) -> bytes:
    length = len(data) + 1
    if length < 192:
        header = bytes([length])
    elif length < 16320:
        length -= 192
        header = bytes([(length >> 8) + 192, length & 0xFF])
    else:
        header = b"\xff" + length.to_bytes(4, "big")
    return header + bytes([subpacket_type | (0x80 if critical else 0)]) + data


def iter_subpackets(area: bytes) -> list[tuple[int, bytes]]:
    """Split a subpacket area into (type, data) pairs, critical bit cleared."""
    subpackets = []
    offset = 0
    while offset < len(area):
        first_byte = area[offset]
        if first_byte < 192:
            length, offset = first_byte, offset + 1
        elif first_byte < 255:
            if offset + 2 > len(area):
                msg = "Truncated subpacket length"
                raise MessageFormatError(msg)
            length = ((first_byte - 192) << 8) + area[offset + 1] + 192
            offset += 2
        else:
            if offset + 5 > len(area):
                msg = "Truncated subpacket length"
                raise MessageFormatError(msg)
            length = int.from_bytes(area[offset + 1 : offset + 5], "big")
            offset += 5
        if length == 0 or offset + length > len(area):
            msg = "Invalid subpacket length"
            raise MessageFormatError(msg, length=length)
        subpackets.append((area[offset] & 0x7F, area[offset + 1 : offset + length]))
        offset += length
    return subpackets


def v4_trailer(hashed_data: bytes) -> bytes:
    return hashed_data + _V4_TRAILER_MARKER + len(hashed_data).to_bytes(4, "big")


def signature_trailer(signature: Signature) -> bytes:
    """Bytes hashed after the signed data."""
    if signature.version == 4:
        return v4_trailer(signature.hashed_data)
    return signature.hashed_data


def build_hashed_data(
    signature_type: SignatureType,
    key_algorithm: PublicKeyAlgorithm,
    hash_algorithm: HashAlgorithm,
    hashed_subpackets: bytes,
) -> bytes:
    """Version 4 signature fields covered by the digest."""
    header = bytes([4, signature_type, key_algorithm, hash_algorithm])
    return header + len(hashed_subpackets).to_bytes(2, "big") + hashed_subpackets


def encode_signature(
    hashed_data: bytes,
    unhashed_subpackets: bytes,
    hash_prefix: bytes,
    values: tuple[int, ...],
) -> bytes:
    """Encode a complete version 4 signature packet."""
    body = (
        hashed_data
        + len(unhashed_subpackets).to_bytes(2, "big")
        + unhashed_subpackets
        + hash_prefix
        + b"".join(encode_mpi(value) for value in values)
    )
    return encode_packet(PacketTag.SIGNATURE, body)


def parse_signature(body: bytes) -> Signature:
    """
    Parse a signature packet body.

    Raises:
        MessageFormatError: If the packet is malformed or of an unknown version.
        UnsupportedAlgorithmError: If the key algorithm has no known signature layout.
    """
    if not body:
        msg = "Empty signature packet"
        raise MessageFormatError(msg)
    match body[0]:
        case 4:
            return _parse_signature_v4(body)
        case 2 | 3:
            return _parse_signature_v3(body)
        case version:
            msg = f"Unsupported signature version: {version}"
            raise MessageFormatError(msg)


def _parse_signature_v4(body: bytes) -> Signature:
    if len(body) < 10:
        msg = "Signature packet too short"
        raise MessageFormatError(msg)
    signature_type, key_algorithm, hash_algorithm = _parse_algorithms(body[1], body[2], body[3])

    hashed_length = int.from_bytes(body[4:6], "big")
    hashed_end = 6 + hashed_length
    if len(body) < hashed_end + 2:
        msg = "Truncated hashed subpacket area"
        raise MessageFormatError(msg)
    unhashed_length = int.from_bytes(body[hashed_end : hashed_end + 2], "big")
    unhashed_end = hashed_end + 2 + unhashed_length
    if len(body) < unhashed_end + 2:
        msg = "Truncated unhashed subpacket area"
        raise MessageFormatError(msg)

    hashed = iter_subpackets(body[6:hashed_end])
    unhashed = iter_subpackets(body[hashed_end + 2 : unhashed_end])
    creation_time = None
    issuer = None
    signer_user_id = None
    for subpacket_type, data in hashed + unhashed:
        match subpacket_type:
            case SubpacketType.CREATION_TIME if len(data) == 4 and creation_time is None:
                creation_time = datetime.fromtimestamp(int.from_bytes(data, "big"), tz=UTC)
            case SubpacketType.ISSUER if len(data) == 8 and issuer is None:
                issuer = data.hex().upper()
            case SubpacketType.ISSUER_FINGERPRINT if len(data) > 8 and issuer is None:
                issuer = data[-8:].hex().upper()
            case SubpacketType.SIGNER_USER_ID if signer_user_id is None:
                signer_user_id = data.decode("utf-8", errors="replace")

    return Signature(
        version=4,
        signature_type=signature_type,
        key_algorithm=key_algorithm,
        hash_algorithm=hash_algorithm,
        hashed_data=body[:hashed_end],
        hash_prefix=body[unhashed_end : unhashed_end + 2],
        values=_parse_values(body, unhashed_end + 2, key_algorithm),
        issuer_key_id=issuer,
        creation_time=creation_time,
        signer_user_id=signer_user_id,
    )


def _parse_signature_v3(body: bytes) -> Signature:
    if len(body) < 19 or body[1] != _V3_HASHED_LENGTH:
        msg = "Malformed version 3 signature packet"
        raise MessageFormatError(msg)
    signature_type, key_algorithm, hash_algorithm = _parse_algorithms(body[2], body[15], body[16])
    return Signature(
        version=body[0],
        signature_type=signature_type,
        key_algorithm=key_algorithm,
        hash_algorithm=hash_algorithm,
        hashed_data=body[2:7],
        hash_prefix=body[17:19],
        values=_parse_values(body, 19, key_algorithm),
        issuer_key_id=body[7:15].hex().upper(),
        creation_time=datetime.fromtimestamp(int.from_bytes(body[3:7], "big"), tz=UTC),
    )


def _parse_algorithms(
    signature_type: int, key_algorithm: int, hash_algorithm: int
) -> tuple[SignatureType, PublicKeyAlgorithm, HashAlgorithm]:
    try:
        parsed_type = SignatureType(signature_type)
    except ValueError:
        msg = f"Unknown signature type: 0x{signature_type:02x}"
        raise MessageFormatError(msg) from None
    try:
        parsed_key = PublicKeyAlgorithm(key_algorithm)
    except ValueError:
        msg = f"Unknown public key algorithm: {key_algorithm}"
        raise UnsupportedAlgorithmError(msg, algorithm=key_algorithm) from None
    try:
        parsed_hash = HashAlgorithm(hash_algorithm)
    except ValueError:
        msg = f"Unknown hash algorithm: {hash_algorithm}"
        raise UnsupportedAlgorithmError(msg, algorithm=hash_algorithm) from None
    return parsed_type, parsed_key, parsed_hash


def _parse_values(body: bytes, offset: int, key_algorithm: PublicKeyAlgorithm) -> tuple[int, ...]:
    count = key_algorithm.signature_value_count
    if not count:
        msg = f"No signature layout for {key_algorithm.name}"
        raise UnsupportedAlgorithmError(msg, algorithm=key_algorithm.name)
    values = []
    for _ in range(count):
        value, offset = parse_mpi(body, offset)
        values.append(value)
    return tuple(values)


def encode_one_pass_signature(
    signature_type: SignatureType,
    hash_algorithm: HashAlgorithm,
    key_algorithm: PublicKeyAlgorithm,
    key_id: str,
    *,
    is_last: bool = True,
) -> bytes:
    body = (
        bytes([_ONE_PASS_VERSION, signature_type, hash_algorithm, key_algorithm])
        + bytes.fromhex(key_id)
        + bytes([1 if is_last else 0])
    )
    return encode_packet(PacketTag.ONE_PASS_SIGNATURE, body)


def parse_one_pass_signature(body: bytes) -> OnePassSignature:
    if len(body) != 13 or body[0] != _ONE_PASS_VERSION:
        msg = "Malformed one-pass signature packet"
        raise MessageFormatError(msg)
    signature_type, key_algorithm, hash_algorithm = _parse_algorithms(body[1], body[3], body[2])
    return OnePassSignature(
        signature_type=signature_type,
        hash_algorithm=hash_algorithm,
        key_algorithm=key_algorithm,
        key_id=body[4:12].hex().upper(),
        is_last=body[12] != 0,
    )
