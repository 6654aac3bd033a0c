import io

import pytest

from pgp_pipeline.exceptions import MessageFormatError
from pgp_pipeline.openpgp.framing import (
    DefiniteBodyWriter,
    PacketTag,
    PartialBodyWriter,
    PrefixedReader,
    encode_header,
    encode_new_format_length,
    encode_packet,
    read_exact,
    read_new_format_length,
    read_packet_header,
)


@pytest.mark.parametrize(
    ("length", "encoded"),
    [
        (0, b"\x00"),
        (191, b"\xbf"),
        (192, b"\xc0\x00"),
        (8383, b"\xdf\xff"),
        (8384, b"\xff\x00\x00\x20\xc0"),
    ],
)
def test_new_format_length_boundaries(length: int, encoded: bytes) -> None:
    assert encode_new_format_length(length) == encoded
    assert read_new_format_length(io.BytesIO(encoded)) == (length, False)


def test_read_new_format_partial_length() -> None:
    assert read_new_format_length(io.BytesIO(b"\xe9")) == (512, True)


def test_encode_header_old_format() -> None:
    assert encode_header(PacketTag.LITERAL_DATA, 10, old_format=True) == b"\xac\x0a"
    assert encode_header(PacketTag.LITERAL_DATA, 300, old_format=True) == b"\xad\x01\x2c"


def test_encode_header_old_format_rejects_high_tags() -> None:
    with pytest.raises(ValueError, match="old packet format"):
        encode_header(PacketTag.SYM_ENCRYPTED_INTEGRITY_PROTECTED_DATA, 10, old_format=True)


def test_read_packet_header_new_format() -> None:
    stream = io.BytesIO(encode_packet(PacketTag.LITERAL_DATA, b"hello") + b"rest")

    tag, body = read_packet_header(stream)

    assert tag == PacketTag.LITERAL_DATA
    assert body.read() == b"hello"
    assert stream.read() == b"rest"


def test_read_packet_header_old_format() -> None:
    stream = io.BytesIO(encode_packet(PacketTag.COMPRESSED_DATA, b"abc", old_format=True))

    tag, body = read_packet_header(stream)

    assert tag == PacketTag.COMPRESSED_DATA
    assert body.read() == b"abc"


def test_read_packet_header_old_format_indeterminate_length() -> None:
    stream = io.BytesIO(bytes([0x80 | (PacketTag.LITERAL_DATA << 2) | 3]) + b"to the end")

    tag, body = read_packet_header(stream)

    assert tag == PacketTag.LITERAL_DATA
    assert body.read() == b"to the end"


def test_read_packet_header_returns_none_at_end() -> None:
    assert read_packet_header(io.BytesIO(b"")) is None


def test_read_packet_header_rejects_invalid_first_byte() -> None:
    with pytest.raises(MessageFormatError, match="Invalid packet header"):
        read_packet_header(io.BytesIO(b"\x12\x00"))


def test_truncated_body_raises() -> None:
    _, body = read_packet_header(io.BytesIO(encode_header(PacketTag.LITERAL_DATA, 10) + b"abc"))

    with pytest.raises(MessageFormatError, match="Truncated packet body"):
        body.read()


def test_read_exact_raises_on_short_data() -> None:
    with pytest.raises(MessageFormatError, match="Unexpected end of data"):
        read_exact(io.BytesIO(b"ab"), 3)


def test_partial_body_writer_round_trip() -> None:
    out = io.BytesIO()
    data = bytes(range(256)) * 9

    with PartialBodyWriter(out, PacketTag.LITERAL_DATA, 512) as writer:
        writer.write(data[:100])
        writer.write(data[100:])

    encoded = out.getvalue()
    assert encoded[0] == 0xC0 | PacketTag.LITERAL_DATA
    assert encoded[1] == 0xE9
    tag, body = read_packet_header(io.BytesIO(encoded))
    assert tag == PacketTag.LITERAL_DATA
    assert body.read() == data


def test_partial_body_writer_rejects_bad_chunk_size() -> None:
    with pytest.raises(ValueError, match="power of two"):
        PartialBodyWriter(io.BytesIO(), PacketTag.LITERAL_DATA, 1000)


def test_definite_body_writer_enforces_length() -> None:
    writer = DefiniteBodyWriter(io.BytesIO(), PacketTag.LITERAL_DATA, 3)

    with pytest.raises(ValueError, match="exceeds"):
        writer.write(b"abcd")
    writer.write(b"ab")
    with pytest.raises(ValueError, match="missing"):
        writer.close()


def test_body_reader_readline_and_drain() -> None:
    stream = io.BytesIO(encode_packet(PacketTag.LITERAL_DATA, b"line one\nline two\n") + b"next")
    _, body = read_packet_header(stream)

    assert body.readline() == b"line one\n"
    body.drain()
    assert body.at_eof
    assert stream.read() == b"next"


def test_prefixed_reader_replays_prefix() -> None:
    stream = io.BytesIO(b"world")

    reader = PrefixedReader(b"hello ", stream)

    assert reader.read() == b"hello world"
