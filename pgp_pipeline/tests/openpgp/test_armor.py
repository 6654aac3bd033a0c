import io

import pytest

from pgp_pipeline.exceptions import MessageFormatError
from pgp_pipeline.openpgp.armor import (
    MESSAGE,
    SIGNATURE,
    ArmoredReader,
    ArmoredWriter,
    build_headers,
    crc24,
    open_packet_stream,
)


def _armor(data: bytes, block_type: str = MESSAGE, headers: dict[str, str] | None = None) -> bytes:
    out = io.BytesIO()
    with ArmoredWriter(out, block_type=block_type, headers=headers) as writer:
        writer.write(data)
    return out.getvalue()


def test_crc24_check_value() -> None:
    assert crc24(b"123456789") == 0x21CF02


def test_crc24_continues_from_previous_value() -> None:
    assert crc24(b"6789", crc24(b"12345")) == crc24(b"123456789")


def test_build_headers_replaces_version_in_place() -> None:
    headers = build_headers("lib 1.0", {"Comment": "hi", "Version": "custom"})

    assert list(headers.items()) == [("Version", "custom"), ("Comment", "hi")]


def test_build_headers_none_removes_header() -> None:
    assert build_headers("lib 1.0", {"Version": None}) == {}
    assert build_headers(None) == {}


def test_writer_layout() -> None:
    armored = _armor(b"\x00" * 100, headers={"Version": "test"})
    lines = armored.split(b"\n")

    assert lines[0] == b"-----BEGIN PGP MESSAGE-----"
    assert lines[1] == b"Version: test"
    assert lines[2] == b""
    assert len(lines[3]) == 64
    assert lines[-3].startswith(b"=")
    assert lines[-2] == b"-----END PGP MESSAGE-----"
    assert lines[-1] == b""


def test_writer_without_data_still_writes_checksum() -> None:
    armored = _armor(b"", SIGNATURE)

    assert armored.endswith(b"=twTO\n-----END PGP SIGNATURE-----\n")


def test_reader_returns_headers_and_data() -> None:
    data = bytes(range(256)) * 3
    reader = ArmoredReader(io.BytesIO(_armor(data, headers={"Version": "v", "Comment": "c"})))

    assert reader.block_type == MESSAGE
    assert reader.headers == {"Version": "v", "Comment": "c"}
    assert reader.read() == data


def test_reader_skips_leading_text() -> None:
    armored = b"some preamble\n\n" + _armor(b"payload")

    assert ArmoredReader(io.BytesIO(armored)).read() == b"payload"


def test_reader_accepts_crlf_line_endings() -> None:
    armored = _armor(b"payload", headers={"Version": "v"}).replace(b"\n", b"\r\n")

    assert ArmoredReader(io.BytesIO(armored)).read() == b"payload"


def test_reader_rejects_checksum_mismatch() -> None:
    lines = _armor(b"payload").split(b"\n")
    lines[-3] = b"=AAAA"
    reader = ArmoredReader(io.BytesIO(b"\n".join(lines)))

    with pytest.raises(MessageFormatError, match="checksum"):
        reader.read()


def test_reader_rejects_missing_end_line() -> None:
    armored = _armor(b"payload").split(b"-----END")[0]
    reader = ArmoredReader(io.BytesIO(armored))

    with pytest.raises(MessageFormatError, match="without an end line"):
        reader.read()


def test_reader_rejects_invalid_base64() -> None:
    armored = b"-----BEGIN PGP MESSAGE-----\n\n!!!!\n-----END PGP MESSAGE-----\n"

    with pytest.raises(MessageFormatError, match="Invalid base64"):
        ArmoredReader(io.BytesIO(armored)).read()


def test_reader_without_begin_line() -> None:
    with pytest.raises(MessageFormatError, match="No armored data found"):
        ArmoredReader(io.BytesIO(b"nothing here\n"))


def test_open_packet_stream_detects_armor() -> None:
    packets, armored = open_packet_stream(io.BytesIO(_armor(b"\xc0abc")))

    assert armored is not None
    assert packets.read() == b"\xc0abc"


def test_open_packet_stream_detects_binary() -> None:
    packets, armored = open_packet_stream(io.BytesIO(b"\xc0abc"))

    assert armored is None
    assert packets.read() == b"\xc0abc"


def test_open_packet_stream_rejects_text() -> None:
    with pytest.raises(MessageFormatError, match="Failed to detect"):
        open_packet_stream(io.BytesIO(b"plain text"))
