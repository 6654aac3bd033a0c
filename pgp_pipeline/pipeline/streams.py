"""
Stream plumbing shared by the pipelines.

Sources and sinks may be given as in-memory data, paths or open binary
streams. Streams the caller passes in stay open; files opened here are
closed on every exit path.
"""

import io
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO

from pgp_pipeline.exceptions import InvalidArgumentError, SizeLimitError

Source = bytes | str | Path | BinaryIO
Sink = Path | BinaryIO


def iter_chunks(stream: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    while chunk := stream.read(chunk_size):
        yield chunk


def copy_stream(
    source: BinaryIO,
    write: Callable[[bytes], object],
    *,
    chunk_size: int,
    limit: int | None = None,
) -> int:
    """
    Feed ``source`` to ``write`` chunk by chunk.

    Returns:
        Number of bytes copied.

    Raises:
        SizeLimitError: If more than ``limit`` bytes are read.
    """
    total = 0
    for chunk in iter_chunks(source, chunk_size):
        total += len(chunk)
        if limit is not None and total > limit:
            msg = f"Plaintext exceeds the {limit} byte limit"
            raise SizeLimitError(msg, limit=limit)
        write(chunk)
    return total


def remaining_length(stream: BinaryIO) -> int | None:
    """Bytes left in a seekable stream, None when it cannot be measured."""
    try:
        if not stream.seekable():
            return None
        position = stream.tell()
        end = stream.seek(0, os.SEEK_END)
        stream.seek(position)
    except (AttributeError, OSError, ValueError):
        return None
    return end - position


def as_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data


def require_file(path: Path) -> Path:
    """
    Raises:
        InvalidArgumentError: If ``path`` is not an existing file.
    """
    if not path.is_file():
        msg = f"Input file not found: {path}"
        raise InvalidArgumentError(msg, path=str(path))
    return path


@contextmanager
def open_source(source: Source) -> Iterator[BinaryIO]:
    """Yield a binary stream over ``source``, closing it only if opened here."""
    match source:
        case bytes() | str():
            yield io.BytesIO(as_bytes(source))
        case Path():
            with require_file(source).open("rb") as f:
                yield f
        case _ if hasattr(source, "read"):
            yield source
        case _:
            msg = f"Unsupported input type: {type(source).__name__}"
            raise InvalidArgumentError(msg)


@contextmanager
def open_sink(sink: Sink) -> Iterator[BinaryIO]:
    """Yield a writable binary stream, creating the file when ``sink`` is a path."""
    match sink:
        case Path():
            with sink.open("wb") as f:
                yield f
        case _ if hasattr(sink, "write"):
            yield sink
            sink.flush()
        case _:
            msg = f"Unsupported output type: {type(sink).__name__}"
            raise InvalidArgumentError(msg)
