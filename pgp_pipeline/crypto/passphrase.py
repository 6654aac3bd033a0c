"""Zeroing container for key passphrases."""

import ctypes
from typing import Self


def _secure_zero(data: bytearray) -> None:
    if not data:
        return
    buffer = (ctypes.c_char * len(data)).from_buffer(data)
    ctypes.memset(ctypes.addressof(buffer), 0, len(data))


class Passphrase:
    """
    Holds a passphrase in a mutable buffer that is zeroed on ``clear``.

    Use as context manager for guaranteed cleanup.
    """

    __slots__ = ("_data", "_cleared")

    def __init__(self, value: str | bytes | bytearray) -> None:
        if isinstance(value, str):
            self._data = bytearray(value, "utf-8")
        else:
            self._data = bytearray(value)
        self._cleared = False

    def __del__(self) -> None:
        self.clear()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.clear()

    def clear(self) -> None:
        """Zero memory. Idempotent."""
        if self._cleared:
            return
        _secure_zero(self._data)
        self._cleared = True

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return not self._cleared and len(self._data) > 0

    def __repr__(self) -> str:
        if self._cleared:
            return "Passphrase(<cleared>)"
        return f"Passphrase(<{len(self._data)} bytes>)"

    @property
    def is_cleared(self) -> bool:
        return self._cleared

    def reveal(self) -> str:
        """Warning: returned string is not securely managed."""
        if self._cleared:
            raise RuntimeError("Passphrase has been cleared")
        return self._data.decode("utf-8")

    @classmethod
    def coerce(cls, value: "Passphrase | str | bytes | None") -> Self | None:
        if value is None or isinstance(value, cls):
            return value
        return cls(value)
