"""Foreign-owned sample memory.

Sample buffers handed across the boundary are allocated through cffi, the same
way a native library hands out ``uint8_t *`` blocks. The owner frees a buffer
as soon as the callback that carried it returns; Python code only ever sees
read-only ``memoryview`` windows bounded by an explicit length.
"""

from typing import Optional

from cffi import FFI

_ffi = FFI()


class ForeignBuffer:
    """A block of sample memory owned by the foreign side.

    Example:
        >>> buf = ForeignBuffer.from_bytes(b"\\x01\\x02\\x03")
        >>> bytes(buf.view(2))
        b'\\x01\\x02'
        >>> buf.free()
    """

    __slots__ = ("_cdata", "_size")

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError(f"size must be non-negative, got {size}")
        self._size = size
        self._cdata: Optional[object] = _ffi.new("uint8_t[]", size)

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview) -> "ForeignBuffer":
        """Allocate a buffer and fill it with ``data``."""
        raw = bytes(data)
        buf = cls(len(raw))
        if raw:
            _ffi.memmove(buf._cdata, raw, len(raw))
        return buf

    @property
    def size(self) -> int:
        """Allocated size in bytes."""
        return self._size

    @property
    def freed(self) -> bool:
        """Whether the owner has released this buffer."""
        return self._cdata is None

    def view(self, length: int) -> memoryview:
        """Return a read-only window over the first ``length`` bytes.

        Raises:
            ValueError: If the buffer was freed or ``length`` exceeds its size.
        """
        if self._cdata is None:
            raise ValueError("buffer has been freed")
        if length < 0 or length > self._size:
            raise ValueError(f"length {length} outside buffer of {self._size} bytes")
        return memoryview(_ffi.buffer(self._cdata, length)).toreadonly()

    def free(self) -> None:
        """Release the memory. Idempotent."""
        self._cdata = None
