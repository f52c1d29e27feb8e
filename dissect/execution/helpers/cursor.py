from __future__ import annotations

import struct
from typing import TYPE_CHECKING, TypeVar

from dissect.execution.exceptions import TruncatedBufferError
from dissect.execution.helpers.text import decode_narrow, decode_utf16

if TYPE_CHECKING:
    from dissect.cstruct import Structure

    StructureType = TypeVar("StructureType", bound=Structure)

# Upper bound for nul-terminated reads when the caller has no better limit
MAX_PATH_CHARS = 32767

_PREFIXES = {
    1: struct.Struct("<B"),
    2: struct.Struct("<H"),
    4: struct.Struct("<I"),
}

_UINT8 = struct.Struct("<B")
_UINT16 = struct.Struct("<H")
_UINT32 = struct.Struct("<I")
_UINT64 = struct.Struct("<Q")
_INT32 = struct.Struct("<i")
_INT64 = struct.Struct("<q")


class ByteCursor:
    """Bounds-checked read cursor over an immutable byte buffer.

    Every read either takes an absolute ``offset``, in which case the cursor position is left alone, or reads at
    the current position and advances past the bytes it consumed. A read that would cross the end of the buffer
    raises :class:`~dissect.execution.exceptions.TruncatedBufferError` before any bytes are touched, and the
    position is never changed by a failed read.

    Cursors are cheap to :meth:`copy`, so a decoder can probe ahead on a copy and only commit by continuing with it.
    """

    __slots__ = ("_data", "_offset")

    def __init__(self, data: bytes | bytearray | memoryview, offset: int = 0):
        self._data = bytes(data)
        self._offset = 0
        self.seek(offset)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"<ByteCursor offset={self._offset:#x} length={len(self._data):#x}>"

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def offset(self) -> int:
        return self._offset

    def tell(self) -> int:
        return self._offset

    def remaining(self) -> int:
        return len(self._data) - self._offset

    def copy(self) -> ByteCursor:
        return ByteCursor(self._data, self._offset)

    def seek(self, offset: int) -> int:
        if not 0 <= offset <= len(self._data):
            raise TruncatedBufferError(offset, 0, len(self._data))
        self._offset = offset
        return offset

    def skip(self, size: int) -> int:
        self._check(self._offset, size)
        self._offset += size
        return self._offset

    def slice(self, offset: int, size: int) -> ByteCursor:
        """Return a new cursor over ``size`` bytes starting at absolute ``offset``.

        Offsets within the returned cursor are relative to ``offset``.
        """
        self._check(offset, size)
        return ByteCursor(self._data[offset : offset + size])

    def _check(self, offset: int, size: int) -> None:
        if offset < 0 or size < 0 or offset + size > len(self._data):
            raise TruncatedBufferError(offset, size, len(self._data))

    def _commit(self, offset: int | None, end: int) -> None:
        if offset is None:
            self._offset = end

    def peek(self, size: int, offset: int | None = None) -> bytes:
        """Return ``size`` bytes without moving the cursor."""
        pos = self._offset if offset is None else offset
        self._check(pos, size)
        return self._data[pos : pos + size]

    def read(self, size: int, offset: int | None = None) -> bytes:
        pos = self._offset if offset is None else offset
        data = self.peek(size, pos)
        self._commit(offset, pos + size)
        return data

    def _unpack(self, fmt: struct.Struct, offset: int | None) -> int:
        return fmt.unpack(self.read(fmt.size, offset))[0]

    def uint8(self, offset: int | None = None) -> int:
        return self._unpack(_UINT8, offset)

    def uint16(self, offset: int | None = None) -> int:
        return self._unpack(_UINT16, offset)

    def uint32(self, offset: int | None = None) -> int:
        return self._unpack(_UINT32, offset)

    def uint64(self, offset: int | None = None) -> int:
        return self._unpack(_UINT64, offset)

    def int32(self, offset: int | None = None) -> int:
        return self._unpack(_INT32, offset)

    def int64(self, offset: int | None = None) -> int:
        return self._unpack(_INT64, offset)

    def read_struct(self, struct_type: type[StructureType], offset: int | None = None) -> StructureType:
        """Parse a fixed-size ``dissect.cstruct`` structure."""
        return struct_type(self.read(len(struct_type), offset))

    def _terminated(self, offset: int | None, max_chars: int, width: int) -> tuple[bytes, int]:
        pos = self._offset if offset is None else offset
        self._check(pos, 0)

        limit = min(max_chars, (len(self._data) - pos) // width)
        data = self._data[pos : pos + limit * width]
        terminator = b"\x00" * width

        idx = data.find(terminator)
        while idx != -1 and idx % width:
            idx = data.find(terminator, idx + 1)

        if idx != -1:
            return data[:idx], pos + idx + width

        if limit < max_chars:
            # Ran into the end of the buffer before finding a terminator or reaching the cap
            raise TruncatedBufferError(pos, (limit + 1) * width, len(self._data))

        return data, pos + len(data)

    def wstring(self, max_chars: int = MAX_PATH_CHARS, offset: int | None = None) -> str:
        """Read a nul-terminated UTF-16LE string of at most ``max_chars`` characters.

        Reaching ``max_chars`` without a terminator returns the capped string. Reaching the end of the buffer
        first is a truncation.
        """
        data, end = self._terminated(offset, max_chars, 2)
        self._commit(offset, end)
        return decode_utf16(data)

    def cstring(self, max_chars: int = MAX_PATH_CHARS, offset: int | None = None, encoding: str = "cp1252") -> str:
        """Read a nul-terminated narrow string of at most ``max_chars`` characters."""
        data, end = self._terminated(offset, max_chars, 1)
        self._commit(offset, end)
        return decode_narrow(data, encoding)

    def read_prefixed(self, prefix_size: int = 2, unit: int = 1, offset: int | None = None) -> bytes:
        """Read a length-prefixed byte string.

        The ``prefix_size`` byte length field counts units of ``unit`` bytes. The length is validated against the
        bytes remaining after the prefix before anything is copied.
        """
        fmt = _PREFIXES[prefix_size]
        pos = self._offset if offset is None else offset

        count = fmt.unpack(self.peek(fmt.size, pos))[0]
        data = self.peek(count * unit, pos + fmt.size)

        self._commit(offset, pos + fmt.size + len(data))
        return data

    def lpwstring(self, prefix_size: int = 2, offset: int | None = None) -> str:
        """Read a UTF-16LE string prefixed with its character count."""
        return decode_utf16(self.read_prefixed(prefix_size, 2, offset))

    def lpstring(self, prefix_size: int = 2, offset: int | None = None, encoding: str = "cp1252") -> str:
        """Read a narrow string prefixed with its character count."""
        return decode_narrow(self.read_prefixed(prefix_size, 1, offset), encoding)
