import struct
from typing import *

from .errors import LengthMismatchError, SaveFormatError, TruncatedInputError

_U8 = struct.Struct('<B')
_I8 = struct.Struct('<b')
_U16 = struct.Struct('<H')
_I16 = struct.Struct('<h')
_U32 = struct.Struct('<I')
_I32 = struct.Struct('<i')
_U64 = struct.Struct('<Q')
_I64 = struct.Struct('<q')
_F32 = struct.Struct('<f')
_F64 = struct.Struct('<d')

ZERO_GUID = "00000000-0000-0000-0000-000000000000"


def guid_to_str(raw: bytes) -> str:
    # UE stores GUID as raw 16 bytes; represent in canonical form
    # break into 4-2-2-2-6 bytes per RFC 4122
    part1 = raw[0:4][::-1].hex()  # little-endian to big for common display
    part2 = raw[4:6][::-1].hex()
    part3 = raw[6:8][::-1].hex()
    part4 = raw[8:10].hex()
    part5 = raw[10:16].hex()
    return f"{part1}-{part2}-{part3}-{part4}-{part5}"


def guid_to_bytes(guid: str) -> bytes:
    parts = guid.split('-')
    if len(parts) != 5 or [len(p) for p in parts] != [8, 4, 4, 4, 12]:
        raise ValueError(f"Invalid GUID: {guid!r}")
    return (bytes.fromhex(parts[0])[::-1] +
            bytes.fromhex(parts[1])[::-1] +
            bytes.fromhex(parts[2])[::-1] +
            bytes.fromhex(parts[3]) +
            bytes.fromhex(parts[4]))


class Reader:
    """Little-endian cursor over an immutable buffer.

    A reader may be bounded to a declared payload: running into the bound
    raises LengthMismatchError, running off the buffer raises
    TruncatedInputError. Positions are always absolute within the buffer.
    """

    def __init__(self, data: bytes, position: int = 0, end: Optional[int] = None, bounded: bool = False):
        self._data = data
        self._position = position
        self._end = len(data) if end is None else end
        self._bounded = bounded

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def position(self) -> int:
        return self._position

    @property
    def end(self) -> int:
        return self._end

    @property
    def remaining(self) -> int:
        return self._end - self._position

    def at_end(self) -> bool:
        return self._position >= self._end

    def _take(self, n: int) -> int:
        start = self._position
        if start + n > self._end:
            if self._bounded:
                raise LengthMismatchError(
                    f"Read of {n} byte(s) crosses the declared payload end 0x{self._end:x}", start)
            raise TruncatedInputError(
                f"Need {n} byte(s), only {self._end - start} left", start)
        self._position = start + n
        return start

    def bounded(self, size: int) -> 'Reader':
        """Return a reader over the next `size` bytes and skip them here."""
        start = self._take(size)
        return Reader(self._data, start, start + size, bounded=True)

    def read_bytes(self, n: int) -> bytes:
        if n < 0:
            raise TruncatedInputError(f"Negative read length {n}", self._position)
        start = self._take(n)
        return bytes(self._data[start: start + n])

    def _unpack(self, fmt: struct.Struct) -> Any:
        start = self._take(fmt.size)
        return fmt.unpack_from(self._data, start)[0]

    def read_u8(self) -> int:
        return self._unpack(_U8)

    def read_i8(self) -> int:
        return self._unpack(_I8)

    def read_u16(self) -> int:
        return self._unpack(_U16)

    def read_i16(self) -> int:
        return self._unpack(_I16)

    def read_u32(self) -> int:
        return self._unpack(_U32)

    def read_i32(self) -> int:
        return self._unpack(_I32)

    def read_u64(self) -> int:
        return self._unpack(_U64)

    def read_i64(self) -> int:
        return self._unpack(_I64)

    def read_f32(self) -> float:
        return self._unpack(_F32)

    def read_f64(self) -> float:
        return self._unpack(_F64)

    def read_bool(self) -> bool:
        return self.read_u8() != 0

    def read_fstring(self) -> Optional[str]:
        """Read UE FString: int32 length. If negative, it's UTF-16LE and -length is the character count.
        Length includes the NUL terminator; a zero length is a null string (None).
        """
        at = self._position
        strlen = self.read_i32()
        if strlen == 0:
            return None
        if strlen < 0:
            raw = self.read_bytes(-strlen * 2)
            s = raw.decode('utf-16-le', errors='surrogatepass')
        else:
            raw = self.read_bytes(strlen)
            s = raw.decode('latin-1')
        if not s.endswith('\x00'):
            raise SaveFormatError("FString is not NUL-terminated", at)
        return s[:-1]

    def read_guid(self) -> Optional[str]:
        """Read a 16-byte GUID; the all-zero GUID reads as None."""
        raw = self.read_bytes(16)
        if not any(raw):
            return None
        return guid_to_str(raw)


class Writer:
    """Growable little-endian output buffer with placeholder patching."""

    def __init__(self):
        self._data = bytearray()

    @property
    def position(self) -> int:
        return len(self._data)

    def to_bytes(self) -> bytes:
        return bytes(self._data)

    def _pack(self, fmt: struct.Struct, v: Any) -> None:
        try:
            self._data.extend(fmt.pack(v))
        except struct.error as e:
            raise SaveFormatError(f"Cannot encode {v!r}: {e}", self.position) from e

    def _patch(self, fmt: struct.Struct, at: int, v: Any) -> None:
        try:
            fmt.pack_into(self._data, at, v)
        except struct.error as e:
            raise SaveFormatError(f"Cannot encode {v!r}: {e}", at) from e

    def write_bytes(self, b: bytes) -> None:
        self._data.extend(b)

    def write_u8(self, v: int) -> None:
        self._pack(_U8, v)

    def write_i8(self, v: int) -> None:
        self._pack(_I8, v)

    def write_u16(self, v: int) -> None:
        self._pack(_U16, v)

    def write_i16(self, v: int) -> None:
        self._pack(_I16, v)

    def write_u32(self, v: int) -> None:
        self._pack(_U32, v)

    def write_i32(self, v: int) -> None:
        self._pack(_I32, v)

    def write_u64(self, v: int) -> None:
        self._pack(_U64, v)

    def write_i64(self, v: int) -> None:
        self._pack(_I64, v)

    def write_f32(self, v: float) -> None:
        self._pack(_F32, v)

    def write_f64(self, v: float) -> None:
        self._pack(_F64, v)

    def write_bool(self, v: bool) -> None:
        self._data.append(1 if v else 0)

    def write_fstring(self, s: Optional[str]) -> None:
        """Write a UE FString (length includes trailing NUL; None is the zero-length null string)."""
        if s is None:
            self.write_i32(0)
            return
        if s.isascii():
            raw = s.encode('ascii') + b'\x00'
            self.write_i32(len(raw))
        else:
            raw = s.encode('utf-16-le', errors='surrogatepass') + b'\x00\x00'
            self.write_i32(-(len(raw) // 2))
        self._data.extend(raw)

    def write_guid(self, guid: Optional[str]) -> None:
        """Write a GUID string as 16 raw bytes (None writes the zero GUID)."""
        if guid is None:
            self._data.extend(b'\x00' * 16)
            return
        try:
            self._data.extend(guid_to_bytes(guid))
        except ValueError as e:
            raise SaveFormatError(str(e), self.position) from e

    def patch_u32(self, at: int, v: int) -> None:
        self._patch(_U32, at, v)

    def patch_u64(self, at: int, v: int) -> None:
        self._patch(_U64, at, v)
