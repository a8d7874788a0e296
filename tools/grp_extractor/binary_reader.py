"""Bounds-checked little-endian field reads over byte buffers."""
import struct

from .errors import BoundsError, EncodingError


def _check(data: bytes, offset: int, size: int, what: str):
    if offset < 0 or offset + size > len(data):
        raise BoundsError(
            f"EOF reading {what} at 0x{offset:08X} (buffer is {len(data)} bytes)"
        )


def read_u8(data: bytes, offset: int) -> int:
    """Read an unsigned byte."""
    _check(data, offset, 1, "u8")
    return data[offset]


def read_u16(data: bytes, offset: int) -> int:
    """Read an unsigned 16-bit little-endian integer."""
    _check(data, offset, 2, "u16")
    return struct.unpack_from("<H", data, offset)[0]


def read_u32(data: bytes, offset: int) -> int:
    """Read an unsigned 32-bit little-endian integer.

    Args:
        data: Source buffer
        offset: Absolute byte offset

    Returns:
        The integer value

    Raises:
        BoundsError: If ``offset + 4`` exceeds the buffer
    """
    _check(data, offset, 4, "u32")
    return struct.unpack_from("<I", data, offset)[0]


def read_f32(data: bytes, offset: int) -> float:
    """Read a 32-bit IEEE-754 little-endian float."""
    _check(data, offset, 4, "f32")
    return struct.unpack_from("<f", data, offset)[0]


def read_cstr(data: bytes, offset: int) -> str:
    """Read a null-terminated UTF-8 string.

    Args:
        data: Source buffer
        offset: Offset of the first character

    Returns:
        The decoded string, without its terminator

    Raises:
        BoundsError: If the offset is outside the buffer or no terminator
            exists before the end of it
        EncodingError: If the bytes are not valid UTF-8
    """
    if offset < 0 or offset >= len(data):
        raise BoundsError(f"string offset 0x{offset:08X} outside buffer")
    end = data.find(b"\x00", offset)
    if end == -1:
        raise BoundsError(f"unterminated string at 0x{offset:08X}")
    try:
        return bytes(data[offset:end]).decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncodingError(f"invalid text at 0x{offset:08X}: {e}") from e
