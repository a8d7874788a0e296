"""Mesh chunk scanning for MDL entries.

MDL entries carry no usable table of contents, so mesh records are found by
stepping through the buffer and testing a header signature:
- +0x64..+0x6F: three (descriptor code u16, offset u16) pairs, offsets in
  1/256 byte units
- +0x9C: 1, +0x9D: 0
- +0x9E: position format (0x04 float32, 0x05 float16)
- +0x9F: vertex stride in bytes, 4..64
- +0xA4: vertex count (u32)
- +0xA8: index count (u32)
- +0x110: vertex array, immediately followed by u16 triangle indices

Matches are best effort: padding or unrelated data that happens to satisfy
the signature is accepted if its counts fit in the buffer.
"""
import logging
import struct
from typing import List, Tuple

from .binary_reader import read_f32, read_u16, read_u32
from .errors import NotFoundError
from .mdl_types import MdlChunk, PositionFormat

logger = logging.getLogger(__name__)

SCAN_STEP = 0x10
HEADER_SPAN = 0x110
SIG_ONE = 0x9C
SIG_ZERO = 0x9D
FMT_TAG = 0x9E
STRIDE = 0x9F
VERTEX_COUNT = 0xA4
INDEX_COUNT = 0xA8
DESCRIPTOR_PAIRS = (0x64, 0x68, 0x6C)
MIN_STRIDE = 4
MAX_STRIDE = 64


def half_to_float(h: int) -> float:
    """Convert an IEEE 754 half-precision bit pattern to a Python float.

    Args:
        h: 16-bit half-float pattern

    Returns:
        Python float
    """
    s = (h >> 15) & 0x1
    e = (h >> 10) & 0x1f
    m = h & 0x3ff
    sign = -1.0 if s else 1.0

    if e == 0:
        if m == 0:
            return -0.0 if s else 0.0
        # Denormalized
        return sign * (m / 1024.0) * (2 ** -14)
    elif e == 31:
        if m == 0:
            return float('-inf') if s else float('inf')
        return float('nan')
    else:
        return sign * (2 ** (e - 15)) * (1 + m / 1024.0)


def _signature_at(data: bytes, off: int) -> bool:
    return (data[off + SIG_ONE] == 1 and data[off + SIG_ZERO] == 0
            and data[off + FMT_TAG] in (PositionFormat.FLOAT32, PositionFormat.FLOAT16)
            and MIN_STRIDE <= data[off + STRIDE] <= MAX_STRIDE)


def _read_position(data: bytes, base: int, fmt: PositionFormat) -> Tuple[float, float, float]:
    if fmt is PositionFormat.FLOAT32:
        return (read_f32(data, base), read_f32(data, base + 4), read_f32(data, base + 8))
    return (
        half_to_float(read_u16(data, base)),
        half_to_float(read_u16(data, base + 2)),
        half_to_float(read_u16(data, base + 4)),
    )


def _decode_chunk(data: bytes, off: int):
    """Return (chunk, end offset) for the header at off, or None for a false positive."""
    fmt = PositionFormat(data[off + FMT_TAG])
    stride = data[off + STRIDE]
    vcount = read_u32(data, off + VERTEX_COUNT)
    icount = read_u32(data, off + INDEX_COUNT)

    vaddr = off + HEADER_SPAN
    iaddr = vaddr + stride * vcount
    iend = iaddr + 2 * icount
    if vaddr >= len(data):
        logger.debug("false positive at 0x%X: no room for a vertex array", off)
        return None
    if iend > len(data):
        logger.debug("false positive at 0x%X: chunk end 0x%X past buffer", off, iend)
        return None
    # Narrow strides can make the last position overlap the index array
    if vcount and vaddr + (vcount - 1) * stride + 3 * fmt.component_size > len(data):
        logger.debug("false positive at 0x%X: last vertex past buffer", off)
        return None

    codes = []
    offsets = []
    for pair in DESCRIPTOR_PAIRS:
        codes.append(read_u16(data, off + pair))
        offsets.append(read_u16(data, off + pair + 2) >> 8)

    vertices = [_read_position(data, vaddr + i * stride, fmt) for i in range(vcount)]

    tri_count = icount // 3
    flat = struct.unpack_from(f"<{tri_count * 3}H", data, iaddr)
    triangles = [tuple(flat[i:i + 3]) for i in range(0, len(flat), 3)]

    return MdlChunk(
        header_offset=off,
        stride=stride,
        fmt_tag=fmt,
        vertex_count=vcount,
        index_count=icount,
        codes=tuple(codes),
        offsets=tuple(offsets),
        vertices=vertices,
        triangles=triangles,
    ), iend


def scan_chunks(data: bytes) -> List[MdlChunk]:
    """Find and decode every mesh chunk in an MDL buffer.

    Args:
        data: Decompressed bytes of one MDL entry

    Returns:
        Chunks in buffer order

    Raises:
        NotFoundError: If no chunk matches
    """
    chunks = []
    off = 0
    while off + HEADER_SPAN <= len(data):
        if _signature_at(data, off):
            decoded = _decode_chunk(data, off)
            if decoded is not None:
                chunk, end = decoded
                logger.debug(
                    "chunk at 0x%X: fmt 0x%02X stride %d, %d verts, %d indices",
                    off, chunk.fmt_tag, chunk.stride, chunk.vertex_count, chunk.index_count,
                )
                chunks.append(chunk)
                off = end
                continue
        off += SCAN_STEP

    if not chunks:
        raise NotFoundError("No MDL chunks found")
    return chunks
