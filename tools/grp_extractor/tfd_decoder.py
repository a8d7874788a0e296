"""Decoder for TFD texture data paired with TFH headers.

TFD/TFH Format (reverse engineered, partly guessed):
- .tfd holds the block-compressed mip chain, top mip first
- .tfd whose length is not a multiple of 8 is a single zstd stream; these
  have only ever held BC5 normal maps
- .tfh layout is not understood; a u32 at 0xA0 often holds the top
  dimension, and five 8-byte tile records at 0x40 were used by an older
  heuristic
- textures are assumed square (not verified)

Dimensions are inferred by matching the data length against every
plausible mip chain rather than trusted from the header.
"""
import logging
import math
import struct
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .binary_reader import read_u32
from .compression import decompress
from .errors import FormatError, InferenceError, SizeError

logger = logging.getLogger(__name__)

TFH_MIN_SIZE = 0xA4
TFH_DIM_HINT_OFFSET = 0xA0
TFH_TILE_TABLE_OFFSET = 0x40
TFH_TILE_RECORDS = 5

CANDIDATE_DIMENSIONS = (64, 128, 256, 512, 1024, 2048, 4096)
MAX_MIPS = 9
HINT_MIN = 64
HINT_MAX = 8192


class BlockFormat(Enum):
    """Block compression formats; value is bytes per 4x4 block."""
    BC1 = "BC1"
    BC3 = "BC3"
    BC5 = "BC5"

    @property
    def block_size(self) -> int:
        return 8 if self is BlockFormat.BC1 else 16


# Raw block data: footprint decides the format
RAW_FORMATS = (BlockFormat.BC1, BlockFormat.BC3)
COMPRESSED_FORMATS = (BlockFormat.BC5,)


@dataclass(frozen=True)
class TfdLayout:
    """Inferred texture layout."""
    dimension: int
    mip_count: int
    block_format: BlockFormat


@dataclass
class TfdImage:
    """Decoded top mip as tightly packed RGBA8."""
    width: int
    height: int
    rgba: bytes

    def to_image(self):
        """Convert to a Pillow RGBA image."""
        from PIL import Image
        return Image.frombytes("RGBA", (self.width, self.height), self.rgba)

    def save_png(self, output_path: str):
        """Export as PNG file.

        Args:
            output_path: Path for output PNG file
        """
        self.to_image().save(output_path, "PNG")


def mip_chain_size(dimension: int, mip_count: int, block_size: int) -> int:
    """Calculate total byte size of a square mip chain.

    Args:
        dimension: Top mip width/height
        mip_count: Number of mip levels
        block_size: Bytes per 4x4 block

    Returns:
        Size in bytes
    """
    total = 0
    for mip in range(mip_count):
        dim = max(1, dimension >> mip)
        blocks = (dim + 3) // 4
        total += blocks * blocks * block_size
    return total


def _search(length: int, dimensions, formats) -> Optional[TfdLayout]:
    for fmt in formats:
        for dim in dimensions:
            for mips in range(1, MAX_MIPS + 1):
                if mip_chain_size(dim, mips, fmt.block_size) == length:
                    return TfdLayout(dimension=dim, mip_count=mips, block_format=fmt)
    return None


def header_dimension_hint(tfh: bytes) -> Optional[int]:
    """Read the dimension hint at 0xA0, if it is a plausible power of two.

    Raises:
        FormatError: If the header is too short to hold the hint
    """
    if len(tfh) < TFH_MIN_SIZE:
        raise FormatError(f"TFH header too small: {len(tfh)} bytes, need {TFH_MIN_SIZE}")
    value = read_u32(tfh, TFH_DIM_HINT_OFFSET)
    if HINT_MIN <= value <= HINT_MAX and value & (value - 1) == 0:
        return value
    return None


def legacy_tile_dimension(tfh: bytes) -> int:
    """Estimate the dimension from the TFH tile table.

    Older heuristic, superseded by length-based inference and only reported
    for diagnostics: takes the largest of five tile sizes at 0x40 and
    returns ``16 * floor(sqrt(largest))``.

    Raises:
        FormatError: If the header is too short or has no tile info
    """
    end = TFH_TILE_TABLE_OFFSET + TFH_TILE_RECORDS * 8
    if len(tfh) < end:
        raise FormatError(f"TFH header too small: {len(tfh)} bytes")
    largest = 0
    for i in range(TFH_TILE_RECORDS):
        largest = max(largest, read_u32(tfh, TFH_TILE_TABLE_OFFSET + i * 8 + 4))
    if largest == 0:
        raise FormatError("TFH contains no tile info")
    return math.isqrt(largest) * 16


def infer_layout(tfh: bytes, length: int, compressed: bool = False) -> TfdLayout:
    """Find the mip chain that exactly accounts for the data length.

    Args:
        tfh: Header blob, consulted only when no candidate dimension fits
        length: Length of the (decompressed) block data
        compressed: Data came from a zstd stream, which is always BC5

    Returns:
        The first matching layout

    Raises:
        FormatError: If the header hint is needed but the header is too short
        InferenceError: If no combination matches
    """
    formats = COMPRESSED_FORMATS if compressed else RAW_FORMATS
    layout = _search(length, CANDIDATE_DIMENSIONS, formats)
    if layout is None:
        hint = header_dimension_hint(tfh)
        if hint is not None:
            logger.debug("no candidate matched %d bytes, trying header hint %d", length, hint)
            layout = _search(length, (hint,), formats)
    if layout is None:
        raise InferenceError(f"No texture layout matches {length} bytes of block data")
    logger.debug("inferred %dx%d, %d mips, %s", layout.dimension, layout.dimension,
                 layout.mip_count, layout.block_format.value)
    return layout


def decode_tfd(tfh: bytes, tfd: bytes) -> TfdImage:
    """Decode the top mip of a TFD using its TFH.

    Args:
        tfh: Header blob
        tfd: Data blob, raw blocks or one zstd stream

    Returns:
        Decoded RGBA image

    Raises:
        FormatError: If the header hint is needed but the header is too short
        CompressionError: If the zstd stream is corrupt
        InferenceError: If no layout matches the data length
    """
    compressed = len(tfd) % 8 != 0
    data = decompress(tfd) if compressed else bytes(tfd)
    layout = infer_layout(tfh, len(data), compressed=compressed)
    rgba = decode_blocks(data, layout.dimension, layout.dimension, layout.block_format)
    return TfdImage(width=layout.dimension, height=layout.dimension, rgba=rgba)


def decode_blocks(data: bytes, width: int, height: int, block_format: BlockFormat) -> bytes:
    """Decompress the leading run of blocks to RGBA.

    Args:
        data: Block data, top mip first
        width: Image width
        height: Image height
        block_format: Block compression format

    Returns:
        Decompressed RGBA data

    Raises:
        SizeError: If data holds fewer blocks than the image needs
    """
    block_size = block_format.block_size
    blocks_x = (width + 3) // 4
    blocks_y = (height + 3) // 4
    expected = blocks_x * blocks_y * block_size
    if len(data) < expected:
        raise SizeError(f"TFD too small: expected at least {expected} bytes, got {len(data)}")

    if block_format is BlockFormat.BC1:
        decode_block = decode_bc1_block
    elif block_format is BlockFormat.BC3:
        decode_block = decode_bc3_block
    else:
        decode_block = decode_bc5_block

    result = bytearray(width * height * 4)
    pitch = width * 4
    for by in range(blocks_y):
        for bx in range(blocks_x):
            block_offset = (by * blocks_x + bx) * block_size
            texels = decode_block(data[block_offset:block_offset + block_size])
            for y in range(4):
                py = by * 4 + y
                if py >= height:
                    break
                cols = min(4, width - bx * 4)
                dst = py * pitch + bx * 16
                result[dst:dst + cols * 4] = b"".join(
                    bytes(texels[y * 4 + x]) for x in range(cols)
                )

    return bytes(result)


def _rgb565_to_rgba(color: int) -> Tuple[int, int, int, int]:
    """Convert RGB565 to RGBA tuple, rounding to nearest."""
    r = (((color >> 11) & 0x1F) * 255 + 15) // 31
    g = (((color >> 5) & 0x3F) * 255 + 31) // 63
    b = ((color & 0x1F) * 255 + 15) // 31
    return (r, g, b, 255)


def _color_palette(block: bytes, opaque_only: bool) -> List[Tuple[int, int, int, int]]:
    c0, c1 = struct.unpack_from("<HH", block, 0)
    rgb0 = _rgb565_to_rgba(c0)
    rgb1 = _rgb565_to_rgba(c1)

    if c0 > c1 or opaque_only:
        # 4-color block
        return [
            rgb0,
            rgb1,
            tuple((2 * a + b) // 3 for a, b in zip(rgb0[:3], rgb1[:3])) + (255,),
            tuple((a + 2 * b) // 3 for a, b in zip(rgb0[:3], rgb1[:3])) + (255,),
        ]
    # 3-color block + transparent
    return [
        rgb0,
        rgb1,
        tuple((a + b) // 2 for a, b in zip(rgb0[:3], rgb1[:3])) + (255,),
        (0, 0, 0, 0),
    ]


def _color_texels(block: bytes, opaque_only: bool = False) -> List[Tuple[int, int, int, int]]:
    colors = _color_palette(block, opaque_only)
    indices = struct.unpack_from("<I", block, 4)[0]
    return [colors[(indices >> (i * 2)) & 0x3] for i in range(16)]


def _alpha_texels(block: bytes) -> List[int]:
    """Decode an 8-byte interpolated single-channel block."""
    a0, a1 = block[0], block[1]

    values = [a0, a1, 0, 0, 0, 0, 0, 0]
    if a0 > a1:
        for i in range(6):
            values[2 + i] = ((6 - i) * a0 + (1 + i) * a1) // 7
    else:
        for i in range(4):
            values[2 + i] = ((4 - i) * a0 + (1 + i) * a1) // 5
        values[6] = 0
        values[7] = 255

    # 6 bytes of 3-bit indices
    bits = int.from_bytes(block[2:8], "little")
    return [values[(bits >> (i * 3)) & 0x7] for i in range(16)]


def decode_bc1_block(block: bytes) -> List[Tuple[int, int, int, int]]:
    """Decode a BC1 block into 16 row-major RGBA texels."""
    return _color_texels(block)


def decode_bc3_block(block: bytes) -> List[Tuple[int, int, int, int]]:
    """Decode a BC3 block: alpha block followed by a 4-color color block."""
    alphas = _alpha_texels(block[0:8])
    colors = _color_texels(block[8:16], opaque_only=True)
    return [(r, g, b, a) for (r, g, b, _), a in zip(colors, alphas)]


def decode_bc5_block(block: bytes) -> List[Tuple[int, int, int, int]]:
    """Decode a BC5 block as a tangent-space normal.

    Red and green hold X and Y; blue is the reconstructed Z.
    """
    xs = _alpha_texels(block[0:8])
    ys = _alpha_texels(block[8:16])
    texels = []
    for x, y in zip(xs, ys):
        nx = x / 127.5 - 1.0
        ny = y / 127.5 - 1.0
        nz = math.sqrt(max(0.0, 1.0 - nx * nx - ny * ny))
        texels.append((x, y, int(round((nz + 1.0) * 127.5)), 255))
    return texels
