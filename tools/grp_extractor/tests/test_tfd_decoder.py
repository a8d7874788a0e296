"""Tests for TFD texture decoding."""
import math
import os
import random
import struct
import sys
import tempfile

import pytest
import zstandard as zstd

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from grp_extractor.errors import FormatError, InferenceError, SizeError
from grp_extractor.tfd_decoder import (
    TFH_MIN_SIZE,
    BlockFormat,
    TfdLayout,
    decode_bc1_block,
    decode_bc3_block,
    decode_bc5_block,
    decode_blocks,
    decode_tfd,
    infer_layout,
    legacy_tile_dimension,
    mip_chain_size,
)


def create_test_tfh(dimension_hint=0, tile_sizes=(0, 0, 0, 0, 0)):
    """Create a synthetic TFH header."""
    header = bytearray(TFH_MIN_SIZE)
    for i, size in enumerate(tile_sizes):
        struct.pack_into("<II", header, 0x40 + i * 8, i, size)
    struct.pack_into("<I", header, 0xA0, dimension_hint)
    return bytes(header)


def expand(value, bits):
    return round(value * 255 / ((1 << bits) - 1))


def test_bc1_equal_endpoints_uniform_opaque():
    """c0 == c1 with zero indices is a uniform opaque tile of c0."""
    c0 = 0x7BEF
    texels = decode_bc1_block(struct.pack("<HHI", c0, c0, 0))

    expected = (expand(c0 >> 11, 5), expand((c0 >> 5) & 0x3F, 6), expand(c0 & 0x1F, 5), 255)
    assert texels == [expected] * 16


def test_bc1_four_color_palette():
    """c0 > c1 interpolates thirds, all opaque."""
    # Texels 0..3 select palette entries 0..3
    block = struct.pack("<HHI", 0xFFFF, 0x0000, 0xE4)
    texels = decode_bc1_block(block)

    assert texels[0] == (255, 255, 255, 255)
    assert texels[1] == (0, 0, 0, 255)
    assert texels[2] == (170, 170, 170, 255)
    assert texels[3] == (85, 85, 85, 255)
    assert texels[4:] == [(255, 255, 255, 255)] * 12


def test_bc1_three_color_transparent():
    """c0 <= c1 uses the midpoint and a transparent fourth entry."""
    block = struct.pack("<HHI", 0x0000, 0xFFFF, 0xE4)
    texels = decode_bc1_block(block)

    assert texels[2] == (127, 127, 127, 255)
    assert texels[3] == (0, 0, 0, 0)


def test_bc3_alpha_ramp():
    """Alpha uses a 6-step ramp when a0 > a1."""
    color = struct.pack("<HHI", 0xF800, 0x0000, 0)
    block = bytes([255, 0]) + b"\xff" * 6 + color
    texels = decode_bc3_block(block)

    # Index 7 is the last interpolated value
    assert texels[0] == (255, 0, 0, (255 * 1 + 0 * 6) // 7)
    assert all(t == texels[0] for t in texels)


def test_bc3_alpha_explicit_extremes():
    """a0 <= a1 maps indices 6 and 7 to 0 and 255."""
    # Texel 0 -> index 6, texel 1 -> index 7
    bits = 6 | (7 << 3)
    block = bytes([10, 200]) + bits.to_bytes(6, "little") + struct.pack("<HHI", 0, 0, 0)
    texels = decode_bc3_block(block)

    assert texels[0][3] == 0
    assert texels[1][3] == 255
    assert texels[2][3] == 10


def test_bc3_color_is_always_four_color():
    """The BC3 color block never produces transparent texels."""
    block = bytes([255, 255]) + b"\x00" * 6 + struct.pack("<HHI", 0x0000, 0xFFFF, 0xFFFFFFFF)
    texels = decode_bc3_block(block)

    assert texels[0] == (170, 170, 170, 255)


def test_bc5_flat_normal():
    """Centered X/Y reconstructs Z pointing out of the surface."""
    channel = bytes([128, 128]) + b"\x00" * 6
    texels = decode_bc5_block(channel + channel)

    assert texels == [(128, 128, 255, 255)] * 16


def test_bc5_channels_independent():
    """Red and green come from separate blocks."""
    red = bytes([255, 255]) + b"\x00" * 6
    green = bytes([0, 0]) + b"\x00" * 6
    r, g, b, a = decode_bc5_block(red + green)[0]

    assert (r, g, a) == (255, 0, 255)
    nz = math.sqrt(max(0.0, 1.0 - 1.0 - 1.0))
    assert b == int(round((nz + 1.0) * 127.5))


def test_mip_chain_size():
    """Sums block bytes over every mip, clamping at one block."""
    assert mip_chain_size(256, 1, 16) == 64 * 64 * 16
    assert mip_chain_size(64, 2, 8) == 16 * 16 * 8 + 8 * 8 * 8
    assert mip_chain_size(4, 4, 16) == 16 * 4


def test_infer_layout_exact_match():
    """A BC3-sized blob for 256x256 with one mip is inferred exactly."""
    layout = infer_layout(create_test_tfh(), 65536)
    assert layout == TfdLayout(dimension=256, mip_count=1, block_format=BlockFormat.BC3)


def test_infer_layout_bc1_full_chain():
    """8-byte footprints decode as BC1."""
    size = mip_chain_size(512, 9, 8)
    layout = infer_layout(create_test_tfh(), size)
    assert layout == TfdLayout(dimension=512, mip_count=9, block_format=BlockFormat.BC1)


def test_infer_layout_compressed_is_bc5():
    """Compressed data only considers BC5."""
    layout = infer_layout(create_test_tfh(), 64 * 64 * 16 // 16, compressed=True)
    assert layout == TfdLayout(dimension=64, mip_count=1, block_format=BlockFormat.BC5)


def test_infer_layout_header_hint():
    """Dimensions outside the candidate list come from the header hint."""
    size = mip_chain_size(8192, 1, 8)
    layout = infer_layout(create_test_tfh(dimension_hint=8192), size)
    assert layout == TfdLayout(dimension=8192, mip_count=1, block_format=BlockFormat.BC1)


def test_infer_layout_rejects_bad_hint():
    """A hint that is not a power of two is ignored."""
    size = mip_chain_size(8192, 1, 8)
    with pytest.raises(InferenceError):
        infer_layout(create_test_tfh(dimension_hint=8000), size)


def test_infer_layout_no_match():
    """Should raise when nothing matches."""
    with pytest.raises(InferenceError):
        infer_layout(create_test_tfh(), 1000)


def test_decode_tfd_256_bc3():
    """Decodes the top mip to a 256x256 RGBA image."""
    color = struct.pack("<HHI", 0x001F, 0x001F, 0)
    block = bytes([200, 200]) + b"\x00" * 6 + color
    image = decode_tfd(create_test_tfh(), block * (64 * 64))

    assert image.width == 256
    assert image.height == 256
    assert len(image.rgba) == 256 * 256 * 4
    assert image.rgba[:4] == bytes((0, 0, 255, 200))
    assert image.rgba[-4:] == bytes((0, 0, 255, 200))


def test_decode_tfd_skips_lower_mips():
    """Only the top mip is decoded even when a chain is present."""
    top = struct.pack("<HHI", 0xF800, 0xF800, 0) * (16 * 16)
    rest = struct.pack("<HHI", 0x07E0, 0x07E0, 0) * (8 * 8 + 4 * 4 + 2 * 2 + 1 + 1 + 1)
    image = decode_tfd(create_test_tfh(), top + rest)

    assert image.width == 64
    assert set(image.rgba[i:i + 4] for i in range(0, len(image.rgba), 4)) == {bytes((255, 0, 0, 255))}


def test_decode_tfd_compressed_bc5():
    """A blob whose length is not a multiple of 8 is a zstd BC5 stream."""
    for seed in range(32):
        rng = random.Random(seed)
        blocks = bytes(rng.getrandbits(8) for _ in range(64 * 64 // 16 * 16))
        frame = zstd.ZstdCompressor().compress(blocks)
        if len(frame) % 8:
            break

    image = decode_tfd(create_test_tfh(), frame)

    assert (image.width, image.height) == (64, 64)
    assert all(image.rgba[i] == 255 for i in range(3, len(image.rgba), 4))


def test_decode_tfd_short_header_unused():
    """A short header is fine when the data length alone fixes the layout."""
    image = decode_tfd(b"\x00" * 0x7C, b"\x00" * 65536)
    assert (image.width, image.height) == (256, 256)


def test_decode_tfd_short_header_needed():
    """Should raise FormatError when the hint is needed but cannot be read."""
    with pytest.raises(FormatError, match="too small"):
        decode_tfd(b"\x00" * 16, b"\x00" * mip_chain_size(8192, 1, 8))


def test_decode_tfd_no_layout():
    """Should raise InferenceError when the length fits no layout."""
    with pytest.raises(InferenceError):
        decode_tfd(create_test_tfh(), b"\x00" * 1000)


def test_decode_blocks_too_short():
    """Should raise SizeError when blocks are missing."""
    with pytest.raises(SizeError):
        decode_blocks(b"\x00" * 8, 8, 8, BlockFormat.BC1)


def test_decode_blocks_clips_partial_blocks():
    """Images not a multiple of 4 keep a tight pitch."""
    block = struct.pack("<HHI", 0xFFFF, 0x0000, 0x55555555)
    rgba = decode_blocks(block * 4, 6, 6, BlockFormat.BC1)

    assert len(rgba) == 6 * 6 * 4
    assert rgba == bytes((0, 0, 0, 255)) * 36


def test_legacy_tile_dimension():
    """16 * floor(sqrt(largest tile size))."""
    assert legacy_tile_dimension(create_test_tfh(tile_sizes=(4, 256, 16, 1, 0))) == 256
    assert legacy_tile_dimension(create_test_tfh(tile_sizes=(0, 0, 70, 0, 0))) == 128


def test_legacy_tile_dimension_empty():
    """A header without tile sizes cannot be used."""
    with pytest.raises(FormatError):
        legacy_tile_dimension(create_test_tfh())


def test_save_png():
    """Decoded images export through Pillow."""
    from PIL import Image

    block = struct.pack("<HHI", 0x07E0, 0x07E0, 0)
    image = decode_tfd(create_test_tfh(), block * (32 * 32))

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "out.png")
        image.save_png(path)
        with Image.open(path) as img:
            assert img.size == (image.width, image.height)
            assert img.mode == "RGBA"
            assert img.getpixel((0, 0)) == (0, 255, 0, 255)
