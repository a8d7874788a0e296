"""Zstandard frame detection and decompression."""
import zstandard as zstd

from .errors import CompressionError

ZSTD_MAGIC = b"\x28\xB5\x2F\xFD"


def is_compressed(data: bytes) -> bool:
    """Check whether a byte range starts with the Zstandard frame magic."""
    return bytes(data[:4]) == ZSTD_MAGIC


def decompress(data: bytes) -> bytes:
    """Decode one Zstandard frame, or copy raw data unchanged.

    Args:
        data: Frame-compressed or raw bytes

    Returns:
        Decoded bytes (a fresh copy for raw input)

    Raises:
        CompressionError: If the frame is corrupt or ends early
    """
    if not is_compressed(data):
        return bytes(data)

    dobj = zstd.ZstdDecompressor().decompressobj()
    try:
        out = dobj.decompress(bytes(data))
    except zstd.ZstdError as e:
        raise CompressionError(f"corrupt zstd frame: {e}") from e

    if not dobj.eof:
        raise CompressionError(
            f"truncated zstd frame ({len(data)} bytes in, {len(out)} decoded)"
        )
    return out
