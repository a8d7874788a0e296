"""GRP2 Archive, MDL Model and TFD Texture Extractor Package."""
from .errors import (
    BoundsError,
    CompressionError,
    EncodingError,
    FormatError,
    GrpError,
    InferenceError,
    NotFoundError,
    SizeError,
)
from .grp_archive import Compression, GrpArchive, GrpEntry
from .mdl_grouper import group_models
from .mdl_scanner import half_to_float, scan_chunks
from .mdl_types import MdlChunk, ModelGroup, ModelKey, PositionFormat
from .tfd_decoder import BlockFormat, TfdImage, TfdLayout, decode_tfd, infer_layout

__all__ = [
    "BoundsError", "CompressionError", "EncodingError", "FormatError", "GrpError",
    "InferenceError", "NotFoundError", "SizeError",
    "Compression", "GrpArchive", "GrpEntry",
    "group_models", "half_to_float", "scan_chunks",
    "MdlChunk", "ModelGroup", "ModelKey", "PositionFormat",
    "BlockFormat", "TfdImage", "TfdLayout", "decode_tfd", "infer_layout",
]
