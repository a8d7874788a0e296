"""Type definitions for MDL mesh chunks."""
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Tuple


class PositionFormat(IntEnum):
    """Vertex position encoding, stored at chunk header +0x9E."""
    FLOAT32 = 0x04
    FLOAT16 = 0x05

    @property
    def component_size(self) -> int:
        return 4 if self is PositionFormat.FLOAT32 else 2


@dataclass(frozen=True, order=True)
class ModelKey:
    """Identity of a model family, shared by all of its LODs."""

    fmt_tag: int
    stride: int
    codes: Tuple[int, int, int]


@dataclass
class MdlChunk:
    """One mesh record found inside an MDL byte stream."""

    header_offset: int
    stride: int
    fmt_tag: PositionFormat
    vertex_count: int
    index_count: int
    codes: Tuple[int, int, int]
    # Attribute offsets in bytes (the header stores 1/256 byte units)
    offsets: Tuple[int, int, int]
    vertices: List[Tuple[float, float, float]] = field(default_factory=list)
    triangles: List[Tuple[int, int, int]] = field(default_factory=list)

    @property
    def key(self) -> ModelKey:
        return ModelKey(fmt_tag=int(self.fmt_tag), stride=self.stride, codes=self.codes)


@dataclass
class ModelGroup:
    """A model family; lods index into the scan result, LOD0 first."""

    key: ModelKey
    lods: List[int] = field(default_factory=list)
