"""Grouping of scanned MDL chunks into LOD families."""
from collections import defaultdict
from typing import Dict, List

from .mdl_types import MdlChunk, ModelGroup, ModelKey


def group_models(chunks: List[MdlChunk]) -> List[ModelGroup]:
    """Partition chunks by ModelKey, finest LOD first.

    Chunks of one family share position format, stride and descriptor
    codes; their vertex count decides the LOD order.

    Args:
        chunks: Result of scan_chunks

    Returns:
        Groups sorted by key, each with chunk indices sorted by vertex count
        descending
    """
    families: Dict[ModelKey, List[int]] = defaultdict(list)
    for idx, chunk in enumerate(chunks):
        families[chunk.key].append(idx)

    groups = []
    for key in sorted(families):
        lods = sorted(families[key], key=lambda i: chunks[i].vertex_count, reverse=True)
        groups.append(ModelGroup(key=key, lods=lods))
    return groups
