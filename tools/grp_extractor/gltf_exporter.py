"""glTF exporter for scanned MDL chunks."""
import math
import struct
from typing import List, Tuple

from pygltflib import (
    GLTF2,
    Buffer,
    BufferView,
    Accessor,
    Mesh,
    Primitive,
    Node,
    Scene,
    Asset,
)

from .errors import NotFoundError
from .mdl_grouper import group_models
from .mdl_types import MdlChunk, ModelGroup


class GLTFExporter:
    """Exports one model family's LODs to glTF/GLB format."""

    def __init__(self, chunks: List[MdlChunk]):
        """Initialize exporter with the chunks of one MDL entry.

        Args:
            chunks: Result of scan_chunks
        """
        self.chunks = chunks
        self.groups: List[ModelGroup] = group_models(chunks)

    def _compute_bounds(self, vertices: List[Tuple[float, float, float]]) -> Tuple[List[float], List[float]]:
        """Compute min/max bounds for vertices.

        Non-finite components (NaN or inf half floats) are left out so the
        accessor stays valid JSON.
        """
        min_bounds = [0.0] * 3
        max_bounds = [0.0] * 3

        for i in range(3):
            values = [v[i] for v in vertices if math.isfinite(v[i])]
            if values:
                min_bounds[i] = min(values)
                max_bounds[i] = max(values)

        return min_bounds, max_bounds

    def export(self, output_path: str, group_index: int = 0, all_lods: bool = False):
        """Export a model group to a GLB file.

        Args:
            output_path: Path for output .glb file
            group_index: Which model family to export
            all_lods: Export every LOD as its own node instead of LOD0 only

        Raises:
            ValueError: If group_index is out of range
            NotFoundError: If the selected chunks carry no mesh data
        """
        if not 0 <= group_index < len(self.groups):
            raise ValueError(f"No model group {group_index} ({len(self.groups)} groups)")

        group = self.groups[group_index]
        lods = group.lods if all_lods else group.lods[:1]

        gltf = GLTF2()
        gltf.asset = Asset(version="2.0", generator="GRP Extractor")

        buffer_data = b""
        for lod, chunk_index in enumerate(lods):
            chunk = self.chunks[chunk_index]
            if not chunk.vertices or not chunk.triangles:
                raise NotFoundError(
                    f"No mesh data in chunk at 0x{chunk.header_offset:X}"
                )

            # Pack vertex data (position only)
            vertex_data = b"".join(struct.pack("<fff", *v) for v in chunk.vertices)

            # Pack index data
            index_data = b"".join(struct.pack("<3H", *t) for t in chunk.triangles)
            index_count = len(chunk.triangles) * 3

            # Pad index data to 4-byte alignment if needed
            if len(index_data) % 4 != 0:
                index_data += b"\x00" * (4 - len(index_data) % 4)

            vertex_view = len(gltf.bufferViews)
            gltf.bufferViews.append(
                BufferView(
                    buffer=0,
                    byteOffset=len(buffer_data),
                    byteLength=len(vertex_data),
                    target=34962,  # ARRAY_BUFFER
                )
            )
            buffer_data += vertex_data

            gltf.bufferViews.append(
                BufferView(
                    buffer=0,
                    byteOffset=len(buffer_data),
                    byteLength=len(index_data),
                    target=34963,  # ELEMENT_ARRAY_BUFFER
                )
            )
            buffer_data += index_data

            min_bounds, max_bounds = self._compute_bounds(chunk.vertices)

            position_accessor = len(gltf.accessors)
            gltf.accessors.append(
                Accessor(
                    bufferView=vertex_view,
                    componentType=5126,  # FLOAT
                    count=len(chunk.vertices),
                    type="VEC3",
                    max=max_bounds,
                    min=min_bounds,
                )
            )
            gltf.accessors.append(
                Accessor(
                    bufferView=vertex_view + 1,
                    componentType=5123,  # UNSIGNED_SHORT
                    count=index_count,
                    type="SCALAR",
                )
            )

            gltf.meshes.append(
                Mesh(
                    name=f"lod{lod}",
                    primitives=[
                        Primitive(
                            attributes={"POSITION": position_accessor},
                            indices=position_accessor + 1,
                            mode=4,  # TRIANGLES
                        )
                    ],
                )
            )
            gltf.nodes.append(Node(mesh=lod, name=f"lod{lod}"))

        gltf.buffers = [Buffer(byteLength=len(buffer_data))]
        gltf.scenes = [Scene(nodes=list(range(len(gltf.nodes))))]
        gltf.scene = 0

        # Set binary data and save
        gltf.set_binary_blob(buffer_data)
        gltf.save(output_path)
