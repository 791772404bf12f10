"""
glTF 2.0 Exporter (.glb binary format)

Writes a single-primitive binary glTF file with:
- Vertex colors (sRGB converted to Linear by default)
- Flat normals and zero texture coordinates
- Efficient binary buffer packing

Binary buffer layout:
  Indices (uint16/uint32), Positions (float32 vec3), Normals (float32 vec3),
  UVs (float32 vec2), Colors (uint8 vec4 normalized)
"""

from pathlib import Path
from typing import Union, Dict, Any
import json
import struct
import numpy as np

from ..color import srgb_to_linear
from ..greedy_mesh import MeshData


# glTF constants
GLTF_VERSION = "2.0"
GENERATOR = "qbmesh"

GLB_MAGIC = 0x46546C67   # "glTF"
JSON_CHUNK = 0x4E4F534A  # "JSON"
BIN_CHUNK = 0x004E4942   # "BIN\0"

# Component types
UNSIGNED_BYTE = 5121
UNSIGNED_SHORT = 5123
UNSIGNED_INT = 5125
FLOAT = 5126

# Buffer view targets
ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963

# Primitive modes
TRIANGLES = 4


def _pad4(n: int) -> int:
    return (4 - n % 4) % 4


class GLTFExporter:
    """
    Export mesh data to glTF 2.0 binary format (.glb).
    """

    def __init__(self, convert_colors: bool = True, scale: float = 1.0):
        """
        Initialize the exporter.

        Args:
            convert_colors: If True, convert sRGB to Linear for vertex colors
            scale: Scale factor for vertex positions
        """
        self.convert_colors = convert_colors
        self.scale = scale

    def export(
        self,
        mesh: MeshData,
        output_path: Union[str, Path],
        material_name: str = "QBMaterial"
    ):
        """
        Export mesh to .glb file.

        Args:
            mesh: MeshData from GreedyMesher
            output_path: Output file path
            material_name: Name for the material
        """
        output_path = Path(output_path)

        if len(mesh.vertices) == 0:
            raise ValueError("Cannot export empty mesh")

        vertices = (mesh.vertices * self.scale).astype(np.float32)
        normals = mesh.normals.astype(np.float32)
        uvs = mesh.uvs.astype(np.float32)

        if self.convert_colors:
            colors = (srgb_to_linear(mesh.colors) * 255).round().astype(np.uint8)
        else:
            colors = mesh.colors.astype(np.uint8)

        if mesh.indices.max() < 65536:
            index_type = UNSIGNED_SHORT
            indices = mesh.indices.astype(np.uint16)
        else:
            index_type = UNSIGNED_INT
            indices = mesh.indices.astype(np.uint32)

        # (name, bytes, target) in buffer order
        views = [
            ("indices", indices.tobytes(), ELEMENT_ARRAY_BUFFER),
            ("positions", vertices.tobytes(), ARRAY_BUFFER),
            ("normals", normals.tobytes(), ARRAY_BUFFER),
            ("uvs", uvs.tobytes(), ARRAY_BUFFER),
            ("colors", colors.tobytes(), ARRAY_BUFFER),
        ]

        buffer_parts = []
        buffer_views = []
        offset = 0
        for _, data, target in views:
            buffer_views.append({
                "buffer": 0,
                "byteOffset": offset,
                "byteLength": len(data),
                "target": target
            })
            padding = b'\x00' * _pad4(len(data))
            buffer_parts.append(data + padding)
            offset += len(data) + len(padding)

        buffer_data = b''.join(buffer_parts)

        gltf = self._build_gltf(
            vertices, indices, index_type, buffer_views, len(buffer_data), material_name
        )
        self._write_glb(output_path, gltf, buffer_data)

    def _build_gltf(
        self,
        vertices: np.ndarray,
        indices: np.ndarray,
        index_type: int,
        buffer_views: list,
        buffer_length: int,
        material_name: str
    ) -> Dict[str, Any]:
        """Build the glTF JSON structure."""
        num_vertices = len(vertices)

        return {
            "asset": {
                "version": GLTF_VERSION,
                "generator": GENERATOR
            },
            "scene": 0,
            "scenes": [{"nodes": [0]}],
            "nodes": [{"mesh": 0, "name": "QBModel"}],
            "meshes": [
                {
                    "primitives": [
                        {
                            "attributes": {
                                "POSITION": 1,
                                "NORMAL": 2,
                                "TEXCOORD_0": 3,
                                "COLOR_0": 4
                            },
                            "indices": 0,
                            "material": 0,
                            "mode": TRIANGLES
                        }
                    ],
                    "name": "QBMesh"
                }
            ],
            "materials": [
                {
                    "name": material_name,
                    "pbrMetallicRoughness": {
                        "baseColorFactor": [1.0, 1.0, 1.0, 1.0],
                        "metallicFactor": 0.0,
                        "roughnessFactor": 0.9
                    },
                    "doubleSided": False
                }
            ],
            "accessors": [
                {
                    "bufferView": 0,
                    "componentType": index_type,
                    "count": len(indices),
                    "type": "SCALAR"
                },
                {
                    "bufferView": 1,
                    "componentType": FLOAT,
                    "count": num_vertices,
                    "type": "VEC3",
                    "min": vertices.min(axis=0).tolist(),
                    "max": vertices.max(axis=0).tolist()
                },
                {
                    "bufferView": 2,
                    "componentType": FLOAT,
                    "count": num_vertices,
                    "type": "VEC3"
                },
                {
                    "bufferView": 3,
                    "componentType": FLOAT,
                    "count": num_vertices,
                    "type": "VEC2"
                },
                {
                    "bufferView": 4,
                    "componentType": UNSIGNED_BYTE,
                    "count": num_vertices,
                    "type": "VEC4",
                    "normalized": True
                }
            ],
            "bufferViews": buffer_views,
            "buffers": [{"byteLength": buffer_length}]
        }

    def _write_glb(
        self,
        output_path: Path,
        gltf: Dict[str, Any],
        buffer_data: bytes
    ):
        """Write the GLB binary file."""
        json_bytes = json.dumps(gltf, separators=(',', ':')).encode('utf-8')
        json_bytes += b' ' * _pad4(len(json_bytes))

        total_length = 12 + 8 + len(json_bytes) + 8 + len(buffer_data)

        with open(output_path, 'wb') as f:
            f.write(struct.pack('<III', GLB_MAGIC, 2, total_length))

            f.write(struct.pack('<II', len(json_bytes), JSON_CHUNK))
            f.write(json_bytes)

            f.write(struct.pack('<II', len(buffer_data), BIN_CHUNK))
            f.write(buffer_data)
