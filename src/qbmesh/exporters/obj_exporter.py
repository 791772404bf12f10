"""
Wavefront OBJ Format Exporter

OBJ is a universal text-based format supported by virtually all 3D software.
It has no native vertex colors, so colors are written in one of three ways:
- "extended": v x y z r g b
- "mtl": MTL file with one material per part color
- "none": geometry only
"""

from pathlib import Path
from typing import Union, Optional, List
import numpy as np

from ..greedy_mesh import MeshData


class OBJExporter:
    """
    Export mesh data to Wavefront OBJ format.

    Supports:
    - Standard OBJ with MTL materials
    - Extended OBJ with vertex colors (v x y z r g b)
    """

    def __init__(
        self,
        scale: float = 1.0,
        include_normals: bool = True,
        vertex_colors_mode: str = "extended"
    ):
        """
        Initialize the exporter.

        Args:
            scale: Scale factor for vertex positions
            include_normals: Whether to include vertex normals
            vertex_colors_mode: "extended", "mtl" or "none"
        """
        if vertex_colors_mode not in ("extended", "mtl", "none"):
            raise ValueError(f"Unknown vertex colors mode: {vertex_colors_mode}")

        self.scale = scale
        self.include_normals = include_normals
        self.vertex_colors_mode = vertex_colors_mode

    def export(
        self,
        mesh: MeshData,
        output_path: Union[str, Path],
        model_name: str = "qb_model"
    ):
        """
        Export mesh to OBJ file.

        Args:
            mesh: MeshData from GreedyMesher
            output_path: Output file path (.obj)
            model_name: Name for the model/object
        """
        output_path = Path(output_path)

        if len(mesh.vertices) == 0:
            raise ValueError("Cannot export empty mesh")

        vertices = mesh.vertices * self.scale
        colors = mesh.colors
        indices = mesh.indices

        lines = []
        lines.append("# qbmesh OBJ Export")
        lines.append(f"# Vertices: {len(vertices)}")
        lines.append(f"# Triangles: {len(indices) // 3}")
        lines.append("")

        if self.vertex_colors_mode == "mtl":
            mtl_path = output_path.with_suffix('.mtl')
            lines.append(f"mtllib {mtl_path.name}")
            lines.append("")

        lines.append(f"o {model_name}")
        lines.append("")

        if self.vertex_colors_mode == "extended":
            for v, c in zip(vertices, colors):
                r, g, b = c[0] / 255.0, c[1] / 255.0, c[2] / 255.0
                lines.append(f"v {v[0]:.6f} {v[1]:.6f} {v[2]:.6f} {r:.4f} {g:.4f} {b:.4f}")
        else:
            for v in vertices:
                lines.append(f"v {v[0]:.6f} {v[1]:.6f} {v[2]:.6f}")
        lines.append("")

        normal_indices = None
        if self.include_normals:
            unique_normals, normal_indices = np.unique(
                mesh.normals, axis=0, return_inverse=True
            )
            normal_indices = normal_indices.reshape(-1)
            for n in unique_normals:
                lines.append(f"vn {n[0]:.6f} {n[1]:.6f} {n[2]:.6f}")
            lines.append("")

        if self.vertex_colors_mode == "mtl":
            materials = self._material_names(colors)
            self._export_with_materials(lines, indices, colors, normal_indices, materials)
        else:
            for i in range(0, len(indices), 3):
                lines.append(self._face_line(indices, i, normal_indices))

        with open(output_path, 'w') as f:
            f.write('\n'.join(lines) + '\n')

        if self.vertex_colors_mode == "mtl":
            self._write_mtl(materials, output_path.with_suffix('.mtl'))

    @staticmethod
    def _material_names(colors: np.ndarray) -> dict:
        """Assign material names to colors in first-use order."""
        materials = {}
        for c in colors[:, :3]:
            color = (int(c[0]), int(c[1]), int(c[2]))
            if color not in materials:
                materials[color] = f"material_{len(materials)}"
        return materials

    @staticmethod
    def _face_line(
        indices: np.ndarray,
        i: int,
        normal_indices: Optional[np.ndarray]
    ) -> str:
        i0, i1, i2 = indices[i] + 1, indices[i+1] + 1, indices[i+2] + 1
        if normal_indices is not None:
            # flat shading: the first corner's normal covers the face
            ni = normal_indices[indices[i]] + 1
            return f"f {i0}//{ni} {i1}//{ni} {i2}//{ni}"
        return f"f {i0} {i1} {i2}"

    def _export_with_materials(
        self,
        lines: List[str],
        indices: np.ndarray,
        colors: np.ndarray,
        normal_indices: Optional[np.ndarray],
        materials: dict
    ):
        """Export faces grouped by material."""
        color_faces = {color: [] for color in materials}
        for i in range(0, len(indices), 3):
            c = colors[indices[i]]
            color_faces[(int(c[0]), int(c[1]), int(c[2]))].append(i)

        for color, face_starts in color_faces.items():
            lines.append(f"usemtl {materials[color]}")
            for i in face_starts:
                lines.append(self._face_line(indices, i, normal_indices))
            lines.append("")

    def _write_mtl(self, materials: dict, mtl_path: Path):
        """Write MTL material file."""
        lines = []
        lines.append("# qbmesh MTL Export")
        lines.append("")

        for (r, g, b), name in materials.items():
            r, g, b = r / 255.0, g / 255.0, b / 255.0
            lines.append(f"newmtl {name}")
            lines.append(f"Kd {r:.4f} {g:.4f} {b:.4f}")  # Diffuse color
            lines.append(f"Ka {r*0.1:.4f} {g*0.1:.4f} {b*0.1:.4f}")  # Ambient
            lines.append("Ks 0.0 0.0 0.0")
            lines.append("Ns 0")
            lines.append("d 1.0")
            lines.append("illum 1")
            lines.append("")

        with open(mtl_path, 'w') as f:
            f.write('\n'.join(lines))
