"""
Command-Line Interface for qbmesh

Usage:
    qbmesh model.qb -o output
    qbmesh model.qb --format obj glb --obj-colors mtl
    qbmesh model.qb --stats

"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional
import time

from . import __version__
from .exporters import GLTFExporter, OBJExporter
from .greedy_mesh import GreedyMesher, NaiveMesher, compare_mesh_stats
from .qb import read_matrix


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="qbmesh",
        description="Convert Qubicle Binary (.qb) voxel models to optimized meshes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  qbmesh model.qb -o model
      Convert model.qb to model.glb

  qbmesh model.qb --format obj --obj-colors mtl
      Export OBJ with one MTL material per color

  qbmesh model.qb --stats
      Print header fields and greedy/naive mesh statistics
        """
    )

    parser.add_argument(
        "input",
        help="Input .qb file"
    )

    parser.add_argument(
        "-o", "--output",
        help="Output path without extension (default: input path without suffix)"
    )

    parser.add_argument(
        "-f", "--format",
        nargs="+",
        choices=["glb", "gltf", "obj"],
        default=["glb"],
        help="Output format(s) (default: glb)"
    )

    parser.add_argument(
        "--scale",
        type=float,
        default=1.0,
        help="Output scale factor (default: 1.0)"
    )

    parser.add_argument(
        "--center",
        action="store_true",
        help="Center the mesh at origin"
    )

    parser.add_argument(
        "--naive-mesh",
        action="store_true",
        help="Use naive meshing (no merging, for debugging)"
    )

    parser.add_argument(
        "--obj-colors",
        choices=["extended", "mtl", "none"],
        default="extended",
        help="How OBJ output stores colors (default: extended)"
    )

    parser.add_argument(
        "--no-color-convert",
        action="store_true",
        help="Don't convert sRGB to Linear for glTF"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output with statistics"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print mesh statistics"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def print_stats(header, matrix, grid, greedy, naive):
    """Print header fields and mesh statistics."""
    stats = compare_mesh_stats(greedy, naive)
    print("\nModel:")
    print(f"  Version: {header.version}")
    print(f"  Color format: {header.color_format}")
    print(f"  Z axis: {header.z_axis_orientation.name.lower()}")
    print(f"  Matrix: {matrix.name!r} size {matrix.size} at {matrix.position}")
    print(f"  Voxels: {grid.count_voxels()}")
    print("\nMesh Statistics:")
    print(f"  Greedy parts: {len(greedy.indices) // 6}")
    print(f"  Greedy vertices: {stats['greedy_vertices']}")
    print(f"  Naive vertices: {stats['naive_vertices']}")
    print(f"  Vertex reduction: {stats['vertex_reduction_percent']:.1f}%")
    print(f"  Triangle reduction: {stats['triangle_reduction_percent']:.1f}%")


def process_single(args) -> int:
    """Convert a single .qb file."""
    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    if args.output:
        output_base = Path(args.output)
    else:
        output_base = input_path.with_suffix("")

    start_time = time.time()

    try:
        if args.verbose:
            print(f"Loading: {input_path}")

        header, matrix, grid = read_matrix(input_path.read_bytes())

        if args.verbose:
            print("Generating mesh...")

        mesher_class = NaiveMesher if args.naive_mesh else GreedyMesher
        mesh = mesher_class(center=args.center).mesh(grid)

        if args.stats or args.verbose:
            greedy = mesh if not args.naive_mesh else GreedyMesher(center=args.center).mesh(grid)
            naive = mesh if args.naive_mesh else NaiveMesher(center=args.center).mesh(grid)
            print_stats(header, matrix, grid, greedy, naive)

        # gltf and glb both write the binary .glb file
        formats = dict.fromkeys("glb" if fmt == "gltf" else fmt for fmt in args.format)
        for fmt in formats:
            if fmt == "glb":
                output_path = output_base.with_suffix(".glb")
                GLTFExporter(
                    convert_colors=not args.no_color_convert,
                    scale=args.scale
                ).export(mesh, output_path)

            elif fmt == "obj":
                output_path = output_base.with_suffix(".obj")
                OBJExporter(
                    scale=args.scale,
                    vertex_colors_mode=args.obj_colors
                ).export(mesh, output_path, model_name=matrix.name or "qb_model")

            if args.verbose:
                print(f"Exported: {output_path}")

        elapsed = time.time() - start_time
        if args.verbose:
            print(f"\nCompleted in {elapsed:.2f}s")

        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    return process_single(args)


if __name__ == "__main__":
    sys.exit(main())
