#!/usr/bin/env python3
"""Extract MDL models to glTF format.

Usage:
    python -m grp_extractor.extract_models <input> [-o <output>] [--all-lods]

Examples:
    # Every model in an archive
    python -m grp_extractor.extract_models data.grp -o ./output

    # A loose, already extracted MDL file
    python -m grp_extractor.extract_models ship.mdl -o ./output

    # All MDL files in a directory, keeping every LOD
    python -m grp_extractor.extract_models ./models/ -o ./output --all-lods
"""
import argparse
import logging
import os
import sys
from functools import partial
from pathlib import Path
from typing import Callable, Iterator, Tuple

from .errors import FormatError, GrpError
from .gltf_exporter import GLTFExporter
from .grp_archive import GrpArchive, safe_relative_path
from .mdl_scanner import scan_chunks


def iter_mdl_sources(input_path: Path) -> Iterator[Tuple[str, Callable[[], bytes]]]:
    """Yield (relative path, loader) for every MDL reachable from input_path.

    Loading is deferred so a corrupt entry fails on its own.
    """
    if input_path.is_dir():
        for mdl_file in sorted(input_path.glob("**/*.mdl")):
            yield mdl_file.relative_to(input_path).as_posix(), mdl_file.read_bytes
    elif input_path.suffix.lower() == ".grp":
        archive = GrpArchive.open(input_path)
        for entry in archive.find_entries("*.mdl"):
            yield entry.path, partial(archive.read_entry, entry)
    else:
        yield input_path.name, input_path.read_bytes


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Extract MDL models to glTF format"
    )
    parser.add_argument(
        "input",
        help="Input .grp archive, .mdl file or directory containing .mdl files",
    )
    parser.add_argument(
        "-o", "--output",
        default="./output",
        help="Output directory for glTF files (default: ./output)",
    )
    parser.add_argument(
        "--all-lods",
        action="store_true",
        help="Export every LOD instead of LOD0 only",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Input not found: {args.input}", file=sys.stderr)
        return 1

    os.makedirs(args.output, exist_ok=True)

    success_count = 0
    fail_count = 0
    written = set()

    try:
        for name, load in iter_mdl_sources(input_path):
            try:
                rel = safe_relative_path(name)
                out_dir = Path(args.output).joinpath(*rel.parent.parts)
                chunks = scan_chunks(load())
                exporter = GLTFExporter(chunks)
                out_dir.mkdir(parents=True, exist_ok=True)
                for group_index in range(len(exporter.groups)):
                    output_file = out_dir / f"{rel.stem}_{group_index}.glb"
                    if output_file in written:
                        raise FormatError(f"{output_file} already written by an earlier entry")
                    exporter.export(str(output_file), group_index=group_index,
                                    all_lods=args.all_lods)
                    written.add(output_file)
                    if args.verbose:
                        print(f"Exported: {name} model {group_index} -> {output_file}")
                success_count += 1
            except (GrpError, OSError) as e:
                print(f"Failed: {name} - {e}", file=sys.stderr)
                fail_count += 1
    except (GrpError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Summary
    total = success_count + fail_count
    print(f"\nExtracted {success_count}/{total} files to {args.output}")

    return 0 if fail_count == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
