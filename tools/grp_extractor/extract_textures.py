#!/usr/bin/env python3
"""Convert TFD/TFH texture pairs to PNG.

Each .tfd is paired with the .tfh of the same base name, in the same
archive or directory.

Usage:
    python -m grp_extractor.extract_textures <input> [-o <output>] [--info]
"""
import argparse
import logging
import os
import sys
from functools import partial
from pathlib import Path, PurePosixPath
from typing import Callable, Iterator, Optional, Tuple

from .compression import decompress
from .errors import FormatError, GrpError, NotFoundError
from .grp_archive import GrpArchive, safe_relative_path
from .tfd_decoder import (
    decode_tfd,
    header_dimension_hint,
    infer_layout,
    legacy_tile_dimension,
)


def iter_texture_pairs(input_path: Path) -> Iterator[
        Tuple[str, Optional[Callable[[], bytes]], Callable[[], bytes]]]:
    """Yield (relative path, tfh loader, tfd loader) for every texture under input_path.

    The header loader is None when no .tfh of the same base name exists.
    Loading is deferred so a corrupt entry fails on its own.
    """
    if input_path.suffix.lower() == ".grp":
        archive = GrpArchive.open(input_path)
        for entry in archive.find_entries("*.tfd"):
            header = archive.get_entry(str(PurePosixPath(entry.path).with_suffix(".tfh")))
            yield (entry.path,
                   partial(archive.read_entry, header) if header else None,
                   partial(archive.read_entry, entry))
        return

    if input_path.is_dir():
        files = sorted(input_path.glob("**/*.tfd"))
        root = input_path
    else:
        files = [input_path]
        root = input_path.parent
    for tfd_file in files:
        tfh_file = tfd_file.with_suffix(".tfh")
        yield (tfd_file.relative_to(root).as_posix(),
               tfh_file.read_bytes if tfh_file.exists() else None,
               tfd_file.read_bytes)


def describe(tfh: bytes, tfd: bytes) -> str:
    """One-line summary of a texture's inferred layout."""
    compressed = len(tfd) % 8 != 0
    data = decompress(tfd) if compressed else tfd
    layout = infer_layout(tfh, len(data), compressed=compressed)
    try:
        legacy = f"{legacy_tile_dimension(tfh)}"
    except GrpError:
        legacy = "n/a"
    try:
        hint = header_dimension_hint(tfh)
    except GrpError:
        hint = "n/a"
    return (f"{layout.dimension}x{layout.dimension} {layout.block_format.value} "
            f"({layout.mip_count} mips, {'zstd' if compressed else 'raw'}, "
            f"header hint {hint}, tile estimate {legacy})")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Convert TFD textures to PNG")
    parser.add_argument("input", help="Input .grp archive, .tfd file or directory")
    parser.add_argument("-o", "--output", default="./output", help="Output directory")
    parser.add_argument("--info", action="store_true", help="Print texture info only")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Input not found: {args.input}", file=sys.stderr)
        return 1

    if not args.info:
        os.makedirs(args.output, exist_ok=True)

    success = 0
    failed = 0
    written = set()
    try:
        for name, load_tfh, load_tfd in iter_texture_pairs(input_path):
            try:
                if load_tfh is None:
                    raise NotFoundError(f"no .tfh header for {name}")
                tfh = load_tfh()
                tfd = load_tfd()
                if args.info:
                    print(f"{name}: {describe(tfh, tfd)}")
                else:
                    rel = safe_relative_path(name)
                    output_file = Path(args.output).joinpath(*rel.parts).with_suffix(".png")
                    if output_file in written:
                        raise FormatError(f"{output_file} already written by an earlier entry")
                    image = decode_tfd(tfh, tfd)
                    output_file.parent.mkdir(parents=True, exist_ok=True)
                    image.save_png(str(output_file))
                    written.add(output_file)
                    print(f"Exported: {output_file}")
                success += 1
            except (GrpError, OSError) as e:
                print(f"Failed: {name} - {e}", file=sys.stderr)
                failed += 1
    except (GrpError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if success + failed == 0:
        print("No .tfd files found")
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
