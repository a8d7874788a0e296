"""GRP2 Archive Extractor

Reads GRP2 container archives and extracts their entries.
Layout recovered by reverse engineering; no official documentation exists.

Archive Format:
- 0x00: magic "GRP2"
- 0x04: header size (u32)
- 0x14: entry count (u32)
- 0x40: name table, one u32 absolute offset per entry pointing at a
  null-terminated '/'-separated path
- data index table after the last path string, 12 bytes per entry; only the
  first u32 (absolute data start) is understood
- entry data, contiguous and in name-table order, optionally zstd compressed

Usage:
    python -m grp_extractor.grp_archive <file.grp> --list
    python -m grp_extractor.grp_archive <file.grp> --extract "models/*.mdl" -o ./output
    python -m grp_extractor.grp_archive <file.grp> --extract-all -o ./output
"""
import argparse
import fnmatch
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Iterator, List, Optional, Union

from .binary_reader import read_cstr, read_u32
from .compression import decompress, is_compressed
from .errors import BoundsError, FormatError, GrpError

logger = logging.getLogger(__name__)

GRP_MAGIC = b"GRP2"
HEADER_SIZE_OFFSET = 0x04
FILE_COUNT_OFFSET = 0x14
NAME_TABLE_OFFSET = 0x40

# Observed gap between the last path string and the data index table.
# No header field points at the table; this is empirical.
DATA_INDEX_PAD = 5
# Each record: data start (u32) followed by two u32 fields of unknown meaning.
DATA_INDEX_RECORD_SIZE = 12


class Compression(Enum):
    """How an entry's bytes are stored."""
    RAW = "raw"
    ZSTD = "zstd"


def safe_relative_path(path: str) -> PurePosixPath:
    """Validate an entry path for joining under an output directory.

    Raises:
        FormatError: If the path is absolute or climbs out with '..'
    """
    rel = PurePosixPath(path)
    if rel.is_absolute() or ".." in rel.parts:
        raise FormatError(f"refusing to extract unsafe path: {path}")
    return rel


@dataclass(frozen=True)
class GrpEntry:
    """One packed file inside the archive."""
    index: int
    path: str
    start: int
    size: int
    compression: Compression

    def is_compressed(self) -> bool:
        return self.compression is Compression.ZSTD


@dataclass
class GrpArchive:
    """Parsed GRP2 archive holding its whole byte buffer in memory."""
    data: bytes = field(repr=False)
    header_size: int
    file_count: int
    data_start: int
    entries: List[GrpEntry] = field(default_factory=list)
    path: Optional[Path] = None

    @classmethod
    def open(cls, grp_path: Union[str, Path]) -> "GrpArchive":
        """Read an archive file from disk and parse it.

        Args:
            grp_path: Path to the .grp file

        Raises:
            FileNotFoundError: If the file does not exist
            GrpError: If the file is not a valid GRP2 archive
        """
        grp_path = Path(grp_path)
        if not grp_path.exists():
            raise FileNotFoundError(f"Archive file not found: {grp_path}")
        return cls.parse(grp_path.read_bytes(), path=grp_path)

    @classmethod
    def parse(cls, data: bytes, path: Optional[Path] = None) -> "GrpArchive":
        """Parse an in-memory GRP2 buffer into an entry table.

        Args:
            data: Complete archive contents
            path: Where the bytes came from, for reporting only

        Returns:
            The parsed archive

        Raises:
            FormatError: Wrong magic, short header or inconsistent offsets
            BoundsError: A table or string lies outside the buffer
            EncodingError: A path is not valid UTF-8
        """
        data = bytes(data)
        if data[:4] != GRP_MAGIC:
            raise FormatError(f"Not a GRP2 file (magic {data[:4]!r})")
        if len(data) < NAME_TABLE_OFFSET:
            raise FormatError(f"File too small for GRP2 header: {len(data)} bytes")

        header_size = read_u32(data, HEADER_SIZE_OFFSET)
        file_count = read_u32(data, FILE_COUNT_OFFSET)
        logger.debug("header size 0x%X, %d files", header_size, file_count)
        if file_count == 0:
            raise FormatError("Archive declares no entries")

        name_offsets = []
        off = NAME_TABLE_OFFSET
        for _ in range(file_count):
            name_offsets.append(read_u32(data, off))
            off += 4

        names = []
        for name_offset in name_offsets:
            try:
                names.append(read_cstr(data, name_offset))
            except GrpError as e:
                raise type(e)(f"reading name at 0x{name_offset:08X}: {e}") from e

        data_index_start = name_offsets[-1] + len(names[-1].encode("utf-8")) + DATA_INDEX_PAD
        logger.debug("data index start 0x%08X", data_index_start)

        starts = []
        off = data_index_start
        for _ in range(file_count):
            starts.append(read_u32(data, off))
            off += DATA_INDEX_RECORD_SIZE

        entries = []
        for i, (name, start) in enumerate(zip(names, starts)):
            end = starts[i + 1] if i + 1 < file_count else len(data)
            if start > len(data):
                raise BoundsError(
                    f"entry {i} starts at 0x{start:08X}, past end of file (0x{len(data):08X})"
                )
            if end < start:
                raise FormatError(
                    f"entry {i} start 0x{start:08X} is after next entry start 0x{end:08X}"
                )
            compression = Compression.ZSTD if is_compressed(data[start:start + 4]) else Compression.RAW
            entries.append(GrpEntry(
                index=i,
                path=name,
                start=start,
                size=end - start,
                compression=compression,
            ))

        return cls(
            data=data,
            header_size=header_size,
            file_count=file_count,
            data_start=starts[0],
            entries=entries,
            path=path,
        )

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[GrpEntry]:
        return iter(self.entries)

    def find_entries(self, pattern: str = "*") -> List[GrpEntry]:
        """Entries whose path matches a case-insensitive glob, in archive order.

        Duplicate paths are all returned.
        """
        pattern_lower = pattern.lower().replace("\\", "/")
        return [
            entry for entry in self.entries
            if fnmatch.fnmatch(entry.path.lower(), pattern_lower)
        ]

    def list_files(self, pattern: str = "*") -> List[str]:
        """List entry paths matching pattern.

        Args:
            pattern: Glob pattern (e.g., "*.mdl", "textures/*.tfd")

        Returns:
            Matching paths in archive order
        """
        return [entry.path for entry in self.find_entries(pattern)]

    def get_entry(self, path: str) -> Optional[GrpEntry]:
        """Get entry by path (case-insensitive)."""
        wanted = path.lower().replace("\\", "/")
        return next((e for e in self.entries if e.path.lower() == wanted), None)

    def read_entry(self, entry: GrpEntry) -> bytes:
        """Materialize an entry's decoded bytes.

        Raises:
            BoundsError: If the entry range exceeds the buffer
            CompressionError: If a zstd frame is corrupt
        """
        end = entry.start + entry.size
        if entry.start < 0 or end > len(self.data):
            raise BoundsError(
                f"entry {entry.index} range 0x{entry.start:08X}-0x{end:08X} exceeds buffer"
            )
        raw = self.data[entry.start:end]
        if entry.compression is Compression.ZSTD:
            return decompress(raw)
        return bytes(raw)

    def extract_entry(self, entry: GrpEntry, output_root: Union[str, Path]) -> Path:
        """Decode an entry and write it under output_root.

        Args:
            entry: Entry to extract
            output_root: Directory the entry's relative path is joined to

        Returns:
            Path of the written file

        Raises:
            FormatError: If the entry path escapes output_root
            OSError: If writing fails
        """
        rel = safe_relative_path(entry.path)

        data = self.read_entry(entry)

        out_path = Path(output_root).joinpath(*rel.parts)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(data)
        return out_path


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="List and extract files from GRP2 archives"
    )
    parser.add_argument("archive", help="Path to .grp file")
    parser.add_argument("--list", "-l", metavar="PATTERN", nargs="?", const="*",
                        help="List files matching pattern (default: *)")
    parser.add_argument("--extract", "-e", metavar="PATTERN",
                        help="Extract files matching pattern")
    parser.add_argument("--extract-all", action="store_true",
                        help="Extract all files")
    parser.add_argument("--output", "-o", default="./output",
                        help="Output directory (default: ./output)")
    parser.add_argument("--info", "-i", metavar="PATH",
                        help="Show info for specific file")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Verbose output")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        archive = GrpArchive.open(args.archive)
    except (GrpError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.list is not None:
        entries = archive.find_entries(args.list)
        print(f"Found {len(entries)} files matching '{args.list}':")
        for entry in entries:
            print(f"  {entry.path} ({entry.size:,} bytes, {entry.compression.value})")

    elif args.info:
        entry = archive.get_entry(args.info)
        if not entry:
            print(f"File not found: {args.info}", file=sys.stderr)
            return 1
        print(f"File: {entry.path}")
        print(f"  Index: {entry.index}")
        print(f"  Start: 0x{entry.start:X}")
        print(f"  Size: {entry.size:,} bytes")
        print(f"  Compression: {entry.compression.value}")

    elif args.extract or args.extract_all:
        pattern = args.extract if args.extract else "*"
        entries = archive.find_entries(pattern)
        print(f"Extracting {len(entries)} files...")

        success = 0
        failed = 0
        for entry in entries:
            try:
                archive.extract_entry(entry, args.output)
            except (GrpError, OSError) as e:
                print(f"Failed: {entry.path} - {e}", file=sys.stderr)
                failed += 1
                continue
            success += 1
            if success % 100 == 0:
                print(f"  Extracted {success}/{len(entries)}...")

        print(f"Done: {success} extracted, {failed} failed")
        return 0 if failed == 0 else 1

    else:
        print(f"Archive: {args.archive}")
        print(f"  Total files: {len(archive):,}")
        print(f"  Model files (.mdl): {len(archive.list_files('*.mdl')):,}")
        print(f"  Texture files (.tfd): {len(archive.list_files('*.tfd')):,}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
