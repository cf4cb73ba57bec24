"""Read-only volume statistics: size, file count, compression ratio."""

import os
from pathlib import Path

from volkeep.snapshot.base import ARCHIVE_NAME


def volume_stats(volume_path, snapshot_path=None):
    """Report size and file count for a volume, plus its compressed backup if one exists.

    Raises FileNotFoundError if the volume does not exist.
    """
    volume = Path(volume_path)
    if not volume.is_dir():
        raise FileNotFoundError(f"Volume path does not exist: {volume}")

    size = 0
    count = 0
    for root, _dirs, files in os.walk(volume):
        for name in files:
            path = Path(root) / name
            try:
                st = path.lstat()
            except OSError:
                continue
            if path.is_symlink() or not path.is_file():
                continue
            size += st.st_size
            count += 1

    compressed = None
    ratio = None
    if snapshot_path:
        archive = Path(snapshot_path) / ARCHIVE_NAME
        if archive.is_file():
            compressed = archive.stat().st_size
            if size > 0:
                ratio = round(compressed / size * 100, 1)

    return {
        "path": str(volume),
        "size_bytes": size,
        "file_count": count,
        "compressed_size_bytes": compressed,
        "ratio": ratio,
    }


def human_size(num_bytes):
    """Format a byte count like `du -h` / `numfmt --to=iec`."""
    if num_bytes is None:
        return "unknown"
    value = float(num_bytes)
    for unit in ("B", "K", "M", "G", "T"):
        if value < 1024 or unit == "T":
            if unit == "B":
                return f"{int(value)}B"
            return f"{value:.1f}{unit}"
        value /= 1024
