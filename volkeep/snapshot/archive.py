"""Gzipped tarball helpers for volume snapshots.

Archives are rooted at "." so they extract straight into a volume directory,
the same layout `tar -czf archive -C volume .` produces.
"""

import os
import stat
import tarfile
from pathlib import Path


class _PaddedReader:
    """Read exactly size bytes from fileobj, NUL-padding if the file shrank.

    Once a member header is written its data must match the recorded size,
    otherwise every following header lands at the wrong offset. GNU tar pads
    the same way when a file changes as it is read.
    """

    def __init__(self, fileobj, size):
        self._fileobj = fileobj
        self._remaining = size
        self.short = False

    def read(self, n=-1):
        if n is None or n < 0 or n > self._remaining:
            n = self._remaining
        data = b""
        if not self.short:
            try:
                data = self._fileobj.read(n)
            except OSError:
                data = b""
            if len(data) < n:
                self.short = True
        self._remaining -= n
        return data + b"\0" * (n - len(data))


def make_tarball(source, dest, on_skip=None, on_change=None):
    """Write a gzipped tarball of source's full contents to dest.

    Files that vanish, cannot be opened, or are not archivable (sockets, fifos)
    are skipped instead of aborting the whole archive. on_skip(relpath, error)
    is called for each one. A file that shrinks while it is read is kept,
    padded to its recorded size, and reported through on_change(relpath).
    Returns the list of skipped relative paths.
    """
    source = Path(source)
    skipped = []

    def _skip(rel, error):
        skipped.append(rel)
        if on_skip:
            on_skip(rel, error)

    with tarfile.open(dest, mode="w:gz") as tar:
        tar.add(source, arcname=".", recursive=False)
        for root, dirs, files in os.walk(source, onerror=lambda e: _skip(str(e.filename), e)):
            dirs.sort()
            for name in dirs + sorted(files):
                path = Path(root) / name
                rel = path.relative_to(source).as_posix()
                arcname = f"./{rel}"
                try:
                    mode = path.lstat().st_mode
                    if stat.S_ISREG(mode):
                        f = open(path, "rb")
                    elif stat.S_ISDIR(mode) or stat.S_ISLNK(mode):
                        tar.addfile(tar.gettarinfo(path, arcname=arcname))
                        continue
                    else:
                        _skip(rel, OSError(f"unsupported file type: {rel}"))
                        continue
                except OSError as e:
                    _skip(rel, e)
                    continue

                with f:
                    try:
                        info = tar.gettarinfo(arcname=arcname, fileobj=f)
                    except OSError as e:
                        _skip(rel, e)
                        continue
                    reader = _PaddedReader(f, info.size)
                    tar.addfile(info, reader)
                if reader.short and on_change:
                    on_change(rel)
    return skipped


def verify_tarball(path):
    """Return True if path is a well-formed gzipped tarball whose members all list."""
    try:
        with tarfile.open(path, mode="r:gz") as tar:
            for _ in tar:
                pass
            # Listing stops quietly at a bad header past the first member;
            # only end-of-archive padding may follow the last one
            tar.fileobj.seek(tar.offset)
            while True:
                block = tar.fileobj.read(tarfile.RECORDSIZE)
                if not block:
                    break
                if block.strip(b"\0"):
                    return False
        return True
    except (tarfile.TarError, OSError, EOFError):
        return False


def extract_tarball(path, target):
    """Extract a gzipped tarball into target directory.

    Validates every member path to prevent path traversal attacks (e.g. ../../../etc/passwd).
    """
    target = Path(target).resolve()
    with tarfile.open(path, mode="r:gz") as tar:
        for member in tar.getmembers():
            member_path = (target / member.name).resolve()
            if not str(member_path).startswith(str(target) + os.sep) and member_path != target:
                raise ValueError(f"Unsafe path in tarball: {member.name!r}")
        tar.extractall(target, filter="tar")
