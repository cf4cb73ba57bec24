import grp
import os
import pwd
import shutil
import stat
from pathlib import Path


def _remove(path):
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def mirror_tree(source, dest, on_skip=None):
    """Make dest an exact copy of source (rsync -a --delete semantics).

    Entries in dest that are not in source are removed; everything else is
    copied with metadata. Symlinks are copied as links. Entries that cannot
    be read or are not archivable (sockets, fifos) are skipped and reported
    through on_skip(relpath, error). Returns the list of skipped relative paths.
    """
    source = Path(source)
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    skipped = []

    def _skip(rel, error):
        skipped.append(rel)
        if on_skip:
            on_skip(rel, error)

    for root, dirs, files in os.walk(dest, topdown=False):
        for name in dirs + files:
            path = Path(root) / name
            rel = path.relative_to(dest)
            src = source / rel
            if not os.path.lexists(src) or src.is_dir() != (path.is_dir() and not path.is_symlink()):
                _remove(path)

    for root, dirs, files in os.walk(source, onerror=lambda e: _skip(str(e.filename), e)):
        root = Path(root)
        rel_root = root.relative_to(source)
        for name in dirs:
            src = root / name
            dst = dest / rel_root / name
            try:
                if src.is_symlink():
                    if os.path.lexists(dst):
                        _remove(dst)
                    os.symlink(os.readlink(src), dst)
                else:
                    dst.mkdir(exist_ok=True)
                    shutil.copystat(src, dst)
            except OSError as e:
                _skip((rel_root / name).as_posix(), e)
        for name in files:
            src = root / name
            dst = dest / rel_root / name
            rel = (rel_root / name).as_posix()
            try:
                mode = src.lstat().st_mode
                if not (stat.S_ISREG(mode) or stat.S_ISLNK(mode)):
                    _skip(rel, OSError(f"unsupported file type: {rel}"))
                    continue
                if os.path.lexists(dst):
                    _remove(dst)
                shutil.copy2(src, dst, follow_symlinks=False)
            except OSError as e:
                _skip(rel, e)
    shutil.copystat(source, dest)
    return skipped


def clear_dir(path):
    """Delete every entry inside path, keeping path itself."""
    for entry in Path(path).iterdir():
        _remove(entry)


def _parse_owner(owner):
    """Resolve "UID:GID" (numeric ids or names) to a (uid, gid) pair."""
    if ":" not in owner:
        raise ValueError(f"Owner must be UID:GID, got {owner!r}")
    user, group = owner.split(":", 1)
    try:
        uid = int(user) if user.isdigit() else pwd.getpwnam(user).pw_uid
        gid = int(group) if group.isdigit() else grp.getgrnam(group).gr_gid
    except KeyError as e:
        raise ValueError(f"Unknown user or group in owner {owner!r}") from e
    return uid, gid


def chown_tree(path, owner):
    """Recursively apply a UID:GID to path, like chown -R. Symlinks are not followed."""
    uid, gid = _parse_owner(owner)
    path = Path(path)
    os.lchown(path, uid, gid)
    for root, dirs, files in os.walk(path):
        for name in dirs + files:
            os.lchown(Path(root) / name, uid, gid)
