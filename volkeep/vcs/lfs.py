"""Large-file (git-lfs) tracking rules for snapshot archives.

Rules live in the repository's .gitattributes, one per line:
    <glob-pattern> filter=lfs diff=lfs merge=lfs -text
"""

from pathlib import Path

from volkeep.snapshot.base import ARCHIVE_NAME

GITATTRIBUTES = ".gitattributes"
RULE_ATTRS = "filter=lfs diff=lfs merge=lfs -text"
DEFAULT_THRESHOLD = 52_428_800  # 50 MiB


def tracking_rule(pattern):
    return f"{pattern} {RULE_ATTRS}"


def archive_pattern(data_dir):
    return f"{data_dir}/**/{ARCHIVE_NAME}"


def all_archives_pattern(data_dir):
    return f"{data_dir}/**/*.tar.gz"


def _append_line(path, line):
    existing = path.read_text() if path.exists() else ""
    if existing and not existing.endswith("\n"):
        existing += "\n"
    path.write_text(existing + line + "\n")


def ensure_tracking_rule(repo_root, data_dir):
    """Append the default archive rule unless .gitattributes already mentions archives.

    Returns True if the file was modified.
    """
    path = Path(repo_root) / GITATTRIBUTES
    if path.exists() and ARCHIVE_NAME in path.read_text():
        return False
    _append_line(path, tracking_rule(archive_pattern(data_dir)))
    return True


def force_tracking_rule(repo_root, data_dir):
    """Make sure every *.tar.gz under data_dir is covered. Returns True if modified."""
    path = Path(repo_root) / GITATTRIBUTES
    rule = tracking_rule(all_archives_pattern(data_dir))
    if path.exists() and rule in path.read_text().splitlines():
        return False
    _append_line(path, rule)
    return True


def needs_lfs(size, threshold=DEFAULT_THRESHOLD):
    return size >= threshold


def find_archives(repo_root, data_dir):
    """Return archive paths under data_dir, relative to repo_root, sorted."""
    root = Path(repo_root)
    data = root / data_dir
    if not data.is_dir():
        return []
    return sorted(p.relative_to(root) for p in data.rglob(ARCHIVE_NAME) if p.is_file())


def large_archives(repo_root, data_dir, threshold=DEFAULT_THRESHOLD):
    """Return [(relative_path, size)] for archives at or over threshold."""
    root = Path(repo_root)
    found = []
    for rel in find_archives(root, data_dir):
        size = (root / rel).stat().st_size
        if needs_lfs(size, threshold):
            found.append((rel, size))
    return found
