import io
import shutil
import subprocess
import tarfile
from pathlib import Path

import pytest
from rich.console import Console

from volkeep import cli, config, log
from volkeep.snapshot import RepoSnapshotStore


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path, monkeypatch):
    """Keep the audit log and global config out of the real home directory."""
    logs_file = tmp_path / "home" / "logs.jsonl"
    monkeypatch.setattr(log, "LOGS_FILE", logs_file)
    monkeypatch.setattr(cli, "LOGS_FILE", logs_file)
    monkeypatch.setattr(config, "GLOBAL_CONFIG_FILE", tmp_path / "home" / "config.json")
    return logs_file


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=200)


@pytest.fixture
def store(console):
    return RepoSnapshotStore(console=console, sleep=lambda _s: None)


@pytest.fixture
def volume(tmp_path):
    """A small volume with nested dirs, binary data and an empty file."""
    root = tmp_path / "volume"
    (root / "pg_wal").mkdir(parents=True)
    (root / "base" / "16384").mkdir(parents=True)
    (root / "PG_VERSION").write_text("16\n")
    (root / "pg_wal" / "000000010000000000000001").write_bytes(bytes(range(256)) * 64)
    (root / "base" / "16384" / "1259").write_bytes(b"\x00\x01" * 4096)
    (root / "empty.lock").write_bytes(b"")
    return root


def tree_contents(root):
    """Map relative path -> bytes (None for directories)."""
    root = Path(root)
    result = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        result[rel] = None if path.is_dir() else path.read_bytes()
    return result


def report_stale_size(monkeypatch, basename, extra):
    """Make gettarinfo record a size larger than the file, as if it shrank before being read."""
    real = tarfile.TarFile.gettarinfo

    def _gettarinfo(self, name=None, arcname=None, fileobj=None):
        info = real(self, name, arcname, fileobj)
        if info.name.endswith(basename):
            info.size += extra
        return info

    monkeypatch.setattr(tarfile.TarFile, "gettarinfo", _gettarinfo)


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(cwd, *args):
    return subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)


@pytest.fixture
def remote_repo(tmp_path):
    """A bare remote on branch main with one initial commit, plus a helper to clone it."""
    remote = tmp_path / "remote.git"
    seed = tmp_path / "seed"
    git(tmp_path, "init", "--bare", "-b", "main", str(remote))
    git(tmp_path, "init", "-b", "main", str(seed))
    git(seed, "config", "user.name", "Seed")
    git(seed, "config", "user.email", "seed@example.com")
    (seed / "README.md").write_text("state repo\n")
    git(seed, "add", "README.md")
    git(seed, "commit", "-m", "init")
    git(seed, "remote", "add", "origin", str(remote))
    git(seed, "push", "origin", "main")

    def clone(name):
        dest = tmp_path / name
        git(tmp_path, "clone", "-b", "main", str(remote), str(dest))
        # Store archives as plain blobs even where git-lfs is installed
        info = dest / ".git" / "info"
        info.mkdir(parents=True, exist_ok=True)
        (info / "attributes").write_text("* -filter\n")
        return dest

    return remote, clone
