import os
import subprocess
from pathlib import Path

# Never block on a credential prompt or an editor inside CI
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_EDITOR": "true", "GIT_MERGE_AUTOEDIT": "no"}


def find_repo_root(start=None):
    """Return the top level of the git working tree containing start (default cwd)."""
    cwd = Path(start) if start else Path.cwd()
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=cwd,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        raise RuntimeError("git is not installed or not on PATH.")
    if result.returncode != 0:
        raise RuntimeError(f"{cwd} is not inside a git repository: {result.stderr.strip()}")
    return Path(result.stdout.strip())


class GitRepo:
    """Thin wrapper over the git (and git-lfs) command line for one working tree."""

    def __init__(self, root):
        self.root = Path(root)

    def run(self, *args):
        """Run a git subcommand. Returns (exit_code, combined stdout/stderr)."""
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.root,
                capture_output=True,
                text=True,
                env={**os.environ, **_GIT_ENV},
            )
        except FileNotFoundError:
            raise RuntimeError("git is not installed or not on PATH.")
        return result.returncode, (result.stdout + result.stderr).strip()

    def _ok(self, *args):
        code, _ = self.run(*args)
        return code == 0

    def configure_identity(self, name, email):
        for key, value in (("user.name", name), ("user.email", email)):
            code, out = self.run("config", key, value)
            if code != 0:
                raise RuntimeError(f"Cannot configure git {key}: {out}")

    def add(self, *paths):
        return self._ok("add", "--", *paths)

    def add_renormalize(self, path):
        return self._ok("add", "--renormalize", "--", path)

    def has_staged_changes(self):
        code, out = self.run("diff", "--staged", "--quiet")
        if code not in (0, 1):
            raise RuntimeError(f"Cannot inspect staged changes: {out}")
        return code == 1

    def commit(self, message):
        code, out = self.run("commit", "-m", message)
        if code != 0:
            raise RuntimeError(f"git commit failed: {out}")

    def push(self, remote, branch):
        """Push branch to remote. Returns (ok, output) so callers can inspect rejections."""
        code, out = self.run("push", remote, branch)
        return code == 0, out

    def pull_rebase(self, remote, branch):
        return self._ok("pull", "--rebase", remote, branch)

    def rebase_abort(self):
        return self._ok("rebase", "--abort")

    def pull_merge(self, remote, branch):
        return self._ok("pull", "--no-rebase", "--no-edit", remote, branch)

    def remote_head(self, remote, branch):
        """Commit the remote-tracking ref for branch points at, or None if there is none."""
        code, out = self.run("rev-parse", "--verify", "--quiet", f"refs/remotes/{remote}/{branch}^{{commit}}")
        return out if code == 0 and out else None

    def undo_last_commit(self, onto=None):
        """Drop local commits back to onto (default: the last commit) but keep their changes staged."""
        return self._ok("reset", "--soft", onto or "HEAD~1")

    def lfs_track(self, pattern):
        return self._ok("lfs", "track", pattern)

    def lfs_migrate_import(self, pattern, remote, branch):
        """Rewrite unpushed commits on branch so files matching pattern become LFS pointers."""
        return self._ok(
            "lfs", "migrate", "import",
            f"--include={pattern}",
            f"--include-ref=refs/heads/{branch}",
            f"--exclude-ref=refs/remotes/{remote}/{branch}",
            "--yes",
        )
