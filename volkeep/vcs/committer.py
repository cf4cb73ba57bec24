"""Commit snapshot changes and push them to the shared remote.

Pushing is a small state machine. Many pipeline instances push to the same
branch, so a rejected push is the normal case: the committer rebases (or
merges) onto the remote and tries again, up to push_retries attempts. A push
rejected for an oversized file gets one structurally different retry: the
commit is rebuilt with every snapshot archive under git-lfs.

    PUSHING ──ok──▶ PUSHED
       │ remote ahead, attempts left
       ▼
    REBASING ──conflict──▶ MERGING ──fail──▶ FAILED
       │ ok                   │ ok             │ oversized, not yet remediated
       └──────▶ PUSHING ◀─────┘                ▼
                                          REMEDIATING ──▶ PUSHED | FAILED
"""

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from rich.console import Console

from volkeep.vcs import lfs

_REMOTE_AHEAD_MARKERS = ("non-fast-forward", "fetch first")
_OVERSIZED_MARKERS = ("GH001", "exceeds GitHub's file size limit", "Large files detected", "file size limit")

COMMON_CAUSES = [
    "Missing 'contents: write' permission in the workflow",
    "Branch protection rules preventing push",
    "Token expired or invalid",
    "Files too large (git-lfs must be installed and configured)",
]


class PushState(str, Enum):
    PUSHING = "pushing"
    REBASING = "rebasing"
    MERGING = "merging"
    REMEDIATING = "remediating"
    FAILED = "failed"
    PUSHED = "pushed"
    NO_CHANGES = "no_changes"


_TERMINAL = {PushState.PUSHED, PushState.FAILED, PushState.NO_CHANGES}


@dataclass
class CommitResult:
    status: PushState
    reason: str = ""
    attempts: int = 0
    remediated: bool = False

    @property
    def ok(self):
        return self.status in (PushState.PUSHED, PushState.NO_CHANGES)


def is_remote_ahead(output):
    return any(marker in output for marker in _REMOTE_AHEAD_MARKERS)


def is_oversized(output):
    return any(marker in output for marker in _OVERSIZED_MARKERS)


class Committer:
    """Stage, commit and push the snapshot data directory of one working tree.

    repo is anything with the GitRepo method surface; tests pass a fake that
    scripts push outcomes.
    """

    def __init__(
        self,
        repo,
        data_dir="data",
        branch="main",
        remote="origin",
        author_name="Volkeep Bot",
        author_email="bot@volkeep.local",
        lfs_threshold=lfs.DEFAULT_THRESHOLD,
        push_retries=3,
        retry_delay=2,
        message_prefix="chore(volumes): ",
        console=None,
        sleep=time.sleep,
    ):
        self.repo = repo
        self.data_dir = data_dir
        self.branch = branch
        self.remote = remote
        self.author_name = author_name
        self.author_email = author_email
        self.lfs_threshold = lfs_threshold
        self.push_retries = push_retries
        self.retry_delay = retry_delay
        self.message_prefix = message_prefix
        self.console = console or Console()
        self._sleep = sleep

        self._attempts = 0
        self._remediated = False
        self._last_output = ""
        self._message = ""

    @classmethod
    def from_config(cls, repo, config, console=None, sleep=time.sleep):
        return cls(
            repo,
            data_dir=config["data_dir"],
            branch=config["branch"],
            remote=config["remote"],
            author_name=config["author_name"],
            author_email=config["author_email"],
            lfs_threshold=config["lfs_threshold"],
            push_retries=config["push_retries"],
            retry_delay=config["retry_delay"],
            message_prefix=config["message_prefix"],
            console=console,
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def commit_and_push(self, message=None):
        self.console.print("[bold]Committing volumes to repository[/bold]")
        message = message or f"Automated volume backup - {datetime.now().astimezone().isoformat(timespec='seconds')}"
        self._message = f"{self.message_prefix}{message}"
        self._attempts = 0
        self._remediated = False
        self._last_output = ""

        self.repo.configure_identity(self.author_name, self.author_email)
        self._stage()

        if not self.repo.has_staged_changes():
            self.console.print("  [dim]No changes to commit[/dim]")
            return CommitResult(PushState.NO_CHANGES)

        self.console.print("  Creating commit...")
        self.repo.commit(self._message)

        self.console.print(f"  Pushing to {self.remote}/{self.branch}...")
        state = self.run(PushState.PUSHING)

        result = CommitResult(
            state,
            reason="" if state == PushState.PUSHED else self._last_output,
            attempts=self._attempts,
            remediated=self._remediated,
        )
        if state == PushState.PUSHED:
            self.console.print("  [green]Changes pushed.[/green]")
        else:
            self._print_diagnostics()
        return result

    def run(self, state):
        """Drive the push state machine from state until it reaches a terminal state."""
        while state not in _TERMINAL or self._can_remediate(state):
            state = self.step(state)
        return state

    def step(self, state):
        handler = {
            PushState.PUSHING: self._push,
            PushState.REBASING: self._rebase,
            PushState.MERGING: self._merge,
            PushState.FAILED: self._failed,
            PushState.REMEDIATING: self._remediate,
        }[state]
        return handler()

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def _stage(self):
        root = self.repo.root
        self.console.print("  Configuring git-lfs for compressed archives...")
        if lfs.ensure_tracking_rule(root, self.data_dir):
            self.repo.add(lfs.GITATTRIBUTES)

        for rel, size in lfs.large_archives(root, self.data_dir, self.lfs_threshold):
            self.console.print(f"  Tracking large archive with git-lfs: {rel} [dim]({size} bytes)[/dim]")
            # Advisory only; the push below does not depend on it
            if self.repo.lfs_track(rel.as_posix()):
                self.repo.add(lfs.GITATTRIBUTES)

        self.repo.add(self.data_dir)

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def _push(self):
        self._attempts += 1
        ok, self._last_output = self.repo.push(self.remote, self.branch)
        if ok:
            return PushState.PUSHED
        if is_remote_ahead(self._last_output) and self._attempts < self.push_retries:
            self.console.print(
                f"  [yellow]Push rejected, pulling and retrying ({self._attempts}/{self.push_retries})...[/yellow]"
            )
            return PushState.REBASING
        return PushState.FAILED

    def _rebase(self):
        if self.repo.pull_rebase(self.remote, self.branch):
            self.console.print("  Rebased onto remote changes")
            self._sleep(self.retry_delay)
            return PushState.PUSHING
        self.console.print("  [yellow]Rebase conflict, trying merge strategy...[/yellow]")
        self.repo.rebase_abort()
        return PushState.MERGING

    def _merge(self):
        if self.repo.pull_merge(self.remote, self.branch):
            self._sleep(self.retry_delay)
            return PushState.PUSHING
        self.console.print("  [red]Failed to merge remote changes[/red]")
        return PushState.FAILED

    def _can_remediate(self, state):
        return state == PushState.FAILED and not self._remediated and is_oversized(self._last_output)

    def _failed(self):
        if self._can_remediate(PushState.FAILED):
            self.console.print("  [yellow]Detected large file rejection. Moving archives to git-lfs...[/yellow]")
            return PushState.REMEDIATING
        return PushState.FAILED

    def _remediate(self):
        self._remediated = True
        root = self.repo.root
        pattern = lfs.all_archives_pattern(self.data_dir)

        # Rebuild on top of the remote branch; after a merge, undoing only HEAD would drop the remote's commits
        base = self.repo.remote_head(self.remote, self.branch)
        if not self.repo.undo_last_commit(base):
            self.console.print("  [red]Could not undo the local commit[/red]")
            return PushState.FAILED

        lfs.force_tracking_rule(root, self.data_dir)
        self.repo.lfs_track(pattern)
        self.repo.add(lfs.GITATTRIBUTES)
        # Re-stage so the new attributes apply to archives staged before them
        self.repo.add_renormalize(self.data_dir)
        self.repo.add(self.data_dir)

        self.repo.commit(self._message)
        if not self.repo.lfs_migrate_import(pattern, self.remote, self.branch):
            self.console.print("  [dim]git lfs migrate unavailable; relying on tracking rules[/dim]")

        self.console.print("  Retrying push with git-lfs...")
        self._attempts += 1
        ok, self._last_output = self.repo.push(self.remote, self.branch)
        return PushState.PUSHED if ok else PushState.FAILED

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def _print_diagnostics(self):
        self.console.print(f"  [red]Push failed after {self._attempts} attempt(s).[/red]")
        if self._last_output:
            self.console.print("  [yellow]Error details:[/yellow]")
            self.console.print(self._last_output, markup=False, highlight=False)
        self.console.print("  [yellow]Common causes:[/yellow]")
        for cause in COMMON_CAUSES:
            self.console.print(f"   - {cause}")
        self.console.print("  [yellow]Tip: grant the workflow write access:[/yellow]")
        self.console.print("   permissions:\n     contents: write", markup=False)
