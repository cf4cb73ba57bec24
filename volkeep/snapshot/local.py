import os
import shutil
import tarfile
import tempfile
import time
from pathlib import Path

from rich.console import Console

from volkeep.container import create_stopper
from volkeep.snapshot.archive import extract_tarball, make_tarball, verify_tarball
from volkeep.snapshot.base import ARCHIVE_NAME, Outcome, SnapshotStore
from volkeep.snapshot.mirror import chown_tree, clear_dir, mirror_tree

DEFAULT_SETTLE_DELAY = 2


def _require(volume_path, snapshot_path):
    if not volume_path or not snapshot_path:
        raise ValueError("volume_path and snapshot_path are required")
    return Path(volume_path), Path(snapshot_path)


def _staging_path(archive):
    return archive.with_name(f".{archive.name}.tmp")


class RepoSnapshotStore(SnapshotStore):
    """Snapshots kept as plain directories inside a git working tree.

    A snapshot directory holds either a single volume-data.tar.gz (compressed
    form) or a mirrored copy of the volume (legacy form), never both.
    """

    def __init__(self, console=None, settle_delay=DEFAULT_SETTLE_DELAY, sleep=time.sleep):
        self.console = console or Console()
        self.settle_delay = settle_delay
        self._sleep = sleep
        self.last_backup = {}

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore(self, volume_path, snapshot_path, owner=None):
        volume, snapshot = _require(volume_path, snapshot_path)
        self.console.print(f"[bold]Restoring volume:[/bold] {volume}")

        try:
            volume.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RuntimeError(
                f"Cannot create volume directory {volume}: {e}. "
                f"Try: sudo mkdir -p {volume} && sudo chown $(id -u):$(id -g) {volume}"
            ) from e

        if not snapshot.is_dir() or not any(snapshot.iterdir()):
            self.console.print(f"  [yellow]No previous data found in {snapshot}[/yellow]")
            self.console.print("  [yellow]Starting with empty volume[/yellow]")
            return Outcome.EMPTY

        archive = snapshot / ARCHIVE_NAME
        if archive.is_file():
            self.console.print("  Found compressed archive, extracting...")
            try:
                extract_tarball(archive, volume)
            except (OSError, EOFError, ValueError, tarfile.TarError) as e:
                self.console.print(
                    f"  [yellow]Warning: failed to extract archive ({e}), trying direct copy...[/yellow]"
                )
                self._mirror(snapshot, volume)
        else:
            self.console.print("  Restoring files (legacy uncompressed format)...")
            self._mirror(snapshot, volume)

        if owner:
            self.console.print(f"  Setting ownership to {owner}...")
            try:
                chown_tree(volume, owner)
            except (OSError, ValueError) as e:
                self.console.print(f"  [yellow]Warning: could not set ownership to {owner}: {e}[/yellow]")

        self.console.print("  [green]Volume restored.[/green]")
        return Outcome.RESTORED

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def backup(self, volume_path, snapshot_path, container=None, stopper=None):
        volume, snapshot = _require(volume_path, snapshot_path)
        self.console.print(f"[bold]Backing up volume:[/bold] {volume}")
        self.last_backup = {}

        if not volume.is_dir():
            self.console.print(f"  [yellow]Volume path does not exist: {volume}[/yellow]")
            self.console.print("  [yellow]Skipping backup[/yellow]")
            return Outcome.SKIPPED

        stopped = False
        if container:
            stopper = stopper or create_stopper()
            stopped = True
            self._quiesce(stopper, container)

        try:
            self._prepare_destination(snapshot)
            mode, archive_size, skipped = self._write_snapshot(volume, snapshot)
        finally:
            if stopped:
                self.console.print(f"  Restarting container: {container}")
                try:
                    ok = stopper.start(container)
                except OSError as e:
                    ok = False
                    self.console.print(f"  [dim]{e}[/dim]")
                if not ok:
                    self.console.print("  [yellow]Warning: failed to restart container[/yellow]")

        self.last_backup = {"mode": mode, "archive_size": archive_size, "skipped_files": len(skipped)}
        self.console.print("  [green]Volume backed up.[/green]")
        return Outcome.BACKED_UP

    def _quiesce(self, stopper, container):
        self.console.print(f"  Stopping container: {container}")
        try:
            ok = stopper.stop(container)
        except OSError as e:
            ok = False
            self.console.print(f"  [dim]{e}[/dim]")
        if not ok:
            self.console.print("  [yellow]Warning: stop failed or container already stopped[/yellow]")
        self._sleep(self.settle_delay)

    def _prepare_destination(self, snapshot):
        try:
            snapshot.mkdir(parents=True, exist_ok=True)
            # Backups are full replacements: drop both encodings of the old snapshot
            clear_dir(snapshot)
        except OSError as e:
            raise RuntimeError(
                f"Cannot prepare snapshot directory {snapshot}: {e}. "
                "Check that the repository checkout is writable by the current user."
            ) from e

    def _warn_skip(self, rel, error):
        self.console.print(f"  [dim]skipped {rel}: {error}[/dim]")

    def _mirror(self, source, dest):
        skipped = mirror_tree(source, dest, on_skip=self._warn_skip)
        if skipped:
            self.console.print(f"  [yellow]{len(skipped)} file(s) could not be copied and were left out[/yellow]")
        return skipped

    def _write_snapshot(self, volume, snapshot):
        """Write the compressed form, falling back to a mirror copy.

        Returns (mode, archive_size, skipped_files).
        """
        self.console.print("  Compressing volume...")
        fd, temp_name = tempfile.mkstemp(prefix=f"volkeep-backup-{os.getpid()}-", suffix=".tar.gz")
        os.close(fd)
        temp_archive = Path(temp_name)
        archive = snapshot / ARCHIVE_NAME

        def _warn_change(rel):
            self.console.print(f"  [yellow]{rel} changed while it was read; archived padded to its original size[/yellow]")

        try:
            skipped = make_tarball(volume, temp_archive, on_skip=self._warn_skip, on_change=_warn_change)
            self._place_archive(temp_archive, archive)
        except (OSError, tarfile.TarError) as e:
            self.console.print(f"  [yellow]Compression failed ({e}), falling back to direct copy[/yellow]")
            temp_archive.unlink(missing_ok=True)
            _staging_path(archive).unlink(missing_ok=True)
            archive.unlink(missing_ok=True)
            return "mirrored", None, self._mirror(volume, snapshot)

        if not verify_tarball(archive):
            self.console.print("  [red]Archive corrupted, using fallback[/red]")
            archive.unlink(missing_ok=True)
            return "mirrored", None, self._mirror(volume, snapshot)

        size = archive.stat().st_size
        self.console.print(f"  [green]Archive created and verified[/green] [dim]({size} bytes)[/dim]")
        if skipped:
            self.console.print(f"  [yellow]{len(skipped)} file(s) could not be read and were left out[/yellow]")
        return "compressed", size, skipped

    def _place_archive(self, temp_archive, archive):
        """Move the finished archive in under a hidden name, then rename it into place."""
        staging = _staging_path(archive)
        try:
            os.replace(temp_archive, staging)
        except OSError:
            # Different filesystem: copy the bytes, then drop the temp file
            shutil.copyfile(temp_archive, staging)
            temp_archive.unlink(missing_ok=True)
        staging.chmod(0o644)
        os.replace(staging, archive)
