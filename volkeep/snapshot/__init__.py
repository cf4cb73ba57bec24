from volkeep.snapshot.base import ARCHIVE_NAME, Outcome
from volkeep.snapshot.local import RepoSnapshotStore


def create_snapshot_store(config=None, console=None):
    """Create a snapshot store from config.

    Config keys:
        snapshot_backend: "repo" (default)
        settle_delay: seconds to wait after stopping the workload
    """
    config = config or {}
    backend = config.get("snapshot_backend", "repo")

    if backend == "repo":
        return RepoSnapshotStore(
            console=console,
            settle_delay=config.get("settle_delay", 2),
        )

    raise ValueError(f"Unknown snapshot backend: {backend!r}. Use 'repo'.")


__all__ = ["ARCHIVE_NAME", "Outcome", "RepoSnapshotStore", "create_snapshot_store"]
