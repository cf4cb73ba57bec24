from abc import ABC, abstractmethod
from enum import Enum

ARCHIVE_NAME = "volume-data.tar.gz"


class Outcome(str, Enum):
    RESTORED = "restored"
    EMPTY = "empty"
    BACKED_UP = "backed_up"
    SKIPPED = "skipped"


class SnapshotStore(ABC):
    """Base interface for snapshot backends.

    Implementations: RepoSnapshotStore (snapshots inside a git working tree).
    """

    @abstractmethod
    def restore(self, volume_path, snapshot_path, owner=None):
        """Populate volume_path from snapshot_path. Returns Outcome.RESTORED or Outcome.EMPTY."""
        pass

    @abstractmethod
    def backup(self, volume_path, snapshot_path, container=None, stopper=None):
        """Snapshot volume_path into snapshot_path. Returns Outcome.BACKED_UP or Outcome.SKIPPED."""
        pass
