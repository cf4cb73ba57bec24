from abc import ABC, abstractmethod


class Stopper(ABC):
    """Base interface for quiescing a workload around a backup.

    Implementations: DockerStopper (default), CommandStopper (caller-supplied stop command).
    """

    @abstractmethod
    def stop(self, container_ref):
        """Stop the workload. Returns True on success, False if it could not be stopped."""
        pass

    @abstractmethod
    def start(self, container_ref):
        """Start the workload again. Returns True on success."""
        pass
