import shlex
import subprocess

from volkeep.container.base import Stopper

# No timeout unless a caller passes one
DEFAULT_TIMEOUT = None


def _run(cmd, timeout=DEFAULT_TIMEOUT):
    """Run cmd, returning (exit_code, output). Missing binaries map to exit 127."""
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError:
        return 127, f"{cmd[0]}: command not found"
    except subprocess.TimeoutExpired:
        return 124, f"Command timed out after {timeout}s"
    return result.returncode, (result.stdout + result.stderr).strip()


class DockerStopper(Stopper):

    def __init__(self, timeout=DEFAULT_TIMEOUT):
        self.timeout = timeout
        self.last_output = ""

    def stop(self, container_ref):
        code, self.last_output = _run(["docker", "stop", container_ref], self.timeout)
        return code == 0

    def start(self, container_ref):
        code, self.last_output = _run(["docker", "start", container_ref], self.timeout)
        return code == 0


class CommandStopper(DockerStopper):
    """Stops the workload with a caller-supplied command instead of `docker stop`.

    The command is tokenized with shlex (never handed to a shell); "{container}"
    in any token is replaced with the container reference. Restart still goes
    through `docker start`.
    """

    def __init__(self, stop_command, timeout=DEFAULT_TIMEOUT):
        super().__init__(timeout)
        self.argv = shlex.split(stop_command)
        if not self.argv:
            raise ValueError("stop_command must not be empty")

    def stop(self, container_ref):
        cmd = [arg.replace("{container}", container_ref) for arg in self.argv]
        code, self.last_output = _run(cmd, self.timeout)
        return code == 0
