from volkeep.container.docker import CommandStopper, DockerStopper


def create_stopper(stop_command=None):
    if stop_command:
        return CommandStopper(stop_command)
    return DockerStopper()
