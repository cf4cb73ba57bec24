from volkeep.vcs.committer import Committer, CommitResult, PushState
from volkeep.vcs.git import GitRepo

__all__ = ["Committer", "CommitResult", "GitRepo", "PushState"]
