"""Git operations used to record releases and rollbacks."""

from forge.git.repository import GitError, Repository, VCSClient

__all__ = [
    "GitError",
    "Repository",
    "VCSClient",
]
