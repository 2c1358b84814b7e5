"""Exit codes for forge commands.

A release either converges or it does not: anything short of full success
terminates the process with one of these non-zero codes.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Process exit codes. Values are part of the CLI contract.

    - 0: Success
    - 1: User error (bad flags, unknown service, cancelled confirmation input)
    - 2: Environment error (missing forge.toml, missing credentials or tools)
    - 3: Release error (a pipeline step or migration Job failed)
    - 4: Network error (registry push/verify, git push)
    - 5: I/O error (artifact metadata unreadable or unwritable)
    - 6: Rollout error (timeout or unhealthy pods)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    RELEASE_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
    ROLLOUT_ERROR = 6

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK

    @property
    def is_error(self) -> bool:
        return self != ErrorCode.OK
