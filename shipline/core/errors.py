"""Exit codes for CLI commands.

Values are process exit codes and should remain stable:
- 0: Success
- 1: User error (bad arguments, unknown ref kind)
- 2: Config error (invalid pipeline file, cyclic or unknown dependency)
- 3: Pipeline failed (a job failed, timed out or was cancelled)
- 4: Publish error (release backend unavailable)
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands."""

    OK = 0
    USER_ERROR = 1
    CONFIG_ERROR = 2
    PIPELINE_FAILED = 3
    PUBLISH_ERROR = 4

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
