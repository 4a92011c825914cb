from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    MANIFEST_NOT_FOUND = "manifest_not_found"
    ARTIFACT_NOT_FOUND = "artifact_not_found"
    INVALID_ARGUMENTS = "invalid_arguments"
    BALANCE_RESOLUTION_FAILED = "balance_resolution_failed"
    INVALID_SIGNING_KEY = "invalid_signing_key"
    PARTIAL_WEIGHT_LIMIT = "partial_weight_limit"
    ESTIMATION_FAILED = "estimation_failed"
    SUBMISSION_FAILED = "submission_failed"
    NETWORK_ERROR = "network_error"
    INDETERMINATE_OUTCOME = "indeterminate_outcome"
    DEPLOYMENT_LOCKED = "deployment_locked"


# Process exit codes. 0 is success; preparation problems sit below 10,
# chain-side failures at 10+ so scripts can tell "nothing happened" apart
# from "something may have happened".
EXIT_CODES = {
    # 2 is left to argparse usage errors
    ErrorKind.MANIFEST_NOT_FOUND: 8,
    ErrorKind.ARTIFACT_NOT_FOUND: 8,
    ErrorKind.INVALID_ARGUMENTS: 3,
    ErrorKind.PARTIAL_WEIGHT_LIMIT: 3,
    ErrorKind.BALANCE_RESOLUTION_FAILED: 4,
    ErrorKind.INVALID_SIGNING_KEY: 5,
    ErrorKind.DEPLOYMENT_LOCKED: 6,
    ErrorKind.NETWORK_ERROR: 7,
    ErrorKind.ESTIMATION_FAILED: 10,
    ErrorKind.SUBMISSION_FAILED: 11,
    ErrorKind.INDETERMINATE_OUTCOME: 12,
}


class DeployError(RuntimeError):
    """A terminal deployment failure tagged with its ErrorKind."""

    def __init__(self, kind: ErrorKind, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.kind = ErrorKind(kind)
        self.message = str(message)
        self.cause = cause
        # the Deployment that failed, when one got that far
        self.deployment: Optional[Any] = None

    @property
    def exit_code(self) -> int:
        return int(EXIT_CODES.get(self.kind, 1))

    def __str__(self) -> str:
        if self.cause is not None and str(self.cause) and str(self.cause) not in self.message:
            return f"{self.kind.value}: {self.message} ({self.cause})"
        return f"{self.kind.value}: {self.message}"
