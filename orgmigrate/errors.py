"""
Error classes for orgmigrate.

Remote-facing errors are raised at the client boundary and carry the raw
payload returned by the org so the run log shows exactly what failed:
- SchemaUnavailable: object could not be described
- QueryError: query was rejected by the org
- SubmissionError: bulk job could not be created
- PollError / PollTimeout: bulk job failed or never reached a terminal state
- SideEffectError: anonymous script execution failed

The orchestrator catches these at the step boundary and applies the
ignore-error / confirm policy. ReferenceNotFound and InteractiveAbort stop
the run.
"""

from typing import Any, Optional


class MigrationError(Exception):
    """Base exception for orgmigrate."""

    def __init__(self, message: str, payload: Optional[Any] = None):
        super().__init__(message)
        self.payload = payload


class PlanLoadError(MigrationError):
    """Migration plan file is missing or malformed."""
    pass


class SchemaUnavailable(MigrationError):
    """Object has no cached schema and could not be described."""
    pass


class QueryError(MigrationError):
    """Query failed in the org."""
    pass


class ReferenceNotFound(MigrationError):
    """
    A step declared a reference whose JSON artifact does not exist.

    The step cannot produce correct output without it, so this is fatal.
    """

    def __init__(self, name: str, path: str):
        super().__init__(f"Reference '{name}' not found at {path}")
        self.name = name
        self.path = path


class SubmissionError(MigrationError):
    """Bulk upsert/delete job could not be submitted."""
    pass


class PollError(MigrationError):
    """Bulk job status check failed or the job ended in a failed state."""
    pass


class PollTimeout(PollError):
    """Bulk job did not complete within retries x interval."""
    pass


class SideEffectError(MigrationError):
    """Anonymous script execution failed."""
    pass


class InteractiveAbort(MigrationError):
    """Operator declined to continue."""
    pass
