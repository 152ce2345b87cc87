"""
Error classes for noxium execution.

Every failure the orchestrator can report has its own type so callers can
branch on it without parsing messages:

- UnknownCapability: kind has no registered back-end (caller/config bug)
- DuplicateCapability: kind already registered and replacement disallowed
- ValidationError: descriptor rejected before any back-end runs
- BackendFailure: the back-end itself failed (compile error, tool crash)
- JobTimeout: deadline exceeded, staged output discarded
- JobCancelled: explicit cancellation honored, staged output discarded
- PipelineWiringError: stages do not chain output -> input
- DuplicateJob: a descriptor id was submitted to the executor twice
- OrchestratorClosed: submission after shutdown

Error handling contract:
- Components raise these internally
- The Executor, PipelineComposer and Orchestrator catch them at their
  boundary and hand them back inside a JobResult / PipelineResult
- Nothing is retried automatically
"""

from enum import Enum
from typing import Any, Optional


class NoxiumError(Exception):
    """Base exception for noxium."""

    code = "error"

    def __init__(self, message: str, *, kind: Any = None, stage_index: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.stage_index = stage_index

    def at_stage(self, index: int) -> "NoxiumError":
        """Tag the error with its position in a pipeline and return it."""
        self.stage_index = index
        return self

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.kind is not None:
            result["kind"] = getattr(self.kind, "value", self.kind)
        if self.stage_index is not None:
            result["stage_index"] = self.stage_index
        return result

    def __str__(self) -> str:
        prefix = ""
        if self.stage_index is not None:
            prefix = f"stage {self.stage_index}: "
        if self.kind is not None:
            prefix += f"[{getattr(self.kind, 'value', self.kind)}] "
        return f"{prefix}{self.message}"


class ConfigError(NoxiumError):
    """Configuration file is missing, unreadable or invalid."""

    code = "config_error"


class UnknownCapability(NoxiumError):
    """No back-end is registered for the requested kind."""

    code = "unknown_capability"


class DuplicateCapability(NoxiumError):
    """A back-end is already registered for the kind and replacement is disallowed."""

    code = "duplicate_capability"


class ValidationReason(str, Enum):
    """Why a descriptor was rejected."""
    MISSING_FIELD = "missing_field"
    INVALID_FIELD = "invalid_field"
    DUPLICATE_INPUT = "duplicate_input"
    UNREADABLE_INPUT = "unreadable_input"
    UNWRITABLE_OUTPUT = "unwritable_output"
    MALFORMED_PATTERN = "malformed_pattern"
    UNRECOGNIZED_FORMAT = "unrecognized_format"
    OUTPUT_CONFLICT = "output_conflict"


class ValidationError(NoxiumError):
    """
    Descriptor failed validation; the job never started.

    Attributes:
        reason: The ValidationReason for the first failed check
        field: Config field the failure relates to, if any
    """

    code = "validation_error"

    def __init__(
        self,
        reason: ValidationReason,
        message: str,
        *,
        field: Optional[str] = None,
        kind: Any = None,
        stage_index: Optional[int] = None,
    ):
        super().__init__(message, kind=kind, stage_index=stage_index)
        self.reason = ValidationReason(reason)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["reason"] = self.reason.value
        if self.field is not None:
            result["field"] = self.field
        return result


class BackendError(Exception):
    """
    Raised by back-ends to report a failed transformation.

    The diagnostics payload (compiler output, exit status, ...) is passed
    through to the caller untouched.
    """

    def __init__(self, message: str, diagnostics: Any = None):
        super().__init__(message)
        self.diagnostics = diagnostics


class BackendFailure(NoxiumError):
    """The capability failed; diagnostics are the back-end's opaque payload."""

    code = "backend_failure"

    def __init__(
        self,
        message: str,
        *,
        diagnostics: Any = None,
        kind: Any = None,
        stage_index: Optional[int] = None,
    ):
        super().__init__(message, kind=kind, stage_index=stage_index)
        self.diagnostics = diagnostics

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.diagnostics is not None:
            result["diagnostics"] = self.diagnostics
        return result


class JobTimeout(NoxiumError):
    """The job exceeded its deadline."""

    code = "timeout"


class JobCancelled(NoxiumError):
    """The job was cancelled on request."""

    code = "cancelled"


class PipelineWiringError(NoxiumError):
    """Adjacent pipeline stages do not chain output to input."""

    code = "pipeline_wiring_error"


class DuplicateJob(NoxiumError):
    """A descriptor id reached the executor more than once."""

    code = "duplicate_job"


class OrchestratorClosed(NoxiumError):
    """The orchestrator is shut down and no longer accepts submissions."""

    code = "orchestrator_closed"
