"""
Result schemas - outcomes of executed jobs and pipelines.

A JobResult is either a success carrying the published output path, or a
failure carrying a typed NoxiumError. Never both: a job either produced
its declared output or produced none.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from noxium.errors import NoxiumError

from .kinds import JobKind


def utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Lifecycle status of a job or pipeline."""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


@dataclass(frozen=True)
class JobResult:
    """
    Outcome of one job.

    Attributes:
        job_id: Id of the JobDescriptor
        kind: JobKind that ran (or was requested)
        status: completed, failed or cancelled
        output_file: Published output path, set only on success
        error: Typed failure, set only on failure/cancellation
        stage_index: Position in a pipeline (None for single jobs)
        started_at: When the back-end was invoked (None if it never ran)
        finished_at: When the result was produced
        diagnostics: Opaque payload returned or raised by the back-end
    """
    job_id: str
    kind: Optional[JobKind]
    status: JobStatus
    output_file: Optional[Path] = None
    error: Optional[NoxiumError] = None
    stage_index: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    diagnostics: Any = None

    def __post_init__(self):
        if self.status == JobStatus.COMPLETED:
            if self.error is not None or self.output_file is None:
                raise ValueError("Completed results need an output_file and no error")
        elif self.status in (JobStatus.FAILED, JobStatus.CANCELLED):
            if self.error is None or self.output_file is not None:
                raise ValueError(f"{self.status.value} results need an error and no output_file")
        else:
            raise ValueError(f"Result status must be terminal, got {self.status.value}")

    @classmethod
    def succeeded(
        cls,
        job_id: str,
        kind: JobKind,
        output_file: Path,
        *,
        started_at: Optional[datetime] = None,
        diagnostics: Any = None,
    ) -> "JobResult":
        return cls(
            job_id=job_id,
            kind=kind,
            status=JobStatus.COMPLETED,
            output_file=output_file,
            started_at=started_at,
            finished_at=utcnow(),
            diagnostics=diagnostics,
        )

    @classmethod
    def failed(
        cls,
        job_id: str,
        kind: Optional[JobKind],
        error: NoxiumError,
        *,
        started_at: Optional[datetime] = None,
        status: JobStatus = JobStatus.FAILED,
    ) -> "JobResult":
        if error.kind is None:
            error.kind = kind
        return cls(
            job_id=job_id,
            kind=kind,
            status=status,
            error=error,
            stage_index=error.stage_index,
            started_at=started_at,
            finished_at=utcnow(),
            diagnostics=getattr(error, "diagnostics", None),
        )

    @property
    def success(self) -> bool:
        return self.status == JobStatus.COMPLETED

    @property
    def duration_ms(self) -> Optional[int]:
        if self.started_at and self.finished_at:
            delta = self.finished_at - self.started_at
            return int(delta.total_seconds() * 1000)
        return None

    def with_stage(self, index: int) -> "JobResult":
        """Return a copy tagged with its pipeline position."""
        if self.error is not None:
            self.error.at_stage(index)
        return JobResult(
            job_id=self.job_id,
            kind=self.kind,
            status=self.status,
            output_file=self.output_file,
            error=self.error,
            stage_index=index,
            started_at=self.started_at,
            finished_at=self.finished_at,
            diagnostics=self.diagnostics,
        )

    def raise_for_error(self) -> "JobResult":
        """Raise the carried error if the job did not succeed."""
        if self.error is not None:
            raise self.error
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "job_id": self.job_id,
            "kind": self.kind.value if self.kind else None,
            "status": self.status.value,
        }
        if self.output_file is not None:
            result["output_file"] = str(self.output_file)
        if self.error is not None:
            result["error"] = self.error.to_dict()
        if self.stage_index is not None:
            result["stage_index"] = self.stage_index
        if self.duration_ms is not None:
            result["duration_ms"] = self.duration_ms
        return result


@dataclass
class PipelineResult:
    """
    Outcome of a pipeline run.

    - pipeline_id: pipeline identifier
    - stages: JobResult of every stage that ran, in order
    - success: true if every stage completed
    - output_file: final stage's output on success
    - error: the failing stage's error (tagged with stage index and kind)
    - failed_stage: 0-based index of the failing stage
    - cleaned_up: intermediate outputs removed after a failure
    """
    pipeline_id: str
    stages: list[JobResult] = field(default_factory=list)
    success: bool = False
    output_file: Optional[Path] = None
    error: Optional[NoxiumError] = None
    failed_stage: Optional[int] = None
    duration_ms: int = 0
    cleaned_up: list[Path] = field(default_factory=list)

    @property
    def status(self) -> JobStatus:
        if self.success:
            return JobStatus.COMPLETED
        if self.error is not None and self.error.code == "cancelled":
            return JobStatus.CANCELLED
        return JobStatus.FAILED

    def raise_for_error(self) -> "PipelineResult":
        if self.error is not None:
            raise self.error
        return self

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "pipeline_id": self.pipeline_id,
            "success": self.success,
            "status": self.status.value,
            "stages": [stage.to_dict() for stage in self.stages],
            "duration_ms": self.duration_ms,
        }
        if self.output_file is not None:
            result["output_file"] = str(self.output_file)
        if self.error is not None:
            result["error"] = self.error.to_dict()
            result["failed_stage"] = self.failed_stage
        if self.cleaned_up:
            result["cleaned_up"] = [str(p) for p in self.cleaned_up]
        return result
