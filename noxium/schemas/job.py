"""
JobDescriptor schema - one requested transformation.

A JobDescriptor is immutable: kind + typed config + process-unique id.
The id correlates log lines and results, and lets the Orchestrator answer
a re-submission of the same descriptor without running it again.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .configs import JobConfig, build_config
from .kinds import JobKind


def new_job_id(prefix: str = "job") -> str:
    """Return a fresh process-unique identifier."""
    return f"{prefix}-{uuid.uuid4().hex}"


@dataclass(frozen=True)
class JobDescriptor:
    """
    Immutable description of one job.

    Attributes:
        kind: The JobKind to dispatch to
        config: Kind-specific configuration (see configs.py)
        id: Process-unique identifier assigned at creation
        timeout_s: Optional per-job deadline overriding the executor default
    """
    kind: JobKind
    config: JobConfig
    id: str
    timeout_s: Optional[float] = None

    def __post_init__(self):
        if self.config.kind is not self.kind:
            raise ValueError(
                f"Config mismatch: kind '{self.kind.value}' got config for "
                f"'{self.config.kind.value}'"
            )
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be positive, got {self.timeout_s}")

    @classmethod
    def create(
        cls,
        kind: "JobKind | str",
        config: "Mapping[str, Any] | JobConfig",
        *,
        timeout_s: Optional[float] = None,
        job_id: Optional[str] = None,
    ) -> "JobDescriptor":
        """
        Build a descriptor, parsing the kind and config and assigning an id.

        Raises:
            ValidationError: If the config does not match the kind's shape
            ValueError: If the kind is unknown
        """
        parsed = JobKind.parse(kind)
        return cls(
            kind=parsed,
            config=build_config(parsed, config),
            id=job_id or new_job_id(),
            timeout_s=timeout_s,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "JobDescriptor":
        """Build from {"kind": ..., "config": {...}, "timeout_s": ..., "id": ...}."""
        if "kind" not in data:
            raise ValueError("Job definition is missing 'kind'")
        return cls.create(
            data["kind"],
            data.get("config") or {},
            timeout_s=data.get("timeout_s"),
            job_id=data.get("id"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for logs and JSON output."""
        result: dict[str, Any] = {
            "id": self.id,
            "kind": self.kind.value,
            "config": self.config.to_dict(),
        }
        if self.timeout_s is not None:
            result["timeout_s"] = self.timeout_s
        return result
