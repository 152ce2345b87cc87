"""
noxium.schemas - Data structures for the orchestration layer.

JobKind -> JobConfig -> JobDescriptor -> JobResult / PipelineResult

Lifecycle:
1. JobKind: closed set of transformations
2. JobConfig: one frozen config shape per kind
3. JobDescriptor: kind + config + id, created per request
4. JobResult: typed outcome of one job
5. PipelineResult: outcome of an ordered chain of jobs
"""

from .kinds import JobKind
from .configs import (
    JobConfig,
    TypeScriptCompileConfig,
    RegexTransformConfig,
    MinifyConfig,
    BundleConfig,
    WasmTransformConfig,
    CONFIG_TYPES,
    build_config,
    normalize_path,
)
from .job import JobDescriptor, new_job_id
from .result import JobStatus, JobResult, PipelineResult, utcnow

__all__ = [
    # Kinds
    "JobKind",
    # Configs
    "JobConfig",
    "TypeScriptCompileConfig",
    "RegexTransformConfig",
    "MinifyConfig",
    "BundleConfig",
    "WasmTransformConfig",
    "CONFIG_TYPES",
    "build_config",
    "normalize_path",
    # Descriptor
    "JobDescriptor",
    "new_job_id",
    # Results
    "JobStatus",
    "JobResult",
    "PipelineResult",
    "utcnow",
]
