"""
noxium - Pluggable code-transformation orchestrator

Accepts typed job descriptors (TypeScript compile, regex rewrite, minify,
bundle, WebAssembly lowering), validates them, dispatches them to
registered back-ends and returns typed results. Jobs can be chained into
pipelines that succeed or fail as a unit.
"""

__version__ = "0.1.0"


__all__ = [
    "Orchestrator",
    "NoxiumConfig",
    "load_config",
    "get_noxium_home",
    "JobKind",
    "JobDescriptor",
    "JobResult",
    "JobStatus",
    "PipelineResult",
]

from .config import NoxiumConfig, load_config, get_noxium_home
from .orchestrator import Orchestrator
from .schemas import JobDescriptor, JobKind, JobResult, JobStatus, PipelineResult
