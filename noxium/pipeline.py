"""Pipeline composer - sequential execution of chained jobs.

A pipeline is an ordered list of JobDescriptors where each stage reads the
file the previous stage wrote. The whole chain is one logical unit:

- wiring is checked before anything runs (PipelineWiringError)
- every stage is validated before the first one runs; inputs produced by
  upstream stages are accepted even though they do not exist yet
- stages run strictly one after another; the first failure stops the
  pipeline and is reported with its stage index and kind
- later stages never run, so their outputs are never created
- upstream outputs stay on disk unless cleanup_on_failure is set

Pipeline YAML schema:
    pipeline_id: build.app
    cleanup_on_failure: false
    stages:
      - kind: typescript_compile
        config: {input_file: src/app.ts, output_file: build/app.js}
      - kind: minify
        config: {input_file: build/app.js, output_file: dist/app.min.js}
        timeout_s: 60

Relative paths in a definition file are resolved against the file's
directory.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from noxium.backends.registry import CapabilityRegistry
from noxium.errors import NoxiumError, PipelineWiringError
from noxium.executor import Executor, RunHandle
from noxium.schemas import (
    JobDescriptor,
    JobKind,
    JobStatus,
    PipelineResult,
    new_job_id,
    normalize_path,
)
from noxium.validator import ValidDescriptor, validate

logger = logging.getLogger(__name__)

_PATH_FIELDS = ("input_file", "output_file", "inputFile", "outputFile")
_LIST_FIELDS = ("input_files", "inputFiles")


@dataclass
class PipelineDefinition:
    """A pipeline loaded from a definition file."""
    pipeline_id: str
    stages: list[JobDescriptor] = field(default_factory=list)
    cleanup_on_failure: Optional[bool] = None
    source: Optional[Path] = None


def _resolve_paths(config: Mapping[str, Any], base_dir: Path) -> dict[str, Any]:
    resolved = dict(config)
    for key in _PATH_FIELDS:
        value = resolved.get(key)
        if isinstance(value, str) and not Path(value).is_absolute():
            resolved[key] = str(base_dir / value)
    for key in _LIST_FIELDS:
        value = resolved.get(key)
        if isinstance(value, list):
            resolved[key] = [
                str(base_dir / v) if isinstance(v, str) and not Path(v).is_absolute() else v
                for v in value
            ]
    return resolved


def load_pipeline(path: Path) -> PipelineDefinition:
    """Load a pipeline definition from a YAML or JSON file.

    Args:
        path: Definition file (.yaml, .yml or .json)

    Returns:
        PipelineDefinition with descriptors built for every stage

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is malformed or a stage names an unknown kind
        ValidationError: If a stage config does not match its kind
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pipeline definition not found: {path}")

    import yaml

    with open(path) as f:
        try:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ValueError(f"Invalid pipeline definition syntax in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Pipeline definition must be a mapping: {path}")
    raw_stages = data.get("stages")
    if not isinstance(raw_stages, list) or not raw_stages:
        raise ValueError(f"Pipeline definition needs a non-empty 'stages' list: {path}")

    base_dir = path.parent.resolve()
    stages = []
    for index, raw in enumerate(raw_stages):
        if not isinstance(raw, dict) or "kind" not in raw:
            raise ValueError(f"Stage {index} in {path} must be a mapping with a 'kind'")
        stages.append(
            JobDescriptor.create(
                raw["kind"],
                _resolve_paths(raw.get("config") or {}, base_dir),
                timeout_s=raw.get("timeout_s"),
            )
        )

    return PipelineDefinition(
        pipeline_id=data.get("pipeline_id") or path.stem,
        stages=stages,
        cleanup_on_failure=data.get("cleanup_on_failure"),
        source=path,
    )


def check_wiring(stages: Sequence[JobDescriptor]) -> None:
    """
    Verify stage n's output is stage n+1's input.

    A bundle stage is wired when the upstream output is one of its inputs.

    Raises:
        PipelineWiringError: On an empty pipeline or the first mismatch
    """
    if not stages:
        raise PipelineWiringError("Pipeline has no stages")

    for index in range(1, len(stages)):
        upstream = stages[index - 1]
        stage = stages[index]
        produced = normalize_path(upstream.config.output)
        inputs = [normalize_path(p) for p in stage.config.inputs]
        if stage.kind is JobKind.BUNDLE:
            wired = produced in inputs
        else:
            wired = inputs[0] == produced
        if not wired:
            expected = ", ".join(str(p) for p in stage.config.inputs)
            raise PipelineWiringError(
                f"Stage {index} reads {expected} but stage {index - 1} writes {upstream.config.output}",
                kind=stage.kind,
                stage_index=index,
            )


class PipelineComposer:
    """
    Runs a list of descriptors as one all-or-nothing unit.

    Usage:
        composer = PipelineComposer(registry, executor)
        result = await composer.run_pipeline([compile_stage, minify_stage])
        if not result.success:
            print(result.failed_stage, result.error)
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        executor: Executor,
        cleanup_on_failure: bool = False,
    ):
        self.registry = registry
        self.executor = executor
        self.cleanup_on_failure = cleanup_on_failure

    def validate_stages(self, stages: Sequence[JobDescriptor]) -> list[ValidDescriptor]:
        """Validate every stage; downstream inputs may be produced upstream."""
        validated = []
        pending: list[Path] = []
        for index, stage in enumerate(stages):
            try:
                validated.append(validate(stage, self.registry, pending_inputs=pending))
            except NoxiumError as e:
                raise e.at_stage(index)
            pending.append(stage.config.output)
        return validated

    async def run_pipeline(
        self,
        stages: Sequence[JobDescriptor],
        *,
        pipeline_id: Optional[str] = None,
        handle: Optional[RunHandle] = None,
        cleanup_on_failure: Optional[bool] = None,
    ) -> PipelineResult:
        """
        Execute stages in order.

        Args:
            stages: Ordered descriptors
            pipeline_id: Identifier for logs and results (generated if omitted)
            handle: Shared cancellation handle for the whole pipeline
            cleanup_on_failure: Remove outputs of completed stages if a later
                                stage fails (default: composer setting)

        Returns:
            PipelineResult
        """
        pipeline_id = pipeline_id or (handle.id if handle else new_job_id("pipeline"))
        handle = handle or RunHandle(pipeline_id)
        cleanup = self.cleanup_on_failure if cleanup_on_failure is None else cleanup_on_failure
        result = PipelineResult(pipeline_id=pipeline_id)
        start_time = time.time()

        try:
            check_wiring(stages)
            validated = self.validate_stages(stages)
        except NoxiumError as e:
            logger.error(
                f"Pipeline {pipeline_id} rejected: {e}",
                extra={"event": "pipeline_rejected", "job_id": pipeline_id},
            )
            return self._finish(result, handle, start_time, error=e)

        logger.info(
            f"Pipeline started: {pipeline_id} ({len(validated)} stages)",
            extra={"event": "pipeline_started", "job_id": pipeline_id},
        )
        handle.transition(JobStatus.RUNNING)

        produced: list[Path] = []
        for index, valid in enumerate(validated):
            stage_handle = RunHandle(valid.id, valid.kind, parent=handle)
            stage_result = (await self.executor.run(valid, handle=stage_handle)).with_stage(index)
            result.stages.append(stage_result)

            if not stage_result.success:
                if cleanup:
                    result.cleaned_up = self._cleanup(produced)
                return self._finish(result, handle, start_time, error=stage_result.error)

            produced.append(stage_result.output_file)

        result.output_file = produced[-1]
        return self._finish(result, handle, start_time)

    def _finish(
        self,
        result: PipelineResult,
        handle: RunHandle,
        start_time: float,
        error: Optional[NoxiumError] = None,
    ) -> PipelineResult:
        result.duration_ms = int((time.time() - start_time) * 1000)
        if error is None:
            result.success = True
            logger.info(
                f"Pipeline completed: {result.pipeline_id} -> {result.output_file}",
                extra={"event": "pipeline_completed", "job_id": result.pipeline_id},
            )
        else:
            result.success = False
            result.error = error
            result.failed_stage = error.stage_index
            logger.error(
                f"Pipeline failed: {result.pipeline_id} at stage {error.stage_index} - {error}",
                extra={"event": "pipeline_failed", "job_id": result.pipeline_id},
            )
        handle.transition(result.status)
        return result

    def _cleanup(self, produced: list[Path]) -> list[Path]:
        removed = []
        for path in reversed(produced):
            try:
                path.unlink()
                removed.append(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove intermediate output {path}: {e}")
        return removed
