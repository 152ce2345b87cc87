"""
Orchestrator - the single entry point for submitting transformations.

Wires the CapabilityRegistry, validator, Executor and PipelineComposer
together and exposes:

    async with Orchestrator() as orch:
        result = await orch.submit("minify", {"input_file": "app.js", "output_file": "app.min.js"})
        pipeline = await orch.submit_pipeline([
            ("typescript_compile", {"input_file": "app.ts", "output_file": "build/app.js"}),
            ("minify", {"input_file": "build/app.js", "output_file": "dist/app.min.js"}),
        ])

Every outcome, including validation failures and unknown kinds, comes back
as a JobResult / PipelineResult; submit() never raises for job failures.
Independent submissions run concurrently on the event loop.
"""

import asyncio
import logging
from collections import OrderedDict
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

from noxium.backends.base import Backend
from noxium.backends.registry import CapabilityRegistry
from noxium.config import NoxiumConfig
from noxium.errors import (
    NoxiumError,
    OrchestratorClosed,
    UnknownCapability,
    ValidationError,
    ValidationReason,
)
from noxium.executor import Executor, RunHandle
from noxium.pipeline import PipelineComposer
from noxium.schemas import (
    JobDescriptor,
    JobKind,
    JobResult,
    JobStatus,
    PipelineResult,
    new_job_id,
    normalize_path,
)
from noxium.validator import validate

logger = logging.getLogger(__name__)

StageLike = Union[JobDescriptor, Mapping[str, Any], Sequence[Any]]
AnyResult = Union[JobResult, PipelineResult]


class Orchestrator:
    """
    Facade over registry, validation, execution and pipeline composition.

    Args:
        config: NoxiumConfig (defaults when omitted)
        registry: CapabilityRegistry (built from config when omitted)
    """

    def __init__(
        self,
        config: Optional[NoxiumConfig] = None,
        registry: Optional[CapabilityRegistry] = None,
    ):
        self.config = config or NoxiumConfig()
        self.registry = registry if registry is not None else CapabilityRegistry.create_default(self.config)
        self.executor = Executor(
            default_timeout_s=self.config.default_timeout_s,
            cancel_grace_s=self.config.cancel_grace_s,
        )
        self.composer = PipelineComposer(
            self.registry,
            self.executor,
            cleanup_on_failure=self.config.cleanup_on_failure,
        )
        self._handles: dict[str, RunHandle] = {}
        self._inflight: dict[str, "asyncio.Task[Any]"] = {}
        self._results: "OrderedDict[str, AnyResult]" = OrderedDict()
        self._claimed: dict[Path, str] = {}
        self._closed = False

    # Registry --------------------------------------------------------------

    def register(self, kind: "JobKind | str", backend: Backend, *, replace: Optional[bool] = None) -> None:
        """Register a back-end; see CapabilityRegistry.register()."""
        self.registry.register(kind, backend, replace=replace)

    def kinds(self) -> list[JobKind]:
        """Kinds that currently have a back-end."""
        return self.registry.kinds()

    # Submission ------------------------------------------------------------

    def _build_descriptor(
        self,
        kind: Any,
        config: Any,
        timeout_s: Optional[float] = None,
        job_id: Optional[str] = None,
    ) -> JobDescriptor:
        """
        Build a descriptor from raw input.

        The kind must resolve to a registered back-end before the config
        shape is checked, so an unregistered kind always reports
        UnknownCapability.
        """
        try:
            parsed = JobKind.parse(kind)
        except ValueError:
            raise UnknownCapability(f"Unknown job kind: {kind}") from None
        self.registry.resolve(parsed)
        try:
            return JobDescriptor.create(parsed, config, timeout_s=timeout_s, job_id=job_id)
        except NoxiumError:
            raise
        except (TypeError, ValueError) as e:
            raise ValidationError(ValidationReason.INVALID_FIELD, str(e), kind=parsed) from e

    def _coerce_stage(self, stage: StageLike) -> JobDescriptor:
        """Accept a descriptor, a {"kind", "config", "timeout_s"} mapping or a (kind, config) pair."""
        if isinstance(stage, JobDescriptor):
            return stage
        if isinstance(stage, Mapping):
            if "kind" not in stage:
                raise ValidationError(ValidationReason.MISSING_FIELD, "Stage is missing 'kind'", field="kind")
            return self._build_descriptor(
                stage["kind"], stage.get("config") or {}, stage.get("timeout_s"), stage.get("id")
            )
        if isinstance(stage, (tuple, list)) and len(stage) == 2:
            return self._build_descriptor(stage[0], stage[1])
        raise ValidationError(
            ValidationReason.INVALID_FIELD,
            f"Stage must be a JobDescriptor, mapping or (kind, config) pair, got {type(stage).__name__}",
        )

    @property
    def closed(self) -> bool:
        return self._closed

    async def submit(
        self,
        kind: "JobKind | str",
        config: Any,
        *,
        timeout_s: Optional[float] = None,
    ) -> JobResult:
        """
        Validate and run one job.

        Args:
            kind: JobKind or its name
            config: Config mapping or typed config for the kind
            timeout_s: Per-job deadline (default from config)

        Returns:
            JobResult; failures are carried in result.error
        """
        if self._closed:
            return self._closed_result(new_job_id(), None)
        try:
            descriptor = self._build_descriptor(kind, config, timeout_s)
        except NoxiumError as e:
            job_id = new_job_id()
            logger.warning(
                f"Rejected submission: {e}",
                extra={"event": "job_rejected", "job_id": job_id},
            )
            return self._remember(job_id, JobResult.failed(job_id, e.kind, e))
        return await self.submit_descriptor(descriptor)

    async def submit_descriptor(self, descriptor: JobDescriptor) -> JobResult:
        """
        Run a prepared descriptor.

        Re-submitting a descriptor id that is in flight or still cached
        returns that result instead of executing again.
        """
        cached = self._results.get(descriptor.id)
        if isinstance(cached, JobResult):
            return cached
        task = self._inflight.get(descriptor.id)
        if task is not None:
            return await asyncio.shield(task)
        if self._closed:
            return self._closed_result(descriptor.id, descriptor.kind)

        handle = RunHandle(descriptor.id, descriptor.kind)
        self._handles[descriptor.id] = handle
        task = asyncio.create_task(self._run_job(descriptor, handle), name=f"noxium-{descriptor.id}")
        self._inflight[descriptor.id] = task
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            handle.cancel()
            raise

    async def submit_pipeline(
        self,
        stages: Sequence[StageLike],
        *,
        cleanup_on_failure: Optional[bool] = None,
        pipeline_id: Optional[str] = None,
    ) -> PipelineResult:
        """
        Run stages in order as one unit.

        Args:
            stages: Descriptors, {"kind", "config"} mappings or (kind, config) pairs
            cleanup_on_failure: Remove intermediate outputs if a stage fails
            pipeline_id: Identifier for cancel()/status() (generated if omitted)

        Returns:
            PipelineResult
        """
        pipeline_id = pipeline_id or new_job_id("pipeline")
        if self._closed:
            return self._pipeline_rejected(pipeline_id, OrchestratorClosed("Orchestrator is shut down"))

        descriptors = []
        for index, stage in enumerate(stages):
            try:
                descriptors.append(self._coerce_stage(stage))
            except NoxiumError as e:
                return self._pipeline_rejected(pipeline_id, e.at_stage(index))

        handle = RunHandle(pipeline_id)
        self._handles[pipeline_id] = handle
        task = asyncio.create_task(
            self._run_pipeline(pipeline_id, descriptors, handle, cleanup_on_failure),
            name=f"noxium-{pipeline_id}",
        )
        self._inflight[pipeline_id] = task
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            handle.cancel()
            raise

    # Control ---------------------------------------------------------------

    def cancel(self, run_id: str) -> bool:
        """
        Cancel an in-flight job or pipeline.

        Returns:
            True if a queued or running submission accepted the signal
        """
        handle = self._handles.get(run_id)
        if handle is None:
            return False
        accepted = handle.cancel()
        if accepted:
            logger.info(f"Cancellation requested: {run_id}", extra={"event": "cancel_requested", "job_id": run_id})
        return accepted

    def status(self, run_id: str) -> Optional[JobStatus]:
        """Status of an in-flight or recently finished submission, None if unknown."""
        handle = self._handles.get(run_id)
        if handle is not None:
            return handle.status
        result = self._results.get(run_id)
        return result.status if result is not None else None

    def result(self, run_id: str) -> Optional[AnyResult]:
        """Cached result of a finished submission."""
        return self._results.get(run_id)

    async def shutdown(self, grace_s: Optional[float] = None) -> bool:
        """
        Stop accepting work and drain.

        In-flight submissions get grace_s seconds to finish; whatever is
        still running afterwards is cancelled (and awaited).

        Returns:
            True if everything finished within the grace period
        """
        self._closed = True
        grace = self.config.shutdown_grace_s if grace_s is None else grace_s
        pending = set(self._inflight.values())
        if not pending:
            return True

        logger.info(
            f"Shutting down: waiting up to {grace:g}s for {len(pending)} submission(s)",
            extra={"event": "shutdown_started"},
        )
        _, pending = await asyncio.wait(pending, timeout=grace)
        if not pending:
            return True

        logger.warning(
            f"Cancelling {len(pending)} submission(s) still running after {grace:g}s",
            extra={"event": "shutdown_cancelling"},
        )
        for handle in list(self._handles.values()):
            handle.cancel()
        await asyncio.wait(pending)
        return False

    async def __aenter__(self) -> "Orchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    # Internals -------------------------------------------------------------

    async def _run_job(self, descriptor: JobDescriptor, handle: RunHandle) -> JobResult:
        try:
            try:
                self._claim_outputs(descriptor.id, [descriptor])
                valid = validate(descriptor, self.registry)
            except NoxiumError as e:
                logger.warning(
                    f"Rejected {descriptor.id}: {e}",
                    extra={"event": "job_rejected", "job_id": descriptor.id, "kind": descriptor.kind.value},
                )
                result = JobResult.failed(descriptor.id, descriptor.kind, e)
                handle.transition(result.status)
            else:
                result = await self.executor.run(valid, handle=handle)
            return self._remember(descriptor.id, result)
        finally:
            self._release(descriptor.id)

    async def _run_pipeline(
        self,
        pipeline_id: str,
        descriptors: list[JobDescriptor],
        handle: RunHandle,
        cleanup_on_failure: Optional[bool],
    ) -> PipelineResult:
        try:
            try:
                self._claim_outputs(pipeline_id, descriptors)
            except NoxiumError as e:
                result = self._pipeline_rejected(pipeline_id, e)
                handle.transition(result.status)
                return result
            result = await self.composer.run_pipeline(
                descriptors,
                pipeline_id=pipeline_id,
                handle=handle,
                cleanup_on_failure=cleanup_on_failure,
            )
            return self._remember(pipeline_id, result)
        finally:
            self._release(pipeline_id)

    def _claim_outputs(self, owner: str, descriptors: Sequence[JobDescriptor]) -> None:
        """Reserve output paths; a path held by another in-flight run is a conflict."""
        if not self.config.detect_output_conflicts:
            return
        claimed = []
        for index, descriptor in enumerate(descriptors):
            path = normalize_path(descriptor.config.output)
            holder = self._claimed.get(path)
            if holder is not None and holder != owner:
                for own in claimed:
                    self._claimed.pop(own, None)
                raise ValidationError(
                    ValidationReason.OUTPUT_CONFLICT,
                    f"Output {descriptor.config.output} is already being written by {holder}",
                    field="output_file",
                    kind=descriptor.kind,
                    stage_index=index if len(descriptors) > 1 else None,
                )
            self._claimed[path] = owner
            claimed.append(path)

    def _release(self, owner: str) -> None:
        for path in [p for p, holder in self._claimed.items() if holder == owner]:
            del self._claimed[path]
        self._handles.pop(owner, None)
        self._inflight.pop(owner, None)

    def _remember(self, run_id: str, result: AnyResult) -> Any:
        size = self.config.result_cache_size
        if size > 0:
            self._results[run_id] = result
            self._results.move_to_end(run_id)
            while len(self._results) > size:
                self._results.popitem(last=False)
        return result

    def _closed_result(self, job_id: str, kind: Optional[JobKind]) -> JobResult:
        return JobResult.failed(job_id, kind, OrchestratorClosed("Orchestrator is shut down", kind=kind))

    def _pipeline_rejected(self, pipeline_id: str, error: NoxiumError) -> PipelineResult:
        logger.warning(
            f"Rejected pipeline {pipeline_id}: {error}",
            extra={"event": "pipeline_rejected", "job_id": pipeline_id},
        )
        return PipelineResult(
            pipeline_id=pipeline_id,
            success=False,
            error=error,
            failed_stage=error.stage_index,
        )
