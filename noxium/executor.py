"""
Executor - runs one validated job to completion.

The Executor implements:
- At-most-once execution per descriptor id
- Staged output with atomic publish (see staging.py)
- Per-job deadline with cooperative cancellation of the back-end
- Explicit cancellation through a RunHandle, with a grace period for
  back-ends that do not stop promptly
- Conversion of every back-end outcome into a typed JobResult

Execution flow:
1. Refuse ids that already ran (DuplicateJob)
2. Stage the output next to its destination
3. Start the back-end as a task; wait for it, the deadline or a cancel signal
4. Success: publish the staged file, result COMPLETED
5. Failure / timeout / cancel: stop the back-end, discard the staged file,
   result FAILED or CANCELLED

Nothing raised by a back-end escapes run(); it is wrapped in BackendFailure.
"""

import asyncio
import logging
from typing import Any, Optional

from noxium.errors import (
    BackendError,
    BackendFailure,
    DuplicateJob,
    JobCancelled,
    JobTimeout,
    NoxiumError,
)
from noxium.schemas import JobKind, JobResult, JobStatus, utcnow
from noxium.staging import StagedOutput
from noxium.validator import ValidDescriptor

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 300.0
DEFAULT_CANCEL_GRACE_S = 5.0


class RunHandle:
    """
    Lifecycle state and cancellation signal for a job or pipeline.

    The Orchestrator keeps one handle per in-flight submission so that
    cancel(id) and status(id) can reach it. Pipeline stages get child
    handles that share the pipeline's cancellation signal but track their
    own status.
    """

    def __init__(
        self,
        run_id: str,
        kind: Optional[JobKind] = None,
        parent: Optional["RunHandle"] = None,
    ):
        self.id = run_id
        self.kind = kind
        self.status = JobStatus.QUEUED
        self.created_at = utcnow()
        self.updated_at = self.created_at
        self._cancel_event = parent._cancel_event if parent else asyncio.Event()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> bool:
        """
        Request cancellation.

        Returns:
            True if the run was queued or running and accepted the signal
        """
        if self.status.is_terminal:
            return False
        self._cancel_event.set()
        return True

    async def wait_cancelled(self) -> None:
        await self._cancel_event.wait()

    def transition(self, status: JobStatus) -> None:
        self.status = status
        self.updated_at = utcnow()

    def __repr__(self) -> str:
        return f"RunHandle(id={self.id}, status={self.status.value})"


def _discard_when_done(task: "asyncio.Task[Any]", staged: StagedOutput) -> None:
    """Delete late output of a back-end that outlived its cancellation."""

    def _callback(done: "asyncio.Task[Any]") -> None:
        if not done.cancelled():
            done.exception()  # mark retrieved
        staged.discard()

    task.add_done_callback(_callback)


def _backend_failure(exc: BaseException, kind: JobKind) -> NoxiumError:
    if isinstance(exc, NoxiumError):
        if exc.kind is None:
            exc.kind = kind
        return exc
    if isinstance(exc, BackendError):
        return BackendFailure(str(exc), diagnostics=exc.diagnostics, kind=kind)
    return BackendFailure(
        f"{type(exc).__name__}: {exc}",
        diagnostics={"error_type": type(exc).__name__},
        kind=kind,
    )


class Executor:
    """
    Execution engine for validated jobs.

    Usage:
        executor = Executor(default_timeout_s=60)
        valid = validate(descriptor, registry)
        result = await executor.run(valid)

    Timeout precedence: descriptor.timeout_s, then the timeout_s argument,
    then default_timeout_s.

    Every executed job id is remembered for the lifetime of the Executor
    and refused with DuplicateJob afterwards, including ids whose results
    the Orchestrator has already evicted from its cache. The set grows by
    one short string per job; long-lived processes that submit without
    bound should recycle the Orchestrator periodically.
    """

    def __init__(
        self,
        default_timeout_s: float = DEFAULT_TIMEOUT_S,
        cancel_grace_s: float = DEFAULT_CANCEL_GRACE_S,
    ):
        self.default_timeout_s = default_timeout_s
        self.cancel_grace_s = cancel_grace_s
        self._executed: set[str] = set()

    def has_run(self, job_id: str) -> bool:
        return job_id in self._executed

    async def run(
        self,
        valid: ValidDescriptor,
        *,
        timeout_s: Optional[float] = None,
        handle: Optional[RunHandle] = None,
    ) -> JobResult:
        """
        Execute a validated job.

        Args:
            valid: Output of validator.validate()
            timeout_s: Deadline for this run if the descriptor sets none
            handle: Cancellation/lifecycle handle (a private one if omitted)

        Returns:
            JobResult: COMPLETED with output_file, or FAILED/CANCELLED with error
        """
        descriptor = valid.descriptor
        job_id, kind = descriptor.id, descriptor.kind
        handle = handle or RunHandle(job_id, kind)

        if job_id in self._executed:
            logger.warning(f"Refusing to re-execute job {job_id}")
            return JobResult.failed(
                job_id, kind, DuplicateJob(f"Job {job_id} was already executed", kind=kind)
            )
        self._executed.add(job_id)

        if handle.cancel_requested:
            return JobResult.failed(
                job_id,
                kind,
                JobCancelled(f"Job {job_id} cancelled before start", kind=kind),
                status=JobStatus.CANCELLED,
            )

        deadline = descriptor.timeout_s or timeout_s or self.default_timeout_s
        staged = StagedOutput(descriptor.config.output, job_id)
        started_at = utcnow()
        handle.transition(JobStatus.RUNNING)
        logger.info(
            f"Job started: {job_id} (kind={kind.value}, backend={valid.backend.name})",
            extra={"event": "job_started", "job_id": job_id, "kind": kind.value},
        )

        backend_task = asyncio.create_task(
            valid.backend.execute(descriptor.config, staged.path),
            name=f"noxium-backend-{job_id}",
        )
        cancel_task = asyncio.create_task(handle.wait_cancelled())
        try:
            done, _ = await asyncio.wait(
                {backend_task, cancel_task},
                timeout=deadline,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            # the task running us was cancelled (e.g. event loop shutdown)
            await self._stop_backend(backend_task, staged, job_id)
            raise
        finally:
            cancel_task.cancel()

        if backend_task in done:
            result = self._collect(backend_task, staged, job_id, kind, started_at)
        else:
            await self._stop_backend(backend_task, staged, job_id)
            if cancel_task in done:
                result = JobResult.failed(
                    job_id,
                    kind,
                    JobCancelled(f"Job {job_id} cancelled", kind=kind),
                    started_at=started_at,
                    status=JobStatus.CANCELLED,
                )
            else:
                result = JobResult.failed(
                    job_id,
                    kind,
                    JobTimeout(f"Job {job_id} exceeded its {deadline:g}s deadline", kind=kind),
                    started_at=started_at,
                )

        handle.transition(result.status)
        self._log_result(result)
        return result

    def _collect(
        self,
        task: "asyncio.Task[Any]",
        staged: StagedOutput,
        job_id: str,
        kind: JobKind,
        started_at: Any,
    ) -> JobResult:
        """Turn a finished back-end task into a result, publishing on success."""
        if task.cancelled():
            staged.discard()
            return JobResult.failed(
                job_id,
                kind,
                JobCancelled(f"Back-end for {job_id} was cancelled", kind=kind),
                started_at=started_at,
                status=JobStatus.CANCELLED,
            )

        exc = task.exception()
        if exc is not None:
            staged.discard()
            logger.debug(f"Back-end raised for {job_id}", exc_info=exc)
            return JobResult.failed(job_id, kind, _backend_failure(exc, kind), started_at=started_at)

        diagnostics = task.result()
        try:
            output = staged.publish()
        except FileNotFoundError:
            return JobResult.failed(
                job_id,
                kind,
                BackendFailure(
                    "Back-end reported success but wrote no output",
                    diagnostics=diagnostics,
                    kind=kind,
                ),
                started_at=started_at,
            )
        except OSError as e:
            staged.discard()
            return JobResult.failed(
                job_id,
                kind,
                BackendFailure(f"Could not publish output: {e}", diagnostics=diagnostics, kind=kind),
                started_at=started_at,
            )
        return JobResult.succeeded(
            job_id, kind, output, started_at=started_at, diagnostics=diagnostics
        )

    async def _stop_backend(self, task: "asyncio.Task[Any]", staged: StagedOutput, job_id: str) -> None:
        """Cancel the back-end, wait up to the grace period, discard staged output."""
        if not task.done():
            task.cancel()
            done, _ = await asyncio.wait({task}, timeout=self.cancel_grace_s)
            if not done:
                logger.warning(
                    f"Back-end for {job_id} ignored cancellation for {self.cancel_grace_s:g}s; abandoning it",
                    extra={"event": "backend_abandoned", "job_id": job_id},
                )
                _discard_when_done(task, staged)
        if task.done() and not task.cancelled():
            task.exception()
        staged.discard()

    def _log_result(self, result: JobResult) -> None:
        extra = {
            "event": f"job_{result.status.value}",
            "job_id": result.job_id,
            "kind": result.kind.value if result.kind else None,
        }
        if result.success:
            logger.info(f"Job completed: {result.job_id} -> {result.output_file}", extra=extra)
        elif result.status == JobStatus.CANCELLED:
            logger.warning(f"Job cancelled: {result.job_id}", extra=extra)
        else:
            logger.error(f"Job failed: {result.job_id} - {result.error}", extra=extra)
