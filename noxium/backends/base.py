"""
Base back-end protocol and common implementations.

Back-ends execute one kind of transformation. The orchestrator treats them
as opaque capabilities; its only contract with a back-end is:
- execute() is invoked at most once per job
- the back-end writes its result to the output_path it is given (a staging
  location, published by the Executor on success)
- raising means failure; BackendError carries diagnostics to the caller
"""

import asyncio
import inspect
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from noxium.schemas import BundleConfig, JobConfig


class Backend(ABC):
    """
    Abstract base class for transformation back-ends.

    Subclasses implement execute(). check() is an optional hook for
    kind-specific validation that only the back-end can decide (e.g. which
    input formats it recognises); it runs before anything executes.
    """

    name: str = "backend"

    @abstractmethod
    async def execute(self, config: JobConfig, output_path: Path) -> Optional[dict[str, Any]]:
        """
        Run the transformation.

        Args:
            config: Kind-specific configuration
            output_path: Where to write the result (staging location)

        Returns:
            Optional diagnostics dict surfaced on the JobResult

        Raises:
            BackendError: If the transformation failed
        """
        pass

    def check(self, config: JobConfig) -> None:
        """
        Kind-specific validation hook.

        Raises:
            ValidationError: If the config is not acceptable to this back-end
        """
        return None

    def describe(self) -> str:
        """One-line description for listings."""
        return self.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class NoOpBackend(Backend):
    """
    Passthrough back-end for testing and dry-run mode.

    Copies the input to the output unchanged (bundles are concatenated)
    without invoking any tool.
    """

    name = "noop"

    async def execute(self, config: JobConfig, output_path: Path) -> Optional[dict[str, Any]]:
        if isinstance(config, BundleConfig):
            with open(output_path, "wb") as out:
                for path in config.input_files:
                    out.write(Path(path).read_bytes())
        else:
            shutil.copyfile(config.inputs[0], output_path)
        return {"status": "noop", "kind": config.kind.value}


BackendFunc = Callable[[JobConfig, Path], Union[Optional[dict[str, Any]], Awaitable[Optional[dict[str, Any]]]]]


class CallableBackend(Backend):
    """
    Adapt a plain function into a back-end.

    The function receives (config, output_path). Coroutine functions are
    awaited; regular functions run in a worker thread so they do not block
    the event loop. Threads cannot be interrupted, so a sync function that
    outlives a cancellation keeps running until it returns; its staged
    output is discarded when it does.

    Usage:
        def strip_banner(config, output_path):
            text = config.input_file.read_text()
            output_path.write_text(text.split("\\n", 1)[1])

        registry.register(JobKind.MINIFY, CallableBackend(strip_banner))
    """

    def __init__(self, func: BackendFunc, name: Optional[str] = None):
        self._func = func
        self.name = name or getattr(func, "__name__", "callable")

    async def execute(self, config: JobConfig, output_path: Path) -> Optional[dict[str, Any]]:
        if inspect.iscoroutinefunction(self._func):
            return await self._func(config, output_path)

        worker = asyncio.ensure_future(asyncio.to_thread(self._func, config, output_path))
        try:
            result = await asyncio.shield(worker)
        except asyncio.CancelledError:
            # the thread keeps running; drop whatever it writes once it returns
            worker.add_done_callback(lambda done: _drop_late_output(done, output_path))
            raise
        if inspect.isawaitable(result):
            result = await result
        return result


def _drop_late_output(done: "asyncio.Future[Any]", path: Path) -> None:
    if not done.cancelled():
        done.exception()  # mark retrieved
    try:
        path.unlink()
    except FileNotFoundError:
        pass
