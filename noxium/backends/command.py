"""Command-line tool back-ends (tsc, terser, wat2wasm, ...)."""

import asyncio
import logging
import shlex
from pathlib import Path
from typing import Any, Optional, Sequence

from noxium.errors import BackendError, ValidationError, ValidationReason
from noxium.schemas import JobConfig

from .base import Backend

logger = logging.getLogger(__name__)

WASM_MAGIC = b"\x00asm"

# Max characters of tool output kept in diagnostics
_OUTPUT_LIMIT = 8000


def _tail(data: bytes) -> str:
    text = data.decode("utf-8", errors="replace")
    if len(text) > _OUTPUT_LIMIT:
        return "..." + text[-_OUTPUT_LIMIT:]
    return text


class CommandBackend(Backend):
    """
    Run an external tool as a subprocess.

    The argv template may contain these placeholders:
        {input}   first input file
        {inputs}  all input files, expanded to one argument each
        {output}  the staging output path

    Example:
        CommandBackend(["terser", "{input}", "-o", "{output}", "--compress"])

    A non-zero exit status raises BackendError with the tool's stderr as
    diagnostics. Cancellation kills the process.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        name: Optional[str] = None,
        cwd: Optional[Path] = None,
        env: Optional[dict[str, str]] = None,
    ):
        if isinstance(command, str):
            command = shlex.split(command)
        if not command:
            raise ValueError("CommandBackend needs a non-empty command")
        self.command = list(command)
        self.name = name or Path(self.command[0]).name
        self.cwd = cwd
        self.env = env

    def build_argv(self, config: JobConfig, output_path: Path) -> list[str]:
        """Expand placeholders in the command template."""
        argv: list[str] = []
        for arg in self.command:
            if arg == "{inputs}":
                argv.extend(str(p) for p in config.inputs)
                continue
            argv.append(
                arg.replace("{input}", str(config.inputs[0])).replace("{output}", str(output_path))
            )
        return argv

    async def execute(self, config: JobConfig, output_path: Path) -> Optional[dict[str, Any]]:
        argv = self.build_argv(config, output_path)
        logger.debug(f"Running {shlex.join(argv)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=self.env,
            )
        except FileNotFoundError as e:
            raise BackendError(
                f"Tool not found: {argv[0]}",
                diagnostics={"command": argv, "error": str(e)},
            ) from e

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        diagnostics = {
            "command": argv,
            "returncode": process.returncode,
            "stdout": _tail(stdout),
            "stderr": _tail(stderr),
        }
        if process.returncode != 0:
            raise BackendError(
                f"{self.name} exited with status {process.returncode}",
                diagnostics=diagnostics,
            )
        return diagnostics

    def describe(self) -> str:
        return shlex.join(self.command)


class WasmCommandBackend(CommandBackend):
    """
    CommandBackend for WebAssembly lowering that also decides which input
    formats it recognises.

    Binary .wasm inputs must start with the WebAssembly magic number.
    """

    DEFAULT_FORMATS = (".wat", ".wast", ".wasm")

    def __init__(self, command: Sequence[str], *, formats: Optional[Sequence[str]] = None, **kwargs):
        super().__init__(command, **kwargs)
        self.formats = tuple(f.lower() if f.startswith(".") else f".{f.lower()}" for f in (formats or self.DEFAULT_FORMATS))

    def check(self, config: JobConfig) -> None:
        path = config.inputs[0]
        suffix = path.suffix.lower()
        if suffix not in self.formats:
            raise ValidationError(
                ValidationReason.UNRECOGNIZED_FORMAT,
                f"Unrecognised WASM input format '{suffix or path.name}' "
                f"(expected one of {', '.join(self.formats)})",
                field="input_file",
                kind=config.kind,
            )
        if suffix == ".wasm" and path.exists():
            with open(path, "rb") as f:
                if f.read(4) != WASM_MAGIC:
                    raise ValidationError(
                        ValidationReason.UNRECOGNIZED_FORMAT,
                        f"{path} is not a WebAssembly binary",
                        field="input_file",
                        kind=config.kind,
                    )
