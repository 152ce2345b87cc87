"""In-process text back-ends: regex rewrite and concatenating bundler."""

import asyncio
import re
from pathlib import Path
from typing import Any, Optional

from noxium.errors import BackendError
from noxium.schemas import BundleConfig, JobConfig, RegexTransformConfig

from .base import Backend


class RegexTransformBackend(Backend):
    """
    Replace every match of the configured pattern.

    With the default empty replacement, matches are removed (e.g. a
    pattern of r"//.*" strips line comments).
    """

    name = "regex"

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def _rewrite(self, config: RegexTransformConfig, output_path: Path) -> dict[str, Any]:
        matcher = re.compile(config.pattern)
        source = config.input_file.read_text(encoding=self.encoding)
        try:
            rewritten, count = matcher.subn(config.replacement, source)
        except (re.error, IndexError) as e:
            # bad group reference in the replacement string
            raise BackendError(f"Invalid replacement: {e}", diagnostics={"replacement": config.replacement}) from e
        output_path.write_text(rewritten, encoding=self.encoding)
        return {"matches": count}

    async def execute(self, config: JobConfig, output_path: Path) -> Optional[dict[str, Any]]:
        if not isinstance(config, RegexTransformConfig):
            raise BackendError(f"{self.name} back-end cannot run {config.kind.value} jobs")
        return await asyncio.to_thread(self._rewrite, config, output_path)


class ConcatBundleBackend(Backend):
    """
    Concatenate bundle inputs in declared order.

    Each file is preceded by a /* name */ banner and terminated by a
    newline so statements from adjacent files cannot run together.
    """

    name = "concat"

    def __init__(self, banner: bool = True, encoding: str = "utf-8"):
        self.banner = banner
        self.encoding = encoding

    def _concat(self, config: BundleConfig, output_path: Path) -> dict[str, Any]:
        total = 0
        with open(output_path, "w", encoding=self.encoding) as out:
            for path in config.input_files:
                text = Path(path).read_text(encoding=self.encoding)
                if self.banner:
                    out.write(f"/* {Path(path).name} */\n")
                out.write(text)
                if not text.endswith("\n"):
                    out.write("\n")
                total += len(text)
        return {"files": len(config.input_files), "chars": total}

    async def execute(self, config: JobConfig, output_path: Path) -> Optional[dict[str, Any]]:
        if not isinstance(config, BundleConfig):
            raise BackendError(f"{self.name} back-end cannot run {config.kind.value} jobs")
        return await asyncio.to_thread(self._concat, config, output_path)
