"""
Staged output: write to a temporary sibling, publish atomically.

Back-ends never write the declared output path directly. The Executor hands
them a staging path in the same directory (so os.replace stays on one
filesystem) and only publishes it after the back-end reported success.
On failure, timeout or cancellation the staging file is deleted, so the
declared output holds either its prior content or nothing.
"""

import logging
import os
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


class StagedOutput:
    """
    A temporary output location bound to a final destination.

    Usage:
        staged = StagedOutput(Path("dist/app.min.js"), job_id)
        await backend.execute(config, staged.path)
        staged.publish()    # or staged.discard()
    """

    def __init__(self, destination: Path, job_id: str):
        self.destination = Path(destination)
        self.path = self.destination.with_name(
            f".{self.destination.name}.{job_id[-12:]}.{uuid.uuid4().hex[:8]}.staging{self.destination.suffix}"
        )
        self._published = False

    @property
    def published(self) -> bool:
        return self._published

    def exists(self) -> bool:
        return self.path.exists()

    def publish(self) -> Path:
        """
        Atomically move the staging file onto the destination.

        Returns:
            The destination path

        Raises:
            FileNotFoundError: If the back-end did not write the staging file
        """
        if not self.path.exists():
            raise FileNotFoundError(f"Back-end produced no output at {self.path}")
        os.replace(self.path, self.destination)
        self._published = True
        logger.debug(f"Published {self.destination}")
        return self.destination

    def discard(self) -> None:
        """Delete the staging file if present. Safe to call repeatedly."""
        if self._published:
            return
        try:
            self.path.unlink()
            logger.debug(f"Discarded staged output {self.path}")
        except FileNotFoundError:
            pass

    def __repr__(self) -> str:
        return f"StagedOutput(destination={self.destination}, published={self._published})"
