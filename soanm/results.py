"""Result files — one per sponsor stage, named after the stage program."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class ResultStore:
    """Writes each enrollee reply into a pre-existing results directory."""

    def __init__(self, results_dir: str | Path):
        self.results_dir = Path(results_dir)

    def path_for(self, stage_path: str | Path) -> Path:
        return self.results_dir / Path(stage_path).name

    def write(self, stage_path: str | Path, payload: bytes) -> Path:
        """Write *payload* verbatim, replacing any earlier result.

        The directory is never created; a missing one raises FileNotFoundError.
        """
        path = self.path_for(stage_path)
        with open(path, "wb") as f:
            f.write(payload)
        logger.info("Saved result: %s (%d bytes)", path, len(payload))
        return path

    def read(self, name: str) -> bytes:
        return (self.results_dir / name).read_bytes()
