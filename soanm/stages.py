"""Stage listing and stage-program execution.

A stage is a position in a sorted directory listing; index ``i`` on the
sponsor side is paired with index ``i`` in the enrollee's unpacked bundle.
Nothing on the wire identifies the stage, so both listings must line up.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    index: int
    path: Path
    is_file: bool  # regular file, symlinks not followed

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class StageOutput:
    stdout: bytes = b""
    returncode: int = 0


@dataclass
class StageRecord:
    """What happened at one stage position during a run."""

    name: str
    returncode: int | None = None  # None: not executed
    sent: int = 0  # bytes sent to the peer
    received: int = 0  # bytes received from the peer
    result_path: Path | None = None


def list_stages(directory: str | Path) -> list[Stage]:
    """List *directory* sorted by path. Raises OSError if it can't be read."""
    directory = Path(directory)
    with os.scandir(directory) as it:
        entries = [(Path(e.path), e.is_file(follow_symlinks=False)) for e in it]
    entries.sort(key=lambda item: item[0])
    stages = [Stage(i, path, is_file) for i, (path, is_file) in enumerate(entries)]
    logger.debug("Stages in %s: %s", directory, [s.name for s in stages])
    return stages


async def run_interactive(path: str | Path, cwd: str | Path | None = None) -> StageOutput:
    """Run a sponsor stage: stdin and stderr inherited, stdout captured.

    Inheriting stdin lets the program prompt the operator.
    """
    proc = await asyncio.create_subprocess_exec(
        str(Path(path).resolve()),
        stdout=asyncio.subprocess.PIPE,
        cwd=None if cwd is None else str(cwd),
    )
    stdout, _ = await proc.communicate()
    return StageOutput(stdout=stdout or b"", returncode=proc.returncode)


async def run_piped(
    path: str | Path, stdin_data: bytes, cwd: str | Path | None = None
) -> StageOutput:
    """Run an enrollee stage: *stdin_data* written and closed, stdout captured."""
    proc = await asyncio.create_subprocess_exec(
        str(Path(path).resolve()),
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        cwd=None if cwd is None else str(cwd),
    )
    stdout, _ = await proc.communicate(input=stdin_data)
    return StageOutput(stdout=stdout or b"", returncode=proc.returncode)
