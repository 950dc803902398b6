"""pytest configuration for soanm tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from soanm.channel import loopback_pair
from soanm.enroll import EnrollRunner
from soanm.sponsor import StageRunner

UPPERCASE = "tr '[:lower:]' '[:upper:]'"


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


def write_script(path: Path, body: str, mode: int = 0o755) -> Path:
    """Write a /bin/sh program and mark it executable."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(mode)
    return path


@pytest.fixture
def base_dir(tmp_path) -> Path:
    """Sponsor base path with empty enroll/, sponsor/ and results/."""
    base = tmp_path / "base"
    for name in ("enroll", "sponsor", "results"):
        (base / name).mkdir(parents=True)
    return base


@pytest.fixture
def two_stage_tree(base_dir) -> Path:
    """Sponsor stages print "a" / "b"; enrollee stages uppercase stdin."""
    write_script(base_dir / "sponsor" / "s0", "printf a")
    write_script(base_dir / "sponsor" / "s1", "printf b")
    write_script(base_dir / "enroll" / "e0", UPPERCASE)
    write_script(base_dir / "enroll" / "e1", UPPERCASE)
    return base_dir


async def run_session(base_dir: Path, starting_stage: int = 0, work_dir=None, timeout: float = 10):
    """Run both roles against each other over a loopback pair."""
    sponsor_end, enrollee_end = loopback_pair()
    sponsor = StageRunner(sponsor_end, base_dir, starting_stage=starting_stage)
    enrollee = EnrollRunner(enrollee_end, work_dir=work_dir)
    return await asyncio.wait_for(
        asyncio.gather(sponsor.run(), enrollee.run()), timeout=timeout
    )
