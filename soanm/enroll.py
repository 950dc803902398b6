"""Enrollee side of the enrollment protocol.

Receives the sponsor's bundle, unpacks it into a work directory, then for
each unpacked program (sorted) receives the sponsor's stage output, feeds it
to the program's stdin, and sends back what the program prints.
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from soanm.bundle import unpack
from soanm.channel import SecureChannel
from soanm.stages import Stage, StageRecord, list_stages, run_piped

logger = logging.getLogger(__name__)


@dataclass
class EnrollReport:
    bundle_size: int = 0
    stages: list[StageRecord] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class EnrollRunner:
    """Drives the enrollee role over an established channel.

    Without *work_dir* the runner unpacks into its own temporary directory,
    removed when ``run()`` returns or raises. A caller-supplied *work_dir* is
    left in place.
    """

    def __init__(self, channel: SecureChannel, work_dir: str | Path | None = None) -> None:
        self.channel = channel
        self.work_dir = Path(work_dir) if work_dir is not None else None

    async def run(self) -> EnrollReport:
        if self.work_dir is not None:
            return await self._run_in(self.work_dir)
        with tempfile.TemporaryDirectory(prefix="soanm-enroll-") as tmp:
            return await self._run_in(Path(tmp))

    async def _run_in(self, work_dir: Path) -> EnrollReport:
        report = EnrollReport()
        bundle = await self.channel.receive()
        report.bundle_size = len(bundle)
        unpack(bundle, work_dir)

        for stage in list_stages(work_dir):
            if stage.is_file:
                report.stages.append(await self._run_stage(stage, work_dir))
            else:
                logger.warning(
                    "Not running %s; this is likely to cause input mismatches, since "
                    "there must be exactly one sponsor program per enrollee program",
                    stage.path,
                )
                report.skipped.append(stage.name)

        logger.info("Enrollment finished %d stage(s)", len(report.stages))
        return report

    async def _run_stage(self, stage: Stage, work_dir: Path) -> StageRecord:
        record = StageRecord(name=stage.name)
        stdin_data = await self.channel.receive()
        record.received = len(stdin_data)
        logger.info("Stage %d: %s (%d bytes in)", stage.index, stage.name, len(stdin_data))

        output = await run_piped(stage.path, stdin_data, cwd=work_dir)
        record.returncode = output.returncode
        if output.returncode != 0:
            logger.warning("%s exited with status %d", stage.name, output.returncode)

        await self.channel.send(output.stdout)
        record.sent = len(output.stdout)
        return record
