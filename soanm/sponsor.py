"""Sponsor side of the enrollment protocol.

  1. Pack ``enroll/`` and send it as the first message
  2. For each program in ``sponsor/`` (sorted, after ``starting_stage``):
       a. run it and send its stdout       (regular files only)
       b. receive the enrollee's reply     (always)
       c. save the reply to ``results/<program name>``

Steps never overlap: the channel carries no stage tags, so one stage's
receive must complete before the next stage runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from soanm.bundle import pack
from soanm.channel import SecureChannel
from soanm.config import SessionConfig
from soanm.results import ResultStore
from soanm.stages import Stage, StageRecord, list_stages, run_interactive

logger = logging.getLogger(__name__)


@dataclass
class SponsorReport:
    bundle_size: int = 0
    stages: list[StageRecord] = field(default_factory=list)


class StageRunner:
    """Drives the sponsor role over an established channel."""

    def __init__(
        self,
        channel: SecureChannel,
        base_dir: str | Path = ".",
        starting_stage: int = 0,
        config: SessionConfig | None = None,
    ) -> None:
        if starting_stage < 0:
            raise ValueError(f"starting_stage must be >= 0, got {starting_stage}")
        self.channel = channel
        self.base_dir = Path(base_dir)
        self.starting_stage = starting_stage
        self.config = config or SessionConfig()
        self.results = ResultStore(self.config.results_dir(self.base_dir))

    async def run(self) -> SponsorReport:
        """Run the whole session. Any channel or I/O error aborts it."""
        stages = list_stages(self.config.sponsor_dir(self.base_dir))
        if self.starting_stage > len(stages):
            raise ValueError(
                f"starting_stage {self.starting_stage} is past the last of "
                f"{len(stages)} sponsor stages"
            )

        report = SponsorReport()
        bundle = pack(self.config.enroll_dir(self.base_dir))
        await self.channel.send(bundle)
        report.bundle_size = len(bundle)
        logger.info("Sent enrollee bundle (%d bytes)", len(bundle))

        if self.starting_stage:
            logger.info("Skipping the first %d stage(s)", self.starting_stage)
        for stage in stages[self.starting_stage:]:
            report.stages.append(await self._run_stage(stage))

        logger.info("Sponsor finished %d stage(s)", len(report.stages))
        return report

    async def _run_stage(self, stage: Stage) -> StageRecord:
        record = StageRecord(name=stage.name)
        logger.info("Stage %d: %s", stage.index, stage.name)

        if stage.is_file:
            output = await run_interactive(stage.path, cwd=self.base_dir)
            record.returncode = output.returncode
            if output.returncode != 0:
                logger.warning(
                    "%s exited with status %d — sending its output anyway",
                    stage.name, output.returncode,
                )
            await self.channel.send(output.stdout)
            record.sent = len(output.stdout)
        else:
            logger.warning(
                "Not running %s (not a regular file); still waiting for a reply",
                stage.path,
            )

        reply = await self.channel.receive()
        record.received = len(reply)
        record.result_path = self.results.write(stage.path, reply)
        return record
