"""
Time-gated checkpoints of a running analysis.

A checkpoint prints the run's counters and every histogram to the report
stream, then exports each histogram to its CSV file in the export
directory. Export failures are logged and the walk goes on; the in-memory
histograms stay authoritative.
"""

import logging
import os
import sys
import time
from datetime import timedelta
from typing import List

from errors import WriteFailure

logger = logging.getLogger(__name__)

DEFAULT_REPORT_INTERVAL = 60.0
REPORT_DELIMITER = "-----"


class CheckpointScheduler:
    """Fires a checkpoint once more than `interval` seconds have passed since the last one."""

    def __init__(self, export_dir, interval: float = DEFAULT_REPORT_INTERVAL, out=None, clock=time.monotonic):
        self.export_dir = export_dir
        self.interval = interval
        self.out = out
        self.clock = clock
        self.started_at = clock()
        self.last_fired = self.started_at
        self.checkpoints = 0

    def due(self) -> bool:
        return self.clock() - self.last_fired > self.interval

    def check(self, state) -> bool:
        """Checkpoint `state` if the interval has elapsed; True when it fired."""
        if not self.due():
            return False
        logger.debug("checkpoint %d after %s", self.checkpoints + 1, self.elapsed())
        self.drain(state)
        self.last_fired = self.clock()
        return True

    def elapsed(self) -> timedelta:
        return timedelta(seconds=int(self.clock() - self.started_at))

    def drain(self, state, final: bool = False) -> List[WriteFailure]:
        """Print and export every histogram of `state`.

        Returns the export failures, which have already been logged.
        """
        self.checkpoints += 1
        self.report(state, final=final)
        return self.export(state)

    def report(self, state, final: bool = False) -> None:
        out = self.out if self.out is not None else sys.stdout
        if final:
            print(f"Run {state.status} after {self.elapsed()}", file=out)
        print(f"{state.progress_line()} in {self.elapsed()}", file=out)
        for histogram, _ in state.exports():
            histogram.print(out)
        print(f"{REPORT_DELIMITER}\n", file=out)
        out.flush()

    def export(self, state) -> List[WriteFailure]:
        try:
            os.makedirs(self.export_dir, exist_ok=True)
        except OSError as e:
            logger.warning("cannot create export directory %s: %s", self.export_dir, e)

        failures = []
        for histogram, filename in state.exports():
            try:
                histogram.export(os.path.join(self.export_dir, filename))
            except WriteFailure as e:
                logger.warning("checkpoint export skipped: %s", e)
                failures.append(e)
        return failures
