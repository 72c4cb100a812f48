"""
Cooperative scheduling for sheet generation.

Generation is expressed as an iterator of :class:`Checkpoint` objects; each
checkpoint is a point where the renderer hands control back.  A
:class:`Scheduler` drives that iterator and decides how long to give the
host before resuming, which keeps the pacing policy out of the rendering
code.

Hosts running a PySide6 event loop pass
:class:`collage_sheets.qt_scheduler.QtEventLoopScheduler` instead of
:class:`PacedScheduler`; the CLI does so with ``--qt``.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator

from . import config


class CheckpointKind(str, Enum):
    SHEET_START = "sheet-start"   # before a sheet is allocated
    CELLS = "cells"               # every CELL_YIELD_INTERVAL cells inside a sheet
    SHEET_DONE = "sheet-done"     # after a sheet was encoded and its raster released


@dataclass(frozen=True, slots=True)
class Checkpoint:
    kind: CheckpointKind
    sheet: int
    cell: int = 0


class Scheduler:
    """Runs work units back to back without pausing."""

    def run(self, work: Iterator[Checkpoint]) -> None:
        for checkpoint in work:
            self.yield_control(checkpoint)

    def yield_control(self, checkpoint: Checkpoint) -> None:
        pass


ImmediateScheduler = Scheduler


class PacedScheduler(Scheduler):
    """Sleeps briefly at checkpoints.

    The pause inside a sheet keeps a shared host responsive; the longer
    pause after each sheet gives the garbage collector room on constrained
    machines.
    """

    def __init__(
        self,
        *,
        cell_pause: float = config.CELL_YIELD_PAUSE_SECS,
        sheet_pause: float = config.SHEET_PAUSE_SECS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cell_pause = cell_pause
        self.sheet_pause = sheet_pause
        self._sleep = sleep

    def pause_for(self, checkpoint: Checkpoint) -> float:
        if checkpoint.kind is CheckpointKind.CELLS:
            return self.cell_pause
        if checkpoint.kind is CheckpointKind.SHEET_DONE:
            return self.sheet_pause
        return 0.0

    def yield_control(self, checkpoint: Checkpoint) -> None:
        pause = self.pause_for(checkpoint)
        if pause > 0:
            self._sleep(pause)


__all__ = ["Checkpoint", "CheckpointKind", "ImmediateScheduler", "PacedScheduler", "Scheduler"]
