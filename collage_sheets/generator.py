"""Generation orchestrator: partitions images into sheets and renders them in order.

A run moves through ``PREPARING -> RENDERING -> COMPLETED | CANCELLED |
FAILED``.  All run state (cancellation predicate, progress sink, scheduler)
travels in an explicit :class:`GenerationContext`; nothing is global.

Sheets are rendered strictly one after another on the caller's thread, so
at most one sheet raster is alive at any time.  Cancellation is
cooperative: the predicate is polled before each sheet and before each
cell, a half-drawn sheet is dropped, and every completed sheet is kept.
"""
from __future__ import annotations

import dataclasses
import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Set

from . import config
from .index_parser import parse_mask_indices
from .managers.performance import MemoryMonitor
from .models import (
    CollageError,
    CollageSettings,
    EncodedSheet,
    GenerationResult,
    GenerationState,
    GenerationStatus,
    SourceImage,
)
from .rendering.sheet import SheetBuilder
from .scheduling import Checkpoint, CheckpointKind, PacedScheduler, Scheduler

LOGGER = logging.getLogger(__name__)

ProgressSink = Callable[[GenerationStatus], None]


class CancellationToken:
    """Shared cancel flag; instances are usable directly as the cancel predicate."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def reset(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __call__(self) -> bool:
        return self._cancelled


@dataclass
class GenerationContext:
    """Per-run collaborators threaded through the orchestrator."""

    should_cancel: Callable[[], bool] = field(default_factory=CancellationToken)
    on_progress: Optional[ProgressSink] = None
    scheduler: Scheduler = field(default_factory=PacedScheduler)
    memory_monitor: Optional[MemoryMonitor] = None
    status: GenerationStatus = field(default_factory=GenerationStatus)

    def report(self, **changes) -> None:
        for name, value in changes.items():
            setattr(self.status, name, value)
        if self.on_progress is not None:
            self.on_progress(dataclasses.replace(self.status))


def percent(done: int, total: int) -> int:
    """Round half up, matching how progress bars usually display it."""
    if total <= 0:
        return 100
    return int(math.floor(done / total * 100 + 0.5))


def select_working_set(
    images: Sequence[SourceImage],
    start_number: int,
    mask_targets: Set[int],
    *,
    repack: bool,
) -> List[SourceImage]:
    """Return the images to lay out.

    In repack mode every image whose original global index is a mask target
    is dropped, and the survivors are numbered again from *start_number*.
    """
    if not repack or not mask_targets:
        return list(images)
    return [image for position, image in enumerate(images) if start_number + position not in mask_targets]


class SheetGenerator:
    """Runs one generation over an ordered image list."""

    def __init__(
        self,
        images: Iterable[SourceImage],
        settings: CollageSettings,
        *,
        repack: bool = False,
        context: Optional[GenerationContext] = None,
    ) -> None:
        self.images = list(images)
        self.settings = settings
        self.repack = repack
        self.context = context or GenerationContext()

        self.start_number = settings.numbering.start_number
        self.mask_targets = parse_mask_indices(settings.mask.indices)
        self.working_set = select_working_set(self.images, self.start_number, self.mask_targets, repack=repack)
        self.batch_size = settings.layout.batch_size
        self.total_sheets = math.ceil(len(self.working_set) / self.batch_size) if self.batch_size > 0 else 0

        self.sheets: List[EncodedSheet] = []
        self.state = GenerationState.IDLE
        self.cid = uuid.uuid4().hex
        self.log = logging.LoggerAdapter(LOGGER, {"cid": self.cid})

    def global_index(self, sheet_index: int, position: int) -> int:
        """Index used for numbering and mask matching (``sheet_index`` is 0-based)."""
        return self.start_number + sheet_index * self.batch_size + position

    def batch(self, sheet_index: int) -> List[SourceImage]:
        start = sheet_index * self.batch_size
        return self.working_set[start:start + self.batch_size]

    def cancelled(self) -> bool:
        return bool(self.context.should_cancel())

    def run(self) -> GenerationResult:
        """Render every sheet and return what was produced.

        Engine errors (bad settings, undecodable overlay, no raster surface)
        end the run in ``FAILED`` while keeping sheets completed so far.
        Anything else propagates to the caller.
        """
        self._transition(GenerationState.PREPARING, message="Preparing...", progress=0,
                         current_sheet=0, total_sheets=self.total_sheets)
        self.log.info(
            "generation started: %d images, %d to lay out, %d sheets, repack=%s",
            len(self.images), len(self.working_set), self.total_sheets, self.repack,
        )
        message = ""
        try:
            self.context.scheduler.run(self.iter_work())
        except CollageError as exc:
            message = str(exc)
            self.log.error("generation failed after %d sheets: %s", len(self.sheets), exc)
            self._transition(GenerationState.FAILED, message=message)

        if self.state is GenerationState.CANCELLED:
            message = "Cancelled"
        self.log.info("generation %s: %d sheets", self.state.value, len(self.sheets))
        return GenerationResult(sheets=list(self.sheets), state=self.state, message=message)

    def iter_work(self) -> Iterator[Checkpoint]:
        """Yield a checkpoint at every point where the host may take over."""
        total_cells = len(self.working_set)
        with SheetBuilder(
            self.settings,
            mask_targets=self.mask_targets,
            apply_masks=not self.repack,
        ) as builder:
            self._transition(GenerationState.RENDERING)
            for sheet_index in range(self.total_sheets):
                number = sheet_index + 1
                if self.cancelled():
                    self._cancel()
                    return
                self.context.report(
                    message=f"Rendering sheet {number}/{self.total_sheets}",
                    current_sheet=number,
                    progress=percent(sheet_index * self.batch_size, total_cells),
                )
                yield Checkpoint(CheckpointKind.SHEET_START, number)
                if self.cancelled():
                    self._cancel()
                    return

                batch = self.batch(sheet_index)
                builder.begin_sheet(len(batch))
                for position, image in enumerate(batch):
                    if position % config.CELL_YIELD_INTERVAL == 0:
                        self.context.report(
                            progress=percent(sheet_index * self.batch_size + position, total_cells),
                            message=(
                                f"Rendering sheet {number}/{self.total_sheets} "
                                f"({position + 1}/{len(batch)})"
                            ),
                        )
                        yield Checkpoint(CheckpointKind.CELLS, number, position)
                    if self.cancelled():
                        builder.discard_sheet()
                        self._cancel()
                        return
                    builder.draw_cell(position, image, self.global_index(sheet_index, position))

                if self.cancelled():
                    builder.discard_sheet()
                    self._cancel()
                    return
                sheet = builder.finish_sheet(number)
                self.sheets.append(sheet)
                self.log.info(
                    "sheet %d/%d encoded (%dx%d, %d bytes)",
                    number, self.total_sheets, sheet.width, sheet.height, sheet.size,
                    extra={"sheet": number, "bytes": sheet.size},
                )
                if self.context.memory_monitor is not None:
                    self.context.memory_monitor.check()
                yield Checkpoint(CheckpointKind.SHEET_DONE, number)

            if builder.failed_cells:
                self.log.warning("%d images could not be decoded", builder.failed_cells)
        self._transition(GenerationState.COMPLETED, progress=100, message="Generation complete")

    def _cancel(self) -> None:
        self.log.info("generation cancelled after %d sheets", len(self.sheets))
        self._transition(GenerationState.CANCELLED, message="Cancelled")

    def _transition(self, state: GenerationState, **changes) -> None:
        self.state = state
        self.context.report(state=state, **changes)


def generate_sheets(
    images: Sequence[SourceImage],
    settings: CollageSettings,
    repack: bool = False,
    *,
    on_progress: Optional[ProgressSink] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
    scheduler: Optional[Scheduler] = None,
) -> List[EncodedSheet]:
    """Render *images* into encoded sheets; fewer than expected if cancelled."""
    context = GenerationContext(
        should_cancel=should_cancel or CancellationToken(),
        on_progress=on_progress,
        scheduler=scheduler or PacedScheduler(),
    )
    return SheetGenerator(images, settings, repack=repack, context=context).run().sheets


__all__ = [
    "CancellationToken",
    "GenerationContext",
    "ProgressSink",
    "SheetGenerator",
    "generate_sheets",
    "percent",
    "select_working_set",
]
