"""Session controller for sheet generation.

:class:`GenerationSession` is the service layer a front end talks to.  It
owns the latest :class:`GenerationStatus`, the sheets of the last run and
the cancellation token, and it guarantees the session returns to ``IDLE``
whatever happens during a run.  It has no UI dependencies so the CLI, a Qt
window or tests can drive it the same way.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Callable, List, Optional, Sequence

from ..export import DESKTOP, DeviceCapabilities, build_archive, check_combine_allowed, combine_sheets
from ..generator import CancellationToken, GenerationContext, SheetGenerator
from ..managers.performance import MemoryMonitor
from ..models import (
    CollageSettings,
    EncodedSheet,
    GenerationResult,
    GenerationState,
    GenerationStatus,
    SourceImage,
)
from ..scheduling import PacedScheduler, Scheduler

LOGGER = logging.getLogger(__name__)


class NoImagesError(RuntimeError):
    """Raised when a run is requested with an empty image list."""


class NoResultsError(RuntimeError):
    """Raised when an export is requested before any sheets exist."""


class GenerationSession:
    """Run generations and keep their results for export."""

    def __init__(
        self,
        settings: Optional[CollageSettings] = None,
        *,
        scheduler: Optional[Scheduler] = None,
        memory_monitor: Optional[MemoryMonitor] = None,
        on_status: Optional[Callable[[GenerationStatus], None]] = None,
    ) -> None:
        self.settings = settings or CollageSettings()
        self._scheduler = scheduler or PacedScheduler()
        self._memory_monitor = memory_monitor
        self._on_status = on_status
        self._token = CancellationToken()
        self.status = GenerationStatus()
        self.results: List[EncodedSheet] = []
        self.last_error: Optional[str] = None
        self.source_count = 0

    @property
    def is_generating(self) -> bool:
        return self.status.is_generating

    def cancel(self) -> None:
        """Ask the running generation to stop after the current cell."""
        if self.is_generating:
            LOGGER.info("Cancellation requested")
        self._token.cancel()

    def _publish(self, status: GenerationStatus) -> None:
        self.status = dataclasses.replace(status)
        if self._on_status is not None:
            self._on_status(dataclasses.replace(status))

    def run(self, images: Sequence[SourceImage], *, repack: bool = False) -> GenerationResult:
        """Generate sheets for *images*.

        Unexpected failures are logged and reported through ``last_error``
        and the returned result; sheets finished before the failure are kept.
        """
        if not images:
            raise NoImagesError("Add images before generating")

        self._token.reset()
        self.results = []
        self.last_error = None
        self.source_count = len(images)

        context = GenerationContext(
            should_cancel=self._token,
            on_progress=self._publish,
            scheduler=self._scheduler,
            memory_monitor=self._memory_monitor,
        )
        generator = SheetGenerator(images, self.settings, repack=repack, context=context)
        try:
            result = generator.run()
        except Exception as exc:  # noqa: BLE001 - surface any failure as a message
            LOGGER.exception("Generation failed")
            result = GenerationResult(
                sheets=list(generator.sheets),
                state=GenerationState.FAILED,
                message=f"Generation failed: {exc}",
            )

        self.results = list(result.sheets)
        if result.state is GenerationState.FAILED:
            self.last_error = result.message
        final = dataclasses.replace(
            context.status,
            state=GenerationState.IDLE,
            message=result.message or context.status.message,
        )
        if result.state is GenerationState.COMPLETED:
            final.progress = 100
        self._publish(final)
        return result

    def combine(self, capabilities: DeviceCapabilities = DESKTOP) -> bytes:
        """Return the last run's sheets stacked into one image."""
        check_combine_allowed(self.source_count)
        if not self.results:
            raise NoResultsError("Generate sheets before combining them")
        return combine_sheets(self.results, self.settings.export.quality, capabilities)

    def archive(self, *, folder: Optional[str] = None) -> bytes:
        """Return the last run's sheets as a zip archive."""
        if not self.results:
            raise NoResultsError("Generate sheets before archiving them")
        return build_archive(self.results, self.settings.export.quality, folder=folder)
