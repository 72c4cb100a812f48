"""Qt-aware pacing for generation runs hosted inside a PySide6 application.

Rendering stays on the GUI thread; at every checkpoint the scheduler pumps
the Qt event loop so repaints, progress updates and a Cancel button keep
working between work units.
"""
from __future__ import annotations

import logging

from PySide6.QtCore import QCoreApplication, QEventLoop, QTimer

from .scheduling import Checkpoint, PacedScheduler

LOGGER = logging.getLogger(__name__)


class QtEventLoopScheduler(PacedScheduler):
    """Pause by running a nested event loop instead of sleeping."""

    def yield_control(self, checkpoint: Checkpoint) -> None:
        app = QCoreApplication.instance()
        if app is None:
            LOGGER.debug("No Qt application instance, falling back to sleeping")
            super().yield_control(checkpoint)
            return

        app.processEvents()
        pause_ms = int(self.pause_for(checkpoint) * 1000)
        if pause_ms <= 0:
            return
        loop = QEventLoop()
        QTimer.singleShot(pause_ms, loop.quit)
        loop.exec()


__all__ = ["QtEventLoopScheduler"]
