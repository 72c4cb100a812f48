# managers/performance.py
"""
MemoryMonitor: checks process memory between sheets and triggers cleanup when thresholds are exceeded.
"""
import gc
import logging
from typing import Optional

import psutil

from .. import config

LOGGER = logging.getLogger(__name__)


class MemoryMonitor:
    """Monitors resident memory and forces a collection when it grows too large."""

    def __init__(self, threshold_bytes: int = config.MEMORY_THRESHOLD_BYTES, process=None):
        self.threshold_bytes = threshold_bytes
        self._process = process or psutil.Process()
        self.collections = 0

    def rss(self) -> Optional[int]:
        try:
            return self._process.memory_info().rss
        except (psutil.Error, OSError) as e:
            LOGGER.warning("Memory check failed: %s", e)
            return None

    def check(self) -> bool:
        """Return True when a cleanup pass was executed."""
        mem = self.rss()
        if mem is None or mem <= self.threshold_bytes:
            return False
        self._optimize(mem)
        return True

    def _optimize(self, mem: int) -> None:
        freed = gc.collect()
        self.collections += 1
        LOGGER.info(
            "MemoryMonitor: cleanup executed (rss=%d MB, unreachable=%d)",
            mem >> 20,
            freed,
        )
