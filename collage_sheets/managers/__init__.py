"""Resource managers used while generating sheets."""

from .performance import MemoryMonitor

__all__ = ["MemoryMonitor"]
