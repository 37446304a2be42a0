"""Collector for the timestamped log of a sync run."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SyncLogCollector:
    """Ordered run log, mirrored to the standard logger as lines are added."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or datetime.now
        self._entries: list[str] = []

    def reset(self) -> None:
        self._entries = []

    def add(self, message: str, *, level: int = logging.INFO) -> str:
        """Append a message prefixed with [HH:MM:SS] and return the stored line."""
        line = f"[{self._clock().strftime('%H:%M:%S')}] {message}"
        self._entries.append(line)
        logger.log(level, message)
        return line

    def error(self, message: str) -> str:
        return self.add(message, level=logging.ERROR)

    def warning(self, message: str) -> str:
        return self.add(message, level=logging.WARNING)

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
