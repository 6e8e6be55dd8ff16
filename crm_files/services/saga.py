"""Compensating-action bookkeeping for multi-step uploads.

A row is written, an external step is attempted, and when a later step
fails the recorded undo actions run newest-first. The storage call cannot
join the database transaction, so each committed step registers its own
compensation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class UploadSaga:
    def __init__(self, name: str) -> None:
        self.name = name
        self._compensations: list[tuple[str, Callable[[], None]]] = []

    def on_failure(self, step: str, action: Callable[[], None]) -> None:
        self._compensations.append((step, action))

    def compensate(self) -> None:
        """Undo completed steps. Failures are logged, never raised."""
        while self._compensations:
            step, action = self._compensations.pop()
            try:
                action()
            except Exception:
                logger.exception("saga_compensation_failed saga=%s step=%s", self.name, step)
            else:
                logger.info("saga_compensated saga=%s step=%s", self.name, step)
