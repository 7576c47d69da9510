"""Progress observers for long-running sync steps.

The engine reports progress through the ``Progress`` protocol; the default
``LoggingProgress`` emits DEBUG lines so progress shows up only with
verbose logging.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class Progress(Protocol):
    """Observer notified while a batch of items is processed."""

    def start(self, total: int) -> None:
        ...  # pragma: no cover

    def tick(self) -> None:
        ...  # pragma: no cover

    def terminate(self) -> None:
        ...  # pragma: no cover


ProgressFactory = Callable[[str], Progress]


class NullProgress:
    """Discard all progress notifications."""

    def start(self, total: int) -> None:
        pass

    def tick(self) -> None:
        pass

    def terminate(self) -> None:
        pass


class LoggingProgress:
    """Log progress of one step at DEBUG level.

    Args:
        label: Name of the step (``"commits"``, ``"branches"``, ``"tags"``).
    """

    def __init__(self, label: str) -> None:
        self.label = label
        self.total = 0
        self.current = 0

    def start(self, total: int) -> None:
        self.total = total
        self.current = 0
        logger.debug("Syncing %d %s", total, self.label)

    def tick(self) -> None:
        self.current += 1
        logger.debug("%s: %d/%d", self.label, self.current, self.total)

    def terminate(self) -> None:
        logger.debug(
            "Finished %s: %d/%d", self.label, self.current, self.total
        )
