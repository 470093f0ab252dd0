from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """One byte-level progress sample from the upload transfer."""

    bytes_sent: int
    total_bytes: int | None = None


ProgressListener = Callable[[int], None]


class UploadTracker:
    """Turns a stream of ``ProgressEvent`` samples into a 0-100 percentage.

    Samples without a usable total leave the last value in place. Listeners are
    called with the new percentage whenever it changes.
    """

    def __init__(self) -> None:
        self._progress = 0
        self._listeners: list[ProgressListener] = []

    @property
    def progress(self) -> int:
        return self._progress

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, event: ProgressEvent) -> int:
        if not event.total_bytes or event.total_bytes <= 0:
            logger.debug("Ignoring progress sample without total: sent=%s", event.bytes_sent)
            return self._progress
        # Half-up rounding, not Python's banker's rounding.
        percent = math.floor(event.bytes_sent / event.total_bytes * 100 + 0.5)
        self._set(max(0, min(100, percent)))
        return self._progress

    def reset(self) -> None:
        self._set(0)

    def _set(self, value: int) -> None:
        if value == self._progress:
            return
        self._progress = value
        for listener in list(self._listeners):
            listener(value)
