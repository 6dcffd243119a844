"""
One-way notifications to an external progress tracker.
"""

import logging
from typing import List, Protocol

from vocab_srs.models import ProgressUpdate

logger = logging.getLogger(__name__)


class ProgressTracker(Protocol):

    def on_progress(self, update: ProgressUpdate) -> None:
        ...


class NullProgressTracker:

    def on_progress(self, update: ProgressUpdate) -> None:
        pass


class RecordingProgressTracker:
    """Keeps every update it receives, in order."""

    def __init__(self):
        self.updates: List[ProgressUpdate] = []

    def on_progress(self, update: ProgressUpdate) -> None:
        self.updates.append(update)


def notify(tracker: ProgressTracker, update: ProgressUpdate) -> None:
    """Hand an update to the tracker. Tracker failures are logged, never raised."""
    try:
        tracker.on_progress(update)
    except Exception as e:
        logger.warning("Progress tracker failed on %s: %s", update.event.value, e)
