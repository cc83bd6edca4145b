"""Reading progress tracking: debounce state machine, asyncio driver and resume."""

from readsync.application.progress.resume import ResumeController
from readsync.application.progress.session import OpenChapter, ReaderProgressSession
from readsync.application.progress.tracker import (
    ChapterProgressTracker,
    ProgressEmission,
    TrackerState,
)

__all__ = [
    "ChapterProgressTracker",
    "OpenChapter",
    "ProgressEmission",
    "ReaderProgressSession",
    "ResumeController",
    "TrackerState",
]
