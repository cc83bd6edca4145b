"""Timer-independent state machine for the progress of one open chapter.

The caller feeds scroll positions through :meth:`ChapterProgressTracker.observe`
and asks :meth:`ChapterProgressTracker.poll` whether a debounced emission is
due. All time values are supplied by the caller, in seconds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from readsync.domain.exceptions import InvalidStateTransitionError
from readsync.domain.models import clamp_percent

logger = logging.getLogger(__name__)


class TrackerState(StrEnum):
    LOADING = "loading"
    READING = "reading"
    SAVING = "saving"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ProgressEmission:
    percent: int
    push_remote: bool
    completed: bool


class ChapterProgressTracker:
    """Debounces reading positions into monotonic progress emissions.

    ``LOADING -> READING -> SAVING -> READING ... -> COMPLETED``. A completed
    chapter keeps accepting positions (``COMPLETED -> SAVING -> COMPLETED``)
    so the saved percent can still climb to 100.
    """

    def __init__(
        self,
        *,
        debounce_sec: float = 1.0,
        completion_threshold: int = 90,
        push_step: int = 10,
        initial_percent: int = 0,
    ) -> None:
        self.debounce_sec = debounce_sec
        self.completion_threshold = completion_threshold
        self.push_step = push_step

        baseline = clamp_percent(initial_percent)
        self._state = TrackerState.LOADING
        self._high_water = baseline
        self._committed = baseline
        self._threshold_crossed = baseline >= completion_threshold
        self._last_input_at: float | None = None
        self._pending: ProgressEmission | None = None

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def high_water(self) -> int:
        return self._high_water

    @property
    def committed_percent(self) -> int:
        return self._committed

    @property
    def has_unsaved_progress(self) -> bool:
        return self._high_water > self._committed

    def start(self, now: float) -> None:
        if self._state is not TrackerState.LOADING:
            self._invalid("start")
        self._state = TrackerState.READING
        self._last_input_at = now

    def observe(self, percent: float, now: float) -> int:
        """Record a reading position; returns the current high-water mark."""
        if self._state is TrackerState.LOADING:
            self._invalid("observe")
        value = clamp_percent(percent)
        if value > self._high_water:
            self._high_water = value
        self._last_input_at = now
        return self._high_water

    def seconds_until_due(self, now: float) -> float | None:
        """Seconds left before :meth:`poll` would emit, or ``None`` if nothing is pending."""
        if not self._can_emit() or self._last_input_at is None:
            return None
        return max(0.0, self._last_input_at + self.debounce_sec - now)

    def poll(self, now: float) -> ProgressEmission | None:
        remaining = self.seconds_until_due(now)
        if remaining is None or remaining > 0:
            return None
        return self._emit()

    def flush(self) -> ProgressEmission | None:
        """Emit pending progress immediately, ignoring the debounce window."""
        if not self._can_emit():
            return None
        return self._emit()

    def commit(self, *, saved: bool = True) -> TrackerState:
        """Finish a SAVING cycle.

        When the write failed (``saved=False``) the committed percent does not
        move, so the next poll emits the same progress again.
        """
        if self._state is not TrackerState.SAVING or self._pending is None:
            self._invalid("commit")
        emission = self._pending
        self._pending = None
        if saved:
            self._committed = max(self._committed, emission.percent)
            if emission.percent >= self.completion_threshold:
                self._threshold_crossed = True
        completed = self._committed >= self.completion_threshold
        self._state = TrackerState.COMPLETED if completed else TrackerState.READING
        return self._state

    def _can_emit(self) -> bool:
        return (
            self._state in (TrackerState.READING, TrackerState.COMPLETED)
            and self._high_water > self._committed
        )

    def _emit(self) -> ProgressEmission:
        percent = self._high_water
        on_step = percent > 0 and percent % self.push_step == 0
        crosses_threshold = percent >= self.completion_threshold and not self._threshold_crossed
        emission = ProgressEmission(
            percent=percent,
            push_remote=on_step or crosses_threshold,
            completed=percent >= self.completion_threshold,
        )
        self._pending = emission
        self._state = TrackerState.SAVING
        return emission

    def _invalid(self, action: str) -> None:
        msg = f"cannot {action} while {self._state.value}"
        raise InvalidStateTransitionError(msg, {"state": self._state.value, "action": action})
