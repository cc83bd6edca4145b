"""Restart-safe resume of the saved reading position."""

from __future__ import annotations

import logging

from readsync.domain.models import clamp_percent

logger = logging.getLogger(__name__)


class ResumeController:
    """Turns the saved percent of a chapter into a one-shot scroll offset.

    The offset is handed out once per chapter-open; later layout passes get
    ``None`` so they never fight the reader's own scrolling. A layout that is
    not measurable yet (content no taller than the viewport) does not use up
    the resume.
    """

    def __init__(self, saved_percent: int | None) -> None:
        self._percent = 0
        self._resolved = True
        self.reset(saved_percent)

    @property
    def saved_percent(self) -> int:
        return self._percent

    @property
    def pending(self) -> bool:
        return not self._resolved

    def resolve_offset(self, content_height: float, viewport_height: float) -> float | None:
        if self._resolved:
            return None
        scrollable = content_height - viewport_height
        if scrollable <= 0:
            return None
        self._resolved = True
        offset = scrollable * self._percent / 100
        logger.debug(
            "resume_offset_resolved",
            extra={"percent": self._percent, "offset": round(offset, 1)},
        )
        return offset

    def reset(self, saved_percent: int | None) -> None:
        """Re-arm for a new chapter-open."""
        self._percent = clamp_percent(saved_percent) if saved_percent else 0
        self._resolved = self._percent == 0
