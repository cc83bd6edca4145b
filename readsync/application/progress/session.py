"""asyncio driver that connects a ChapterProgressTracker to the sync orchestrator."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from readsync.application.progress.tracker import ChapterProgressTracker, ProgressEmission
from readsync.config import ProgressConfig
from readsync.core.async_utils import raise_if_cancelled
from readsync.domain.exceptions import InvalidStateTransitionError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    """Receiver of debounced progress; implemented by ``SyncOrchestrator``."""

    async def on_progress_update(
        self,
        user_id: str | None,
        title_id: str,
        chapter_id: str,
        percent: int,
        *,
        push_remote: bool,
        chapter_title: str = "",
        display_title: str = "",
        cover_image: str = "",
        total_chapters: int | None = None,
    ) -> Any: ...


@dataclass(frozen=True)
class OpenChapter:
    """Identity and presentation data of the chapter being read."""

    title_id: str
    chapter_id: str
    chapter_title: str = ""
    display_title: str = ""
    cover_image: str = ""
    total_chapters: int | None = None


class ReaderProgressSession:
    """Owns one tracker for one chapter-open and schedules its debounce.

    Positions go in through :meth:`report`; once input has been quiet for the
    debounce window the high-water percent is forwarded to the sink. Call
    :meth:`close` when the chapter is left so pending input is not lost.

    Example:
        ```python
        session = ReaderProgressSession(orchestrator, chapter, user_id="u1")
        session.start()
        session.report(42.5)
        ...
        await session.close()
        ```
    """

    def __init__(
        self,
        sink: ProgressSink,
        chapter: OpenChapter,
        *,
        user_id: str | None,
        config: ProgressConfig | None = None,
        initial_percent: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        cfg = config or ProgressConfig()
        self.chapter = chapter
        self.user_id = user_id
        self.tracker = ChapterProgressTracker(
            debounce_sec=cfg.debounce_sec,
            completion_threshold=cfg.completion_threshold,
            push_step=cfg.push_step,
            initial_percent=initial_percent,
        )
        self._sink = sink
        self._clock = clock
        self._timer: asyncio.Task[None] | None = None
        self._deliver_lock = asyncio.Lock()
        self._delivering = False
        self._closed = False
        self.deliveries = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        self.tracker.start(self._clock())

    def report(self, percent: float) -> int:
        """Feed one reading position; returns the current high-water percent."""
        if self._closed:
            msg = "cannot report progress on a closed session"
            raise InvalidStateTransitionError(msg, {"chapter_id": self.chapter.chapter_id})
        high_water = self.tracker.observe(percent, self._clock())
        if self._timer is None or self._timer.done():
            self._timer = asyncio.create_task(self._run_debounce())
        return high_water

    async def close(self) -> None:
        """Stop the debounce timer and flush whatever has not been saved yet."""
        if self._closed:
            return
        self._closed = True

        timer = self._timer
        self._timer = None
        if timer is not None and not timer.done():
            if not self._delivering:
                timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer

        emission = self.tracker.flush()
        if emission is not None:
            await self._deliver(emission)
        logger.debug(
            "reader_session_closed",
            extra={
                "title_id": self.chapter.title_id,
                "chapter_id": self.chapter.chapter_id,
                "percent": self.tracker.committed_percent,
                "deliveries": self.deliveries,
            },
        )

    async def _run_debounce(self) -> None:
        while True:
            remaining = self.tracker.seconds_until_due(self._clock())
            if remaining is None:
                return
            if remaining > 0:
                await asyncio.sleep(remaining)
                continue
            emission = self.tracker.poll(self._clock())
            if emission is None:
                return
            if not await self._deliver(emission):
                # Retried on the next reported position or on close().
                return

    async def _deliver(self, emission: ProgressEmission) -> bool:
        # Every exit leaves SAVING, including a cancelled wait for the lock.
        try:
            async with self._deliver_lock:
                self._delivering = True
                try:
                    await self._sink.on_progress_update(
                        self.user_id,
                        self.chapter.title_id,
                        self.chapter.chapter_id,
                        emission.percent,
                        push_remote=emission.push_remote,
                        chapter_title=self.chapter.chapter_title,
                        display_title=self.chapter.display_title,
                        cover_image=self.chapter.cover_image,
                        total_chapters=self.chapter.total_chapters,
                    )
                finally:
                    self._delivering = False
                self.tracker.commit()
        except asyncio.CancelledError:
            self.tracker.commit(saved=False)
            raise
        except Exception as exc:
            raise_if_cancelled(exc)
            self.tracker.commit(saved=False)
            logger.warning(
                "progress_save_failed",
                extra={
                    "user_id": self.user_id,
                    "title_id": self.chapter.title_id,
                    "chapter_id": self.chapter.chapter_id,
                    "percent": emission.percent,
                    "error": str(exc),
                },
            )
            return False

        self.deliveries += 1
        return True
