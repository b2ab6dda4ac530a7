from __future__ import annotations

"""
Recording lifecycle for one capture session: idle -> recording <-> paused -> idle.

Design intent:
- Keep committed (finalized) speech separate from the provisional interim text.
- Hide engine stop/restart cycles (silence timeouts) from the visible state.
- Treat pause-time analysis as a background task that may rewrite committed text
  with a speaker-labeled version, last write wins.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from ..internal_core.contracts import AnalysisResponse, ExtractionResult, RecordingState, SessionSnapshot
from .base import (
    PermissionDenied,
    RecognitionError,
    RecognitionStartError,
    RecognitionStream,
    StreamHandlers,
    TranscriptionSource,
    UnsupportedEnvironment,
)

logger = logging.getLogger(__name__)

AnalyzeFn = Callable[[str], Awaitable[AnalysisResponse]]


class RecordingSession:
    def __init__(
        self,
        source: TranscriptionSource,
        *,
        analyze: Optional[AnalyzeFn] = None,
        language: str = "en-US",
        restart_delay_sec: float = 0.1,
        on_transcript_update: Optional[Callable[[str], None]] = None,
        on_segment_analyzed: Optional[Callable[[ExtractionResult], None]] = None,
        on_error: Optional[Callable[[RecognitionError], None]] = None,
    ) -> None:
        self._source = source
        self._analyze = analyze
        self._language = language
        self._restart_delay_sec = max(0.0, float(restart_delay_sec))
        self._on_transcript_update = on_transcript_update
        self._on_segment_analyzed = on_segment_analyzed
        self._on_error = on_error

        self._state: RecordingState = "idle"
        self._committed = ""
        self._interim = ""
        self._supported = True
        self._error: Optional[str] = None

        self._stream: Optional[RecognitionStream] = None
        self._stream_ticket = 0
        self._generation = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._restart_handle: Optional[asyncio.TimerHandle] = None
        self._pause_tasks: set[asyncio.Task] = set()

        self.restarts = 0
        self.last_output: Optional[str] = None

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def committed_text(self) -> str:
        return self._committed

    @property
    def interim_text(self) -> str:
        return self._interim

    @property
    def live_transcript(self) -> str:
        return (self._committed + self._interim).strip()

    @property
    def supported(self) -> bool:
        return self._supported

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def stream(self) -> Optional[RecognitionStream]:
        return self._stream

    def snapshot(self) -> SessionSnapshot:
        idle = self._state == "idle"
        return SessionSnapshot(
            state=self._state,
            live_transcript=self.live_transcript,
            committed_text=self._committed,
            interim_text=self._interim,
            supported=self._supported,
            error=self._error,
            can_start=idle and self._supported,
            can_pause_resume=(not idle) and self._supported,
            can_stop=(not idle) and self._supported,
            pending_analysis=bool(self._pause_tasks),
            restarts=self.restarts,
        )

    # --------------------
    # TRANSITIONS
    # --------------------

    async def start(self) -> bool:
        if self._state != "idle":
            logger.debug("start ignored in state=%s", self._state)
            return False
        return await self._open_stream(resume=False)

    def pause(self) -> Optional[asyncio.Task]:
        """
        Stop capture and analyze what has been committed so far.

        Returns the in-flight analysis task, if any. The task is not cancelled by a
        later resume or stop, but a result that lands after stop is dropped.
        """
        if self._state != "recording":
            logger.debug("pause ignored in state=%s", self._state)
            return None

        self._cancel_restart()
        self._release_stream()
        had_interim = bool(self._interim)
        self._interim = ""
        self._state = "paused"
        if had_interim:
            self._notify_transcript()

        snapshot = self._committed.strip()
        if not snapshot or self._analyze is None:
            return None

        task = self._event_loop().create_task(self._analyze_segment(snapshot, self._generation))
        self._pause_tasks.add(task)
        task.add_done_callback(self._pause_tasks.discard)
        return task

    async def resume(self) -> bool:
        if self._state != "paused":
            logger.debug("resume ignored in state=%s", self._state)
            return False
        return await self._open_stream(resume=True)

    def stop(self) -> Optional[str]:
        """End the session and return the trimmed committed transcript."""
        if self._state not in ("recording", "paused"):
            logger.debug("stop ignored in state=%s", self._state)
            return None

        self._cancel_restart()
        self._release_stream()
        self._interim = ""
        self._state = "idle"
        self.discard_pending_analysis()
        final = self._committed.strip()
        self.last_output = final
        return final

    async def wait_for_analysis(self) -> None:
        pending = list(self._pause_tasks)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def discard_pending_analysis(self) -> None:
        """In-flight pause-time analyses finish but their results are dropped."""
        self._generation += 1

    # --------------------
    # STREAM MANAGEMENT
    # --------------------

    async def _open_stream(self, *, resume: bool) -> bool:
        expected: RecordingState = "paused" if resume else "idle"
        self._error = None

        if not self._supported or not self._source.is_supported():
            self._supported = False
            exc = UnsupportedEnvironment()
            self._error = exc.message
            raise exc

        granted = await self._source.request_permission()
        if not granted:
            exc = PermissionDenied()
            self._error = exc.message
            raise exc

        if self._state != expected:
            # Another transition won while the permission prompt was open.
            return False

        self._release_stream()
        self._stream_ticket += 1
        ticket = self._stream_ticket
        stream = self._source.create_stream(self._handlers_for(ticket), language=self._language)
        self._stream = stream
        try:
            stream.start()
        except RecognitionStartError as exc:
            logger.warning("recognition failed to start: %s", exc)
            self._stream = None
            self._stream_ticket += 1
            self._error = exc.message
            raise

        self._loop = asyncio.get_running_loop()
        if not resume:
            self._committed = ""
            self._interim = ""
            self._generation += 1
        self._state = "recording"
        return True

    def _event_loop(self) -> asyncio.AbstractEventLoop:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            if self._loop is None:
                raise
            return self._loop

    def _release_stream(self) -> None:
        stream = self._stream
        self._stream = None
        # Invalidate callbacks from the old stream before stopping it.
        self._stream_ticket += 1
        if stream is not None:
            stream.stop()

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None

    def _handlers_for(self, ticket: int) -> StreamHandlers:
        return StreamHandlers(
            on_start=lambda: self._handle_start(ticket),
            on_result=lambda final, interim: self._handle_result(ticket, final, interim),
            on_error=lambda kind: self._handle_error(ticket, kind),
            on_end=lambda: self._handle_end(ticket),
        )

    def _is_current(self, ticket: int) -> bool:
        return ticket == self._stream_ticket and self._stream is not None

    def _handle_start(self, ticket: int) -> None:
        if ticket != self._stream_ticket:
            return
        self._error = None

    def _handle_result(self, ticket: int, final_segments: Sequence[str], interim: Optional[str]) -> None:
        if not self._is_current(ticket) or self._state != "recording":
            return
        for text in final_segments:
            self._committed += f"{text} "
        self._interim = interim or ""
        self._notify_transcript()

    def _handle_error(self, ticket: int, kind: str) -> None:
        if not self._is_current(ticket):
            return
        exc = RecognitionError(kind)
        logger.warning("speech recognition error kind=%s state=%s", exc.kind, self._state)
        self._error = exc.message
        self._cancel_restart()
        self._release_stream()
        self._interim = ""
        self._state = "idle"
        self.discard_pending_analysis()
        if self._on_error is not None:
            self._on_error(exc)

    def _handle_end(self, ticket: int) -> None:
        if not self._is_current(ticket) or self._state != "recording":
            return
        if self._restart_handle is not None:
            return
        self._restart_handle = self._event_loop().call_later(self._restart_delay_sec, self._restart_stream, ticket)

    def _restart_stream(self, ticket: int) -> None:
        self._restart_handle = None
        # Re-check at fire time: a pause/stop may have landed since scheduling.
        if not self._is_current(ticket) or self._state != "recording":
            logger.debug("stale restart ignored state=%s", self._state)
            return
        try:
            self._stream.start()
        except RecognitionStartError as exc:
            logger.warning("Error restarting recognition: %s", exc)
            self._error = exc.message
            return
        self.restarts += 1

    # --------------------
    # ANALYSIS
    # --------------------

    async def _analyze_segment(self, snapshot: str, generation: int) -> Optional[ExtractionResult]:
        try:
            response = await self._analyze(snapshot)
        except Exception as exc:
            logger.warning("pause-time analysis failed: %s", exc)
            return None

        if not response.success or response.data is None:
            logger.warning("pause-time analysis failed: %s", response.error or "empty response")
            return None
        if generation != self._generation:
            logger.info("discarding pause-time analysis from a finished recording")
            return None

        formatted = (response.data.formatted_transcript or "").strip()
        if formatted:
            self._committed = f"{formatted} "
            self._notify_transcript()
        if self._on_segment_analyzed is not None:
            self._on_segment_analyzed(response.data)
        return response.data

    def _notify_transcript(self) -> None:
        if self._on_transcript_update is not None:
            self._on_transcript_update(self.live_transcript)
