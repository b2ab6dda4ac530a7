from __future__ import annotations

from typing import List, Optional, Sequence

from .base import (
    RecognitionStartError,
    RecognitionStream,
    StreamHandlers,
    TranscriptionSource,
)


class RelayRecognitionStream(RecognitionStream):
    """
    Recognition stream fed by events captured elsewhere (a browser tab, a test).

    Mirrors the browser engine contract: starting an active stream fails, and a
    stopped stream still reports `on_end` once.
    """

    def __init__(self, handlers: StreamHandlers, *, language: str, fail_start: bool = False):
        self._handlers = handlers
        self.language = language
        self.active = False
        self.closed = False
        self.start_count = 0
        self._fail_start = fail_start

    def start(self) -> None:
        if self._fail_start:
            raise RecognitionStartError()
        if self.active:
            raise RecognitionStartError("Recognition has already started.")
        self.active = True
        self.closed = False
        self.start_count += 1
        self._handlers.on_start()

    def stop(self) -> None:
        if self.closed:
            return
        self.closed = True
        was_active = self.active
        self.active = False
        if was_active:
            self._handlers.on_end()

    def emit_start(self) -> None:
        if not self.active:
            return
        self._handlers.on_start()

    def emit_result(self, final_segments: Sequence[str] = (), interim: Optional[str] = None) -> None:
        if not self.active:
            return
        self._handlers.on_result(list(final_segments), interim)

    def emit_error(self, kind: str) -> None:
        if not self.active:
            return
        self._handlers.on_error(kind)

    def emit_end(self) -> None:
        # Engine-initiated end, e.g. after a silence timeout.
        if not self.active:
            return
        self.active = False
        self._handlers.on_end()


class RelayTranscriptionSource(TranscriptionSource):
    def __init__(
        self,
        *,
        supported: bool = True,
        permission_granted: bool = True,
        fail_start: bool = False,
    ) -> None:
        self.supported = supported
        self.permission_granted = permission_granted
        self.fail_start = fail_start
        self.permission_requests = 0
        self.streams: List[RelayRecognitionStream] = []

    def is_supported(self) -> bool:
        return self.supported

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        return self.permission_granted

    def create_stream(self, handlers: StreamHandlers, *, language: str = "en-US") -> RelayRecognitionStream:
        stream = RelayRecognitionStream(handlers, language=language, fail_start=self.fail_start)
        self.streams.append(stream)
        return stream

    @property
    def current(self) -> Optional[RelayRecognitionStream]:
        if not self.streams:
            return None
        return self.streams[-1]

    def name(self) -> str:
        return "relay"
