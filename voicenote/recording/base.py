from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

RECOGNITION_ERROR_MESSAGES: dict[str, str] = {
    "no-speech": "No speech detected. Please try speaking clearly.",
    "audio-capture": "No microphone found. Please check your microphone.",
    "not-allowed": "Microphone access denied. Please allow access and try again.",
    "network": "Network error. Please check your internet connection.",
}
DEFAULT_RECOGNITION_ERROR_MESSAGE = "An error occurred during speech recognition."


class RecordingError(RuntimeError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class PermissionDenied(RecordingError):
    def __init__(self, message: str = "Microphone access denied. Please allow microphone access and try again."):
        super().__init__("permission_denied", message)


class UnsupportedEnvironment(RecordingError):
    def __init__(
        self,
        message: str = "Speech recognition is not supported in this browser. Please use Chrome, Safari, or Edge.",
    ):
        super().__init__("unsupported_environment", message)


class RecognitionStartError(RecordingError):
    def __init__(self, message: str = "Failed to start recording. Please try again."):
        super().__init__("recognition_start_failed", message)


class RecognitionError(RecordingError):
    def __init__(self, kind: str):
        self.kind = (kind or "").strip() or "unknown"
        super().__init__(
            "recognition_error",
            RECOGNITION_ERROR_MESSAGES.get(self.kind, DEFAULT_RECOGNITION_ERROR_MESSAGE),
        )


@dataclass(frozen=True)
class StreamHandlers:
    """Callbacks a recognition stream invokes, in delivery order."""

    on_start: Callable[[], None]
    on_result: Callable[[Sequence[str], Optional[str]], None]
    on_error: Callable[[str], None]
    on_end: Callable[[], None]


class RecognitionStream(ABC):
    """One continuous speech-to-text stream; may end on its own after silence."""

    @abstractmethod
    def start(self) -> None:
        """Begin (or restart) delivering events. Raises RecognitionStartError."""

    @abstractmethod
    def stop(self) -> None: ...


class TranscriptionSource(ABC):
    @abstractmethod
    def is_supported(self) -> bool: ...

    @abstractmethod
    async def request_permission(self) -> bool: ...

    @abstractmethod
    def create_stream(self, handlers: StreamHandlers, *, language: str = "en-US") -> RecognitionStream: ...

    @abstractmethod
    def name(self) -> str: ...
