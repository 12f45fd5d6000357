"""Console logging and progress reporting."""

import sys
import threading
from typing import List, Optional

from .models import ProgressEvent

PROGRESS_BAR_WIDTH = 30


class ProgressSink:
    """Receives progress events. The base implementation discards them."""

    def emit(self, event: ProgressEvent) -> None:
        pass

    def close(self) -> None:
        pass


class RecordingProgressSink(ProgressSink):
    """Keeps every event in memory."""

    def __init__(self) -> None:
        self.events: List[ProgressEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            self.events.append(event)

    @property
    def phases(self) -> List[str]:
        return [event.phase for event in self.events]


class ConsoleProgressBar(ProgressSink):
    """Renders events as a single, rewritten status line."""

    def __init__(self, stream=None, width: int = PROGRESS_BAR_WIDTH) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.width = width
        self._previous_length = 0
        self._lock = threading.Lock()

    def render(self, event: ProgressEvent) -> str:
        ratio = min(max(event.ratio, 0.0), 1.0)
        filled = int(ratio * self.width)
        subject = event.subject
        padding = self._previous_length - len(subject)
        self._previous_length = len(subject)
        if padding > 0:
            subject += " " * padding
        bar = "=" * filled + " " * (self.width - filled)
        return f"[{event.phase}] {bar} {ratio * 100:6.2f}% {subject}"

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            self.stream.write("\r" + self.render(event))
            self.stream.flush()

    def close(self) -> None:
        with self._lock:
            self.stream.write("\n")
            self.stream.flush()


class DownloadLogger:
    """Prefixes messages with the segment being worked on."""

    def __init__(self, verbose: bool = False) -> None:
        self.verbose = verbose
        self.warning_count = 0
        self.error_count = 0
        self._local = threading.local()
        self._lock = threading.Lock()

    def set_context(self, ordinal: Optional[int] = None, url: Optional[str] = None) -> None:
        """Context is per thread, so each worker labels its own messages."""
        self._local.ordinal = ordinal
        self._local.url = url

    def clear_context(self) -> None:
        self.set_context(None, None)

    def _format_with_context(self, message: str) -> str:
        context_parts = []
        ordinal = getattr(self._local, "ordinal", None)
        url = getattr(self._local, "url", None)
        if ordinal is not None:
            context_parts.append(f"segment={ordinal}")
        if url:
            context_parts.append(f"url={url}")
        if context_parts:
            return f"[{' '.join(context_parts)}] {message}"
        return message

    def _print(self, message: str, file=None) -> None:
        # Leading newline keeps messages off the progress line.
        with self._lock:
            print("\n" + self._format_with_context(message), file=file or sys.stdout)

    @staticmethod
    def _ensure_text(message) -> str:
        if isinstance(message, bytes):
            return message.decode("utf-8", "ignore")
        return str(message)

    def debug(self, message) -> None:
        if self.verbose:
            self._print(self._ensure_text(message))

    def info(self, message) -> None:
        self._print(self._ensure_text(message))

    def warning(self, message) -> None:
        with self._lock:
            self.warning_count += 1
        self._print(self._ensure_text(message), file=sys.stderr)

    def error(self, message) -> None:
        with self._lock:
            self.error_count += 1
        self._print(self._ensure_text(message), file=sys.stderr)
