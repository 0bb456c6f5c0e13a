import logging
import threading
from dataclasses import dataclass
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    progress: float
    message: str

    @classmethod
    def from_counts(cls, completed: int, total: int, message: str) -> "ProgressEvent":
        if total <= 0:
            return cls(progress=100.0, message=message)
        fraction = max(0.0, min(1.0, completed / total))
        return cls(progress=fraction * 100.0, message=message)

    def to_dict(self) -> dict:
        return {"progress": self.progress, "message": self.message}


class ProgressObserver(Protocol):
    def on_progress(self, completed: int, total: int, message: str) -> None:
        ...


class NullObserver:
    def on_progress(self, completed: int, total: int, message: str) -> None:
        pass


class CallbackObserver:
    """Adapts a plain callable taking a ProgressEvent, e.g. a UI event emitter."""

    def __init__(self, callback: Callable[[ProgressEvent], None]) -> None:
        self.callback = callback

    def on_progress(self, completed: int, total: int, message: str) -> None:
        self.callback(ProgressEvent.from_counts(completed, total, message))


class LoggingObserver:
    """Logs every unit, plus a progress line each time a 10% bucket is crossed."""

    def __init__(self, log: logging.Logger = logger) -> None:
        self.log = log
        self._bucket = -10
        self._lock = threading.Lock()

    def on_progress(self, completed: int, total: int, message: str) -> None:
        event = ProgressEvent.from_counts(completed, total, message)
        self.log.info("[%d/%d] %s", completed, total, message)
        bucket = min(100, (int(event.progress) // 10) * 10)
        with self._lock:
            if bucket <= self._bucket:
                return
            self._bucket = bucket
        self.log.info("Install progress: %d%%", bucket)


class RecordingObserver:
    def __init__(self) -> None:
        self.calls: list[tuple[int, int, str]] = []
        self._lock = threading.Lock()

    def on_progress(self, completed: int, total: int, message: str) -> None:
        with self._lock:
            self.calls.append((completed, total, message))

    @property
    def events(self) -> list[ProgressEvent]:
        return [ProgressEvent.from_counts(*call) for call in self.calls]


def notify(observer: ProgressObserver, completed: int, total: int, message: str) -> None:
    """Deliver one notification; an observer failure never affects the install."""
    try:
        observer.on_progress(completed, total, message)
    except Exception:
        logger.warning("Progress observer raised; ignoring", exc_info=True)
