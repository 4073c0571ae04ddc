"""Reference clock for "now" in derived views, with an optional background tick."""

import logging
import threading
from datetime import datetime
from typing import Callable

logger = logging.getLogger(__name__)


def naive_local(value: datetime) -> datetime:
    """Convert an offset-aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def parse_timestamp(value: str) -> datetime:
    """Parse ISO text into the naive local datetime every record is stored in.

    Raises ValueError on malformed text.
    """
    return naive_local(datetime.fromisoformat(value))


class SimulationClock:
    """Current-time reference that can be pinned to a simulated instant.

    Read operations take ``clock.now()`` explicitly; the clock itself never
    touches packages or activities.
    """

    def __init__(self, pinned: datetime | None = None):
        self._pinned = pinned
        self._current = datetime.now()
        self._listeners: list[Callable[[datetime], None]] = []
        self._lock = threading.Lock()

    @property
    def pinned(self) -> bool:
        return self._pinned is not None

    def now(self) -> datetime:
        with self._lock:
            return self._pinned or self._current

    def pin(self, when: datetime):
        with self._lock:
            self._pinned = when
        self._notify(when)

    def unpin(self):
        with self._lock:
            self._pinned = None
            self._current = datetime.now()
        self._notify(self._current)

    def subscribe(self, listener: Callable[[datetime], None]):
        self._listeners.append(listener)

    def tick(self) -> datetime:
        """Advance to wall-clock time unless pinned, then notify listeners."""
        with self._lock:
            if self._pinned is None:
                self._current = datetime.now()
            current = self._pinned or self._current
        self._notify(current)
        return current

    def _notify(self, when: datetime):
        for listener in list(self._listeners):
            listener(when)


class ClockTicker:
    """Background thread that ticks a clock at a fixed interval."""

    def __init__(self, clock: SimulationClock, interval: float = 60.0):
        self.clock = clock
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self):
        """Start the ticker thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="clock-ticker", daemon=True)
        self._thread.start()
        logger.info("Clock ticker started (every %ss)", self.interval)

    def stop(self):
        """Signal the ticker thread to stop."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=10)
        logger.info("Clock ticker stopped")

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.clock.tick()
            except Exception:
                logger.exception("Error in clock tick listener")
