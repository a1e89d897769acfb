"""Fan-out of log lines to live viewers, plus the append-only log file.

Each subscriber owns a private bounded queue. Publishing offers the line to
every queue without blocking; a subscriber whose queue is full misses that
line. Every published line is also appended to the log file.
"""

import logging
import queue
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

LOG_QUEUE_SIZE = 100
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Subscription:
    """A live feed of lines from a BroadcastHub."""

    def __init__(self, hub: "BroadcastHub", maxsize: int):
        self._hub = hub
        self._queue: queue.Queue[str] = queue.Queue(maxsize=maxsize)

    def offer(self, line: str) -> bool:
        """Queue a line if there is room. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(line)
        except queue.Full:
            return False
        return True

    def get(self, timeout: Optional[float] = None) -> str:
        """Next line; raises queue.Empty if none arrives within timeout."""
        return self._queue.get(timeout=timeout)

    def get_nowait(self) -> str:
        """Next line if one is queued; raises queue.Empty otherwise."""
        return self._queue.get_nowait()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self._hub.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class BroadcastHub:
    """Non-blocking publisher shared by command runs and ad hoc log calls."""

    def __init__(self, log_file: Optional[Path] = None, queue_size: int = LOG_QUEUE_SIZE):
        self.log_file = log_file
        self.queue_size = queue_size
        self.dropped = 0
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self.queue_size)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def publish(self, line: str) -> None:
        """Record a line and offer it to every subscriber. Never blocks on readers."""
        with self._lock:
            self._append_to_file(line)
            for subscription in self._subscribers:
                if not subscription.offer(line):
                    self.dropped += 1

    def log(self, message: str, *args) -> str:
        """Format, log and publish a message. Returns the formatted text."""
        text = message % args if args else message
        logger.info(text)
        self.publish(text)
        return text

    def _append_to_file(self, line: str) -> None:
        if self.log_file is None:
            return
        stamp = datetime.now().strftime(TIMESTAMP_FORMAT)
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(f"{stamp} {line}\n")
        except (PermissionError, OSError):
            # The action that produced the line must not fail because of logging
            pass

    def read_log(self) -> Optional[str]:
        """Contents of the log file, or None if nothing has been written yet."""
        if self.log_file is None or not self.log_file.exists():
            return None
        return self.log_file.read_text(encoding="utf-8", errors="replace")
