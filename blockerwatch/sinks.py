"""Display sinks: where the poll scheduler delivers its snapshots.

``publish`` runs on a scheduler worker thread and must return quickly.
"""

import logging
import queue
from abc import ABC, abstractmethod
from typing import Any, Callable, Tuple

logger = logging.getLogger(__name__)


class DisplaySink(ABC):
    """Receives (job name, snapshot) pairs from the scheduler"""

    @abstractmethod
    def publish(self, job: str, snapshot: Any) -> None:
        pass


class QueueSink(DisplaySink):
    """Hands snapshots to a consumer thread through a bounded queue.

    A full queue drops the snapshot; the next tick produces a fresh one.
    """

    def __init__(self, maxsize: int = 100):
        self.queue: "queue.Queue[Tuple[str, Any]]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def publish(self, job: str, snapshot: Any) -> None:
        try:
            self.queue.put_nowait((job, snapshot))
        except queue.Full:
            self.dropped += 1
            logger.warning(f"Display queue full, dropped {job} snapshot ({self.dropped} dropped so far)")


class CallbackSink(DisplaySink):
    """Calls ``callback(job, snapshot)`` directly on the worker thread"""

    def __init__(self, callback: Callable[[str, Any], None]):
        self.callback = callback

    def publish(self, job: str, snapshot: Any) -> None:
        self.callback(job, snapshot)
