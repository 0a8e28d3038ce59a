"""
Realtime change notifier for candidate rows.

Subscribers register per job id and receive every published row update for
that job. Delivery is best-effort and in-process: publishers run in request
worker threads, so WebSocket subscribers hop onto their own event loop.
"""
import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

UPDATE_EVENT = "UPDATE"


class Subscription:
    """Handle returned by subscribe(). close() must be called on teardown."""

    def __init__(self, notifier: "CandidateChangeNotifier", job_id: int, on_update: Callable[[Dict[str, Any]], None]):
        self.notifier = notifier
        self.job_id = job_id
        self.on_update = on_update
        self.closed = False

    def deliver(self, event: Dict[str, Any]) -> None:
        if self.closed:
            return
        try:
            self.on_update(event)
        except Exception as e:
            # One broken subscriber must not stop delivery to the others
            logger.warning(f"Realtime subscriber failed: job_id={self.job_id}: {e}")

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.notifier._remove(self)


class CandidateChangeNotifier:
    """In-process pub/sub keyed by job id."""

    def __init__(self):
        self._subscriptions: Dict[int, List[Subscription]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, job_id: int, on_update: Callable[[Dict[str, Any]], None]) -> Subscription:
        subscription = Subscription(self, job_id, on_update)
        with self._lock:
            self._subscriptions[job_id].append(subscription)
        logger.debug(f"Realtime subscription opened: job_id={job_id}")
        return subscription

    def subscribe_queue(self, job_id: int, queue: asyncio.Queue, loop: Optional[asyncio.AbstractEventLoop] = None) -> Subscription:
        """Subscribe an asyncio queue; events are put on it from any thread."""
        loop = loop or asyncio.get_running_loop()

        def enqueue(event: Dict[str, Any]) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, event)

        return self.subscribe(job_id, enqueue)

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscriptions.get(subscription.job_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscriptions.pop(subscription.job_id, None)
        logger.debug(f"Realtime subscription closed: job_id={subscription.job_id}")

    def subscriber_count(self, job_id: int) -> int:
        with self._lock:
            return len(self._subscriptions.get(job_id, []))

    def publish(self, job_id: int, candidate: Dict[str, Any]) -> int:
        """
        Deliver a row-updated event to every subscriber of the job.

        Returns:
            Number of subscribers the event was handed to
        """
        event = {"event": UPDATE_EVENT, "job_id": job_id, "candidate": candidate}
        with self._lock:
            subscribers = list(self._subscriptions.get(job_id, []))

        for subscription in subscribers:
            subscription.deliver(event)

        return len(subscribers)


notifier = CandidateChangeNotifier()


def get_notifier() -> CandidateChangeNotifier:
    return notifier
