"""
Unit tests for the realtime candidate change notifier.
"""
import asyncio
import threading

from screener.services.realtime import CandidateChangeNotifier


def test_subscriber_receives_updates_for_its_job():
    notifier = CandidateChangeNotifier()
    received = []
    notifier.subscribe(1, received.append)

    delivered = notifier.publish(1, {"id": "c-1", "cv_rate": 80})
    notifier.publish(2, {"id": "c-2"})

    assert delivered == 1
    assert received == [{"event": "UPDATE", "job_id": 1, "candidate": {"id": "c-1", "cv_rate": 80}}]


def test_close_is_idempotent_and_stops_delivery():
    notifier = CandidateChangeNotifier()
    received = []
    subscription = notifier.subscribe(1, received.append)

    subscription.close()
    subscription.close()
    notifier.publish(1, {"id": "c-1"})

    assert received == []
    assert notifier.subscriber_count(1) == 0


def test_failing_subscriber_does_not_block_others():
    """Test best-effort delivery: one broken callback is skipped."""
    notifier = CandidateChangeNotifier()
    received = []

    def broken(event):
        raise RuntimeError("socket gone")

    notifier.subscribe(1, broken)
    notifier.subscribe(1, received.append)

    assert notifier.publish(1, {"id": "c-1"}) == 2
    assert len(received) == 1


def test_update_from_worker_thread_reaches_async_subscriber():
    """Test that an update published in another thread arrives within 5 seconds."""
    notifier = CandidateChangeNotifier()

    async def scenario():
        queue = asyncio.Queue()
        subscription = notifier.subscribe_queue(7, queue)

        publisher = threading.Thread(target=notifier.publish, args=(7, {"id": "c-9", "cv_rate": 64}))
        publisher.start()
        try:
            return await asyncio.wait_for(queue.get(), timeout=5)
        finally:
            publisher.join()
            subscription.close()

    event = asyncio.run(scenario())

    assert event["candidate"] == {"id": "c-9", "cv_rate": 64}
    assert notifier.subscriber_count(7) == 0
