"""
Unit tests for the upload queue state machine and worker pool.
"""
import asyncio
import pytest

from screener.core.exceptions import InvalidTransition
from screener.services.upload_queue import (
    QueueItem,
    UploadBatchRegistry,
    UploadQueue,
    UploadStatus,
    build_summary_message,
)


def walk_to_completion(item):
    for status in (UploadStatus.UPLOADING, UploadStatus.ANALYZING, UploadStatus.COMPLETED):
        item.transition(status)


def test_progress_follows_states():
    item = QueueItem(file_name="cv.pdf")
    progress = [item.progress]
    for status in (UploadStatus.EXTRACTING, UploadStatus.UPLOADING, UploadStatus.ANALYZING, UploadStatus.COMPLETED):
        item.transition(status)
        progress.append(item.progress)

    assert progress == [0, 20, 40, 60, 100]


def test_illegal_transitions_rejected():
    """Test that states cannot be skipped or left once terminal."""
    item = QueueItem(file_name="cv.pdf")

    with pytest.raises(InvalidTransition):
        item.transition(UploadStatus.ANALYZING)

    item.transition(UploadStatus.EXTRACTING)
    with pytest.raises(InvalidTransition):
        item.transition(UploadStatus.CANCELLED)

    item.fail("Only PDF files are supported.")
    assert item.error == "Only PDF files are supported."
    with pytest.raises(InvalidTransition):
        item.transition(UploadStatus.UPLOADING)


def test_cancel_only_while_queued():
    queue = UploadQueue(job_id=1)
    waiting = queue.add("a.pdf", b"%PDF")
    started = queue.add("b.pdf", b"%PDF")
    started.transition(UploadStatus.EXTRACTING)

    assert queue.cancel(waiting.id) is True
    assert waiting.status == UploadStatus.CANCELLED
    assert queue.cancel(started.id) is False
    assert started.status == UploadStatus.EXTRACTING
    assert queue.cancel("missing") is False


def test_process_respects_concurrency_limit():
    """Test that no more than `concurrency` items run at once."""
    queue = UploadQueue(job_id=1, concurrency=2)
    for i in range(6):
        queue.add(f"cv{i}.pdf", b"%PDF")

    running = 0
    peak = 0

    async def pipeline(item):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        walk_to_completion(item)
        running -= 1

    items = asyncio.run(queue.process(pipeline))

    assert peak == 2
    assert all(item.status == UploadStatus.COMPLETED for item in items)


def test_one_failure_does_not_affect_others():
    queue = UploadQueue(job_id=1, concurrency=3)
    for name in ("good1.pdf", "bad.pdf", "good2.pdf"):
        queue.add(name, b"%PDF")

    async def pipeline(item):
        if item.file_name == "bad.pdf":
            raise RuntimeError("disk on fire")
        walk_to_completion(item)

    asyncio.run(queue.process(pipeline))

    statuses = {item.file_name: item.status for item in queue.items}
    assert statuses == {
        "good1.pdf": UploadStatus.COMPLETED,
        "bad.pdf": UploadStatus.FAILED,
        "good2.pdf": UploadStatus.COMPLETED,
    }


def test_cancelled_items_are_skipped():
    queue = UploadQueue(job_id=1, concurrency=1)
    first = queue.add("first.pdf", b"%PDF")
    second = queue.add("second.pdf", b"%PDF")
    seen = []

    async def pipeline(item):
        seen.append(item.file_name)
        # Cancelling a running item is a no-op; the waiting one can still go
        assert queue.cancel(item.id) is False
        queue.cancel(second.id)
        walk_to_completion(item)

    asyncio.run(queue.process(pipeline))

    assert seen == ["first.pdf"]
    assert first.status == UploadStatus.COMPLETED
    assert second.status == UploadStatus.CANCELLED


def test_pipeline_that_forgets_to_finish_marks_item_failed():
    queue = UploadQueue(job_id=1)
    item = queue.add("cv.pdf", b"%PDF")

    async def pipeline(item):
        item.transition(UploadStatus.UPLOADING)

    asyncio.run(queue.process(pipeline))

    assert item.status == UploadStatus.FAILED


def test_summary_counts():
    queue = UploadQueue(job_id=3, batch_id="batch-1")
    sent = queue.add("a.pdf", b"%PDF")
    pending = queue.add("b.pdf", b"%PDF")
    broken = queue.add("c.txt", b"hello")
    for item, dispatched in ((sent, True), (pending, False)):
        item.transition(UploadStatus.EXTRACTING)
        item.candidate_id = f"id-{item.file_name}"
        item.dispatched = dispatched
        walk_to_completion(item)
    broken.transition(UploadStatus.EXTRACTING)
    broken.fail("Only PDF files are supported.")

    summary = queue.summary()

    assert summary["uploaded"] == 2
    assert summary["dispatched"] == 1
    assert summary["pending_analysis"] == 1
    assert summary["failed"] == 1
    assert summary["message"] == "2 CV(s) uploaded, 1 pending analysis (no credits left), 1 failed"


def test_summary_message_without_uploads():
    assert build_summary_message(0, 0, 2) == "No CVs uploaded, 2 file(s) failed"
    assert build_summary_message(3, 0, 0) == "3 CV(s) uploaded"


def test_registry_scopes_batches_to_account():
    registry = UploadBatchRegistry()
    queue = UploadQueue(job_id=1, batch_id="batch-1")
    registry.register(10, queue)

    assert registry.get(10, "batch-1") is queue
    assert registry.get(11, "batch-1") is None
    assert registry.get(10, "missing") is None
