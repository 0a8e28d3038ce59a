"""
Bounded-concurrency upload queue.

Each uploaded file is a QueueItem walking the state machine

    queued -> extracting -> uploading -> analyzing -> completed

with failed reachable from any non-terminal state and cancelled only from
queued. A fixed number of asyncio workers pull items from a shared queue;
one item's failure never affects the others.
"""
import asyncio
import enum
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from screener.core import config
from screener.core.exceptions import InvalidTransition

logger = logging.getLogger(__name__)


class UploadStatus(str, enum.Enum):
    QUEUED = "queued"
    EXTRACTING = "extracting"
    UPLOADING = "uploading"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = {UploadStatus.COMPLETED, UploadStatus.FAILED, UploadStatus.CANCELLED}

PROGRESS = {
    UploadStatus.QUEUED: 0,
    UploadStatus.EXTRACTING: 20,
    UploadStatus.UPLOADING: 40,
    UploadStatus.ANALYZING: 60,
    UploadStatus.COMPLETED: 100,
}

_NEXT_STEP = {
    UploadStatus.QUEUED: UploadStatus.EXTRACTING,
    UploadStatus.EXTRACTING: UploadStatus.UPLOADING,
    UploadStatus.UPLOADING: UploadStatus.ANALYZING,
    UploadStatus.ANALYZING: UploadStatus.COMPLETED,
}


def is_allowed(current: UploadStatus, new: UploadStatus) -> bool:
    if current in TERMINAL_STATES:
        return False
    if new == UploadStatus.FAILED:
        return True
    if new == UploadStatus.CANCELLED:
        return current == UploadStatus.QUEUED
    return _NEXT_STEP.get(current) == new


@dataclass
class QueueItem:
    file_name: str
    data: bytes = field(default=b"", repr=False)
    content_type: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: UploadStatus = UploadStatus.QUEUED
    progress: int = 0
    error: Optional[str] = None
    candidate_id: Optional[str] = None
    dispatched: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def transition(self, new: UploadStatus, error: Optional[str] = None) -> None:
        """
        Move to a new state.

        Raises:
            InvalidTransition: the move is not part of the state machine
        """
        if not is_allowed(self.status, new):
            raise InvalidTransition(f"Upload item {self.id}: {self.status.value} -> {new.value} not allowed")
        self.status = new
        if new in PROGRESS:
            self.progress = PROGRESS[new]
        if new == UploadStatus.FAILED:
            self.error = error or "Upload failed"
        if new in TERMINAL_STATES:
            # Drop the file body once the item is done
            self.data = b""

    def fail(self, error: str) -> None:
        self.transition(UploadStatus.FAILED, error=error)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "file_name": self.file_name,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
            "candidate_id": self.candidate_id,
            "dispatched": self.dispatched,
        }


Pipeline = Callable[[QueueItem], Awaitable[None]]


class UploadQueue:
    """One batch of uploads processed by a fixed pool of workers."""

    def __init__(self, job_id: int, concurrency: Optional[int] = None, batch_id: Optional[str] = None):
        self.job_id = job_id
        self.batch_id = batch_id or str(uuid.uuid4())
        self.concurrency = max(1, concurrency or config.UPLOAD_CONCURRENCY)
        self.items: List[QueueItem] = []
        self._lock = threading.Lock()

    def add(self, file_name: str, data: bytes, content_type: Optional[str] = None) -> QueueItem:
        item = QueueItem(file_name=file_name, data=data, content_type=content_type)
        self.items.append(item)
        return item

    def get(self, item_id: str) -> Optional[QueueItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def cancel(self, item_id: str) -> bool:
        """Cancel an item that has not started. Returns False (no-op) otherwise."""
        with self._lock:
            item = self.get(item_id)
            if item is None or item.status != UploadStatus.QUEUED:
                return False
            item.transition(UploadStatus.CANCELLED)
        logger.info(f"Upload cancelled: batch_id={self.batch_id}, item_id={item_id}")
        return True

    def _start(self, item: QueueItem) -> bool:
        """Take a queued item for processing; False if it was cancelled meanwhile."""
        with self._lock:
            if item.status != UploadStatus.QUEUED:
                return False
            item.transition(UploadStatus.EXTRACTING)
            return True

    async def _worker(self, queue: asyncio.Queue, pipeline: Pipeline) -> None:
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                if self._start(item):
                    await pipeline(item)
                    if not item.is_terminal:
                        item.fail("Upload did not complete")
            except Exception as e:
                logger.error(f"Upload failed: batch_id={self.batch_id}, file={item.file_name}: {e}")
                if not item.is_terminal:
                    item.fail(getattr(e, "user_message", None) or "Upload failed")
            finally:
                queue.task_done()

    async def process(self, pipeline: Pipeline) -> List[QueueItem]:
        """
        Run the pipeline over every queued item and return once all are terminal.

        The pipeline is entered with the item already in the extracting state
        and is responsible for the remaining transitions.
        """
        queue: asyncio.Queue = asyncio.Queue()
        for item in self.items:
            if item.status == UploadStatus.QUEUED:
                queue.put_nowait(item)

        workers = min(self.concurrency, queue.qsize())
        logger.info(f"Processing upload batch: batch_id={self.batch_id}, items={queue.qsize()}, workers={workers}")
        await asyncio.gather(*(self._worker(queue, pipeline) for _ in range(workers)))
        return self.items

    def summary(self) -> Dict:
        uploaded = [i for i in self.items if i.candidate_id]
        dispatched = sum(1 for i in uploaded if i.dispatched)
        pending = sum(
            1 for i in uploaded
            if not i.dispatched and i.status == UploadStatus.COMPLETED
        )
        failed = sum(1 for i in self.items if i.status == UploadStatus.FAILED)
        return {
            "batch_id": self.batch_id,
            "job_id": self.job_id,
            "items": [i.to_dict() for i in self.items],
            "uploaded": len(uploaded),
            "failed": failed,
            "dispatched": dispatched,
            "pending_analysis": pending,
            "message": build_summary_message(len(uploaded), pending, failed),
        }


def build_summary_message(uploaded: int, pending: int, failed: int) -> str:
    if not uploaded and failed:
        return f"No CVs uploaded, {failed} file(s) failed"
    message = f"{uploaded} CV(s) uploaded"
    if pending:
        message += f", {pending} pending analysis (no credits left)"
    if failed:
        message += f", {failed} failed"
    return message


class UploadBatchRegistry:
    """Batches of the running process, looked up by id for status polling and cancellation."""

    def __init__(self, max_batches: int = 500):
        self.max_batches = max_batches
        self._batches: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def register(self, account_id: int, queue: UploadQueue) -> None:
        with self._lock:
            if len(self._batches) >= self.max_batches:
                # Forget the oldest batch
                self._batches.pop(next(iter(self._batches)))
            self._batches[queue.batch_id] = (account_id, queue)

    def get(self, account_id: int, batch_id: str) -> Optional[UploadQueue]:
        with self._lock:
            entry = self._batches.get(batch_id)
        if entry is None or entry[0] != account_id:
            return None
        return entry[1]


upload_registry = UploadBatchRegistry()


def get_upload_registry() -> UploadBatchRegistry:
    return upload_registry
