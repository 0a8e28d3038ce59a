"""
CV intake pipeline: PDF upload -> text extraction -> blob storage ->
candidate row -> analysis dispatch.

Blocking work (PyMuPDF, filesystem, database, HTTP) runs in worker threads
so the queue's asyncio workers stay responsive; each step opens its own
database session.
"""
import asyncio
import logging
from typing import Callable, Optional

from screener.core import config
from screener.core.exceptions import ScreeningError, StorageFailure
from screener.services.analysis_gateway import AnalysisGateway
from screener.services.candidate_store import CandidateStore
from screener.services.cv_parser import (
    is_pdf,
    candidate_name_from_filename,
    placeholder_email,
    extract_text_from_pdf,
)
from screener.services.dispatcher import dispatch, DispatchResult, REASON_CREDITS_EXHAUSTED
from screener.services.realtime import CandidateChangeNotifier
from screener.services.storage import StorageGateway, build_cv_path
from screener.services.upload_queue import QueueItem, UploadQueue, UploadStatus

logger = logging.getLogger(__name__)

NOT_A_PDF_MESSAGE = "Only PDF files are supported."


class IntakeService:
    """Runs uploaded CVs of one job through the upload queue."""

    def __init__(
        self,
        session_factory: Callable,
        account_id: int,
        job_id: int,
        storage: StorageGateway,
        gateway: AnalysisGateway,
        notifier: Optional[CandidateChangeNotifier] = None,
        policy: Optional[str] = None,
        max_upload_bytes: Optional[int] = None,
        application_source: str = "manual_upload",
        applicant_name: Optional[str] = None,
        applicant_email: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.account_id = account_id
        self.job_id = job_id
        self.storage = storage
        self.gateway = gateway
        self.notifier = notifier
        self.policy = policy
        self.max_upload_bytes = max_upload_bytes or config.MAX_UPLOAD_BYTES
        # Set for public applications, where the applicant types in their details
        self.application_source = application_source
        self.applicant_name = applicant_name
        self.applicant_email = applicant_email

    def validate(self, item: QueueItem) -> Optional[str]:
        """Return a user-facing rejection reason, or None if the file is acceptable."""
        if not is_pdf(item.file_name, item.content_type, item.data):
            return NOT_A_PDF_MESSAGE
        if len(item.data) > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes // (1024 * 1024)
            return f"File is larger than {limit_mb} MB."
        return None

    def _insert_candidate(self, name: str, cv_text: str, path: str) -> str:
        db = self.session_factory()
        try:
            store = CandidateStore(db, self.account_id)
            return store.insert(
                self.job_id,
                name=name,
                email=self.applicant_email or placeholder_email(name),
                cv_text=cv_text,
                cv_file_path=path,
                application_source=self.application_source,
            )
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _discard_blob(self, path: str) -> None:
        try:
            self.storage.delete(path)
        except StorageFailure as e:
            logger.warning(f"Could not remove CV of failed upload {path}: {e}")

    def _dispatch(self, candidate_id: str) -> DispatchResult:
        db = self.session_factory()
        try:
            return dispatch(
                db,
                self.account_id,
                candidate_id,
                self.gateway,
                policy=self.policy,
                storage=self.storage,
                notifier=self.notifier,
            )
        finally:
            db.close()

    async def run_item(self, item: QueueItem) -> None:
        """Pipeline for one queue item (entered in the extracting state)."""
        rejection = self.validate(item)
        if rejection:
            item.fail(rejection)
            return

        try:
            cv_text = await asyncio.to_thread(extract_text_from_pdf, item.data)
        except ScreeningError as e:
            item.fail(e.user_message)
            return

        item.transition(UploadStatus.UPLOADING)
        path = build_cv_path(self.job_id, item.file_name)
        try:
            await asyncio.to_thread(self.storage.put, path, item.data)
        except ScreeningError as e:
            item.fail(e.user_message)
            return

        name = self.applicant_name or candidate_name_from_filename(item.file_name)
        try:
            item.candidate_id = await asyncio.to_thread(self._insert_candidate, name, cv_text, path)
        except ScreeningError as e:
            await asyncio.to_thread(self._discard_blob, path)
            item.fail(e.user_message)
            return
        except Exception:
            await asyncio.to_thread(self._discard_blob, path)
            raise

        item.transition(UploadStatus.ANALYZING)
        try:
            result = await asyncio.to_thread(self._dispatch, item.candidate_id)
        except ScreeningError as e:
            # After a DispatchFailure the candidate row stays (status failed) for a retry
            item.fail(e.user_message)
            return

        item.dispatched = result.dispatched
        if result.reason == REASON_CREDITS_EXHAUSTED:
            logger.info(f"Candidate saved without analysis (no credits): candidate_id={item.candidate_id}")
        item.transition(UploadStatus.COMPLETED)

    async def process(self, queue: UploadQueue) -> UploadQueue:
        await queue.process(self.run_item)
        summary = queue.summary()
        logger.info(
            f"Upload batch finished: batch_id={queue.batch_id}, job_id={self.job_id}, "
            f"uploaded={summary['uploaded']}, dispatched={summary['dispatched']}, "
            f"pending={summary['pending_analysis']}, failed={summary['failed']}"
        )
        return queue
