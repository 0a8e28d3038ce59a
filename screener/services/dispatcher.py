"""
Analysis dispatcher: credit check, debit and analysis trigger for a candidate.

A candidate moves pending|failed -> dispatched before any credit is spent,
so a second dispatch for the same candidate can never debit twice.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from screener.core import config
from screener.core.exceptions import (
    CandidateNotFound,
    DispatchFailure,
    StorageNotFound,
    ScreeningError,
)
from screener.db.models.candidate import Candidate, AnalysisStatus
from screener.services import credit_ledger
from screener.services.analysis_gateway import AnalysisGateway, AnalysisRequest
from screener.services.candidate_store import CandidateStore, serialize_candidate
from screener.services.realtime import CandidateChangeNotifier
from screener.services.storage import StorageGateway

logger = logging.getLogger(__name__)

CHARGE_ON_ATTEMPT = "charge_on_attempt"
CHARGE_ON_SUCCESS = "charge_on_success"
CHARGE_POLICIES = (CHARGE_ON_ATTEMPT, CHARGE_ON_SUCCESS)

# DispatchResult.reason values
REASON_DISPATCHED = "dispatched"
REASON_CREDITS_EXHAUSTED = "credits_exhausted"
REASON_ALREADY_IN_FLIGHT = "already_in_flight"
REASON_ALREADY_COMPLETED = "already_completed"

DISPATCH_ERROR_MESSAGE = "The analysis service could not be reached. Use resume screening to retry."

_CLAIMABLE = (AnalysisStatus.PENDING.value, AnalysisStatus.FAILED.value)


@dataclass
class DispatchResult:
    candidate_id: str
    dispatched: bool
    reason: str
    used: Optional[int] = None
    remaining: Optional[int] = None
    limit: Optional[int] = None


@dataclass
class ScreeningSummary:
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    remaining_credits: Optional[int] = None
    processed_ids: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        parts = [f"{self.processed} CV(s) sent for analysis"]
        if self.skipped:
            parts.append(f"{self.skipped} skipped")
        if self.failed:
            parts.append(f"{self.failed} could not be dispatched")
        return ", ".join(parts)


def resolve_policy(policy: Optional[str] = None) -> str:
    policy = policy or config.CREDIT_CHARGE_POLICY
    if policy not in CHARGE_POLICIES:
        raise ValueError(f"Unknown credit charge policy: {policy}")
    return policy


def _set_status(db: Session, candidate_id: str, **values) -> None:
    db.execute(
        update(Candidate)
        .where(Candidate.id == candidate_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def _publish(db: Session, candidate_id: str, notifier: Optional[CandidateChangeNotifier]) -> None:
    if notifier is None:
        return
    candidate = db.query(Candidate).filter(Candidate.id == candidate_id).first()
    if candidate is not None:
        notifier.publish(candidate.job_id, serialize_candidate(candidate))


def _claim(db: Session, account_id: int, candidate_id: str) -> bool:
    claimed = db.execute(
        update(Candidate)
        .where(
            Candidate.id == candidate_id,
            Candidate.account_id == account_id,
            Candidate.analysis_status.in_(_CLAIMABLE),
        )
        .values(analysis_status=AnalysisStatus.DISPATCHED.value, dispatched_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    return bool(claimed)


def build_analysis_request(candidate: Candidate, storage: Optional[StorageGateway] = None) -> AnalysisRequest:
    job = candidate.job
    cv_url = None
    if storage is not None and candidate.cv_file_path:
        try:
            cv_url = storage.get(candidate.cv_file_path)
        except StorageNotFound:
            logger.warning(f"Stored CV missing for candidate {candidate.id}: {candidate.cv_file_path}")

    return AnalysisRequest(
        candidate_id=candidate.id,
        job_id=candidate.job_id,
        cv_text=candidate.cv_text or "",
        job_description=job.description or "",
        job_title=job.title or "",
        cv_url=cv_url,
        cv_file_path=candidate.cv_file_path,
    )


def dispatch(
    db: Session,
    account_id: int,
    candidate_id: str,
    gateway: AnalysisGateway,
    policy: Optional[str] = None,
    storage: Optional[StorageGateway] = None,
    notifier: Optional[CandidateChangeNotifier] = None,
) -> DispatchResult:
    """
    Spend a credit and start the analysis of one candidate.

    Args:
        db: Database session
        account_id: Owner of the candidate (and of the credits)
        candidate_id: Candidate to analyse
        gateway: Analysis gateway to start the external call on
        policy: charge_on_attempt | charge_on_success (default from config)
        storage: Used to sign the CV download URL sent to the analyser
        notifier: Receives the candidate row after each status change

    Returns:
        DispatchResult; dispatched=False with reason credits_exhausted is a
        normal outcome, not an error

    Raises:
        CandidateNotFound: Candidate missing or owned by another account
        CreditLedgerError: The debit failed; nothing was dispatched
        DispatchFailure: The analysis could not be started; candidate is failed
    """
    policy = resolve_policy(policy)
    store = CandidateStore(db, account_id)
    candidate = store.get(candidate_id)

    if not _claim(db, account_id, candidate_id):
        db.refresh(candidate)
        reason = (
            REASON_ALREADY_COMPLETED
            if candidate.analysis_status == AnalysisStatus.COMPLETED.value
            else REASON_ALREADY_IN_FLIGHT
        )
        logger.info(f"Dispatch skipped: candidate_id={candidate_id}, reason={reason}")
        return DispatchResult(candidate_id=candidate_id, dispatched=False, reason=reason)

    try:
        decision = credit_ledger.check_and_debit(db, account_id, candidate_id=candidate_id)
    except ScreeningError:
        _set_status(db, candidate_id, analysis_status=AnalysisStatus.PENDING.value, dispatched_at=None)
        raise

    if not decision.allowed:
        _set_status(db, candidate_id, analysis_status=AnalysisStatus.PENDING.value, dispatched_at=None)
        _publish(db, candidate_id, notifier)
        return DispatchResult(
            candidate_id=candidate_id,
            dispatched=False,
            reason=REASON_CREDITS_EXHAUSTED,
            used=decision.used,
            remaining=decision.remaining,
            limit=decision.limit,
        )

    db.refresh(candidate)
    request = build_analysis_request(candidate, storage)

    try:
        gateway.start(request)
    except DispatchFailure as e:
        logger.error(f"Analysis dispatch failed: candidate_id={candidate_id}: {e}")
        _set_status(
            db,
            candidate_id,
            analysis_status=AnalysisStatus.FAILED.value,
            analysis_error=DISPATCH_ERROR_MESSAGE,
        )
        if policy == CHARGE_ON_SUCCESS and decision.debit_id is not None:
            credit_ledger.refund(db, decision.debit_id)
        _publish(db, candidate_id, notifier)
        raise

    _set_status(
        db,
        candidate_id,
        dispatch_attempts=Candidate.dispatch_attempts + 1,
        analysis_error=None,
    )
    _publish(db, candidate_id, notifier)

    if decision.limit is not None:
        credit_ledger.flag_limit_warning(db, account_id)

    logger.info(
        f"Candidate dispatched: candidate_id={candidate_id}, account_id={account_id}, "
        f"used={decision.used}, remaining={decision.remaining}"
    )
    return DispatchResult(
        candidate_id=candidate_id,
        dispatched=True,
        reason=REASON_DISPATCHED,
        used=decision.used,
        remaining=decision.remaining,
        limit=decision.limit,
    )


def resume_screening(
    db: Session,
    account_id: int,
    candidate_ids: Iterable[str],
    gateway: AnalysisGateway,
    policy: Optional[str] = None,
    storage: Optional[StorageGateway] = None,
    notifier: Optional[CandidateChangeNotifier] = None,
) -> ScreeningSummary:
    """
    Dispatch the selected candidates that still need an analysis.

    Candidates already completed, without a CV, or owned by another account
    are skipped. Once the credits run out the rest of the selection is
    skipped without touching the ledger again.
    """
    ids = list(dict.fromkeys(candidate_ids))
    summary = ScreeningSummary()
    store = CandidateStore(db, account_id)

    eligible = []
    for candidate_id in ids:
        try:
            candidate = store.get(candidate_id)
        except CandidateNotFound:
            summary.skipped += 1
            continue
        if candidate.analysis_status == AnalysisStatus.COMPLETED.value:
            summary.skipped += 1
            continue
        if not candidate.cv_text and not candidate.cv_file_path:
            summary.skipped += 1
            continue
        eligible.append(candidate_id)

    for index, candidate_id in enumerate(eligible):
        try:
            result = dispatch(db, account_id, candidate_id, gateway, policy, storage, notifier)
        except DispatchFailure:
            summary.failed += 1
            continue

        if result.reason == REASON_CREDITS_EXHAUSTED:
            summary.skipped += len(eligible) - index
            summary.remaining_credits = 0
            logger.info(f"Resume screening stopped, no credits left: account_id={account_id}")
            break

        if result.dispatched:
            summary.processed += 1
            summary.processed_ids.append(candidate_id)
            summary.remaining_credits = result.remaining
        else:
            summary.skipped += 1

    if summary.remaining_credits is None:
        summary.remaining_credits = credit_ledger.get_credit_status(db, account_id)["remaining"]

    logger.info(
        f"Resume screening done: account_id={account_id}, processed={summary.processed}, "
        f"skipped={summary.skipped}, failed={summary.failed}"
    )
    return summary
