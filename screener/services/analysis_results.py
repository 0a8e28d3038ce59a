"""
Applies analysis results written back by the external AI service.

The callback may arrive more than once; only the first one for a candidate
is applied.
"""
import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from screener.core import config
from screener.core.exceptions import AnalysisPayloadError, CandidateNotFound
from screener.db.models.candidate import Candidate, AnalysisStatus
from screener.schemas.analysis import AnalysisCallbackPayload, ImprovementTip
from screener.services.candidate_store import serialize_candidate
from screener.services.realtime import CandidateChangeNotifier

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
MAX_PHONE_LENGTH = 30
MAX_TITLE_LENGTH = 150
MAX_EMAIL_LENGTH = 255

TIMEOUT_REASON = "analysis_timeout"

_HTML_TAGS = re.compile(r"<[^>]*>")
_UNSAFE_CHARS = re.compile(r"[<>\"']")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def sanitize_text(text: Optional[str], max_length: int) -> str:
    """Strip HTML tags and quote/angle characters, trim, truncate."""
    if not text or not isinstance(text, str):
        return ""
    cleaned = _UNSAFE_CHARS.sub("", _HTML_TAGS.sub("", text)).strip()
    return cleaned[:max_length]


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(_EMAIL.match(email))


def clamp_score(score: Optional[float]) -> Optional[int]:
    if score is None:
        return None
    return int(round(min(100.0, max(0.0, float(score)))))


def parse_candidate_id(candidate_id: str) -> str:
    try:
        return str(uuid.UUID(str(candidate_id)))
    except (ValueError, TypeError) as e:
        raise AnalysisPayloadError(f"Invalid candidate_id: {candidate_id!r}") from e


def build_update_fields(payload: AnalysisCallbackPayload) -> Dict[str, Any]:
    """Map the callback payload onto candidate columns."""
    fields: Dict[str, Any] = {}
    extracted = payload.extracted_data
    relevance = payload.relevance_analysis

    if extracted is not None:
        fields["extracted_data"] = extracted.model_dump()
        name = sanitize_text(extracted.name, MAX_NAME_LENGTH)
        if name:
            fields["name"] = name
        phone = sanitize_text(extracted.phone, MAX_PHONE_LENGTH)
        if phone:
            fields["phone"] = phone
        title = sanitize_text(extracted.current_title, MAX_TITLE_LENGTH)
        if title:
            fields["title"] = title

        # Only replace the filename-derived placeholder with a real address
        if extracted.email and "@example.com" not in extracted.email:
            email = extracted.email.strip()[:MAX_EMAIL_LENGTH]
            if is_valid_email(email):
                fields["email"] = email

    if relevance is not None:
        fields["relevance_analysis"] = relevance.model_dump()
        score = clamp_score(relevance.overall_score)
        if score is not None:
            fields["cv_rate"] = score
        fields["insights"] = {
            "matching": relevance.matching_skills,
            "not_matching": relevance.missing_skills,
        }

    if payload.improvement_tips is not None:
        tips: List[Any] = []
        for tip in payload.improvement_tips:
            tips.append(tip.model_dump() if isinstance(tip, ImprovementTip) else tip)
        fields["improvement_tips"] = tips

    return fields


def apply_analysis_result(
    db: Session,
    payload: AnalysisCallbackPayload,
    notifier: Optional[CandidateChangeNotifier] = None,
) -> bool:
    """
    Write an analysis result onto its candidate and notify subscribers.

    Returns:
        True if applied, False if the candidate was already completed

    Raises:
        AnalysisPayloadError: candidate_id is not a UUID
        CandidateNotFound: no such candidate
    """
    candidate_id = parse_candidate_id(payload.candidate_id)

    exists = db.query(Candidate.id).filter(Candidate.id == candidate_id).first()
    if not exists:
        raise CandidateNotFound(f"Candidate {candidate_id} not found")

    fields = build_update_fields(payload)
    fields.update(
        analysis_status=AnalysisStatus.COMPLETED.value,
        completed_at=datetime.utcnow(),
        analysis_error=None,
    )

    applied = db.execute(
        update(Candidate)
        .where(
            Candidate.id == candidate_id,
            Candidate.analysis_status != AnalysisStatus.COMPLETED.value,
        )
        .values(**fields)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()

    if not applied:
        logger.info(f"Duplicate analysis result ignored: candidate_id={candidate_id}")
        return False

    candidate = db.query(Candidate).filter(Candidate.id == candidate_id).first()
    logger.info(
        f"Analysis result applied: candidate_id={candidate_id}, "
        f"cv_rate={candidate.cv_rate}, job_id={candidate.job_id}"
    )

    if notifier is not None:
        notifier.publish(candidate.job_id, serialize_candidate(candidate))

    return True


def sweep_stuck_analyses(
    db: Session,
    now: Optional[datetime] = None,
    threshold_minutes: Optional[int] = None,
    notifier: Optional[CandidateChangeNotifier] = None,
) -> List[str]:
    """
    Fail analyses that were dispatched but never written back.

    Candidates dispatched longer ago than the threshold move to failed with
    reason analysis_timeout and become eligible for resume screening.
    Credits are not refunded: the dispatch itself succeeded.

    Returns:
        IDs of the candidates that were failed
    """
    now = now or datetime.utcnow()
    threshold = threshold_minutes if threshold_minutes is not None else config.ANALYSIS_TIMEOUT_MINUTES
    cutoff = now - timedelta(minutes=threshold)

    stuck = db.query(Candidate).filter(
        Candidate.analysis_status == AnalysisStatus.DISPATCHED.value,
        Candidate.dispatched_at <= cutoff,
    ).all()

    failed_ids = []
    for candidate in stuck:
        # Re-check the status in the UPDATE so a result landing meanwhile wins
        changed = db.execute(
            update(Candidate)
            .where(
                Candidate.id == candidate.id,
                Candidate.analysis_status == AnalysisStatus.DISPATCHED.value,
            )
            .values(analysis_status=AnalysisStatus.FAILED.value, analysis_error=TIMEOUT_REASON)
            .execution_options(synchronize_session=False)
        ).rowcount
        if changed:
            failed_ids.append(candidate.id)
    db.commit()

    if failed_ids:
        logger.warning(f"Analyses timed out after {threshold} min: {len(failed_ids)} candidate(s)")
        if notifier is not None:
            for candidate in db.query(Candidate).filter(Candidate.id.in_(failed_ids)).all():
                notifier.publish(candidate.job_id, serialize_candidate(candidate))

    return failed_ids
