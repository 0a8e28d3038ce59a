"""
Gateways to the external CV analysis service.

start() only has to *invoke* the analysis. The result arrives later through
apply_analysis_result (the /analysis/callback endpoint for the webhook
backend, a worker thread for the OpenAI backend).
"""
import json
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, asdict
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from screener.core import config
from screener.core.exceptions import DispatchFailure, ScreeningError
from screener.core.logging_config import sanitize_log_data
from screener.llm.provider import LLMProvider
from screener.schemas.analysis import AnalysisCallbackPayload
from screener.services.analysis_results import apply_analysis_result
from screener.services.realtime import CandidateChangeNotifier, get_notifier

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/analysis/callback"


@dataclass
class AnalysisRequest:
    candidate_id: str
    job_id: int
    cv_text: str
    job_description: str
    job_title: str = ""
    cv_url: Optional[str] = None
    cv_file_path: Optional[str] = None
    callback_url: Optional[str] = None

    def to_payload(self) -> dict:
        return asdict(self)


def default_callback_url() -> str:
    return config.PUBLIC_BASE_URL.rstrip("/") + CALLBACK_PATH


class AnalysisGateway(ABC):
    """Fire-and-forget trigger for one CV analysis."""

    @abstractmethod
    def start(self, request: AnalysisRequest) -> None:
        """
        Invoke the analysis for one candidate.

        Raises:
            DispatchFailure: the analysis could not be started
        """
        pass


class WebhookAnalysisGateway(AnalysisGateway):
    """POSTs the analysis request to an external workflow (n8n-style webhook)."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url or config.CV_ANALYSIS_WEBHOOK_URL
        self.timeout = timeout if timeout is not None else config.ANALYSIS_DISPATCH_TIMEOUT_SECONDS
        self.transport = transport

    def start(self, request: AnalysisRequest) -> None:
        if not self.url:
            raise DispatchFailure("CV_ANALYSIS_WEBHOOK_URL not configured")

        if not request.callback_url:
            request.callback_url = default_callback_url()

        logger.debug(f"Analysis webhook payload: {sanitize_log_data(request.to_payload())}")

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.url, json=request.to_payload())
        except httpx.HTTPError as e:
            logger.error(f"Analysis webhook unreachable: candidate_id={request.candidate_id}: {e}")
            raise DispatchFailure(f"Analysis webhook unreachable: {e}") from e

        if response.status_code >= 300:
            logger.error(
                f"Analysis webhook rejected request: candidate_id={request.candidate_id}, "
                f"status={response.status_code}"
            )
            raise DispatchFailure(f"Analysis webhook returned {response.status_code}")

        logger.info(f"Analysis dispatched to webhook: candidate_id={request.candidate_id}")


SYSTEM_PROMPT = (
    "You are an experienced technical recruiter. Compare the CV with the job "
    "description and answer with a single JSON object with the keys: "
    "extracted_data {name, email, phone, current_title}, "
    "relevance_analysis {overall_score (0-100), matching_skills, missing_skills, summary}, "
    "improvement_tips [{category, tip}]. Do not invent contact details that are not in the CV."
)


def build_analysis_messages(request: AnalysisRequest) -> list:
    job = f"Job title: {request.job_title}\n\n{request.job_description}".strip()
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": f"JOB DESCRIPTION:\n{job}\n\nCV:\n{request.cv_text}"},
    ]


class OpenAIAnalysisGateway(AnalysisGateway):
    """
    Scores CVs in-process with an LLM provider.

    start() submits the work to a bounded thread pool and returns; the worker
    writes the result through the same path the webhook callback uses.
    """

    def __init__(
        self,
        session_factory: Callable,
        provider: Optional[LLMProvider] = None,
        notifier: Optional[CandidateChangeNotifier] = None,
        max_workers: Optional[int] = None,
        model: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self._provider = provider
        self.notifier = notifier or get_notifier()
        self.model = model or config.OPENAI_MODEL
        self.executor = ThreadPoolExecutor(
            max_workers=max_workers or config.ANALYSIS_WORKERS,
            thread_name_prefix="cv-analysis",
        )

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            from screener.llm.openai_provider import OpenAIProvider
            self._provider = OpenAIProvider()
        return self._provider

    def start(self, request: AnalysisRequest) -> None:
        try:
            provider = self.provider
        except ValueError as e:
            raise DispatchFailure(str(e)) from e

        try:
            self.executor.submit(self._run, provider, request)
        except RuntimeError as e:
            raise DispatchFailure(f"Analysis worker pool unavailable: {e}") from e

        logger.info(f"Analysis submitted to LLM worker: candidate_id={request.candidate_id}")

    def _run(self, provider: LLMProvider, request: AnalysisRequest) -> None:
        try:
            response = provider.chat(
                messages=build_analysis_messages(request),
                model=self.model,
                temperature=0.2,
                response_format={"type": "json_object"},
            )
            data = json.loads(response.content)
            data["candidate_id"] = request.candidate_id
            payload = AnalysisCallbackPayload.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"LLM returned an unusable analysis: candidate_id={request.candidate_id}: {e}")
            return
        except Exception as e:
            # Provider errors are already logged; the sweep fails the candidate later
            logger.error(f"LLM analysis failed: candidate_id={request.candidate_id}: {e}")
            return

        db = self.session_factory()
        try:
            apply_analysis_result(db, payload, self.notifier)
        except ScreeningError as e:
            db.rollback()
            logger.error(f"Could not apply LLM analysis: candidate_id={request.candidate_id}: {e}")
        except Exception as e:
            # Nothing reads the executor future, so this is the only report
            db.rollback()
            logger.error(f"Error storing LLM analysis: candidate_id={request.candidate_id}: {e}", exc_info=True)
        finally:
            db.close()

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)


_gateway: Optional[AnalysisGateway] = None


def build_analysis_gateway(backend: Optional[str] = None) -> AnalysisGateway:
    """Create the gateway selected by ANALYSIS_BACKEND."""
    backend = (backend or config.ANALYSIS_BACKEND).lower()
    if backend == "webhook":
        return WebhookAnalysisGateway()
    if backend == "openai":
        from screener.db.session import get_session_factory
        return OpenAIAnalysisGateway(session_factory=get_session_factory())
    raise ValueError(f"Unknown ANALYSIS_BACKEND: {backend}")


def get_analysis_gateway() -> AnalysisGateway:
    """Analysis gateway dependency (one per process)."""
    global _gateway
    if _gateway is None:
        _gateway = build_analysis_gateway()
        logger.info(f"Analysis gateway ready: {type(_gateway).__name__}")
    return _gateway
