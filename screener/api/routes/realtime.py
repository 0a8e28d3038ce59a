"""
Realtime candidate updates over WebSocket.

Clients connect to /ws/jobs/{job_id}?token=<access token> and receive an
UPDATE event with the full candidate row whenever a candidate of that job
changes (analysis finished, edited, dispatch failed).
"""
import asyncio
import logging
from typing import Callable
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from screener.core.auth_dependency import get_account_by_email
from screener.core.exceptions import JobNotFound
from screener.core.security import decode_access_token
from screener.db.session import get_session_factory
from screener.services.candidate_store import CandidateStore
from screener.services.realtime import CandidateChangeNotifier, get_notifier

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

SUBSCRIBED_EVENT = "SUBSCRIBED"


def _authorize(session_factory: Callable, token: str, job_id: int) -> bool:
    email = decode_access_token(token) if token else None
    if email is None:
        return False

    db = session_factory()
    try:
        account = get_account_by_email(email, db)
        if not account:
            return False
        CandidateStore(db, account.id).get_job(job_id)
        return True
    except JobNotFound:
        return False
    finally:
        db.close()


@router.websocket("/ws/jobs/{job_id}")
async def job_updates(
    websocket: WebSocket,
    job_id: int,
    token: str = Query(None),
    session_factory: Callable = Depends(get_session_factory),
    notifier: CandidateChangeNotifier = Depends(get_notifier),
):
    await websocket.accept()

    if not await asyncio.to_thread(_authorize, session_factory, token, job_id):
        await websocket.send_json({"event": "ERROR", "detail": "Not authorized for this job"})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    queue: asyncio.Queue = asyncio.Queue()
    subscription = notifier.subscribe_queue(job_id, queue)

    async def forward_updates():
        while True:
            event = await queue.get()
            await websocket.send_json(event)

    async def watch_client():
        # Incoming messages are ignored; this only notices the disconnect
        while True:
            await websocket.receive_text()

    try:
        await websocket.send_json({"event": SUBSCRIBED_EVENT, "job_id": job_id})
        logger.info(f"Realtime client subscribed: job_id={job_id}")

        tasks = {asyncio.create_task(forward_updates()), asyncio.create_task(watch_client())}
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            error = task.exception()
            if error and not isinstance(error, WebSocketDisconnect):
                logger.warning(f"Realtime connection error: job_id={job_id}: {error}")
    except WebSocketDisconnect:
        pass
    finally:
        subscription.close()
        logger.info(f"Realtime client disconnected: job_id={job_id}")
