"""
WebSocket API Routes - live job status for asynchronous journal extraction.

Browsers cannot set headers on a websocket handshake, so the bearer token comes
in the query string. The job row is polled until it reaches a terminal state.
"""

import asyncio
import uuid
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.exc import SQLAlchemyError
from starlette.websockets import WebSocketState
from websockets.exceptions import ConnectionClosedOK

from app.config import settings
from app.db_handlers import JobDBHandler, UserDBHandler
from app.schemas import JobResponse
from app.utils.auth import decode_access_token, token_matches_user
from app.utils.logger import setup_logger

logger = setup_logger("api.ws")

router = APIRouter(prefix="/api")


def _status_message(job, request_id: str) -> dict:
    return {
        "type": "job_status",
        "job": JobResponse.from_job(job).model_dump(mode="json", by_alias=True),
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def _send_error(websocket: WebSocket, message: str, request_id: str) -> None:
    await websocket.send_json(
        {
            "type": "error",
            "message": message,
            "request_id": request_id,
            "timestamp": datetime.now(UTC).isoformat(),
        }
    )


@router.websocket("/ws/jobs/{job_id}")
async def websocket_job_status(
    websocket: WebSocket,
    job_id: str,
    token: str | None = Query(None),
    job_db_handler: JobDBHandler = Depends(),
    user_db_handler: UserDBHandler = Depends(),
):
    """
    Stream status changes of an owned job until it completes or fails.

    Unknown jobs and jobs owned by someone else look the same: an error frame
    followed by a close.
    """
    claims = decode_access_token(token) if token else None
    if claims is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    request_id = str(uuid.uuid4())
    logger.info(f"[WS RequestID: {request_id}] Connection established for job {job_id}")

    try:
        user = await user_db_handler.get_user_by_username(claims.username)
        if user is None or not token_matches_user(claims, user.id):
            await _send_error(websocket, "Could not validate credentials", request_id)
            return

        try:
            job_uuid = uuid.UUID(job_id)
        except ValueError:
            await _send_error(websocket, "Invalid job_id format", request_id)
            return

        last_sent = None
        while True:
            job = await job_db_handler.get_owned(job_uuid, user.id)
            if job is None:
                await _send_error(websocket, f"Job {job_id} not found", request_id)
                return

            # Only changes are pushed; attempts count as a change
            fingerprint = (job.status, job.attempts)
            if fingerprint != last_sent:
                await websocket.send_json(_status_message(job, request_id))
                last_sent = fingerprint

            if job.is_terminal:
                logger.info(f"[WS RequestID: {request_id}] Job {job_id} reached {job.status}")
                return

            await asyncio.sleep(settings.ws_poll_interval_seconds)
            if websocket.client_state != WebSocketState.CONNECTED:
                return

    except (WebSocketDisconnect, ConnectionClosedOK):
        logger.info(f"[WS RequestID: {request_id}] Client disconnected while watching job {job_id}")
    except SQLAlchemyError as e:
        logger.error(f"[WS RequestID: {request_id}] Database error watching job {job_id}: {e}", exc_info=True)
        await _send_error(websocket, "Job status is temporarily unavailable", request_id)
    finally:
        if websocket.client_state != WebSocketState.DISCONNECTED:
            try:
                await websocket.close()
            except RuntimeError as e_close:
                logger.warning(f"[WS RequestID: {request_id}] Error during WebSocket close: {e_close}")
        logger.info(f"[WS RequestID: {request_id}] Closed connection for job {job_id}")
