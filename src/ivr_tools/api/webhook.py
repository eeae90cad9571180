"""
Voice platform lifecycle events.

The platform posts conversation lifecycle, transcript, emotion and error
events here. Every known event is recorded in the session store; unknown
event types are logged and acknowledged.
"""

import json
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ivr_tools import __version__
from ivr_tools.db.crud import SessionStore, utcnow
from ivr_tools.logging_config import get_logger
from .deps import get_db, verify_tool_key
from .schemas import WebhookEvent

logger = get_logger("ivr_tools.api.webhook")

router = APIRouter(tags=["ivr-webhook"])

HIGH_FRUSTRATION_EMOTIONS = {"frustration", "anger"}
HIGH_FRUSTRATION_CONFIDENCE = 0.7

WEBHOOK_FAILED = {"error": "Webhook processing failed"}


def _parse_ts(value: Optional[str]) -> datetime:
    if not value:
        return utcnow()
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


async def on_conversation_started(event: WebhookEvent, store: SessionStore) -> None:
    logger.info("Conversation started call_sid=%s", event.call_sid)
    if event.session_id:
        session = await store.get_ivr_session(event.session_id)
        metadata = dict((session or {}).get("metadata") or {})
        metadata.update(event.data or {})
        metadata["conversation_started"] = event.timestamp
        await store.update_ivr_session(
            event.session_id,
            metadata=metadata,
            status="active",
            updated_at=utcnow(),
        )

    await store.insert_audit_log(
        action="ivr.conversation_started",
        result="success",
        session_id=event.session_id,
        metadata={
            "call_sid": event.call_sid,
            "event_data": event.data,
            "tenant_id": event.tenant_id,
            "cu_id": event.cu_id,
        },
    )


async def on_conversation_ended(event: WebhookEvent, store: SessionStore) -> None:
    logger.info("Conversation ended call_sid=%s data=%s", event.call_sid, event.data)
    if event.session_id:
        session = await store.get_ivr_session(event.session_id)
        if session:
            ended_at = _parse_ts(event.timestamp)
            duration = None
            if session.get("started_at"):
                duration = int((ended_at - _parse_ts(session["started_at"])).total_seconds())
            metadata = dict(session.get("metadata") or {})
            metadata.update(
                {
                    "conversation_ended": event.timestamp,
                    "call_duration_seconds": duration,
                    "end_reason": (event.data or {}).get("reason"),
                }
            )
            await store.update_ivr_session(
                event.session_id,
                ended_at=ended_at,
                status="completed",
                metadata=metadata,
                updated_at=utcnow(),
            )

    await store.insert_audit_log(
        action="ivr.conversation_ended",
        result="success",
        session_id=event.session_id,
        metadata={
            "call_sid": event.call_sid,
            "event_data": event.data,
            "tenant_id": event.tenant_id,
            "cu_id": event.cu_id,
        },
    )


async def on_tool_call(event: WebhookEvent, store: SessionStore) -> None:
    data = event.data or {}
    tool_name = data.get("tool_name")
    result = data.get("result") or {}
    logger.info("Tool called: %s", tool_name)

    await store.insert_audit_log(
        action=f"tool.{tool_name}",
        result="success" if isinstance(result, dict) and result.get("success") else "failure",
        session_id=event.session_id,
        metadata={
            "tool_name": tool_name,
            "parameters": data.get("parameters"),
            "result": result,
            "tenant_id": event.tenant_id,
            "cu_id": event.cu_id,
        },
    )


async def on_user_message(event: WebhookEvent, store: SessionStore) -> None:
    transcript = (event.data or {}).get("transcript")
    if event.session_id and transcript:
        await store.insert_conversation_message(
            session_id=event.session_id,
            role="user",
            content=transcript,
            timestamp=event.timestamp,
            tenant_id=event.tenant_id,
            metadata=event.data,
        )


async def on_assistant_message(event: WebhookEvent, store: SessionStore) -> None:
    response = (event.data or {}).get("response")
    if event.session_id and response:
        await store.insert_conversation_message(
            session_id=event.session_id,
            role="assistant",
            content=response,
            timestamp=event.timestamp,
            tenant_id=event.tenant_id,
            metadata=event.data,
        )


async def on_emotion_detected(event: WebhookEvent, store: SessionStore) -> None:
    data = event.data or {}
    dominant = data.get("dominant_emotion")
    confidence = data.get("confidence")
    logger.info("Emotion detected: %s (%s)", dominant, confidence)
    if not event.session_id:
        return

    await store.insert_emotion(
        session_id=event.session_id,
        dominant_emotion=dominant,
        confidence=confidence,
        all_emotions=data.get("emotions"),
        timestamp=event.timestamp,
        tenant_id=event.tenant_id,
    )

    if dominant in HIGH_FRUSTRATION_EMOTIONS and (confidence or 0) > HIGH_FRUSTRATION_CONFIDENCE:
        logger.warning("High frustration detected session=%s - flagging for review", event.session_id)
        await store.insert_audit_log(
            action="emotion.high_frustration",
            result="warning",
            session_id=event.session_id,
            metadata={
                "dominant_emotion": dominant,
                "confidence": confidence,
                "tenant_id": event.tenant_id,
            },
        )


async def on_error(event: WebhookEvent, store: SessionStore) -> None:
    data = event.data or {}
    logger.error("Voice platform error event: %s %s", data.get("error_type"), data.get("message"))
    await store.insert_audit_log(
        action="ivr.error",
        result="error",
        session_id=event.session_id,
        metadata={
            "error_type": data.get("error_type"),
            "message": data.get("message"),
            "event_data": data,
            "tenant_id": event.tenant_id,
            "cu_id": event.cu_id,
        },
    )


EVENT_HANDLERS: Dict[str, Callable[[WebhookEvent, SessionStore], Awaitable[None]]] = {
    "conversation.started": on_conversation_started,
    "conversation.ended": on_conversation_ended,
    "tool.call": on_tool_call,
    "message.user": on_user_message,
    "message.assistant": on_assistant_message,
    "emotion.detected": on_emotion_detected,
    "error": on_error,
}


@router.post("/ivr/webhook", dependencies=[Depends(verify_tool_key)])
async def receive_event(request: Request, db=Depends(get_db)):
    try:
        payload = json.loads(await request.body() or b"")
        if not isinstance(payload, dict):
            raise ValueError("event must be a JSON object")
        event = WebhookEvent.model_validate(payload)
    except ValueError as e:
        logger.warning("Malformed webhook event: %s", e)
        return JSONResponse(status_code=400, content=WEBHOOK_FAILED)

    logger.info("Event received: %s session=%s", event.type, event.session_id)
    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.info("Unhandled event type: %s", event.type)
        return {"acknowledged": True}

    try:
        await handler(event, SessionStore(db))
    except Exception as e:
        logger.exception("Webhook processing failed for %s: %s", event.type, e)
        return JSONResponse(status_code=500, content=WEBHOOK_FAILED)
    return {"acknowledged": True}


@router.get("/ivr/webhook")
async def webhook_status():
    return {
        "service": "CU IVR Webhook",
        "status": "operational",
        "version": __version__,
    }
