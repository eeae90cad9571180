"""
Outbound call initiation and voice-agent config lookup.

POST /api/ivr/call opens a call session for the target number, audits it,
asks the telephony provider to dial and bridge to the voice agent, and
records the provider's call sid on the session.
GET /api/ivr/config returns the voice-agent config a credit union runs with.
"""

import json
import re
import time
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ivr_tools import config
from ivr_tools.clients import telephony
from ivr_tools.context.voice_config import resolve_voice_config
from ivr_tools.db.crud import SessionStore, utcnow
from ivr_tools.logging_config import get_logger
from .deps import get_db, verify_tool_key
from .schemas import CallRequest, CallStarted

logger = get_logger("ivr_tools.api.call")

router = APIRouter(tags=["ivr-call"])


def _new_ucid() -> str:
    return f"UCID-{int(time.time() * 1000)}-{uuid4().hex[:9]}"


def _fail(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error})


@router.post("/ivr/call", dependencies=[Depends(verify_tool_key)])
async def initiate_call(request: Request, db=Depends(get_db)):
    try:
        payload = json.loads(await request.body() or b"")
        if not isinstance(payload, dict):
            raise ValueError("call request must be a JSON object")
        call_request = CallRequest.model_validate(payload)
    except (ValueError, ValidationError) as e:
        logger.warning("Malformed call request: %s", e)
        return _fail(400, "Malformed request")
    if not (call_request.tenant_id or call_request.cu_id):
        return _fail(400, "tenant_id or cu_id is required")

    store = SessionStore(db)
    cu = await store.get_credit_union(tenant_id=call_request.tenant_id, cu_id=call_request.cu_id)
    if not cu:
        return _fail(404, "Credit union not found")

    voice_config = await resolve_voice_config(cu, store)
    from_number = ((voice_config.get("voice") or {}).get("twilio") or {}).get("phone_number")
    if not (config.TWILIO_ACCOUNT_SID and config.TWILIO_AUTH_TOKEN and from_number):
        return _fail(500, "Twilio credentials not configured")
    if not (config.HUME_API_KEY and config.HUME_CONFIG_ID):
        return _fail(500, "Hume AI credentials not configured")

    target = call_request.to or config.TWILIO_TEST_PHONE
    ani = re.sub(r"\D", "", target)
    ucid = _new_ucid()
    tenant_key = call_request.tenant_id or call_request.cu_id

    member = await store.find_member_by_phone(ani, tenant_id=call_request.tenant_id, cu_id=call_request.cu_id)
    member_id: Optional[str] = member["id"] if member else None

    metadata = {
        "direction": "outbound",
        "target_number": target,
        "hume_config_id": config.HUME_CONFIG_ID,
        "cu_name": cu.get("name"),
    }
    session_id: Optional[str] = None
    try:
        session = await store.create_ivr_session(
            ucid=ucid,
            ani=ani,
            status="initiated",
            member_id=member_id,
            tenant_id=cu.get("tenant_id") or tenant_key,
            cu_id=cu.get("cu_id"),
            metadata=metadata,
        )
        session_id = session["ucid"]
    except Exception as e:
        logger.error("Call session creation failed ucid=%s: %s", ucid, e)

    try:
        await store.insert_audit_log(
            action="ivr.call_initiated",
            result="pending",
            member_id=member_id,
            session_id=session_id,
            metadata={
                "target_number": target,
                "session_id": session_id,
                "tenant_id": tenant_key,
                "cu_name": cu.get("name"),
            },
        )
    except Exception as e:
        logger.warning("Audit write failed for call initiation ucid=%s: %s", ucid, e)

    logger.info("Initiating %s call session=%s voice_config=%s", cu.get("name"), ucid, config.HUME_CONFIG_ID)
    try:
        call = await telephony.create_telephony_client().place_call(
            to=target,
            from_=from_number,
            url=telephony.voice_agent_url(config.HUME_CONFIG_ID, config.HUME_API_KEY),
        )
    except telephony.TelephonyError as e:
        return _fail(500, str(e))

    if session_id:
        try:
            await store.update_ivr_session(
                session_id,
                call_sid=call["sid"],
                metadata={**metadata, "call_sid": call["sid"]},
                updated_at=utcnow(),
            )
        except Exception as e:
            logger.error("Could not record call sid=%s on ucid=%s: %s", call["sid"], session_id, e)

    body = CallStarted(
        call_sid=call["sid"],
        session_id=session_id,
        status=call.get("status"),
        to=target,
        from_number=from_number,
        member_recognized=member_id is not None,
        cu_name=cu.get("name"),
        voice_config_id=config.HUME_CONFIG_ID,
    )
    return body.model_dump()


@router.get("/ivr/config", dependencies=[Depends(verify_tool_key)])
async def get_voice_config(tenant_id: Optional[str] = None, cu_id: Optional[str] = None, db=Depends(get_db)):
    store = SessionStore(db)
    cu = await store.get_credit_union(tenant_id=tenant_id, cu_id=cu_id)
    if not cu:
        return _fail(404, "Credit union not found")
    return await resolve_voice_config(cu, store)
