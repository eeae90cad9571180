"""
Call context resolution.

The context starts from the identifiers on the tool invocation and is
supplemented with the persisted call session (ANI, member id, verification
state) when one exists for the session id.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel

from ivr_tools.db.crud import SessionStore
from ivr_tools.logging_config import get_logger

logger = get_logger("ivr_tools.context.call_context")


class CallContext(BaseModel):
    session_id: Optional[str] = None
    call_sid: Optional[str] = None
    tenant_id: Optional[str] = None
    cu_id: Optional[str] = None
    # caller phone number (ANI) from the call session
    ani: Optional[str] = None
    member_id: Optional[str] = None
    verified: bool = False

    def merge_session(self, session: Dict[str, Any]) -> "CallContext":
        """
        Fill empty fields from a call-session row; request values win.
        """
        for field in type(self).model_fields:
            current = getattr(self, field)
            incoming = session.get(field)
            if incoming in (None, ""):
                continue
            if field == "verified":
                self.verified = self.verified or bool(incoming)
            elif current in (None, ""):
                setattr(self, field, incoming)
        return self


async def resolve_call_context(
    session_id: Optional[str],
    call_sid: Optional[str],
    tenant_id: Optional[str],
    cu_id: Optional[str],
    store: SessionStore,
) -> CallContext:
    context = CallContext(session_id=session_id, call_sid=call_sid, tenant_id=tenant_id, cu_id=cu_id)
    if not session_id:
        return context

    try:
        session = await store.get_ivr_session(session_id)
    except Exception as e:
        logger.warning("Call session lookup failed ucid=%s: %s", session_id, e)
        await store.rollback()
        return context

    if session:
        context.merge_session(session)
    else:
        logger.info("No call session found for ucid=%s", session_id)
    return context
