"""
Session-store operations used by the tool router.

The router only ever needs a handful of narrow reads and writes, so they are
collected on ``SessionStore`` instead of leaking ORM queries into handlers.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ivr_tools.db.models import (
    AuditLog,
    BiometricSetting,
    ConversationMessage,
    CreditLimitRequest,
    CreditUnion,
    CuIvrConfig,
    EmotionTracking,
    IvrSession,
    Member,
    StatementRequest,
    TenantCredential,
    TravelNotification,
)
from ivr_tools.logging_config import get_logger

logger = get_logger("ivr_tools.db.crud")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def serialize_ivr_session(s: IvrSession) -> Dict[str, Any]:
    return {
        "ucid": s.ucid,
        "ani": s.ani,
        "member_id": s.member_id,
        "verified": bool(s.verified),
        "tenant_id": s.tenant_id,
        "cu_id": s.cu_id,
        "call_sid": s.call_sid,
        "status": s.status,
        "metadata": s.metadata_json or {},
        "started_at": s.started_at.isoformat() if getattr(s, "started_at", None) else None,
        "ended_at": s.ended_at.isoformat() if getattr(s, "ended_at", None) else None,
        "updated_at": s.updated_at.isoformat() if getattr(s, "updated_at", None) else None,
    }


def serialize_credit_union(c: CreditUnion) -> Dict[str, Any]:
    return {
        "cu_id": c.cu_id,
        "tenant_id": c.tenant_id,
        "name": c.name,
        "charter_number": c.charter_number,
        "routing_number": c.routing_number,
        "support_phone": c.support_phone,
        "features": c.features or {},
        "timezone": c.timezone,
        "domain": c.domain,
        "twilio_phone_number": c.twilio_phone_number,
        "products": c.products,
        "culture": c.culture,
    }


class SessionStore:
    """
    Thin async facade over the session-store tables.

    Writes commit immediately; there is no optimistic locking, so concurrent
    updates to the same call session are last-write-wins.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except Exception as e:
            logger.warning("Session store commit failed, rolling back: %s", e)
            await self.db.rollback()
            raise

    async def rollback(self) -> None:
        """
        Discard a failed read so the session can be used again.
        """
        try:
            await self.db.rollback()
        except Exception as e:
            logger.warning("Session store rollback failed: %s", e)

    # ------------------------------------------------------------------
    # Call sessions
    # ------------------------------------------------------------------
    async def get_ivr_session(self, ucid: str) -> Optional[Dict[str, Any]]:
        stmt = select(IvrSession).where(IvrSession.ucid == ucid)
        res = await self.db.execute(stmt)
        row = res.scalars().first()
        return serialize_ivr_session(row) if row else None

    async def create_ivr_session(
        self,
        ucid: str,
        ani: str,
        status: str,
        member_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        cu_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        row = IvrSession(
            ucid=ucid,
            ani=ani,
            member_id=member_id,
            verified=False,
            tenant_id=tenant_id,
            cu_id=cu_id,
            status=status,
            metadata_json=metadata or {},
            started_at=utcnow(),
        )
        self.db.add(row)
        await self._commit()
        return serialize_ivr_session(row)

    async def update_ivr_session(self, ucid: str, **values: Any) -> bool:
        """
        Update an existing call session. Returns False when no row matched.
        """
        if "metadata" in values:
            values["metadata_json"] = values.pop("metadata")
        columns = {getattr(IvrSession, key): value for key, value in values.items()}
        stmt = update(IvrSession).where(IvrSession.ucid == ucid).values(columns)
        res = await self.db.execute(stmt)
        await self._commit()
        return (res.rowcount or 0) > 0

    # ------------------------------------------------------------------
    # Tenant lookups
    # ------------------------------------------------------------------
    async def get_tenant_credentials(self, tenant_key: str) -> Optional[Dict[str, Any]]:
        row = await self.db.get(TenantCredential, tenant_key)
        return dict(row.credentials or {}) if row else None

    async def get_credit_union(
        self, tenant_id: Optional[str] = None, cu_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        if tenant_id:
            stmt = select(CreditUnion).where(CreditUnion.tenant_id == tenant_id)
        elif cu_id:
            stmt = select(CreditUnion).where(CreditUnion.cu_id == cu_id)
        else:
            return None
        res = await self.db.execute(stmt)
        row = res.scalars().first()
        return serialize_credit_union(row) if row else None

    async def get_ivr_config(
        self, tenant_id: Optional[str] = None, cu_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Stored voice-agent config for a credit union, if one was saved.
        """
        if tenant_id:
            stmt = select(CuIvrConfig).where(CuIvrConfig.tenant_id == tenant_id)
        elif cu_id:
            stmt = select(CuIvrConfig).where(CuIvrConfig.cu_id == cu_id)
        else:
            return None
        res = await self.db.execute(stmt)
        row = res.scalars().first()
        return dict(row.config) if row and row.config else None

    async def find_member_by_phone(
        self, phone: str, tenant_id: Optional[str] = None, cu_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        stmt = select(Member).where(Member.phone == phone)
        if tenant_id:
            stmt = stmt.where(Member.tenant_id == tenant_id)
        elif cu_id:
            stmt = stmt.where(Member.cu_id == cu_id)
        res = await self.db.execute(stmt)
        row = res.scalars().first()
        if not row:
            return None
        return {
            "id": row.id,
            "consumer_id": row.consumer_id,
            "first_name": row.first_name,
            "last_name": row.last_name,
            "membership_status": row.membership_status,
        }

    # ------------------------------------------------------------------
    # Audit + back-office requests
    # ------------------------------------------------------------------
    async def insert_audit_log(
        self,
        action: str,
        result: str,
        metadata: Optional[Dict[str, Any]] = None,
        member_id: Optional[str] = None,
        session_id: Optional[str] = None,
        channel: str = "ivr",
    ) -> None:
        self.db.add(
            AuditLog(
                session_id=session_id,
                member_id=member_id,
                action=action,
                channel=channel,
                result=result,
                metadata_json=metadata or {},
            )
        )
        await self._commit()

    async def insert_travel_notification(
        self,
        member_id: str,
        destination: str,
        start_date: str,
        end_date: str,
        tenant_id: Optional[str] = None,
    ) -> None:
        self.db.add(
            TravelNotification(
                member_id=member_id,
                destination=destination,
                start_date=start_date,
                end_date=end_date,
                status="active",
                tenant_id=tenant_id,
                created_at=utcnow(),
            )
        )
        await self._commit()

    async def insert_statement_request(
        self,
        member_id: str,
        account_type: str,
        account_suffix: str,
        delivery_method: str,
        statement_period: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> None:
        self.db.add(
            StatementRequest(
                member_id=member_id,
                account_type=account_type,
                account_suffix=account_suffix,
                delivery_method=delivery_method,
                statement_period=statement_period,
                status="pending",
                tenant_id=tenant_id,
                requested_at=utcnow(),
            )
        )
        await self._commit()

    async def insert_credit_limit_request(
        self,
        member_id: str,
        card_last_four: str,
        requested_limit: float,
        request_id: str,
        tenant_id: Optional[str] = None,
    ) -> None:
        self.db.add(
            CreditLimitRequest(
                member_id=member_id,
                card_last_four=card_last_four,
                requested_limit=requested_limit,
                request_id=request_id,
                status="pending_review",
                tenant_id=tenant_id,
                requested_at=utcnow(),
            )
        )
        await self._commit()

    async def upsert_biometric_setting(
        self, user_id: str, enrolled: bool, tenant_id: Optional[str] = None
    ) -> None:
        now = utcnow()
        row = await self.db.get(BiometricSetting, user_id)
        if row is None:
            row = BiometricSetting(user_id=user_id)
            self.db.add(row)
        row.enrolled = enrolled
        row.enrolled_date = now if enrolled else None
        row.last_updated = now
        row.tenant_id = tenant_id
        await self._commit()

    # ------------------------------------------------------------------
    # Conversation analytics (event webhook)
    # ------------------------------------------------------------------
    async def insert_conversation_message(
        self,
        session_id: str,
        role: str,
        content: str,
        timestamp: Optional[str] = None,
        tenant_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.db.add(
            ConversationMessage(
                session_id=session_id,
                role=role,
                content=content,
                timestamp=timestamp,
                tenant_id=tenant_id,
                metadata_json=metadata or {},
            )
        )
        await self._commit()

    async def insert_emotion(
        self,
        session_id: str,
        dominant_emotion: Optional[str],
        confidence: Optional[float],
        all_emotions: Any = None,
        timestamp: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> None:
        self.db.add(
            EmotionTracking(
                session_id=session_id,
                dominant_emotion=dominant_emotion,
                confidence=confidence,
                all_emotions=all_emotions,
                timestamp=timestamp,
                tenant_id=tenant_id,
            )
        )
        await self._commit()
