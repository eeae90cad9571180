# Session-store tables shared with the admin console.
from uuid import uuid4

from sqlalchemy import Column, String, Boolean, DateTime, Numeric, Float, JSON
from sqlalchemy.sql import func

from ivr_tools.db.session import Base


def _uuid() -> str:
    return str(uuid4())


class IvrSession(Base):
    __tablename__ = "ivr_sessions"

    # call identifier issued when the call is placed (UCID)
    ucid = Column(String(64), primary_key=True)
    ani = Column(String(20))
    member_id = Column(String(64))
    verified = Column(Boolean, default=False)
    tenant_id = Column(String(64))
    cu_id = Column(String(64))
    call_sid = Column(String(64))
    status = Column(String(20))
    metadata_json = Column("metadata", JSON)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    ended_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))


class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(String(36), primary_key=True, default=_uuid)
    session_id = Column(String(64))
    member_id = Column(String(64))
    action = Column(String(100), nullable=False)
    channel = Column(String(20), default="ivr")
    result = Column(String(20))
    metadata_json = Column("metadata", JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TravelNotification(Base):
    __tablename__ = "travel_notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    member_id = Column(String(64), nullable=False)
    destination = Column(String(255))
    start_date = Column(String(20))
    end_date = Column(String(20))
    status = Column(String(20))
    tenant_id = Column(String(64))
    created_at = Column(DateTime(timezone=True))


class StatementRequest(Base):
    __tablename__ = "statement_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    member_id = Column(String(64), nullable=False)
    account_type = Column(String(30))
    account_suffix = Column(String(10))
    delivery_method = Column(String(20))
    statement_period = Column(String(30))
    status = Column(String(20))
    tenant_id = Column(String(64))
    requested_at = Column(DateTime(timezone=True))


class CreditLimitRequest(Base):
    __tablename__ = "credit_limit_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    member_id = Column(String(64), nullable=False)
    card_last_four = Column(String(4))
    requested_limit = Column(Numeric(15, 2))
    request_id = Column(String(20), unique=True)
    status = Column(String(20))
    tenant_id = Column(String(64))
    requested_at = Column(DateTime(timezone=True))


class BiometricSetting(Base):
    __tablename__ = "biometric_settings"

    user_id = Column(String(64), primary_key=True)
    enrolled = Column(Boolean, default=False)
    enrolled_date = Column(DateTime(timezone=True))
    last_updated = Column(DateTime(timezone=True))
    tenant_id = Column(String(64))


class CreditUnion(Base):
    __tablename__ = "credit_unions"

    cu_id = Column(String(64), primary_key=True)
    tenant_id = Column(String(64), unique=True)
    name = Column(String(255))
    charter_number = Column(String(20))
    routing_number = Column(String(9))
    support_phone = Column(String(20))
    # feature flags, e.g. {"external_transfers": true, "voice_biometrics": false}
    features = Column(JSON)
    timezone = Column(String(64))
    domain = Column(String(255))
    # caller id for outbound calls placed by the voice agent
    twilio_phone_number = Column(String(20))
    # e.g. {"has_mortgages": true, "has_crypto": false}
    products = Column(JSON)
    # e.g. {"tone": "friendly", "community_focused": true, "values": ["transparency"]}
    culture = Column(JSON)


class CuIvrConfig(Base):
    __tablename__ = "cu_ivr_configs"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64))
    cu_id = Column(String(64))
    config = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True))


class Member(Base):
    __tablename__ = "members"

    id = Column(String(64), primary_key=True, default=_uuid)
    consumer_id = Column(String(64))
    tenant_id = Column(String(64))
    cu_id = Column(String(64))
    # digits only
    phone = Column(String(20))
    first_name = Column(String(100))
    last_name = Column(String(100))
    membership_status = Column(String(20))


class TenantCredential(Base):
    __tablename__ = "tenant_credentials"

    tenant_key = Column(String(64), primary_key=True)
    credentials = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True))


class ConversationMessage(Base):
    __tablename__ = "conversation_messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    session_id = Column(String(64), nullable=False)
    role = Column(String(20))
    content = Column(String)
    timestamp = Column(String(40))
    tenant_id = Column(String(64))
    metadata_json = Column("metadata", JSON)


class EmotionTracking(Base):
    __tablename__ = "emotion_tracking"

    id = Column(String(36), primary_key=True, default=_uuid)
    session_id = Column(String(64), nullable=False)
    dominant_emotion = Column(String(40))
    confidence = Column(Float)
    all_emotions = Column(JSON)
    timestamp = Column(String(40))
    tenant_id = Column(String(64))
