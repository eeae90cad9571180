"""Shared fixtures: in-memory session store, fake core-banking session, ASGI client."""

import os
import tempfile

# settings are read at import time, so point them somewhere harmless first
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="ivr_tools_logs_"))
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CREATE_TABLES_ON_STARTUP"] = "false"
os.environ["IVR_TOOL_KEY"] = ""

from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ivr_tools.clients.poweron import PowerOnResult
from ivr_tools.db.crud import SessionStore
from ivr_tools.db.models import CreditUnion, IvrSession, TenantCredential
from ivr_tools.db.session import init_models


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_models(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db):
    return SessionStore(db)


@pytest.fixture
async def client(session_factory):
    from ivr_tools.api.deps import get_db
    from ivr_tools.app import app

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


# ── Seed helpers ───────────────────────────────────────────────────


async def seed_call_session(db, ucid="UCID-1", ani="8287806176", tenant_id="cu_42", **extra):
    values = {"verified": False, "status": "ringing"}
    values.update(extra)
    db.add(IvrSession(ucid=ucid, ani=ani, tenant_id=tenant_id, **values))
    await db.commit()


async def seed_credit_union(db, cu_id="cu_42", tenant_id="cu_42", **extra):
    values = {
        "name": "Blue Ridge Credit Union",
        "charter_number": "68123",
        "routing_number": "253177049",
        "support_phone": "8005551212",
        "features": {"external_transfers": True},
    }
    values.update(extra)
    db.add(CreditUnion(cu_id=cu_id, tenant_id=tenant_id, **values))
    await db.commit()


async def seed_credentials(db, tenant_key="cu_42", **credentials):
    db.add(TenantCredential(tenant_key=tenant_key, credentials=credentials))
    await db.commit()


# ── Fake core-banking session ──────────────────────────────────────


class FakePowerOnService:
    """Stands in for a PowerOn session; every call is an AsyncMock."""

    def __init__(self):
        self.connect = AsyncMock()
        self.disconnect = AsyncMock()
        self.authenticate_member = AsyncMock(
            return_value=PowerOnResult(success=True, data={"member_id": "M123", "first_name": "Jordan"})
        )
        self.get_accounts = AsyncMock(
            return_value=PowerOnResult(
                success=True,
                data=[
                    {
                        "type": "checking",
                        "account_number": "00001234",
                        "description": None,
                        "balance": 100.0,
                        "available_balance": 90.0,
                    },
                    {
                        "type": "savings",
                        "account_number": "00005678",
                        "description": None,
                        "balance": 250.5,
                    },
                ],
            )
        )
        self.get_transactions = AsyncMock(return_value=PowerOnResult(success=True, data=[]))
        self.transfer_funds = AsyncMock(
            return_value=PowerOnResult(success=True, data={"confirmation_number": "BK000111"})
        )
        self.get_check_status = AsyncMock(
            return_value=PowerOnResult(success=True, data={"status": "pending"})
        )
        self.place_stop_payment = AsyncMock(
            return_value=PowerOnResult(success=True, data={"confirmation_number": "SP42"})
        )


@pytest.fixture
def fake_poweron(monkeypatch):
    fake = FakePowerOnService()
    monkeypatch.setattr("ivr_tools.clients.poweron.create_poweron_service", lambda cfg: fake)
    return fake


async def fetch_rows(session_factory, model):
    """Read a table through a fresh session so earlier identity maps don't leak in."""
    from sqlalchemy import select

    async with session_factory() as s:
        res = await s.execute(select(model))
        return list(res.scalars().all())
