"""End-to-end tests for POST/GET /api/ivr/tools through the ASGI app."""

import dataclasses
import re

import pytest

from conftest import fetch_rows, seed_call_session, seed_credentials, seed_credit_union
from ivr_tools.api.schemas import (
    INVALID_PARAMETERS_MESSAGE,
    MALFORMED_REQUEST_MESSAGE,
    TOOL_FAILED_MESSAGE,
    UNKNOWN_TOOL_MESSAGE,
)
from ivr_tools.clients.poweron import PowerOnResult
from ivr_tools.db.models import (
    AuditLog,
    BiometricSetting,
    CreditLimitRequest,
    IvrSession,
    StatementRequest,
    TravelNotification,
)
from ivr_tools.tools.registry import TOOL_HANDLERS, ToolName


async def call_tool(client, tool_name, parameters=None, **ids):
    body = {"tool_name": tool_name, "parameters": parameters or {}}
    body.update(ids)
    return await client.post("/api/ivr/tools", json=body)


# ── Decode / dispatch failures ─────────────────────────────────────


class TestRequestErrors:

    async def test_unknown_tool_is_400(self, client):
        r = await call_tool(client, "fly_to_the_moon")
        assert r.status_code == 400
        assert r.json() == {"error": "Unknown tool: fly_to_the_moon", "message": UNKNOWN_TOOL_MESSAGE}

    async def test_tool_names_are_case_sensitive(self, client):
        r = await call_tool(client, "Get_Account_Balances", {"member_id": "100234"})
        assert r.status_code == 400
        assert r.json()["error"] == "Unknown tool: Get_Account_Balances"

    async def test_unparsable_body_is_400(self, client):
        r = await client.post(
            "/api/ivr/tools", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert r.status_code == 400
        assert r.json() == {"error": "Malformed request", "message": MALFORMED_REQUEST_MESSAGE}

    async def test_missing_tool_name_is_400(self, client):
        r = await client.post("/api/ivr/tools", json={"parameters": {}})
        assert r.status_code == 400
        assert r.json()["error"] == "Malformed request"

    async def test_non_object_body_is_400(self, client):
        r = await client.post("/api/ivr/tools", json=["get_account_balances"])
        assert r.status_code == 400
        assert r.json()["error"] == "Malformed request"

    async def test_missing_parameter_is_400_with_details(self, client):
        r = await call_tool(client, "get_account_balances", {})
        assert r.status_code == 400
        body = r.json()
        assert body["error"] == "Invalid parameters for get_account_balances"
        assert body["message"] == INVALID_PARAMETERS_MESSAGE
        assert [d["field"] for d in body["details"]] == ["member_id"]

    async def test_non_positive_amount_is_rejected(self, client, fake_poweron):
        r = await call_tool(
            client,
            "transfer_funds",
            {
                "member_id": "100234",
                "from_account_type": "savings",
                "from_account_suffix": "0000",
                "to_account_type": "checking",
                "to_account_suffix": "0001",
                "amount": -5,
            },
        )
        assert r.status_code == 400
        assert any(d["field"] == "amount" for d in r.json()["details"])
        fake_poweron.connect.assert_not_awaited()

    async def test_null_parameters_treated_as_empty(self, client):
        r = await client.post("/api/ivr/tools", json={"tool_name": "find_atm_branch", "parameters": None})
        # still dispatched; fails on the missing zip code, not on decoding
        assert r.status_code == 400
        assert r.json()["error"] == "Invalid parameters for find_atm_branch"

    async def test_handler_exception_is_500(self, client, monkeypatch):
        async def boom(*args, **kwargs):
            raise RuntimeError("handler bug")

        spec = TOOL_HANDLERS[ToolName.FIND_ATM_BRANCH]
        monkeypatch.setitem(TOOL_HANDLERS, ToolName.FIND_ATM_BRANCH, dataclasses.replace(spec, handler=boom))

        r = await call_tool(client, "find_atm_branch", {"zip_code": "28801"})
        assert r.status_code == 500
        assert r.json() == {"error": "Tool execution failed", "message": TOOL_FAILED_MESSAGE}


# ── Tool key ───────────────────────────────────────────────────────


class TestToolKey:

    async def test_rejects_missing_key_when_configured(self, client, monkeypatch):
        monkeypatch.setattr("ivr_tools.config.IVR_TOOL_KEY", "s3cret")
        r = await call_tool(client, "find_atm_branch", {"zip_code": "28801"})
        assert r.status_code == 401

    async def test_rejects_wrong_key(self, client, monkeypatch):
        monkeypatch.setattr("ivr_tools.config.IVR_TOOL_KEY", "s3cret")
        r = await client.post(
            "/api/ivr/tools",
            json={"tool_name": "find_atm_branch", "parameters": {"zip_code": "28801"}},
            headers={"X-IVR-Tool-Key": "nope"},
        )
        assert r.status_code == 401

    async def test_accepts_matching_key(self, client, monkeypatch):
        monkeypatch.setattr("ivr_tools.config.IVR_TOOL_KEY", "s3cret")
        r = await client.post(
            "/api/ivr/tools",
            json={"tool_name": "find_atm_branch", "parameters": {"zip_code": "28801"}},
            headers={"X-IVR-Tool-Key": "s3cret"},
        )
        assert r.status_code == 200


# ── Happy paths against the mock core ──────────────────────────────


class TestToolsOnMockCore:
    """Tenants without stored credentials are served by the demo core."""

    async def test_authenticate_marks_call_session_verified(self, client, db, session_factory):
        await seed_call_session(db, ucid="UCID-7", ani="+1 (828) 780-6176")

        r = await call_tool(client, "authenticate_member", {"pin": "1234"}, session_id="UCID-7", tenant_id="cu_42")
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["tool"] == "authenticate_member"
        assert body["result"]["authenticated"] is True
        assert body["result"]["member_id"] == "100234"
        assert body["result"]["message"].startswith("Welcome back, Jordan!")

        rows = await fetch_rows(session_factory, IvrSession)
        assert rows[0].verified is True
        assert rows[0].member_id == "100234"

    async def test_authenticate_wrong_pin(self, client, db):
        await seed_call_session(db, ucid="UCID-8")
        r = await call_tool(client, "authenticate_member", {"pin": "0000"}, session_id="UCID-8")
        assert r.status_code == 200
        assert r.json()["result"] == {
            "authenticated": False,
            "message": "Authentication failed. Please verify your PIN.",
        }

    async def test_authenticate_without_call_session(self, client):
        r = await call_tool(client, "authenticate_member", {"pin": "1234"}, session_id="UCID-missing")
        assert r.status_code == 200
        assert r.json()["result"]["authenticated"] is False
        assert "phone number" in r.json()["result"]["message"]

    async def test_pin_accepted_as_number(self, client, db):
        await seed_call_session(db, ucid="UCID-9")
        r = await call_tool(client, "authenticate_member", {"pin": 1234}, session_id="UCID-9")
        assert r.json()["result"]["authenticated"] is True

    async def test_balances(self, client):
        r = await call_tool(client, "get_account_balances", {"member_id": "100234"})
        result = r.json()["result"]
        assert [a["suffix"] for a in result["accounts"]] == ["0001", "0000"]
        assert "Your Share Draft Checking ending in 0001 has a balance of $2450.75" in result["message"]
        assert result["message"].endswith("Would you like to hear details about any specific account?")

    async def test_transactions(self, client):
        r = await call_tool(
            client, "get_account_transactions", {"member_id": "100234", "account_type": "checking"}
        )
        result = r.json()["result"]
        assert result["count"] == 8
        assert result["summary"].count(" for $") == 5
        assert result["message"].startswith("Here are your recent transactions: Payroll Deposit for $1850.00")

    async def test_transactions_window(self, client):
        r = await call_tool(client, "get_account_transactions", {"member_id": "100234", "days_back": 3})
        assert r.json()["result"]["count"] == 2

    async def test_transfer(self, client):
        r = await call_tool(
            client,
            "transfer_funds",
            {
                "member_id": "100234",
                "from_account_type": "savings",
                "from_account_suffix": "0000",
                "to_account_type": "checking",
                "to_account_suffix": "0001",
                "amount": 50,
            },
        )
        result = r.json()["result"]
        assert result["success"] is True
        assert result["confirmation_number"].startswith("TXF")
        assert "I've moved $50.00 from your savings to your checking" in result["message"]

    async def test_transfer_over_limit(self, client):
        r = await call_tool(
            client,
            "transfer_funds",
            {
                "member_id": "100234",
                "from_account_type": "savings",
                "from_account_suffix": "0000",
                "to_account_type": "checking",
                "to_account_suffix": "0001",
                "amount": 25000,
            },
        )
        result = r.json()["result"]
        assert result["success"] is False
        assert result["message"] == "I couldn't complete that transfer. The amount exceeds your available balance."

    async def test_report_lost_card_writes_audit(self, client, session_factory):
        r = await call_tool(
            client,
            "report_lost_card",
            {"member_id": "100234", "card_type": "debit", "last_four": "4242", "reason": "lost"},
            session_id="UCID-1",
        )
        result = r.json()["result"]
        assert re.match(r"^CARD\d{8}$", result["confirmation_number"])
        assert "your debit card ending in 4242" in result["message"]

        rows = await fetch_rows(session_factory, AuditLog)
        assert [row.action for row in rows] == ["card.report_lost"]
        assert rows[0].metadata_json["confirmation_number"] == result["confirmation_number"]

    async def test_routing_info_uses_credit_union_config(self, client, db):
        await seed_credit_union(db)
        r = await call_tool(
            client,
            "get_routing_info",
            {"member_id": "100234", "account_type": "checking", "account_suffix": "0001"},
            tenant_id="cu_42",
        )
        result = r.json()["result"]
        assert result["routing_number"] == "253177049"
        assert result["account_number"] == "****0001"
        assert "the Blue Ridge Credit Union routing number is 2 5 3 1 7 7 0 4 9" in result["message"]

    async def test_travel_notification(self, client, session_factory):
        r = await call_tool(
            client,
            "set_travel_notification",
            {"member_id": "100234", "destination": "Lisbon", "start_date": "2024-06-01", "end_date": "2024-06-14"},
            tenant_id="cu_42",
        )
        assert r.json()["result"]["success"] is True
        rows = await fetch_rows(session_factory, TravelNotification)
        assert len(rows) == 1
        assert rows[0].status == "active"
        assert rows[0].tenant_id == "cu_42"

    @pytest.mark.parametrize(
        "check_number,status,phrase",
        [
            ("1001", "cleared", "has cleared on 5/2/2024 for $125.00"),
            ("1002", "pending", "is pending"),
            ("1003", "stopped", "has a stop payment"),
            ("9999", "unknown", "I don't have any record of check number 9999"),
        ],
    )
    async def test_check_status(self, client, check_number, status, phrase):
        r = await call_tool(
            client,
            "check_status_inquiry",
            {"member_id": "100234", "check_number": check_number, "account_suffix": "0001"},
        )
        result = r.json()["result"]
        assert result["status"] == status
        assert phrase in result["message"]

    async def test_stop_payment(self, client):
        r = await call_tool(
            client,
            "stop_payment",
            {"member_id": "100234", "check_number": 1002, "account_suffix": "0001", "amount": 60},
        )
        result = r.json()["result"]
        assert result["success"] is True
        assert result["confirmation_number"].startswith("SP")
        assert "stop payment on check number 1002 for $60.00" in result["message"]

    async def test_find_atm_branch(self, client):
        r = await call_tool(client, "find_atm_branch", {"zip_code": "28801", "location_type": "ATM"})
        result = r.json()["result"]
        assert result["count"] == 2
        assert {l["type"] for l in result["locations"]} == {"atm"}

    async def test_request_statement(self, client, session_factory):
        r = await call_tool(
            client,
            "request_statement",
            {
                "member_id": "100234",
                "account_type": "savings",
                "account_suffix": "0000",
                "delivery_method": "mail",
                "statement_period": "2024-01",
            },
        )
        assert r.json()["result"]["message"] == (
            "I've requested your savings statement for 2024-01. "
            "It will be mailed to your address on file within 5-7 business days."
        )
        rows = await fetch_rows(session_factory, StatementRequest)
        assert rows[0].status == "pending"

    async def test_update_credit_limit(self, client, session_factory):
        r = await call_tool(
            client,
            "update_credit_limit",
            {"member_id": "100234", "card_last_four": "9876", "requested_limit": 7500},
        )
        result = r.json()["result"]
        assert re.match(r"^CLR\d{8}$", result["request_id"])
        assert "to $7,500." in result["message"]
        rows = await fetch_rows(session_factory, CreditLimitRequest)
        assert rows[0].request_id == result["request_id"]
        assert rows[0].status == "pending_review"

    async def test_voice_biometric_enrollment(self, client, session_factory):
        r = await call_tool(client, "voice_biometric_enrollment", {"member_id": "100234", "opt_in": True})
        assert r.json()["result"]["enrolled"] is True
        rows = await fetch_rows(session_factory, BiometricSetting)
        assert rows[0].enrolled is True


# ── Tenant resolution through the router ───────────────────────────


class TestTenantResolution:

    async def test_balances_through_configured_core(self, client, db, fake_poweron):
        await seed_credentials(db, symxchange_url="https://symx.example.org", symxchange_username="ivr")
        r = await call_tool(client, "get_account_balances", {"member_id": "M123"}, tenant_id="cu_42")

        assert r.status_code == 200
        assert r.json()["result"]["message"] == (
            "Your checking ending in 1234 has a balance of $100.00. "
            "Your savings ending in 5678 has a balance of $250.50. "
            "Would you like to hear details about any specific account?"
        )
        fake_poweron.get_accounts.assert_awaited_once_with("M123")
        fake_poweron.disconnect.assert_awaited_once()

    async def test_unexpected_core_payload_is_spoken_apology(self, client, fake_poweron):
        fake_poweron.get_accounts.return_value = PowerOnResult(
            success=True, data={"accounts": [{"type": "checking", "balance": "1,234.56"}]}
        )
        r = await call_tool(client, "get_account_balances", {"member_id": "M123"})

        assert r.status_code == 200
        assert r.json()["result"] == {
            "error": "Unexpected response from core banking",
            "message": "I'm sorry, I couldn't retrieve your account balances at this time.",
        }

    async def test_login_without_member_id_is_not_verified(self, client, db, session_factory, fake_poweron):
        await seed_call_session(db, ucid="UCID-1")
        fake_poweron.authenticate_member.return_value = PowerOnResult(success=True, data={"first_name": "Jo"})

        r = await call_tool(client, "authenticate_member", {"pin": "1234"}, session_id="UCID-1")

        assert r.status_code == 200
        assert r.json()["result"]["authenticated"] is False
        session = (await fetch_rows(session_factory, IvrSession))[0]
        assert (session.member_id, session.verified) == (None, False)

    async def test_tenant_lookup_failure_degrades_to_defaults(self, client, monkeypatch):
        async def broken(*args, **kwargs):
            raise ConnectionError("credential store down")

        monkeypatch.setattr("ivr_tools.context.tenant.load_credentials_from_config", broken)

        r = await call_tool(
            client,
            "get_routing_info",
            {"member_id": "100234", "account_type": "checking", "account_suffix": "0001"},
            tenant_id="cu_42",
        )
        assert r.status_code == 200
        result = r.json()["result"]
        assert result["routing_number"] == "123456789"
        assert "the your credit union routing number" in result["message"]


# ── Tool manifest ──────────────────────────────────────────────────


class TestToolManifest:

    async def test_full_manifest_without_tenant(self, client):
        r = await client.get("/api/ivr/tools")
        assert r.status_code == 200
        names = [t["name"] for t in r.json()["tools"]]
        assert names == [t.value for t in ToolName]

    async def test_manifest_filtered_by_features(self, client, db):
        await seed_credit_union(db, features={"external_transfers": True, "voice_biometrics": False})
        r = await client.get("/api/ivr/tools", params={"tenant_id": "cu_42"})
        body = r.json()
        names = {t["name"] for t in body["tools"]}
        assert body["cu_id"] == "cu_42"
        assert "transfer_funds" in names
        assert "voice_biometric_enrollment" not in names
        assert "report_lost_card" not in names
        assert "get_account_balances" in names

    async def test_manifest_unknown_tenant_is_404(self, client):
        r = await client.get("/api/ivr/tools", params={"tenant_id": "nobody"})
        assert r.status_code == 404
        assert r.json() == {"error": "Credit union not found"}

    async def test_parameter_metadata(self, client):
        r = await client.get("/api/ivr/tools")
        tools = {t["name"]: t for t in r.json()["tools"]}
        loc = tools["find_atm_branch"]["parameters"]["location_type"]
        assert loc["enum"] == ["atm", "branch", "both"]
        assert loc["default"] == "both"
        assert loc["required"] is False
        assert tools["transfer_funds"]["parameters"]["amount"]["type"] == "number"
        assert tools["authenticate_member"]["parameters"]["pin"]["type"] == "string"


class TestHealth:

    async def test_health(self, client):
        r = await client.get("/api/health")
        assert r.json() == {"status": "healthy"}


MINIMAL_PARAMS = {
    "authenticate_member": {"pin": "1234"},
    "get_account_balances": {"member_id": "100234"},
    "get_account_transactions": {"member_id": "100234"},
    "transfer_funds": {
        "member_id": "100234",
        "from_account_type": "savings",
        "from_account_suffix": "0000",
        "to_account_type": "checking",
        "to_account_suffix": "0001",
        "amount": 1,
    },
    "report_lost_card": {"member_id": "100234", "card_type": "credit", "last_four": "1111", "reason": "damaged"},
    "get_routing_info": {"member_id": "100234", "account_type": "savings", "account_suffix": "0000"},
    "set_travel_notification": {
        "member_id": "100234",
        "destination": "Denver",
        "start_date": "2024-02-01",
        "end_date": "2024-02-03",
    },
    "check_status_inquiry": {"member_id": "100234", "check_number": "1001", "account_suffix": "0001"},
    "stop_payment": {"member_id": "100234", "check_number": "1004", "account_suffix": "0001", "amount": 15},
    "find_atm_branch": {"zip_code": "28801"},
    "request_statement": {
        "member_id": "100234",
        "account_type": "checking",
        "account_suffix": "0001",
        "delivery_method": "email",
    },
    "update_credit_limit": {"member_id": "100234", "card_last_four": "9876", "requested_limit": 3000},
    "voice_biometric_enrollment": {"member_id": "100234", "opt_in": False},
}


class TestDispatcherCompleteness:

    def test_every_tool_has_minimal_params(self):
        assert set(MINIMAL_PARAMS) == {t.value for t in ToolName}

    @pytest.mark.parametrize("tool_name", sorted(MINIMAL_PARAMS))
    async def test_every_tool_answers(self, client, db, tool_name):
        await seed_call_session(db, ucid="UCID-all")
        r = await call_tool(client, tool_name, MINIMAL_PARAMS[tool_name], session_id="UCID-all", tenant_id="cu_42")

        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["tool"] == tool_name
        assert isinstance(body["result"]["message"], str)
        assert body["result"]["message"]

    async def test_travel_notification_survives_tenant_failure(self, client, monkeypatch, session_factory):
        async def broken(*args, **kwargs):
            raise ConnectionError("credential store down")

        monkeypatch.setattr("ivr_tools.context.tenant.load_credentials_from_config", broken)
        r = await call_tool(client, "set_travel_notification", MINIMAL_PARAMS["set_travel_notification"], tenant_id="cu_42")

        assert r.status_code == 200
        assert r.json()["success"] is True
        assert r.json()["result"]["success"] is True
        assert len(await fetch_rows(session_factory, TravelNotification)) == 1
