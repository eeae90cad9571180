"""
Tool handlers.

Every handler has the signature
``(params, context, poweron_config, cu_config, store) -> dict`` and always
returns a result with a speakable ``message``. Core-banking work goes through
``run_poweron`` so the session is released on every path; back-office
requests (cards, statements, credit limits, ...) are captured in the session
store and fulfilled asynchronously.
"""

from typing import Any, Dict, List

from ivr_tools.clients.poweron import PowerOnConfig, PowerOnResult, run_poweron
from ivr_tools.context.call_context import CallContext
from ivr_tools.context.tenant import CuConfig
from ivr_tools.db.crud import SessionStore, utcnow
from ivr_tools.logging_config import get_logger
from ivr_tools.tools import params as p
from ivr_tools.tools.speech import (
    format_amount,
    format_limit,
    last_four,
    speak_date,
    spell_digits,
    timestamp_reference,
)

logger = get_logger("ivr_tools.tools.handlers")

DEFAULT_CU_NAME = "your credit union"
DEFAULT_ROUTING_NUMBER = "123456789"
TRANSACTIONS_SPOKEN = 5
LOCATIONS_SPOKEN = 3


def _failed(result: PowerOnResult) -> bool:
    return not result.success or result.data is None


def _cu_name(cu_config: CuConfig) -> str:
    return cu_config.name or DEFAULT_CU_NAME


def _unexpected_data(error: Exception, tool: str, message: str) -> Dict[str, Any]:
    logger.error("Unexpected %s payload from core: %s", tool, error)
    return {
        "error": "Unexpected response from core banking",
        "message": message,
    }


def _store_unavailable(error: Exception, action: str) -> Dict[str, Any]:
    logger.exception("Session store write failed during %s: %s", action, error)
    return {
        "success": False,
        "error": "Request could not be recorded",
        "message": "I'm sorry, I wasn't able to submit that request right now. Please try again in a few minutes.",
    }


async def handle_authenticate(
    params: p.AuthenticateMemberParams,
    context: CallContext,
    poweron_config: PowerOnConfig,
    cu_config: CuConfig,
    store: SessionStore,
) -> Dict[str, Any]:
    phone = context.ani
    if not phone:
        return {
            "authenticated": False,
            "message": "I'm sorry, I couldn't identify your phone number. Please try calling again.",
        }

    result = await run_poweron(
        poweron_config,
        lambda core: core.authenticate_member(
            phone=phone,
            pin=params.pin,
            ssn_last_four=params.ssn_last_four,
            date_of_birth=params.date_of_birth,
        ),
    )
    if _failed(result):
        return {
            "authenticated": False,
            "message": result.error or "Authentication failed. Please verify your PIN.",
        }

    data = result.data if isinstance(result.data, dict) else {}
    member_id = data.get("member_id")
    if member_id in (None, ""):
        logger.error("Core reported a successful login without a member id for ucid=%s", context.session_id)
        return {
            "authenticated": False,
            "message": "Authentication failed. Please verify your PIN.",
        }
    member_id = str(member_id)
    first_name = data.get("first_name") or "there"

    if context.session_id:
        try:
            updated = await store.update_ivr_session(
                context.session_id,
                member_id=member_id,
                verified=True,
                updated_at=utcnow(),
            )
            if not updated:
                logger.warning("Authenticated member %s but no call session ucid=%s", member_id, context.session_id)
        except Exception as e:
            logger.exception("Failed to record authentication on ucid=%s: %s", context.session_id, e)
    context.member_id = member_id
    context.verified = True

    return {
        "authenticated": True,
        "member_id": member_id,
        "first_name": first_name,
        "message": (
            f"Welcome back, {first_name}! Thank you for calling {_cu_name(cu_config)}. "
            "How can I help you today?"
        ),
    }


async def handle_get_balances(params, context, poweron_config, cu_config, store):
    result = await run_poweron(poweron_config, lambda core: core.get_accounts(params.member_id))
    apology = "I'm sorry, I couldn't retrieve your account balances at this time."
    if _failed(result):
        return {"error": result.error, "message": apology}

    accounts: List[Dict[str, Any]] = result.data
    phrases = []
    spoken_accounts = []
    try:
        if not isinstance(accounts, list):
            raise TypeError(f"expected a list of accounts, got {type(accounts).__name__}")
        for acc in accounts:
            suffix = last_four(acc.get("account_number"))
            balance = float(acc.get("balance") or 0.0)
            available = acc.get("available_balance")
            label = acc.get("description") or acc.get("type")
            phrases.append(f"Your {label} ending in {suffix} has a balance of ${format_amount(balance)}")
            spoken_accounts.append(
                {
                    "type": acc.get("type"),
                    "suffix": suffix,
                    "balance": balance,
                    "available": float(available) if available is not None else balance,
                    "description": acc.get("description"),
                }
            )
    except (TypeError, ValueError, AttributeError) as e:
        return _unexpected_data(e, "get_account_balances", apology)
    summary = ". ".join(phrases)

    return {
        "accounts": spoken_accounts,
        "summary": summary,
        "message": (
            summary + ". Would you like to hear details about any specific account?"
            if accounts
            else "I don't see any active accounts on your membership."
        ),
    }


async def handle_get_transactions(params, context, poweron_config, cu_config, store):
    result = await run_poweron(
        poweron_config,
        lambda core: core.get_transactions(
            params.member_id,
            account_type=params.account_type,
            account_suffix=params.account_suffix,
            days_back=params.days_back,
        ),
    )
    apology = "I couldn't retrieve transactions for that account."
    if _failed(result):
        return {"error": result.error, "message": apology}

    transactions: List[Dict[str, Any]] = result.data
    try:
        if not isinstance(transactions, list):
            raise TypeError(f"expected a list of transactions, got {type(transactions).__name__}")
        summary = ", ".join(
            f"{tx.get('description')} for ${format_amount(abs(float(tx.get('amount') or 0.0)))} on {speak_date(tx.get('date'))}"
            for tx in transactions[:TRANSACTIONS_SPOKEN]
        )
    except (TypeError, ValueError, AttributeError) as e:
        return _unexpected_data(e, "get_account_transactions", apology)

    return {
        "transactions": transactions,
        "count": len(transactions),
        "summary": summary,
        "message": (
            f"Here are your recent transactions: {summary}. Would you like to hear more?"
            if transactions
            else "I don't see any recent transactions for this account."
        ),
    }


async def handle_transfer(params, context, poweron_config, cu_config, store):
    result = await run_poweron(
        poweron_config,
        lambda core: core.transfer_funds(
            params.member_id,
            from_account_type=params.from_account_type,
            from_account_suffix=params.from_account_suffix,
            to_account_type=params.to_account_type,
            to_account_suffix=params.to_account_suffix,
            amount=params.amount,
        ),
    )
    if _failed(result):
        reason = f" {result.error}" if result.error else ""
        return {
            "success": False,
            "error": result.error,
            "message": f"I couldn't complete that transfer.{reason}",
        }

    # the core accepted the transfer; a receipt without a usable number gets a local reference
    receipt = result.data if isinstance(result.data, dict) else {}
    confirmation_number = receipt.get("confirmation_number") or timestamp_reference("TXF")

    return {
        "success": True,
        "confirmation_number": confirmation_number,
        "amount": params.amount,
        "from": f"{params.from_account_type} ending in {params.from_account_suffix}",
        "to": f"{params.to_account_type} ending in {params.to_account_suffix}",
        "message": (
            f"Transfer completed successfully! I've moved ${format_amount(params.amount)} from your "
            f"{params.from_account_type} to your {params.to_account_type}. "
            f"Your confirmation number is {confirmation_number}. Is there anything else I can help with?"
        ),
    }


async def handle_report_lost_card(params, context, poweron_config, cu_config, store):
    # TODO: call PowerOn card services once card management is exposed by the gateway
    confirmation_number = timestamp_reference("CARD")

    try:
        await store.insert_audit_log(
            action="card.report_lost",
            result="success",
            member_id=params.member_id,
            session_id=context.session_id,
            metadata={
                "card_type": params.card_type,
                "last_four": params.last_four,
                "reason": params.reason,
                "confirmation_number": confirmation_number,
                "tenant_id": context.tenant_id,
            },
        )
    except Exception as e:
        return _store_unavailable(e, "report_lost_card")

    return {
        "success": True,
        "confirmation_number": confirmation_number,
        "message": (
            f"I've deactivated your {params.card_type} card ending in {params.last_four} and a replacement "
            f"will be mailed to you within 7-10 business days. Your confirmation number is "
            f"{confirmation_number}. The new card will be sent to your address on file with {_cu_name(cu_config)}."
        ),
    }


async def handle_routing_info(params, context, poweron_config, cu_config, store):
    routing_number = cu_config.routing_number or DEFAULT_ROUTING_NUMBER

    try:
        await store.insert_audit_log(
            action="routing.info_requested",
            result="success",
            member_id=params.member_id,
            session_id=context.session_id,
            metadata={
                "account_type": params.account_type,
                "account_suffix": params.account_suffix,
                "tenant_id": context.tenant_id,
            },
        )
    except Exception as e:
        # informational request; answer even if the audit trail is unavailable
        logger.warning("Audit write failed for routing info member=%s: %s", params.member_id, e)

    return {
        "routing_number": routing_number,
        "account_number": f"****{params.account_suffix}",
        "message": (
            f"For your {params.account_type} account ending in {params.account_suffix}, the "
            f"{_cu_name(cu_config)} routing number is {spell_digits(routing_number)}, and your account "
            f"number ends in {params.account_suffix}. For security, I've sent the full account details "
            "to your registered email."
        ),
    }


async def handle_travel_notification(params, context, poweron_config, cu_config, store):
    try:
        await store.insert_travel_notification(
            member_id=params.member_id,
            destination=params.destination,
            start_date=params.start_date,
            end_date=params.end_date,
            tenant_id=context.tenant_id,
        )
    except Exception as e:
        return _store_unavailable(e, "set_travel_notification")

    return {
        "success": True,
        "message": (
            f"Perfect! I've set up a travel notification for {params.destination} from "
            f"{params.start_date} to {params.end_date}. Your cards should work without issues during "
            "this time. Have a great trip!"
        ),
    }


async def handle_check_status(params, context, poweron_config, cu_config, store):
    check_number = params.check_number
    result = await run_poweron(
        poweron_config,
        lambda core: core.get_check_status(params.member_id, check_number, params.account_suffix),
    )
    apology = "I couldn't find information about that check."
    if _failed(result):
        return {"error": result.error, "message": apology}

    check = result.data
    if not isinstance(check, dict):
        return _unexpected_data(
            TypeError(f"expected a check record, got {type(check).__name__}"), "check_status_inquiry", apology
        )
    status = check.get("status")
    if status == "cleared":
        amount = check.get("amount")
        try:
            amount_phrase = f" for ${format_amount(amount)}" if amount is not None else ""
            message = f"Check number {check_number} has cleared on {speak_date(check.get('cleared_date'))}{amount_phrase}."
        except (TypeError, ValueError, AttributeError) as e:
            return _unexpected_data(e, "check_status_inquiry", apology)
    elif status == "pending":
        message = f"Check number {check_number} is pending and hasn't cleared yet."
    elif status == "stopped":
        message = f"Check number {check_number} has a stop payment on it."
    else:
        status = "unknown"
        message = f"I don't have any record of check number {check_number}."

    return {
        "check_number": check_number,
        "status": status,
        "message": message,
    }


async def handle_stop_payment(params, context, poweron_config, cu_config, store):
    result = await run_poweron(
        poweron_config,
        lambda core: core.place_stop_payment(
            params.member_id, params.check_number, params.account_suffix, params.amount
        ),
    )
    if _failed(result):
        return {
            "success": False,
            "error": result.error,
            "message": "I couldn't place the stop payment at this time.",
        }

    receipt = result.data if isinstance(result.data, dict) else {}
    confirmation_number = receipt.get("confirmation_number") or timestamp_reference("STP")

    return {
        "success": True,
        "confirmation_number": confirmation_number,
        "message": (
            f"I've placed a stop payment on check number {params.check_number} for "
            f"${format_amount(params.amount)}. Your confirmation number is {confirmation_number}. "
            "Please note there may be a fee for this service."
        ),
    }


# Static directory until a branch locator service is wired in.
LOCATIONS: List[Dict[str, str]] = [
    {"type": "branch", "name": "Main Branch", "address": "123 Main St", "distance": "0.5 miles"},
    {"type": "atm", "name": "Downtown ATM", "address": "456 Oak Ave", "distance": "0.8 miles"},
    {"type": "branch", "name": "Northside Branch", "address": "789 Pine Rd", "distance": "2.1 miles"},
    {"type": "atm", "name": "Market Square ATM", "address": "22 Market Sq", "distance": "2.6 miles"},
]


async def handle_find_locations(params, context, poweron_config, cu_config, store):
    if params.location_type == "both":
        locations = [dict(l) for l in LOCATIONS]
    else:
        locations = [dict(l) for l in LOCATIONS if l["type"] == params.location_type]

    if not locations:
        return {
            "locations": [],
            "count": 0,
            "message": f"I couldn't find any locations near {params.zip_code}.",
        }

    summary = ", ".join(
        f"{l['name']} at {l['address']}, {l['distance']} away" for l in locations[:LOCATIONS_SPOKEN]
    )
    return {
        "locations": locations,
        "count": len(locations),
        "message": (
            f"I found {len(locations)} locations near {params.zip_code}. The closest are: {summary}. "
            "Would you like directions to any of these?"
        ),
    }


async def handle_request_statement(params, context, poweron_config, cu_config, store):
    try:
        await store.insert_statement_request(
            member_id=params.member_id,
            account_type=params.account_type,
            account_suffix=params.account_suffix,
            delivery_method=params.delivery_method,
            statement_period=params.statement_period,
            tenant_id=context.tenant_id,
        )
    except Exception as e:
        return _store_unavailable(e, "request_statement")

    if params.delivery_method.lower() == "email":
        delivery = "emailed to your registered email address within 24 hours"
    else:
        delivery = "mailed to your address on file within 5-7 business days"
    period = f" for {params.statement_period}" if params.statement_period else ""

    return {
        "success": True,
        "message": f"I've requested your {params.account_type} statement{period}. It will be {delivery}.",
    }


async def handle_credit_limit_request(params, context, poweron_config, cu_config, store):
    request_id = timestamp_reference("CLR")

    try:
        await store.insert_credit_limit_request(
            member_id=params.member_id,
            card_last_four=params.card_last_four,
            requested_limit=params.requested_limit,
            request_id=request_id,
            tenant_id=context.tenant_id,
        )
    except Exception as e:
        return _store_unavailable(e, "update_credit_limit")

    return {
        "success": True,
        "request_id": request_id,
        "message": (
            f"I've submitted your request to increase the credit limit on your card ending in "
            f"{params.card_last_four} to ${format_limit(params.requested_limit)}. You should receive a "
            f"decision within 3-5 business days. Your request ID is {request_id}."
        ),
    }


async def handle_biometric_enrollment(params, context, poweron_config, cu_config, store):
    try:
        await store.upsert_biometric_setting(
            user_id=params.member_id,
            enrolled=params.opt_in,
            tenant_id=context.tenant_id,
        )
    except Exception as e:
        return _store_unavailable(e, "voice_biometric_enrollment")

    if params.opt_in:
        message = (
            "Great! I've enrolled you in voice biometric authentication. Next time you call, "
            "I'll be able to recognize your voice for faster service."
        )
    else:
        message = (
            "I've removed you from voice biometric authentication. "
            "You'll need to verify with your PIN on future calls."
        )
    return {
        "success": True,
        "enrolled": params.opt_in,
        "message": message,
    }
