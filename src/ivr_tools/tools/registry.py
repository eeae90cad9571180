"""
Static tool dispatch table.

``ToolName`` is the closed set of tools the voice platform may invoke; each
member maps to exactly one ``ToolSpec`` (parameter model + handler). Lookup
is an exact, case-sensitive match.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from ivr_tools.tools import handlers
from ivr_tools.tools import params as p


class ToolName(str, Enum):
    AUTHENTICATE_MEMBER = "authenticate_member"
    GET_ACCOUNT_BALANCES = "get_account_balances"
    GET_ACCOUNT_TRANSACTIONS = "get_account_transactions"
    TRANSFER_FUNDS = "transfer_funds"
    REPORT_LOST_CARD = "report_lost_card"
    GET_ROUTING_INFO = "get_routing_info"
    SET_TRAVEL_NOTIFICATION = "set_travel_notification"
    CHECK_STATUS_INQUIRY = "check_status_inquiry"
    STOP_PAYMENT = "stop_payment"
    FIND_ATM_BRANCH = "find_atm_branch"
    REQUEST_STATEMENT = "request_statement"
    UPDATE_CREDIT_LIMIT = "update_credit_limit"
    VOICE_BIOMETRIC_ENROLLMENT = "voice_biometric_enrollment"


Handler = Callable[..., Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    handler: Handler
    params_model: Type[p.ToolParams]
    description: str
    # CU feature flag that must be on for the tool to be offered to the voice platform
    feature_flag: Optional[str] = None


TOOL_HANDLERS: Dict[ToolName, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            ToolName.AUTHENTICATE_MEMBER,
            handlers.handle_authenticate,
            p.AuthenticateMemberParams,
            "Authenticate a member using their PIN. The member is automatically identified by their "
            "phone number. NEVER ask for member number - use only PIN.",
        ),
        ToolSpec(
            ToolName.GET_ACCOUNT_BALANCES,
            handlers.handle_get_balances,
            p.GetAccountBalancesParams,
            "Retrieve all account balances for an authenticated member",
        ),
        ToolSpec(
            ToolName.GET_ACCOUNT_TRANSACTIONS,
            handlers.handle_get_transactions,
            p.GetAccountTransactionsParams,
            "Get recent transactions for a specific account",
        ),
        ToolSpec(
            ToolName.TRANSFER_FUNDS,
            handlers.handle_transfer,
            p.TransferFundsParams,
            "Transfer funds between member accounts",
            feature_flag="external_transfers",
        ),
        ToolSpec(
            ToolName.REPORT_LOST_CARD,
            handlers.handle_report_lost_card,
            p.ReportLostCardParams,
            "Report a lost or stolen debit/credit card and request replacement",
            feature_flag="card_controls",
        ),
        ToolSpec(
            ToolName.GET_ROUTING_INFO,
            handlers.handle_routing_info,
            p.GetRoutingInfoParams,
            "Get routing number and account number for direct deposit or wire transfers",
        ),
        ToolSpec(
            ToolName.SET_TRAVEL_NOTIFICATION,
            handlers.handle_travel_notification,
            p.SetTravelNotificationParams,
            "Set up a travel notification to prevent card declines while traveling",
            feature_flag="travel_notifications",
        ),
        ToolSpec(
            ToolName.CHECK_STATUS_INQUIRY,
            handlers.handle_check_status,
            p.CheckStatusInquiryParams,
            "Check if a specific check has cleared or get check status",
        ),
        ToolSpec(
            ToolName.STOP_PAYMENT,
            handlers.handle_stop_payment,
            p.StopPaymentParams,
            "Place a stop payment on a check",
        ),
        ToolSpec(
            ToolName.FIND_ATM_BRANCH,
            handlers.handle_find_locations,
            p.FindAtmBranchParams,
            "Find nearby ATM or branch locations",
        ),
        ToolSpec(
            ToolName.REQUEST_STATEMENT,
            handlers.handle_request_statement,
            p.RequestStatementParams,
            "Request a mailed or emailed account statement",
        ),
        ToolSpec(
            ToolName.UPDATE_CREDIT_LIMIT,
            handlers.handle_credit_limit_request,
            p.UpdateCreditLimitParams,
            "Request a credit limit increase on credit card",
            feature_flag="base_credit_card_integration",
        ),
        ToolSpec(
            ToolName.VOICE_BIOMETRIC_ENROLLMENT,
            handlers.handle_biometric_enrollment,
            p.VoiceBiometricEnrollmentParams,
            "Enroll member in voice biometric authentication",
            feature_flag="voice_biometrics",
        ),
    )
}


def get_tool_handler(tool_name: str) -> Optional[ToolSpec]:
    try:
        return TOOL_HANDLERS[ToolName(tool_name)]
    except ValueError:
        return None


def _param_metadata(model: Type[p.ToolParams]) -> Dict[str, Dict[str, Any]]:
    schema = model.model_json_schema()
    required = set(schema.get("required", []))
    out: Dict[str, Dict[str, Any]] = {}
    for name, prop in schema.get("properties", {}).items():
        json_type = prop.get("type")
        if json_type is None:
            # Optional[...] renders as anyOf [<type>, null]
            types = [option.get("type") for option in prop.get("anyOf", []) if option.get("type") != "null"]
            json_type = types[0] if types else "string"
        meta: Dict[str, Any] = {
            "type": json_type,
            "description": prop.get("description"),
            "required": name in required,
        }
        if "enum" in prop:
            meta["enum"] = prop["enum"]
        if prop.get("default") is not None:
            meta["default"] = prop["default"]
        out[name] = meta
    return out


def tool_manifest(features: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """
    Tool definitions for configuring the voice platform.

    With ``features`` (a CU's feature flags), tools whose flag is off are left
    out; core tools without a flag are always offered.
    """
    tools = []
    for spec in TOOL_HANDLERS.values():
        if features is not None and spec.feature_flag and not features.get(spec.feature_flag):
            continue
        tools.append(
            {
                "type": "custom",
                "name": spec.name.value,
                "description": spec.description,
                "parameters": _param_metadata(spec.params_model),
            }
        )
    return tools
