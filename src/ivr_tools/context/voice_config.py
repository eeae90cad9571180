"""
Per credit union voice-agent configuration.

A credit union either has a stored config or gets one generated from its
profile: branding, tone, products and feature flags.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ivr_tools.db.crud import SessionStore
from ivr_tools.logging_config import get_logger
from ivr_tools.tools.registry import tool_manifest

logger = get_logger("ivr_tools.context.voice_config")

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_CALLER_ID = "+18005551234"
DEFAULT_CULTURE = "a commitment to excellent member service"

TONE_GUIDANCE = {
    "professional": [
        "Maintain a polished, business-like demeanor",
        "Use formal language and complete sentences",
        "Be efficient and direct while remaining courteous",
    ],
    "friendly": [
        "Be warm and approachable, like a helpful neighbor",
        "Use conversational language",
        "Smile through your voice - members should feel welcomed",
    ],
    "casual": [
        "Be relaxed and personable",
        "Use everyday language",
        "Feel free to be slightly informal while staying respectful",
    ],
    "tech-forward": [
        "Be modern and efficient",
        "Emphasize digital features and capabilities",
        "Use clear, straightforward language",
    ],
    "traditional": [
        "Emphasize trust, stability, and reliability",
        "Use respectful, time-tested language",
        "Focus on personal service and relationship",
    ],
}
FALLBACK_TONE = ["Be helpful and genuine", "Adapt to the member's communication style"]

PRODUCT_CAPABILITIES = [
    ("has_investment_services", "Provide investment account information and connect to advisors"),
    ("has_crypto", "Assist with cryptocurrency account queries"),
    ("has_mortgages", "Answer mortgage questions and payment inquiries"),
]

CULTURE_VALUES = [
    ("innovation", "cutting-edge technology"),
    ("transparency", "transparent, honest service"),
    ("member-first", "a member-first philosophy"),
]

ESCALATION_KEYWORDS = ["agent", "representative", "human", "help", "person", "someone"]
RECORDING_DISCLOSURE = "This call may be recorded for quality and training purposes."


class CuProfile(BaseModel):
    name: str = "your credit union"
    charter_number: Optional[str] = None
    routing_number: Optional[str] = None
    support_phone: Optional[str] = None
    timezone: Optional[str] = None
    domain: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    products: Optional[Dict[str, Any]] = None
    culture: Optional[Dict[str, Any]] = None
    features: Optional[Dict[str, Any]] = None


def _bullets(lines: List[str]) -> str:
    return "\n".join(f"- {line}" for line in lines)


def _culture_mentions(culture: Optional[Dict[str, Any]]) -> str:
    if not culture:
        return DEFAULT_CULTURE
    mentions = []
    if culture.get("community_focused"):
        mentions.append("deep community roots")
    values = culture.get("values") or []
    mentions.extend(phrase for value, phrase in CULTURE_VALUES if value in values)
    return ", ".join(mentions) if mentions else DEFAULT_CULTURE


def generate_cu_system_prompt(cu: CuProfile) -> str:
    """
    System prompt for the voice agent, written in the credit union's name
    and tone and listing only the products it offers.
    """
    products = cu.products or {}
    tone = (cu.culture or {}).get("tone") or "friendly"
    tone_lines = TONE_GUIDANCE.get(tone, FALLBACK_TONE)

    account_kinds = "checking, savings"
    if products.get("has_business_accounts"):
        account_kinds += ", business accounts"
    if products.get("has_mortgages"):
        account_kinds += ", mortgages"
    extra_capabilities = "".join(
        f"\n- {capability}" for flag, capability in PRODUCT_CAPABILITIES if products.get(flag)
    )

    name = cu.name
    return f"""You are an intelligent voice assistant for {name}. Your role is to help members with their financial needs in a natural, conversational way.

**Your Credit Union:**
{name} (Charter #{cu.charter_number or "N/A"}) serves members with {_culture_mentions(cu.culture)}. You represent our values and commitment to exceptional member service.

**Your Capabilities:**
- Check account balances ({account_kinds})
- Review recent transactions with spending insights
- Transfer funds between accounts
- Report lost or stolen cards
- Provide routing number ({cu.routing_number or "on request"}) and account numbers
- Set up travel notifications
- Check status and stop payments{extra_capabilities}
- Locate ATM/branch locations
- Request statements
- Update credit limits
- Connect to a live {name} representative when needed

**Conversation Style:**
{_bullets(tone_lines)}
- Be warm, professional, and empathetic
- Listen carefully to emotional cues and adjust your tone accordingly
- If the member sounds frustrated, acknowledge it and offer to help
- If the member sounds rushed, be concise
- Use natural language - avoid sounding robotic or scripted
- Confirm sensitive information by reading back key details
- Always mention "{name}" when referring to our credit union

**Security & Authentication:**
- Members are automatically recognized by their phone number
- NEVER ask members to say their member number out loud - it's sensitive information
- For authentication, ONLY ask for PIN (4-6 digits)
- If caller is not recognized by phone, ask for last 4 of SSN + date of birth
- Verify identity before discussing account details

**Handling Requests:**
1. First, understand what the member needs
2. Verify they're authenticated if needed
3. Retrieve the requested information
4. Present it clearly and ask if they need anything else
5. If you can't handle a request, transfer to a {name} representative

**Important:**
- Never make up account balances or information - always use the provided tools
- If unsure, ask clarifying questions
- Offer proactive help based on context (e.g., "Would you like to set up a transfer?")
- End calls gracefully, confirming everything is resolved
- Always say "Thank you for banking with {name}" at the end

**Support Contact:**
If technical issues arise or the member needs to speak with someone, our member services team is available at {cu.support_phone or "our main number"}."""


def default_voice_config(cu: CuProfile) -> Dict[str, Any]:
    name = cu.name
    features = cu.features or {}
    timezone = cu.timezone or DEFAULT_TIMEZONE
    return {
        "voice": {
            "enabled": True,
            "evi_version": "4-mini",
            "voice": {"provider": "HUME_AI", "name": "ITO"},
            "ellm_model": {"allow_short_responses": True},
            "nudges": {"enabled": True, "interval_secs": 10},
            "timeouts": {
                "inactivity": {"enabled": True, "duration_secs": 120},
                "max_duration": {"enabled": True, "duration_secs": 900},
            },
            "voice_biometrics": {
                "enabled": bool(features.get("voice_biometrics")),
                "enrollment_required": False,
                "confidence_threshold": 80,
            },
            "twilio": {
                "enabled": True,
                "phone_number": cu.twilio_phone_number or DEFAULT_CALLER_ID,
                "fallback_number": cu.support_phone,
            },
        },
        "prompts": {
            "system_prompt": {"text": generate_cu_system_prompt(cu), "version": 1},
            "event_messages": {
                "on_new_chat": {
                    "enabled": True,
                    "message": f"Thank you for calling {name}. How may I help you today?",
                },
                "on_disconnect": {
                    "enabled": True,
                    "message": f"Thank you for banking with {name}. Have a great day!",
                },
                "on_transfer": {
                    "enabled": True,
                    "message": f"I'm transferring you to a {name} representative. Please hold.",
                },
                "on_error": {
                    "enabled": True,
                    "message": (
                        f"I'm sorry, I encountered a technical issue. Let me connect you with a {name} "
                        "representative who can help."
                    ),
                },
            },
            "menu": {
                "greeting": f"Thank you for calling {name}. Your call may be recorded for quality assurance.",
                "main_menu": {
                    "option_1": {"label": "Account Balances", "action": "balance_inquiry"},
                    "option_2": {"label": "Transfers", "action": "transfer_funds"},
                    "option_3": {"label": "Card Services", "action": "card_services"},
                    "option_4": {"label": "Loan Information", "action": "loan_inquiry"},
                    "option_0": {"label": "Speak to Representative", "action": "transfer_call"},
                },
                "after_hours_message": (
                    f"{name} member services is currently closed. Our hours are Monday through Friday, "
                    f"8 AM to 6 PM {timezone}. Please call back during business hours"
                    + (f", or visit {cu.domain} to access your accounts online." if cu.domain else ".")
                ),
            },
            "builtin_tools": ["transfer_call"],
            "custom_tools": tool_manifest(features),
            "escalation": {
                "enabled": True,
                "keywords": list(ESCALATION_KEYWORDS),
                "max_attempts": 3,
                "transfer_number": cu.support_phone,
            },
            "banking_intents": {
                "balance_inquiry": True,
                "transaction_history": True,
                "transfer_funds": True,
                "bill_pay": bool(features.get("bill_pay")),
                "card_services": True,
                "loan_inquiry": True,
                "branch_hours": True,
                "atm_locator": True,
            },
            "call_recording": {"enabled": True, "disclosure_message": RECORDING_DISCLOSURE},
        },
    }


async def resolve_voice_config(
    cu_data: Dict[str, Any],
    store: SessionStore,
) -> Dict[str, Any]:
    """
    The stored config for this credit union, else the generated default.
    """
    stored = await store.get_ivr_config(tenant_id=cu_data.get("tenant_id"), cu_id=cu_data.get("cu_id"))
    if stored:
        return stored
    logger.info("No stored voice config for cu=%s; using generated default", cu_data.get("cu_id"))
    return default_voice_config(CuProfile(**{k: v for k, v in cu_data.items() if v is not None}))
