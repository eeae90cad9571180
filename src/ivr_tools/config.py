"""
Environment-driven settings for the IVR tools service.

Values are read once at import time; tests override them with monkeypatch.
"""

import os

from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv(usecwd=True), override=False)


def _env_bool(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./ivr_tools.db")
DATABASE_ECHO = _env_bool("DATABASE_ECHO", "false")
CREATE_TABLES_ON_STARTUP = _env_bool("CREATE_TABLES_ON_STARTUP", "true")

# shared secret between the voice platform and this service; empty disables the check
IVR_TOOL_KEY = os.getenv("IVR_TOOL_KEY", "")

# bound on a whole core-banking session (connect + operations + disconnect)
POWERON_TIMEOUT_SECONDS = float(os.getenv("POWERON_TIMEOUT_SECONDS", "15"))
# per HTTP request to a SymXchange / direct PowerOn gateway
POWERON_HTTP_TIMEOUT = float(os.getenv("POWERON_HTTP_TIMEOUT", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "logs")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "9200"))

# outbound calls: telephony provider account and the voice agent it bridges to
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
TWILIO_API_BASE = os.getenv("TWILIO_API_BASE", "https://api.twilio.com")
TWILIO_TEST_PHONE = os.getenv("TWILIO_TEST_PHONE", "+18287806176")
TELEPHONY_HTTP_TIMEOUT = float(os.getenv("TELEPHONY_HTTP_TIMEOUT", "10"))
HUME_API_KEY = os.getenv("HUME_API_KEY", "")
HUME_CONFIG_ID = os.getenv("HUME_CONFIG_ID", "")
HUME_TWILIO_URL = os.getenv("HUME_TWILIO_URL", "https://api.hume.ai/v0/evi/twilio")
