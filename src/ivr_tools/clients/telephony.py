"""
Outbound call placement through the telephony provider's REST API.

The provider dials the target number and, once answered, fetches the voice
agent's bridge URL so the call is handed to the agent.
"""

from typing import Any, Dict, Optional

import httpx

from ivr_tools import config
from ivr_tools.logging_config import get_logger

logger = get_logger("ivr_tools.clients.telephony")


class TelephonyError(Exception):
    """The provider refused or could not be reached to place a call."""


class TwilioClient:
    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        api_base: Optional[str] = None,
        http_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.api_base = (api_base or config.TWILIO_API_BASE).rstrip("/")
        self.http_timeout = http_timeout if http_timeout is not None else config.TELEPHONY_HTTP_TIMEOUT
        self.transport = transport

    def _client_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "base_url": self.api_base,
            "timeout": self.http_timeout,
            "auth": httpx.BasicAuth(self.account_sid, self.auth_token),
            "headers": {"Accept": "application/json"},
        }
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return kwargs

    async def place_call(self, to: str, from_: str, url: str) -> Dict[str, Any]:
        """
        Start an outbound call. Returns the provider's call resource
        (``sid``, ``status``, ...); raises TelephonyError on any failure.
        """
        path = f"/2010-04-01/Accounts/{self.account_sid}/Calls.json"
        form = {"To": to, "From": from_, "Url": url}
        try:
            async with httpx.AsyncClient(**self._client_kwargs()) as http:
                r = await http.post(path, data=form)
                r.raise_for_status()
                call = r.json()
        except httpx.HTTPStatusError as e:
            logger.error("Call placement failed to=%s status=%s", to, e.response.status_code)
            detail = None
            if e.response.headers.get("content-type", "").startswith("application/json"):
                err_body = e.response.json()
                if isinstance(err_body, dict):
                    detail = err_body.get("message")
            raise TelephonyError(detail or "Twilio API error") from e
        except (httpx.RequestError, ValueError) as e:
            logger.error("Call placement unexpected error to=%s error=%s", to, e)
            raise TelephonyError("Telephony provider unreachable") from e

        if not isinstance(call, dict) or not call.get("sid"):
            raise TelephonyError("Twilio API error")
        logger.info("Call placed sid=%s status=%s", call.get("sid"), call.get("status"))
        return call


def create_telephony_client() -> TwilioClient:
    return TwilioClient(config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN)


def voice_agent_url(config_id: str, api_key: str) -> str:
    """Bridge URL the provider fetches to hand an answered call to the voice agent."""
    return str(httpx.URL(config.HUME_TWILIO_URL, params={"config_id": config_id, "api_key": api_key}))
