"""
PowerOn core-banking session client.

One ``PowerOnService`` instance is a single core-banking session: it is built,
connected, used for one tool call and disconnected. Instances are never
cached or shared between requests.

Modes:
 - mock        in-process demo core, used when a tenant has no credentials
 - symxchange  SymXchange REST gateway (basic auth + device headers)
 - direct      PowerOn gateway on the tenant's host (bearer API key)

Every domain call returns a ``PowerOnResult``; transport and HTTP errors are
folded into ``success=False`` rather than raised.
"""

import asyncio
import re
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

import httpx
from pydantic import BaseModel

from ivr_tools import config
from ivr_tools.logging_config import get_logger

logger = get_logger("ivr_tools.clients.poweron")

MODE_MOCK = "mock"
MODE_SYMXCHANGE = "symxchange"
MODE_DIRECT = "direct"

PATH_PREFIXES = {
    MODE_SYMXCHANGE: "/symxchange/v1",
    MODE_DIRECT: "/poweron/v1",
}


class PowerOnConfig(BaseModel):
    mode: str = MODE_MOCK
    base_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    api_key: Optional[str] = None
    device_number: Optional[str] = None
    device_type: Optional[str] = None
    sym: Optional[str] = None
    tenant_id: Optional[str] = None
    cu_id: Optional[str] = None


class PowerOnResult(BaseModel):
    success: bool
    data: Any = None
    error: Optional[str] = None


_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_keys(value: Any) -> Any:
    """
    Gateways answer in camelCase; handlers read snake_case.
    """
    if isinstance(value, dict):
        return {_CAMEL_RE.sub("_", k).lower(): _snake_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_snake_keys(v) for v in value]
    return value


def _digits(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


class PowerOnService:
    """
    Interface shared by all core-banking session modes.
    """

    def __init__(self, poweron_config: PowerOnConfig):
        self.config = poweron_config

    async def connect(self) -> None:
        raise NotImplementedError

    async def disconnect(self) -> None:
        raise NotImplementedError

    async def authenticate_member(
        self,
        phone: str,
        pin: Optional[str] = None,
        ssn_last_four: Optional[str] = None,
        date_of_birth: Optional[str] = None,
    ) -> PowerOnResult:
        raise NotImplementedError

    async def get_accounts(self, member_id: str) -> PowerOnResult:
        raise NotImplementedError

    async def get_transactions(
        self,
        member_id: str,
        account_type: Optional[str] = None,
        account_suffix: Optional[str] = None,
        days_back: int = 30,
    ) -> PowerOnResult:
        raise NotImplementedError

    async def transfer_funds(
        self,
        member_id: str,
        from_account_type: str,
        from_account_suffix: str,
        to_account_type: str,
        to_account_suffix: str,
        amount: float,
    ) -> PowerOnResult:
        raise NotImplementedError

    async def get_check_status(
        self, member_id: str, check_number: str, account_suffix: str
    ) -> PowerOnResult:
        raise NotImplementedError

    async def place_stop_payment(
        self, member_id: str, check_number: str, account_suffix: str, amount: float
    ) -> PowerOnResult:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Mock core
# ---------------------------------------------------------------------------

DEMO_MEMBERS: Dict[str, Dict[str, str]] = {
    "8287806176": {
        "member_id": "100234",
        "first_name": "Jordan",
        "pin": "1234",
        "ssn_last_four": "6789",
        "date_of_birth": "1985-04-12",
    },
    "5555550100": {
        "member_id": "100871",
        "first_name": "Casey",
        "pin": "2468",
        "ssn_last_four": "4321",
        "date_of_birth": "1991-11-03",
    },
}

DEMO_ACCOUNTS: List[Dict[str, Any]] = [
    {
        "type": "checking",
        "account_number": "0000100234-0001",
        "description": "Share Draft Checking",
        "balance": 2450.75,
        "available_balance": 2400.75,
    },
    {
        "type": "savings",
        "account_number": "0000100234-0000",
        "description": "Primary Savings",
        "balance": 8120.10,
        "available_balance": 8120.10,
    },
]

DEMO_CHECKS: Dict[str, Dict[str, Any]] = {
    "1001": {"status": "cleared", "amount": 125.00, "cleared_date": "2024-05-02"},
    "1002": {"status": "pending", "amount": 60.00},
    "1003": {"status": "stopped", "amount": 300.00},
}

MOCK_TRANSFER_LIMIT = 10000.00


class MockPowerOnService(PowerOnService):
    """
    Deterministic demo core so tenants without credentials still get answers.
    """

    def __init__(self, poweron_config: PowerOnConfig):
        super().__init__(poweron_config)
        self.connected = False

    async def connect(self) -> None:
        self.connected = True
        logger.info("Mock PowerOn session opened tenant=%s", self.config.tenant_id)

    async def disconnect(self) -> None:
        self.connected = False
        logger.info("Mock PowerOn session closed tenant=%s", self.config.tenant_id)

    async def authenticate_member(self, phone, pin=None, ssn_last_four=None, date_of_birth=None):
        member = DEMO_MEMBERS.get(_digits(phone)[-10:])
        if not member:
            return PowerOnResult(
                success=False,
                error="I couldn't find a membership linked to this phone number.",
            )
        if pin and pin == member["pin"]:
            return PowerOnResult(success=True, data={"member_id": member["member_id"], "first_name": member["first_name"]})
        if (
            ssn_last_four
            and date_of_birth
            and ssn_last_four == member["ssn_last_four"]
            and date_of_birth == member["date_of_birth"]
        ):
            return PowerOnResult(success=True, data={"member_id": member["member_id"], "first_name": member["first_name"]})
        return PowerOnResult(success=False, error="Authentication failed. Please verify your PIN.")

    async def get_accounts(self, member_id):
        return PowerOnResult(success=True, data=[dict(a) for a in DEMO_ACCOUNTS])

    async def get_transactions(self, member_id, account_type=None, account_suffix=None, days_back=30):
        today = datetime.now(timezone.utc).date()
        samples = [
            ("Payroll Deposit", 1850.00, 1),
            ("Grocery Outlet", -82.17, 2),
            ("Shell Oil", -41.50, 4),
            ("Electric Co-op", -129.33, 9),
            ("ATM Withdrawal", -60.00, 12),
            ("Coffee House", -6.25, 15),
            ("Online Transfer", 200.00, 21),
            ("Pharmacy", -18.90, 28),
        ]
        data = [
            {
                "description": desc,
                "amount": amount,
                "date": (today - timedelta(days=ago)).isoformat(),
                "account_type": account_type or "checking",
            }
            for desc, amount, ago in samples
            if ago <= days_back
        ]
        return PowerOnResult(success=True, data=data)

    async def transfer_funds(
        self, member_id, from_account_type, from_account_suffix, to_account_type, to_account_suffix, amount
    ):
        if amount > MOCK_TRANSFER_LIMIT:
            return PowerOnResult(success=False, error="The amount exceeds your available balance.")
        return PowerOnResult(success=True, data={"confirmation_number": f"TXF{uuid4().hex[:8].upper()}"})

    async def get_check_status(self, member_id, check_number, account_suffix):
        check = DEMO_CHECKS.get(str(check_number))
        if not check:
            return PowerOnResult(success=True, data={"status": "not_found"})
        return PowerOnResult(success=True, data=dict(check))

    async def place_stop_payment(self, member_id, check_number, account_suffix, amount):
        return PowerOnResult(success=True, data={"confirmation_number": f"SP{uuid4().hex[:8].upper()}"})


# ---------------------------------------------------------------------------
# Gateway-backed core (SymXchange / direct)
# ---------------------------------------------------------------------------


class HttpPowerOnService(PowerOnService):
    """
    PowerOn session over a REST gateway. The HTTP client lives exactly as
    long as the session.
    """

    def __init__(
        self,
        poweron_config: PowerOnConfig,
        http_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(poweron_config)
        self.transport = transport
        self.http_timeout = http_timeout if http_timeout is not None else config.POWERON_HTTP_TIMEOUT
        self.prefix = PATH_PREFIXES.get(poweron_config.mode, PATH_PREFIXES[MODE_DIRECT])
        self._http: Optional[httpx.AsyncClient] = None

    def _client_kwargs(self) -> Dict[str, Any]:
        headers = {"Accept": "application/json"}
        kwargs: Dict[str, Any] = {
            "base_url": (self.config.base_url or "").rstrip("/"),
            "timeout": self.http_timeout,
            "headers": headers,
        }
        if self.transport is not None:
            kwargs["transport"] = self.transport
        if self.config.mode == MODE_SYMXCHANGE:
            if self.config.username:
                kwargs["auth"] = httpx.BasicAuth(self.config.username, self.config.password or "")
            if self.config.device_number:
                headers["X-Device-Number"] = self.config.device_number
            if self.config.device_type:
                headers["X-Device-Type"] = self.config.device_type
        else:
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            if self.config.sym:
                headers["X-Sym-Number"] = self.config.sym
        return kwargs

    async def connect(self) -> None:
        if not self.config.base_url:
            raise ValueError(f"PowerOn {self.config.mode} mode requires a base_url")
        self._http = httpx.AsyncClient(**self._client_kwargs())
        logger.info("PowerOn %s session opened base=%s", self.config.mode, self.config.base_url)

    async def disconnect(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            logger.info("PowerOn %s session closed", self.config.mode)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> PowerOnResult:
        """
        Call the gateway with consistent error handling.
        """
        if self._http is None:
            return PowerOnResult(success=False, error="PowerOn session is not connected")
        url = f"{self.prefix}{path}"
        try:
            logger.info("PowerOn %s %s params=%s", method, url, params)
            r = await self._http.request(method, url, params=params, json=payload)
            r.raise_for_status()
            body = _snake_keys(r.json())
        except httpx.HTTPStatusError as e:
            logger.error(
                "PowerOn %s failed url=%s status=%s",
                method,
                url,
                e.response.status_code,
            )
            detail = None
            if e.response.headers.get("content-type", "").startswith("application/json"):
                err_body = e.response.json()
                if isinstance(err_body, dict):
                    detail = err_body.get("error") or err_body.get("detail")
            return PowerOnResult(success=False, error=detail or f"Core banking error ({e.response.status_code})")
        except (httpx.RequestError, ValueError) as e:
            logger.error("PowerOn %s unexpected error url=%s error=%s", method, url, e)
            return PowerOnResult(success=False, error="Core banking system unreachable")

        # gateways either wrap results in {success, data, error} or return the payload bare
        if isinstance(body, dict) and "success" in body:
            return PowerOnResult(
                success=bool(body.get("success")),
                data=body.get("data"),
                error=body.get("error"),
            )
        return PowerOnResult(success=True, data=body)

    async def authenticate_member(self, phone, pin=None, ssn_last_four=None, date_of_birth=None):
        payload = {
            "phone": _digits(phone),
            "pin": pin,
            "ssnLastFour": ssn_last_four,
            "dateOfBirth": date_of_birth,
        }
        return await self._request("POST", "/members/authenticate", payload=payload)

    async def get_accounts(self, member_id):
        return await self._request("GET", f"/members/{member_id}/accounts")

    async def get_transactions(self, member_id, account_type=None, account_suffix=None, days_back=30):
        params = {"daysBack": days_back}
        if account_type:
            params["accountType"] = account_type
        if account_suffix:
            params["accountSuffix"] = account_suffix
        return await self._request("GET", f"/members/{member_id}/transactions", params=params)

    async def transfer_funds(
        self, member_id, from_account_type, from_account_suffix, to_account_type, to_account_suffix, amount
    ):
        payload = {
            "fromAccountType": from_account_type,
            "fromAccountSuffix": from_account_suffix,
            "toAccountType": to_account_type,
            "toAccountSuffix": to_account_suffix,
            "amount": amount,
        }
        return await self._request("POST", f"/members/{member_id}/transfers", payload=payload)

    async def get_check_status(self, member_id, check_number, account_suffix):
        return await self._request(
            "GET",
            f"/members/{member_id}/checks/{check_number}",
            params={"accountSuffix": account_suffix},
        )

    async def place_stop_payment(self, member_id, check_number, account_suffix, amount):
        payload = {
            "checkNumber": check_number,
            "accountSuffix": account_suffix,
            "amount": amount,
        }
        return await self._request("POST", f"/members/{member_id}/stop-payments", payload=payload)


def create_poweron_service(poweron_config: PowerOnConfig) -> PowerOnService:
    if poweron_config.mode in (MODE_SYMXCHANGE, MODE_DIRECT):
        return HttpPowerOnService(poweron_config)
    return MockPowerOnService(poweron_config)


@asynccontextmanager
async def poweron_session(poweron_config: PowerOnConfig) -> AsyncIterator[PowerOnService]:
    """
    Scoped core-banking session; disconnect runs exactly once on every exit path.
    """
    service = create_poweron_service(poweron_config)
    try:
        await service.connect()
        yield service
    finally:
        await service.disconnect()


async def run_poweron(
    poweron_config: PowerOnConfig,
    operation: Callable[[PowerOnService], Awaitable[PowerOnResult]],
    timeout: Optional[float] = None,
) -> PowerOnResult:
    """
    Run ``operation`` inside a fresh scoped session, bounded by a timeout.

    Timeouts and exceptions come back as failed results so handlers can
    always answer the caller.
    """
    limit = timeout if timeout is not None else config.POWERON_TIMEOUT_SECONDS

    async def _scoped() -> PowerOnResult:
        async with poweron_session(poweron_config) as service:
            return await operation(service)

    try:
        return await asyncio.wait_for(_scoped(), timeout=limit)
    except asyncio.TimeoutError:
        logger.warning("PowerOn session timed out after %ss mode=%s", limit, poweron_config.mode)
        return PowerOnResult(success=False, error="The core banking system took too long to respond.")
    except Exception as e:
        logger.exception("PowerOn session failed mode=%s: %s", poweron_config.mode, e)
        return PowerOnResult(success=False, error="The core banking system is unavailable.")
