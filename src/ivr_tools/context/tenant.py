"""
Tenant credential and branding resolution.

A misconfigured tenant must still get a (generically worded) answer, so any
failure here degrades to empty configs instead of failing the request.
"""

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel

from ivr_tools.clients.poweron import (
    MODE_DIRECT,
    MODE_MOCK,
    MODE_SYMXCHANGE,
    PowerOnConfig,
)
from ivr_tools.db.crud import SessionStore
from ivr_tools.logging_config import get_logger

logger = get_logger("ivr_tools.context.tenant")


class CuConfig(BaseModel):
    name: Optional[str] = None
    charter_number: Optional[str] = None
    routing_number: Optional[str] = None
    support_phone: Optional[str] = None


async def load_credentials_from_config(tenant_key: str, store: SessionStore) -> Dict[str, Any]:
    """
    Fetch the stored core-banking credentials for a tenant (empty when none).
    """
    credentials = await store.get_tenant_credentials(tenant_key)
    if credentials is None:
        logger.info("No core-banking credentials stored for tenant=%s", tenant_key)
        return {}
    return credentials


def get_poweron_config(
    credentials: Dict[str, Any],
    tenant_id: Optional[str] = None,
    cu_id: Optional[str] = None,
) -> PowerOnConfig:
    """
    Derive the mode-specific connection config from stored credentials.
    """
    mode = (credentials.get("poweron_mode") or "").strip().lower()

    if mode == MODE_MOCK or not credentials:
        return PowerOnConfig(mode=MODE_MOCK, tenant_id=tenant_id, cu_id=cu_id)

    if mode == MODE_SYMXCHANGE or (not mode and credentials.get("symxchange_url")):
        if credentials.get("symxchange_url"):
            return PowerOnConfig(
                mode=MODE_SYMXCHANGE,
                base_url=credentials["symxchange_url"],
                username=credentials.get("symxchange_username"),
                password=credentials.get("symxchange_password"),
                device_number=_as_str(credentials.get("device_number")),
                device_type=credentials.get("device_type"),
                tenant_id=tenant_id,
                cu_id=cu_id,
            )

    if mode == MODE_DIRECT or (not mode and credentials.get("poweron_host")):
        host = credentials.get("poweron_host")
        if host:
            if "://" not in host:
                host = f"https://{host}"
            port = credentials.get("poweron_port")
            base_url = f"{host.rstrip('/')}:{port}" if port else host
            return PowerOnConfig(
                mode=MODE_DIRECT,
                base_url=base_url,
                api_key=credentials.get("poweron_api_key"),
                sym=_as_str(credentials.get("sym_number")),
                tenant_id=tenant_id,
                cu_id=cu_id,
            )

    logger.warning("No usable core-banking endpoint for tenant=%s mode=%s; using mock core", tenant_id or cu_id, mode)
    return PowerOnConfig(mode=MODE_MOCK, tenant_id=tenant_id, cu_id=cu_id)


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


async def load_tenant_config(
    tenant_id: Optional[str],
    cu_id: Optional[str],
    store: SessionStore,
) -> Tuple[PowerOnConfig, CuConfig]:
    if not (tenant_id or cu_id):
        return PowerOnConfig(), CuConfig()

    try:
        credentials = await load_credentials_from_config(tenant_id or cu_id, store)
        poweron_config = get_poweron_config(credentials, tenant_id, cu_id)

        cu_data = await store.get_credit_union(tenant_id=tenant_id, cu_id=cu_id)
        cu_config = CuConfig(**(cu_data or {}))
    except Exception as e:
        logger.warning("Could not load tenant config tenant=%s cu=%s: %s", tenant_id, cu_id, e)
        await store.rollback()
        return PowerOnConfig(), CuConfig()

    return poweron_config, cu_config
