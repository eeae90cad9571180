from typing import AsyncGenerator, Optional

from fastapi import Header, HTTPException, status

from ivr_tools import config
from ivr_tools.db.session import AsyncSessionLocal


async def get_db() -> AsyncGenerator:
    """
    Async DB session dependency for FastAPI routes.
    """
    async with AsyncSessionLocal() as session:
        yield session


async def verify_tool_key(x_ivr_tool_key: Optional[str] = Header(None)):
    """
    Shared-secret check between the voice platform and this service.
    Disabled when IVR_TOOL_KEY is unset.
    """
    expected = config.IVR_TOOL_KEY
    if not expected:
        return True
    if not x_ivr_tool_key or x_ivr_tool_key != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid IVR tool key")
    return True
