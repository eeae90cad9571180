"""
Voice tool-call endpoint.

POST /api/ivr/tools runs one tool call end to end:
decode -> resolve call context -> load tenant config -> dispatch -> handle -> encode.
GET /api/ivr/tools returns the tool manifest for configuring the voice platform.
"""

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ivr_tools.context.call_context import resolve_call_context
from ivr_tools.context.tenant import load_tenant_config
from ivr_tools.db.crud import SessionStore
from ivr_tools.logging_config import get_logger
from ivr_tools.tools.registry import get_tool_handler, tool_manifest
from .deps import get_db, verify_tool_key
from .schemas import (
    INVALID_PARAMETERS_MESSAGE,
    MALFORMED_REQUEST_MESSAGE,
    TOOL_FAILED_MESSAGE,
    UNKNOWN_TOOL_MESSAGE,
    ToolError,
    ToolInvocation,
    ToolSuccess,
)

logger = get_logger("ivr_tools.api.tools")

router = APIRouter(tags=["ivr-tools"])

# never written to logs in clear text
SENSITIVE_PARAMS = {"pin", "ssn_last_four", "date_of_birth"}


def _redact(parameters: Dict[str, Any]) -> Dict[str, Any]:
    return {k: ("***" if k in SENSITIVE_PARAMS else v) for k, v in parameters.items()}


def _error(status_code: int, error: str, message: str, details=None) -> JSONResponse:
    body = ToolError(error=error, message=message, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def decode_invocation(raw: bytes) -> ToolInvocation:
    """
    Parse a tool-call body. Raises ValueError for anything that is not a
    JSON object carrying a tool_name.
    """
    payload = json.loads(raw or b"")
    if not isinstance(payload, dict):
        raise ValueError("tool invocation must be a JSON object")
    return ToolInvocation.model_validate(payload)


@router.post("/ivr/tools", dependencies=[Depends(verify_tool_key)])
async def invoke_tool(request: Request, db=Depends(get_db)):
    try:
        try:
            invocation = decode_invocation(await request.body())
        except ValueError as e:
            logger.warning("Malformed tool invocation: %s", e)
            return _error(400, "Malformed request", MALFORMED_REQUEST_MESSAGE)

        logger.info(
            "Executing tool=%s params=%s session=%s call_sid=%s tenant=%s",
            invocation.tool_name,
            _redact(invocation.parameters),
            invocation.session_id,
            invocation.call_sid,
            invocation.tenant_key,
        )

        store = SessionStore(db)
        context = await resolve_call_context(
            invocation.session_id,
            invocation.call_sid,
            invocation.tenant_id,
            invocation.cu_id,
            store,
        )
        poweron_config, cu_config = await load_tenant_config(invocation.tenant_id, invocation.cu_id, store)

        spec = get_tool_handler(invocation.tool_name)
        if spec is None:
            logger.error("Unknown tool: %s", invocation.tool_name)
            return _error(400, f"Unknown tool: {invocation.tool_name}", UNKNOWN_TOOL_MESSAGE)

        try:
            params = spec.params_model.model_validate(invocation.parameters)
        except ValidationError as e:
            details = [
                {"field": ".".join(str(part) for part in err["loc"]), "issue": err["msg"]}
                for err in e.errors()
            ]
            logger.warning("Invalid parameters for %s: %s", invocation.tool_name, details)
            return _error(400, f"Invalid parameters for {invocation.tool_name}", INVALID_PARAMETERS_MESSAGE, details)

        result = await spec.handler(params, context, poweron_config, cu_config, store)
        logger.info("%s result: %s", invocation.tool_name, result.get("message"))

        body = ToolSuccess(tool=invocation.tool_name, result=jsonable_encoder(result))
        return JSONResponse(content=body.model_dump())

    except Exception as e:
        logger.exception("Tool execution failed: %s", e)
        return _error(500, "Tool execution failed", TOOL_FAILED_MESSAGE)


@router.get("/ivr/tools")
async def list_tools(tenant_id: Optional[str] = None, cu_id: Optional[str] = None, db=Depends(get_db)):
    """
    Tool definitions, filtered by the credit union's feature flags when a
    tenant is given.
    """
    if not (tenant_id or cu_id):
        return {"tools": tool_manifest()}

    cu = await SessionStore(db).get_credit_union(tenant_id=tenant_id, cu_id=cu_id)
    if not cu:
        logger.warning("Tool manifest requested for unknown tenant=%s cu=%s", tenant_id, cu_id)
        return JSONResponse(status_code=404, content={"error": "Credit union not found"})
    return {"tools": tool_manifest(cu.get("features") or {}), "cu_id": cu["cu_id"]}
