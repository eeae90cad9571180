from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Spoken back verbatim by the voice platform, so keep these TTS-friendly.
UNKNOWN_TOOL_MESSAGE = "I'm sorry, I don't know how to do that yet."
MALFORMED_REQUEST_MESSAGE = "I'm sorry, I didn't catch that request. Could you say that again?"
INVALID_PARAMETERS_MESSAGE = "I'm sorry, I'm missing some details to do that. Could you give them to me again?"
TOOL_FAILED_MESSAGE = "I encountered an error processing your request. Let me try that again."


class ToolInvocation(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    tool_name: str = Field(..., min_length=1)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = None
    call_sid: Optional[str] = None
    tenant_id: Optional[str] = None
    cu_id: Optional[str] = None

    @field_validator("parameters", mode="before")
    @classmethod
    def _null_parameters(cls, value):
        return {} if value is None else value

    @property
    def tenant_key(self) -> Optional[str]:
        return self.tenant_id or self.cu_id


class ToolSuccess(BaseModel):
    success: bool = True
    tool: str
    result: Dict[str, Any]


class ToolError(BaseModel):
    error: str
    message: str
    details: Optional[List[Dict[str, Any]]] = None


class WebhookEvent(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    type: str
    timestamp: Optional[str] = None
    call_sid: Optional[str] = None
    session_id: Optional[str] = None
    tenant_id: Optional[str] = None
    cu_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class CallRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    # E.164 number to dial; defaults to the configured test phone
    to: Optional[str] = None
    tenant_id: Optional[str] = None
    cu_id: Optional[str] = None


class CallStarted(BaseModel):
    success: bool = True
    call_sid: str
    session_id: Optional[str] = None
    status: Optional[str] = None
    to: str
    from_number: str
    member_recognized: bool
    cu_name: Optional[str] = None
    voice_config_id: str
