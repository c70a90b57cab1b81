# classes/agent_models.py
import json
from typing import Any, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class _WireModel(BaseModel):
    # camelCase on the wire, snake_case in python
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ToolCallFunction(_WireModel):
    name: str = ""
    arguments: str = "{}"

    @field_validator("arguments", mode="before")
    @classmethod
    def _encode_arguments(cls, value):
        # a client may echo arguments back as an object
        if value is None:
            return "{}"
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value


class ToolCall(_WireModel):
    """
    One operation request as produced by the reasoning backend:
        {"id": ..., "type": "function", "function": {"name": ..., "arguments": "<json>"}}
    """
    id: str = ""
    type: Literal["function"] = "function"
    function: ToolCallFunction = Field(default_factory=ToolCallFunction)

    @property
    def operation_name(self) -> str:
        return self.function.name

    @property
    def raw_arguments(self) -> str:
        return self.function.arguments

    @classmethod
    def from_wire(cls, raw: Any) -> "ToolCall":
        if isinstance(raw, ToolCall):
            return raw
        return cls.model_validate(raw)

    @classmethod
    def build(cls, name: str, arguments: Any, call_id: str = "") -> "ToolCall":
        return cls(id=call_id, function=ToolCallFunction(name=name, arguments=arguments))


class OperationResult(_WireModel):
    tool: str
    status: Literal["success", "error"]
    result: Optional[Any] = None
    error: Optional[str] = None
    expanded_from: Optional[str] = Field(None, alias="expandedFrom")


class PreviewEntry(_WireModel):
    tool: str
    arguments: dict = Field(default_factory=dict)
    description: str
    expanded_from: Optional[str] = Field(None, alias="expandedFrom")


class RateLimitInfo(_WireModel):
    remaining: int
    reset_in_seconds: int = Field(alias="resetInSeconds")


class CommandRequest(_WireModel):
    instruction: Optional[str] = Field(None, validation_alias=AliasChoices("instruction", "prompt"))
    preview_only: bool = Field(False, validation_alias=AliasChoices("previewOnly", "preview", "preview_only"))
    confirmed_plan: Optional[List[ToolCall]] = Field(None, alias="confirmedPlan")
    extra_rules: Optional[str] = Field(None, validation_alias=AliasChoices("extraRules", "rules", "extra_rules"))
    automation_id: Optional[str] = Field(None, alias="automationId")

    @field_validator("instruction", "extra_rules", mode="before")
    @classmethod
    def _strip_text(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("confirmed_plan", mode="before")
    @classmethod
    def _empty_plan_is_none(cls, value):
        if isinstance(value, list) and not value:
            return None
        return value


class CommandResponse(_WireModel):
    success: bool
    message: str
    operations: List[Union[OperationResult, PreviewEntry]] = Field(default_factory=list)
    preview: Optional[bool] = None
    plan: Optional[List[ToolCall]] = None
    execution_time_ms: int = Field(0, alias="executionTimeMs")
    log_id: Optional[str] = Field(None, alias="logId")
    error: Optional[str] = None
    rate_limit: Optional[RateLimitInfo] = Field(None, alias="rateLimit")
    # set only when the caller was turned away by the rate-limit gate
    rate_limited: bool = Field(False, exclude=True)
    # set when the reasoning backend failed before anything was executed
    backend_failure: bool = Field(False, exclude=True)
    # request without an instruction or a confirmed plan
    missing_instruction: bool = Field(False, exclude=True)
    # no reasoning backend credentials configured
    config_error: bool = Field(False, exclude=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
