"""Tool catalog and tool call schemas exchanged with the realtime model."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class ToolDefinition(BaseModel):
    """A function tool advertised to the model in ``session.update``."""

    type: Literal["function"] = "function"
    name: str
    description: str
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )


class ToolCall(BaseModel):
    """A function call emitted by the model inside a completed response."""

    name: str
    call_id: str
    arguments: str = "{}"
