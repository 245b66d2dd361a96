"""Inbound realtime server event schemas.

The upstream service adds fields freely, so every model allows extras and
only the fields the orchestration core reads are declared.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from propchat.schemas.tool_schema import ToolCall


class ContentPart(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = ""
    text: Optional[str] = None
    transcript: Optional[str] = None


class ServerItem(BaseModel):
    """A conversation item or response output item."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    type: str = "message"
    role: Optional[str] = None
    status: Optional[str] = None
    name: Optional[str] = None
    call_id: Optional[str] = None
    arguments: Optional[str] = None
    content: list[ContentPart] = Field(default_factory=list)

    def text(self) -> str:
        """Concatenate the text or transcript of every content part."""
        parts = [part.text or part.transcript or "" for part in self.content]
        return "".join(parts)

    def has_input_text(self) -> bool:
        return any(part.type == "input_text" for part in self.content)


class ServerResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    status: Optional[str] = None
    output: list[ServerItem] = Field(default_factory=list)

    def function_calls(self) -> list[ToolCall]:
        """Extract the function calls emitted in this response, in order."""
        return [
            ToolCall(name=item.name, call_id=item.call_id, arguments=item.arguments or "{}")
            for item in self.output
            if item.type == "function_call" and item.name and item.call_id
        ]


class ServerEvent(BaseModel):
    """Envelope for every event pushed by the realtime service."""

    model_config = ConfigDict(extra="allow")

    type: str
    event_id: Optional[str] = None
    item_id: Optional[str] = None
    item: Optional[ServerItem] = None
    response: Optional[ServerResponse] = None
    delta: Optional[str] = None
    transcript: Optional[str] = None
    error: Optional[dict[str, Any]] = None
