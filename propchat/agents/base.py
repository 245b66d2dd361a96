"""
Immutable agent definitions and the context handed to tool handlers.

An agent is data: instructions, a tool catalog, a handler per tool, and the
agents it may hand the conversation to. Nothing session-specific is ever
stored on a definition; the live session passes metadata in.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Optional, TYPE_CHECKING

from propchat.conversation.transcript import TranscriptItem
from propchat.conversation.ui_hints import UiHint
from propchat.schemas.tool_schema import ToolDefinition

if TYPE_CHECKING:
    from propchat.config import AppConfig
    from propchat.tools.backend import PropertyBackend

TRANSFER_TOOL_NAME = "transferAgents"


@dataclass(frozen=True)
class ToolContext:
    """Read-only view of the session given to a handler for one call."""

    agent_name: str
    call_id: str
    metadata: Mapping[str, Any]
    transcript: tuple[TranscriptItem, ...]
    backend: "PropertyBackend"
    settings: "AppConfig"


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[dict[str, Any]]]
InstructionBuilder = Callable[[Mapping[str, Any]], str]
KickoffBuilder = Callable[[Mapping[str, Any]], str]


def function_tool(
    name: str,
    description: str,
    properties: Optional[dict[str, Any]] = None,
    required: Optional[list[str]] = None,
) -> ToolDefinition:
    """Build a JSON-schema function tool definition."""
    return ToolDefinition(
        name=name,
        description=description,
        parameters={
            "type": "object",
            "properties": properties or {},
            "required": required or [],
            "additionalProperties": False,
        },
    )


def parse_tool_name(tools: type[Enum], name: str) -> Optional[Enum]:
    """Map a model-issued name onto an agent's closed tool enum.

    Returns None for names outside the enum (the unsupported case).
    """
    try:
        return tools(name)
    except ValueError:
        return None


@dataclass(frozen=True)
class AgentDefinition:
    """Static description of one conversational agent."""

    name: str
    public_description: str
    instructions: InstructionBuilder
    tools: tuple[ToolDefinition, ...] = ()
    handlers: Mapping[str, ToolHandler] = field(default_factory=dict)
    tool_names: Optional[type[Enum]] = None
    downstream: tuple[str, ...] = ()
    default_metadata: Mapping[str, Any] = field(default_factory=dict)
    display_mode: UiHint = UiHint.CHAT
    always_silent_transfer: bool = False
    kickoff: Optional[KickoffBuilder] = None
    unsupported_hints: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "handlers", MappingProxyType(dict(self.handlers)))
        object.__setattr__(
            self, "default_metadata", MappingProxyType(dict(self.default_metadata))
        )
        object.__setattr__(
            self, "unsupported_hints", MappingProxyType(dict(self.unsupported_hints))
        )

    def resolve_tool(self, name: str) -> Optional[ToolHandler]:
        """Return the handler for ``name`` or None if this agent lacks it."""
        if name == TRANSFER_TOOL_NAME:
            return self.handlers.get(TRANSFER_TOOL_NAME)
        if self.tool_names is not None:
            member = parse_tool_name(self.tool_names, name)
            if member is None:
                return None
            return self.handlers.get(member.value)
        return self.handlers.get(name)

    def tool_catalog(self) -> list[str]:
        return [tool.name for tool in self.tools]

    def unsupported_tool_hint(self, name: str) -> str:
        """Corrective action suggested when the model calls a missing tool."""
        hint = self.unsupported_hints.get(name)
        if hint:
            return hint
        available = ", ".join(self.tool_catalog()) or "none"
        return (
            f"The {self.name} agent has no tool named '{name}'. "
            f"Use one of: {available}."
        )

    def kickoff_message(self, metadata: Mapping[str, Any]) -> str:
        if self.kickoff is not None:
            return self.kickoff(metadata)
        return "Hello"
