"""
Tool dispatcher -- runs one model-issued function call against the active agent.

For every call exactly one side effect reaches the channel: a tool result
followed by a response request, nothing at all (silent), or a handoff to
the transfer coordinator. Handler failures become error results; nothing
raised by a handler escapes this module.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, TYPE_CHECKING

from propchat.agents.base import AgentDefinition, ToolContext
from propchat.conversation.metadata import IdentityConflictError, check_identity
from propchat.logging_context import get_session_logger
from propchat.schemas.tool_schema import ToolCall
from propchat.utils import is_empty, normalize_phone

if TYPE_CHECKING:
    from propchat.conversation.session import RealtimeSession
    from propchat.conversation.transfer import TransferCoordinator

logger = get_session_logger(__name__)

DEFAULT_ERROR_ACTION = "Tell the user briefly what went wrong and offer to try again."
_SILENT_TRANSFER_KEYS = ("silentTransfer", "silent_transfer", "silent")


class ResultKind(str, Enum):
    NORMAL = "normal"
    SILENT = "silent"
    TRANSFER = "transfer"
    ERROR = "error"


@dataclass(frozen=True)
class ToolResult:
    """Classified outcome of one tool call."""
    kind: ResultKind
    payload: Mapping[str, Any] = field(default_factory=dict)
    destination: Optional[str] = None
    silent: bool = False
    message: Optional[str] = None
    suggested_action: Optional[str] = None
    ui_hint: Optional[str] = None
    metadata_updates: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def error(
        cls,
        message: str,
        suggested_action: str = DEFAULT_ERROR_ACTION,
        ui_hint: Optional[str] = None,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> "ToolResult":
        return cls(
            kind=ResultKind.ERROR,
            payload=dict(payload or {}),
            message=message,
            suggested_action=suggested_action,
            ui_hint=ui_hint,
        )

    @classmethod
    def silent_result(cls, payload: Optional[Mapping[str, Any]] = None) -> "ToolResult":
        return cls(kind=ResultKind.SILENT, payload=dict(payload or {}))

    def to_output(self) -> dict[str, Any]:
        """The JSON object sent back to the model as the function call output."""
        output = dict(self.payload)
        if self.kind == ResultKind.ERROR:
            output["error"] = self.message
            output["suggested_action"] = self.suggested_action
        if self.ui_hint:
            output["ui_display_hint"] = self.ui_hint
        return output


def classify_result(raw: Any) -> ToolResult:
    """Turn a handler's JSON result into a ToolResult."""
    if not isinstance(raw, dict):
        raw = {"result": raw}
    payload = dict(raw)
    updates = payload.pop("metadata_updates", None) or {}
    ui_hint = payload.get("ui_display_hint")

    destination = payload.get("destination") or payload.get("destination_agent")
    if destination:
        return ToolResult(
            kind=ResultKind.TRANSFER,
            payload=payload,
            destination=str(destination),
            silent=any(payload.get(key) is True for key in _SILENT_TRANSFER_KEYS),
            ui_hint=ui_hint,
            metadata_updates=updates,
        )
    if payload.get("silent") is True:
        return ToolResult(kind=ResultKind.SILENT, payload=payload, metadata_updates=updates)
    if payload.get("error"):
        return ToolResult(
            kind=ResultKind.ERROR,
            payload=payload,
            message=str(payload["error"]),
            suggested_action=payload.get("suggested_action") or DEFAULT_ERROR_ACTION,
            ui_hint=ui_hint,
            metadata_updates=updates,
        )
    return ToolResult(
        kind=ResultKind.NORMAL,
        payload=payload,
        message=payload.get("message"),
        ui_hint=ui_hint,
        metadata_updates=updates,
    )


def parse_arguments(raw: Optional[str]) -> dict[str, Any]:
    """Parse a call's JSON arguments.

    Raises:
        ValueError: If the arguments are not a JSON object.
    """
    if raw is None or not raw.strip():
        return {}
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def normalize_arguments(args: dict[str, Any]) -> dict[str, Any]:
    phone = args.get("phone_number")
    if isinstance(phone, str) and phone.strip():
        args["phone_number"] = normalize_phone(phone)
    return args


def merge_arguments(args: Mapping[str, Any], metadata: Mapping[str, Any]) -> dict[str, Any]:
    """Fill every argument the caller left empty from session metadata."""
    merged = dict(args)
    for key, value in metadata.items():
        if is_empty(merged.get(key)):
            merged[key] = value
    return merged


class ToolDispatcher:
    """Resolves, runs and routes tool calls for one session."""

    def __init__(self, session: "RealtimeSession", coordinator: "TransferCoordinator") -> None:
        self._session = session
        self._coordinator = coordinator

    async def dispatch(self, call: ToolCall, issuing_agent: Optional[str] = None) -> ToolResult:
        """Run ``call`` for ``issuing_agent`` and apply its side effect.

        A call whose issuing agent is no longer active, before or after
        its handler runs, is dropped without touching the channel.
        """
        session = self._session
        agent_name = issuing_agent or session.state.active_agent
        if agent_name != session.state.active_agent:
            logger.info("Dropping %s from superseded agent %s", call.name, agent_name)
            return ToolResult.silent_result({"dropped": call.name})

        agent = session.registry.get(agent_name)
        result = await self.execute(agent, call)

        if session.state.active_agent != agent_name:
            logger.info(
                "Agent changed to %s while %s ran; dropping its result",
                session.state.active_agent, call.name,
            )
            return ToolResult.silent_result({"dropped": call.name})

        if result.metadata_updates:
            try:
                check_identity({**session.metadata, **result.metadata_updates})
            except IdentityConflictError as exc:
                logger.error("Rejected metadata updates from %s: %s", call.name, exc)
                result = ToolResult.error(
                    "internal identity conflict",
                    suggested_action="Apologize for a technical problem and continue without the new details.",
                    ui_hint=agent.display_mode.value,
                )
            else:
                session.apply_metadata_updates(result.metadata_updates)
        return await self._route(agent, call, result)

    async def execute(self, agent: AgentDefinition, call: ToolCall) -> ToolResult:
        """Parse, resolve, merge and invoke. Never raises for handler faults."""
        session = self._session
        try:
            args = parse_arguments(call.arguments)
        except ValueError as exc:
            logger.warning("Malformed arguments for %s: %s", call.name, exc)
            return ToolResult.error(
                "malformed arguments",
                suggested_action=f"Call {call.name} again with a valid JSON object as arguments.",
                ui_hint=agent.display_mode.value,
            )

        normalize_arguments(args)

        handler = agent.resolve_tool(call.name)
        if handler is None:
            logger.warning("Unsupported tool %s for agent %s", call.name, agent.name)
            return ToolResult.error(
                f"Tool '{call.name}' is not available to the {agent.name} agent.",
                suggested_action=agent.unsupported_tool_hint(call.name),
                ui_hint=agent.display_mode.value,
            )

        if not is_empty(args.get("phone_number")):
            session.apply_metadata_updates({"phone_number": args["phone_number"]})
        merged = merge_arguments(args, session.metadata)

        ctx = ToolContext(
            agent_name=agent.name,
            call_id=call.call_id,
            metadata=MappingProxyType(dict(session.metadata)),
            transcript=session.transcript.snapshot(),
            backend=session.backend,
            settings=session.settings,
        )
        logger.debug("Invoking %s.%s (call %s)", agent.name, call.name, call.call_id)
        try:
            raw = await handler(merged, ctx)
        except Exception as exc:
            logger.exception("Tool %s failed", call.name)
            return ToolResult.error(f"Failed to process function call {call.name}: {exc}")
        return classify_result(raw)

    async def _route(self, agent: AgentDefinition, call: ToolCall, result: ToolResult) -> ToolResult:
        session = self._session
        if result.kind == ResultKind.TRANSFER:
            return await self._coordinator.transfer(agent, call, result)
        if result.kind == ResultKind.SILENT:
            logger.debug("Silent result for %s", call.name)
            return result

        if result.ui_hint:
            session.ui_hints.show(result.ui_hint, result.to_output())
        await session.send_function_output(call.call_id, result.to_output())
        await session.request_response()
        return result
