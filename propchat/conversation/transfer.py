"""
Transfer coordinator -- hands the conversation from one agent to another.

Order of operations for an accepted transfer:
    1. cancel any in-flight response and wait for the acknowledgement
    2. merge the destination defaults, live metadata and tool fields
    3. swap the active agent and open the transfer guard
    4. push the destination's instructions and tools to the model
    5. kick off the destination (silent) or report success (announced)
"""

from typing import TYPE_CHECKING

from propchat.agents.base import AgentDefinition
from propchat.conversation.dispatcher import ResultKind, ToolResult
from propchat.conversation.metadata import (
    IdentityConflictError,
    check_identity,
    merge_transfer_metadata,
)
from propchat.conversation.ui_hints import UiHint
from propchat.logging_context import get_session_logger
from propchat.schemas.tool_schema import ToolCall

if TYPE_CHECKING:
    from propchat.conversation.session import RealtimeSession

logger = get_session_logger(__name__)


class TransferCoordinator:
    """Executes transfer results produced by the tool dispatcher."""

    def __init__(self, session: "RealtimeSession") -> None:
        self._session = session

    def validate(self, source: AgentDefinition, destination: str) -> bool:
        """A destination must be registered and listed downstream of the source."""
        return destination in source.downstream and destination in self._session.registry

    async def transfer(
        self, source: AgentDefinition, call: ToolCall, result: ToolResult
    ) -> ToolResult:
        session = self._session
        destination = result.destination or ""

        if not self.validate(source, destination):
            logger.warning("Rejected transfer %s -> %s", source.name, destination)
            error = ToolResult.error(
                f"Transfer failed: Agent not found: {destination}",
                suggested_action=(
                    f"Transfer only to one of: {', '.join(source.downstream) or 'none'}."
                ),
                ui_hint=source.display_mode.value,
            )
            await self._report(call, error)
            return error

        target = session.registry.get(destination)

        # Outputs queued for the outgoing agent are moot once it hands off
        session.lifecycle.drop_deferred_request()
        await session.cancel_active_response()

        if session.state.active_agent != source.name:
            logger.info(
                "Transfer %s -> %s superseded by a transfer to %s",
                source.name, destination, session.state.active_agent,
            )
            return ToolResult.silent_result({"dropped": call.name})

        merged = merge_transfer_metadata(
            target.default_metadata, session.metadata, result.payload, came_from=source.name,
        )
        try:
            check_identity(merged)
        except IdentityConflictError as exc:
            logger.error("Transfer %s -> %s aborted: %s", source.name, destination, exc)
            error = ToolResult.error(
                "Transfer aborted: internal identity conflict",
                suggested_action="Continue helping the user with the current agent.",
            )
            await self._report(call, error)
            return error

        session.replace_metadata(merged)
        session.lifecycle.begin_transfer(source.name, destination)
        silent = result.silent or target.always_silent_transfer
        logger.info(
            "Transferred %s -> %s (%s, epoch %d)",
            source.name, destination, "silent" if silent else "announced",
            session.lifecycle.transfer_epoch,
        )

        await session.push_agent_config()

        hint = result.ui_hint or (
            target.display_mode.value if target.display_mode != UiHint.CHAT else None
        )
        if hint:
            session.ui_hints.show(hint, {"agent": destination})

        if silent:
            await session.send_kickoff(target.kickoff_message(merged))
        else:
            await session.send_function_output(
                call.call_id, {"status": "Transfer successful", "transferred_to": destination},
            )
            await session.request_response()

        return ToolResult(
            kind=ResultKind.TRANSFER,
            payload=result.payload,
            destination=destination,
            silent=silent,
            ui_hint=hint,
        )

    async def _report(self, call: ToolCall, error: ToolResult) -> None:
        await self._session.send_function_output(call.call_id, error.to_output())
        await self._session.request_response()
