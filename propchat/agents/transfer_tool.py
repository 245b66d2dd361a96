"""
Transfer-tool injection.

Every agent with downstream peers gets one synthesized ``transferAgents``
tool whose destination enum is exactly its downstream list. The default
handler only signals intent; the transfer itself is executed by the
session's transfer coordinator.
"""

import logging
from dataclasses import replace
from typing import Any, Iterable

from propchat.agents.base import (
    TRANSFER_TOOL_NAME,
    AgentDefinition,
    ToolContext,
    function_tool,
)
from propchat.schemas.tool_schema import ToolDefinition

logger = logging.getLogger(__name__)


async def _signal_transfer(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    if not args.get("destination_agent"):
        return {
            "error": "destination_agent is required.",
            "suggested_action": "Call transferAgents again with one of the listed agents.",
        }
    return {
        "destination_agent": args.get("destination_agent"),
        "success": True,
        "message": "Transfer initiated.",
    }


def build_transfer_tool(
    agent: AgentDefinition, peers: dict[str, AgentDefinition]
) -> ToolDefinition:
    """Describe the transfer tool for ``agent`` from its downstream peers."""
    lines = [
        "Triggers a transfer of the user to a more specialized agent.",
        "Calls escalate to a more specialized LLM agent or to a human agent, "
        "with additional context.",
        "Only call this function if one of the available agents is appropriate. "
        f"Do not transfer to your own agent type ({agent.name}).",
        "",
        "Let the user know you're about to transfer them before doing so.",
        "",
        "Available Agents:",
    ]
    for name in agent.downstream:
        peer = peers.get(name)
        description = peer.public_description if peer else ""
        lines.append(f"- {name}: {description}")

    return function_tool(
        TRANSFER_TOOL_NAME,
        "\n".join(lines),
        properties={
            "rationale_for_transfer": {
                "type": "string",
                "description": "The reasoning why this transfer is needed.",
            },
            "conversation_context": {
                "type": "string",
                "description": "Relevant context from the conversation that will "
                "help the recipient perform the correct action.",
            },
            "destination_agent": {
                "type": "string",
                "description": "The more specialized destination_agent that should "
                "handle the user's intended request.",
                "enum": list(agent.downstream),
            },
        },
        required=["destination_agent"],
    )


def inject_transfer_tools(agents: Iterable[AgentDefinition]) -> list[AgentDefinition]:
    """Return copies of ``agents`` with a transfer tool added where applicable."""
    agent_list = list(agents)
    peers = {agent.name: agent for agent in agent_list}
    result: list[AgentDefinition] = []
    for agent in agent_list:
        if not agent.downstream:
            result.append(agent)
            continue
        missing = [name for name in agent.downstream if name not in peers]
        if missing:
            logger.warning("Agent %s lists unknown downstream agents: %s", agent.name, missing)
        tools = tuple(t for t in agent.tools if t.name != TRANSFER_TOOL_NAME)
        handlers = dict(agent.handlers)
        handlers[TRANSFER_TOOL_NAME] = _signal_transfer
        result.append(replace(
            agent,
            tools=tools + (build_transfer_tool(agent, peers),),
            handlers=handlers,
        ))
    return result
