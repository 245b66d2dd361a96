from propchat.agents.base import AgentDefinition, ToolContext, TRANSFER_TOOL_NAME
from propchat.agents.registry import AgentRegistry, create_default_registry
from propchat.agents.transfer_tool import inject_transfer_tools

__all__ = [
    "AgentDefinition", "ToolContext", "TRANSFER_TOOL_NAME",
    "AgentRegistry", "create_default_registry", "inject_transfer_tools",
]
