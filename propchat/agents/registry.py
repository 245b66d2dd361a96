"""
Agent registry -- immutable agent definitions looked up by name.

Agents never import each other. Transfers name their destination as a
string and the session resolves it here at runtime, so agent modules stay
decoupled and a registry can be assembled per deployment or per test.
"""

import logging
from typing import Iterable, Iterator

from propchat.agents.base import AgentDefinition
from propchat.agents.transfer_tool import inject_transfer_tools

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Name -> AgentDefinition lookup for one deployment."""

    def __init__(self, agents: Iterable[AgentDefinition] = ()) -> None:
        self._agents: dict[str, AgentDefinition] = {}
        for agent in agents:
            self.register(agent)

    def register(self, agent: AgentDefinition) -> None:
        """Register an agent definition by its name."""
        if agent.name in self._agents:
            logger.warning("Agent '%s' re-registered, replacing previous definition", agent.name)
        self._agents[agent.name] = agent
        logger.debug("Agent registered: %s", agent.name)

    def get(self, name: str) -> AgentDefinition:
        """Look up an agent by name.

        Raises:
            KeyError: If the agent name is not registered.
        """
        if name not in self._agents:
            registered = list(self._agents.keys())
            raise KeyError(f"Agent '{name}' not registered. Available: {registered}")
        return self._agents[name]

    def names(self) -> list[str]:
        """Return names of all registered agents."""
        return list(self._agents.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __iter__(self) -> Iterator[AgentDefinition]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)


def create_default_registry() -> AgentRegistry:
    """Build the real-estate agent set with transfer tools injected."""
    from propchat.agents.authentication_agent import build_authentication_agent
    from propchat.agents.human_agent import build_human_agent
    from propchat.agents.real_estate_agent import build_real_estate_agent
    from propchat.agents.scheduling_agent import build_scheduling_agent

    agents = inject_transfer_tools([
        build_real_estate_agent(),
        build_authentication_agent(),
        build_scheduling_agent(),
        build_human_agent(),
    ])
    return AgentRegistry(agents)
