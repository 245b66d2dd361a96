"""Simulated human agent -- an empathetic fallback with no tools of its own."""

from propchat.agents.base import AgentDefinition
from propchat.prompts.system_prompts import human_instructions

NAME = "simulatedHuman"


def build_human_agent() -> AgentDefinition:
    return AgentDefinition(
        name=NAME,
        public_description="Placeholder human agent that can provide more advanced help "
        "to the user. Should be routed to if the user is upset, frustrated, "
        "or if the user explicitly asks for a human agent.",
        instructions=human_instructions,
        downstream=("authentication", "realEstate", "scheduleMeeting"),
    )
