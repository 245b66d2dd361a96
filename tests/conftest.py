"""Shared test fixtures and helpers."""

import json
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Optional

import pytest
import pytest_asyncio

from propchat.agents.base import ToolContext
from propchat.agents.registry import create_default_registry
from propchat.config import AppConfig, OrchestrationConfig
from propchat.conversation.session import RealtimeSession
from propchat.realtime.channel import InMemoryChannel
from propchat.tools.mock_backend import DEMO_CHATBOT_ID, DEMO_ORG_ID, InMemoryBackend

SESSION_ID = "5f0c6d2e-9a8b-4c7d-8e6f-1a2b3c4d5e6f"
SKYLINE_ID = "d3f1a9c2-6b7e-4c1d-9e2f-3a4b5c6d7e8f"
OCEAN_VIEW_ID = "e4a2b8d3-7c8f-4d2e-8f3a-4b5c6d7e8f9a"


def make_config(**orchestration: Any) -> AppConfig:
    """AppConfig with orchestration overrides and a short cancel timeout."""
    orchestration.setdefault("cancel_ack_timeout_sec", 0.05)
    return replace(AppConfig(), orchestration=replace(OrchestrationConfig(), **orchestration))


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def registry():
    return create_default_registry()


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def channel():
    return InMemoryChannel()


@pytest.fixture
def session(registry, channel, backend, config):
    return RealtimeSession(registry, channel, backend, config)


@pytest_asyncio.fixture
async def started_session(session, channel):
    await session.start(session_id=SESSION_ID, chatbot_id=DEMO_CHATBOT_ID, org_id=DEMO_ORG_ID)
    channel.clear()
    return session


def base_metadata(**overrides: Any) -> dict[str, Any]:
    """Session metadata as it looks after the org metadata fetch."""
    metadata: dict[str, Any] = {
        "session_id": SESSION_ID,
        "org_id": DEMO_ORG_ID,
        "chatbot_id": DEMO_CHATBOT_ID,
        "org_name": "Horizon Realty",
        "language": "English",
        "active_project": "N/A",
        "project_ids": [SKYLINE_ID, OCEAN_VIEW_ID],
        "project_names": ["Skyline Heights", "Ocean View"],
        "project_id_map": {"Skyline Heights": SKYLINE_ID, "Ocean View": OCEAN_VIEW_ID},
        "is_verified": False,
        "has_scheduled": False,
        "question_count": 0,
    }
    metadata.update(overrides)
    return metadata


def make_context(
    backend: InMemoryBackend,
    metadata: Optional[dict[str, Any]] = None,
    agent_name: str = "realEstate",
    config: Optional[AppConfig] = None,
) -> ToolContext:
    """A ToolContext for calling handlers directly."""
    return ToolContext(
        agent_name=agent_name,
        call_id="call_test",
        metadata=MappingProxyType(dict(metadata if metadata is not None else base_metadata())),
        transcript=(),
        backend=backend,
        settings=config or make_config(),
    )


def handler_args(metadata: dict[str, Any], **args: Any) -> dict[str, Any]:
    """Arguments as the dispatcher hands them to a handler: args over metadata."""
    merged = dict(metadata)
    merged.update(args)
    return merged


def function_call(name: str, call_id: str = "call_1", /, **arguments: Any) -> dict[str, Any]:
    return {
        "type": "function_call",
        "name": name,
        "call_id": call_id,
        "arguments": json.dumps(arguments),
    }


def response_created(response_id: str) -> dict[str, Any]:
    return {"type": "response.created", "response": {"id": response_id}}


def response_done(response_id: str, *calls: dict[str, Any], status: str = "completed") -> dict[str, Any]:
    return {
        "type": "response.done",
        "response": {"id": response_id, "status": status, "output": list(calls)},
    }


async def run_response(session: RealtimeSession, response_id: str, *calls: dict[str, Any]) -> None:
    """Play one complete model response and wait for its tool calls."""
    await session.handle_event(response_created(response_id))
    await session.handle_event(response_done(response_id, *calls))
    await session.drain()


def outputs(channel: InMemoryChannel) -> list[dict[str, Any]]:
    """Decoded function_call_output payloads, in send order."""
    return [
        json.loads(event["item"]["output"])
        for event in channel.of_type("conversation.item.create")
        if event["item"]["type"] == "function_call_output"
    ]


def user_messages(channel: InMemoryChannel) -> list[str]:
    return [
        event["item"]["content"][0]["text"]
        for event in channel.of_type("conversation.item.create")
        if event["item"]["type"] == "message"
    ]
