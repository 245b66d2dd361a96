"""Tests for import chains and module integrity.

Ensures all public modules can be imported without errors and
that re-exports from __init__.py files work correctly.
"""

import pytest


class TestSchemaImports:
    def test_import_backend_schema(self):
        from propchat.schemas.backend_schema import OrgMetadata, OtpVerification, VisitRequest
        assert OrgMetadata().project_ids == []
        assert OtpVerification(verified=True).verified is True
        assert VisitRequest is not None

    def test_import_event_schema(self):
        from propchat.schemas.event_schema import ServerEvent
        event = ServerEvent.model_validate({"type": "session.created", "extra": 1})
        assert event.type == "session.created"

    def test_import_tool_schema(self):
        from propchat.schemas.tool_schema import ToolCall, ToolDefinition
        assert ToolCall is not None
        assert ToolDefinition is not None


class TestConversationImports:
    def test_import_conversation_package(self):
        from propchat.conversation import (
            CompletionVerdict, ResponseLifecycle, SessionState, TranscriptLog, UiHint,
        )
        lifecycle = ResponseLifecycle(SessionState(active_agent="realEstate"))
        assert not lifecycle.is_busy
        assert CompletionVerdict.PROCESS == "process"
        assert len(TranscriptLog()) == 0
        assert UiHint.CHAT == "CHAT"

    def test_import_session(self):
        from propchat.conversation.session import RealtimeSession
        from propchat.conversation.dispatcher import ToolDispatcher
        from propchat.conversation.transfer import TransferCoordinator
        assert RealtimeSession is not None
        assert ToolDispatcher is not None
        assert TransferCoordinator is not None


class TestToolImports:
    def test_import_backends(self):
        from propchat.tools.backend import BackendError, PropertyBackend
        from propchat.tools.http_backend import HttpBackend
        from propchat.tools.mock_backend import InMemoryBackend
        assert issubclass(BackendError, Exception)
        assert InMemoryBackend().bookings == []
        assert PropertyBackend is not None
        assert HttpBackend is not None


class TestPromptImports:
    def test_import_system_prompts(self):
        from propchat.prompts.system_prompts import real_estate_instructions
        text = real_estate_instructions({"org_name": "Horizon Realty", "project_names": ["Ocean View"]})
        assert "Horizon Realty" in text

    def test_import_prompt_templates(self):
        from propchat.prompts.prompt_templates import build_booking_message
        assert callable(build_booking_message)


class TestAgentRegistry:
    def test_registry_has_all_agents(self):
        from propchat.agents import create_default_registry
        registry = create_default_registry()
        assert set(registry.names()) == {"realEstate", "authentication", "scheduleMeeting", "simulatedHuman"}

    def test_unknown_agent_raises(self):
        from propchat.agents import create_default_registry
        with pytest.raises(KeyError, match="not registered"):
            create_default_registry().get("nonexistent_agent")


class TestConfigImport:
    def test_import_config(self):
        from propchat.config import settings
        assert settings.orchestration.default_agent
        assert settings.orchestration.cancel_ack_timeout_sec > 0
        assert settings.widget.default_org_name


class TestConsoleDemo:
    def test_console_replay_imports(self):
        from console_demo import SCENARIOS, ConsoleReplay
        replay = ConsoleReplay()
        assert replay.session.state.active_agent == "realEstate"
        assert set(SCENARIOS) == {"verification", "scheduling"}
