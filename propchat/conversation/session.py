"""
Realtime session -- one connected widget conversation.

The session owns every piece of mutable state for a connection: the
active agent, the metadata map, the response lifecycle, the transcript
and the current UI hint. Inbound server events enter through
``handle_event``; everything outbound goes through ``_send`` so a closed
channel tears the session down in one place.

Usage:
    session = RealtimeSession(create_default_registry(), channel, backend)
    await session.start(session_id=..., chatbot_id=..., org_id=...)
    await session.handle_event(raw_event)
    await session.send_user_text("Tell me about Skyline Heights")
"""

import asyncio
from types import MappingProxyType
from typing import Any, Mapping, Optional, TYPE_CHECKING

from pydantic import ValidationError

from propchat.agents.base import AgentDefinition
from propchat.config import AppConfig, settings as default_settings
from propchat.conversation.dispatcher import ToolDispatcher
from propchat.conversation.lifecycle import CompletionVerdict, ResponseLifecycle, SessionState
from propchat.conversation.metadata import (
    apply_org_metadata,
    bootstrap_metadata,
    check_identity,
)
from propchat.conversation.transcript import (
    INAUDIBLE_PLACEHOLDER,
    TRANSCRIBING_PLACEHOLDER,
    ItemStatus,
    Role,
    TranscriptLog,
    new_item_id,
)
from propchat.conversation.transfer import TransferCoordinator
from propchat.conversation.ui_hints import UiHintTracker
from propchat.logging_context import get_session_logger, set_session_id
from propchat.realtime import events
from propchat.realtime.channel import Channel, ChannelClosedError
from propchat.schemas.event_schema import ServerEvent, ServerResponse
from propchat.schemas.tool_schema import ToolCall
from propchat.tools.backend import BackendError, PropertyBackend

if TYPE_CHECKING:
    from propchat.agents.registry import AgentRegistry

logger = get_session_logger(__name__)


class RealtimeSession:
    """Orchestrates agents, tools and transfers over one realtime channel."""

    def __init__(
        self,
        registry: "AgentRegistry",
        channel: Channel,
        backend: PropertyBackend,
        config: Optional[AppConfig] = None,
        initial_agent: Optional[str] = None,
    ) -> None:
        self.settings = config or default_settings
        self.registry = registry
        self.backend = backend
        self._channel = channel

        agent_name = initial_agent or self.settings.orchestration.default_agent
        registry.get(agent_name)
        self._initial_agent = agent_name

        self.state = SessionState(active_agent=agent_name)
        self.lifecycle = ResponseLifecycle(self.state)
        self.transcript = TranscriptLog()
        self.ui_hints = UiHintTracker(self.settings.orchestration.ui_hint_ttl_sec)
        self.coordinator = TransferCoordinator(self)
        self.dispatcher = ToolDispatcher(self, self.coordinator)

        self._metadata: dict[str, Any] = {}
        self._tasks: set[asyncio.Task] = set()
        self.connected = False
        self.closed = False

    # ------------------------------------------------------------------ #
    # State accessors
    # ------------------------------------------------------------------ #

    @property
    def active_agent(self) -> AgentDefinition:
        return self.registry.get(self.state.active_agent)

    @property
    def metadata(self) -> Mapping[str, Any]:
        """Read-only live view of the session metadata."""
        return MappingProxyType(self._metadata)

    def apply_metadata_updates(self, updates: Mapping[str, Any]) -> None:
        self._metadata.update(updates)
        logger.debug("Metadata updated: %s", sorted(updates))

    def replace_metadata(self, metadata: Mapping[str, Any]) -> None:
        self._metadata = dict(metadata)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(
        self,
        session_id: Optional[str] = None,
        chatbot_id: Optional[str] = None,
        org_id: Optional[str] = None,
        language: Optional[str] = None,
    ) -> dict[str, Any]:
        """Bootstrap metadata, enrich it from the backend and configure the model.

        Raises:
            IdentityConflictError: If the resolved identifiers coincide.
        """
        widget = self.settings.widget
        metadata = bootstrap_metadata(
            session_id,
            chatbot_id,
            org_id,
            language=language or widget.default_language,
            org_name=widget.default_org_name,
            fallback_chatbot_id=widget.fallback_chatbot_id,
        )
        set_session_id(metadata["session_id"])

        try:
            fetched = await self.backend.fetch_org_metadata(
                metadata["session_id"], metadata["chatbot_id"]
            )
        except BackendError as exc:
            logger.warning("Org metadata unavailable, continuing with defaults: %s", exc)
        else:
            metadata = apply_org_metadata(metadata, fetched)

        check_identity(metadata)
        self._metadata = metadata
        logger.info(
            "Session started with agent %s (%d projects)",
            self.state.active_agent, len(metadata.get("project_ids") or []),
        )
        await self.push_agent_config()
        return dict(metadata)

    async def drain(self) -> None:
        """Wait until every spawned tool batch has finished."""
        pending = [task for task in self._tasks if not task.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [task for task in self._tasks if not task.done()]

    async def close(self, reason: str = "closed") -> None:
        """Tear down all per-connection state. Idempotent."""
        if self.closed:
            return
        self.closed = True
        self.connected = False
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self.ui_hints.close()
        self.lifecycle.reset(self._initial_agent)
        self._metadata = {}
        logger.info("Session closed: %s", reason)

    # ------------------------------------------------------------------ #
    # Outbound
    # ------------------------------------------------------------------ #

    async def _send(self, event: dict[str, Any]) -> None:
        if self.closed:
            raise ChannelClosedError(f"Session closed, cannot send {event.get('type')}")
        try:
            await self._channel.send(event)
        except ChannelClosedError:
            logger.error("Channel closed while sending %s", event.get("type"))
            await self.close("channel closed")
            raise

    async def push_agent_config(self) -> None:
        agent = self.active_agent
        await self._send(events.session_update(
            agent.instructions(self._metadata),
            list(agent.tools),
            self._metadata.get("language"),
        ))

    async def request_response(self) -> bool:
        """Ask the model for a response, or defer while one is in flight."""
        if self.lifecycle.request_response():
            await self._send(events.response_create())
            return True
        return False

    async def cancel_active_response(self) -> None:
        """Cancel the in-flight response and wait for the acknowledgement.

        Falls back to forcing the lifecycle idle after
        ``cancel_ack_timeout_sec``.
        """
        if not self.lifecycle.is_busy:
            return
        ack = self.lifecycle.wait_until_idle()
        await self._send(events.response_cancel())
        try:
            await asyncio.wait_for(
                ack, timeout=self.settings.orchestration.cancel_ack_timeout_sec
            )
        except asyncio.TimeoutError:
            logger.warning("No cancellation acknowledgement, forcing idle")
            self.lifecycle.force_idle()

    async def send_function_output(self, call_id: str, output: dict[str, Any]) -> None:
        await self._send(events.function_call_output(call_id, output))

    async def send_kickoff(self, text: str) -> None:
        """Start a silently transferred agent with a hidden user message."""
        await self._send(events.input_audio_buffer_clear())
        item_id = new_item_id("kick")
        self.transcript.add_message(item_id, Role.USER, text, hidden=True)
        self.transcript.mark_status(item_id, ItemStatus.DONE)
        await self._send(events.user_message(text, item_id))
        await self.request_response()

    async def send_user_text(self, text: str) -> str:
        """Send a typed user message and request a response. Returns the item id."""
        await self.cancel_active_response()
        await self._send(events.input_audio_buffer_clear())
        item_id = new_item_id("msg")
        self.transcript.add_message(item_id, Role.USER, text)
        self.transcript.mark_status(item_id, ItemStatus.DONE)
        await self._send(events.user_message(text, item_id))
        await self.request_response()
        return item_id

    async def _flush_deferred(self) -> None:
        if self.lifecycle.take_deferred_request():
            await self._send(events.response_create())

    # ------------------------------------------------------------------ #
    # Inbound
    # ------------------------------------------------------------------ #

    async def handle_event(self, raw: Mapping[str, Any]) -> None:
        """Route one server event. Malformed events are logged and dropped."""
        if self.closed:
            logger.debug("Event %s after close ignored", raw.get("type"))
            return
        try:
            event = ServerEvent.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Malformed server event dropped: %s", exc)
            return

        if event.type == events.SESSION_CREATED:
            self.connected = True
        elif event.type == events.RESPONSE_CREATED:
            response = event.response or ServerResponse()
            self.lifecycle.on_response_started(response.id)
        elif event.type == events.RESPONSE_DONE:
            await self._on_response_done(event.response or ServerResponse())
        elif event.type == events.RESPONSE_CANCELLED:
            response = event.response or ServerResponse()
            self.lifecycle.on_response_canceled(response.id)
            await self._flush_deferred()
        elif event.type == events.ITEM_CREATED:
            self._on_item_created(event)
        elif event.type in (events.AUDIO_TRANSCRIPT_DELTA, events.TEXT_DELTA):
            if event.item_id and event.delta:
                self.transcript.upsert(
                    event.item_id, Role.ASSISTANT, event.delta,
                    is_delta=True, agent_name=self.state.active_agent,
                )
        elif event.type == events.TRANSCRIPTION_COMPLETED:
            if event.item_id:
                text = (event.transcript or "").strip() or INAUDIBLE_PLACEHOLDER
                self.transcript.upsert(event.item_id, Role.USER, text)
                self.transcript.mark_status(event.item_id, ItemStatus.DONE)
        elif event.type == events.OUTPUT_ITEM_DONE:
            item_id = event.item.id if event.item else event.item_id
            if item_id:
                self.transcript.mark_status(item_id, ItemStatus.DONE)
        elif event.type == events.ERROR:
            await self._on_error(event.error or {})
        else:
            logger.debug("Unhandled server event: %s", event.type)

    async def _on_response_done(self, response: ServerResponse) -> None:
        if response.status == "cancelled":
            self.lifecycle.on_response_canceled(response.id)
            await self._flush_deferred()
            return

        issuing_agent = self.lifecycle.response_agent(response.id) or self.state.active_agent
        verdict = self.lifecycle.on_response_completed(response.id)
        calls = response.function_calls()
        if calls:
            if verdict == CompletionVerdict.PROCESS:
                self._spawn(self._dispatch_batch(calls, issuing_agent))
            else:
                logger.info(
                    "Discarded %d tool call(s) from stale response %s",
                    len(calls), response.id,
                )
        await self._flush_deferred()

    def _on_item_created(self, event: ServerEvent) -> None:
        item = event.item
        if item is None or not item.id:
            return
        if item.type in ("function_call", "function_call_output"):
            return
        try:
            role = Role(item.role or "assistant")
        except ValueError:
            logger.debug("Item %s with unknown role %s ignored", item.id, item.role)
            return

        text = item.text()
        if role == Role.USER and not text and not item.has_input_text():
            text = TRANSCRIBING_PLACEHOLDER
        agent_name = self.state.active_agent if role == Role.ASSISTANT else None
        self.transcript.add_message(item.id, role, text, agent_name=agent_name)

    async def _on_error(self, error: Mapping[str, Any]) -> None:
        code = error.get("code")
        message = error.get("message") or "Unknown error"
        if code == events.CANCEL_NOT_ACTIVE:
            logger.debug("Cancel with no active response acknowledged")
            self.lifecycle.on_response_canceled()
            await self._flush_deferred()
            return
        if code == events.ALREADY_HAS_ACTIVE_RESPONSE:
            logger.debug("Server already has an active response")
            return
        logger.error("Realtime error %s: %s", code, message)
        self.lifecycle.on_request_failed()
        self.transcript.add_system_notice(f"Session Error: {message}")

    # ------------------------------------------------------------------ #
    # Tool batches
    # ------------------------------------------------------------------ #

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _dispatch_batch(self, calls: list[ToolCall], issuing_agent: str) -> None:
        outcomes = await asyncio.gather(
            *(self.dispatcher.dispatch(call, issuing_agent) for call in calls),
            return_exceptions=True,
        )
        for call, outcome in zip(calls, outcomes):
            if isinstance(outcome, ChannelClosedError):
                logger.warning("Channel closed while handling %s", call.name)
            elif isinstance(outcome, asyncio.CancelledError):
                logger.debug("Tool call %s cancelled", call.name)
            elif isinstance(outcome, BaseException):
                logger.error("Dispatch of %s failed: %r", call.name, outcome)
