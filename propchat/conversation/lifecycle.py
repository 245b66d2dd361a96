"""
Response lifecycle tracker enforcing a single active model response.

Each response moves IDLE -> REQUESTED -> ACTIVE -> IDLE through an explicit
transition table. A transfer guard overlays the table: while a transfer is
in flight, a completed response is only processed if it was produced by
the transfer target after the transfer began.

Usage:
    lifecycle = ResponseLifecycle(SessionState(active_agent="realEstate"))
    if lifecycle.request_response():
        ...  # send response.create
    lifecycle.on_response_started("resp_1")
    verdict = lifecycle.on_response_completed("resp_1")
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ResponseState(str, Enum):
    """Where the current model response is in its life."""
    IDLE = "idle"
    REQUESTED = "requested"
    ACTIVE = "active"


class ResponseTrigger(str, Enum):
    """Events that move a response between states."""
    REQUESTED = "requested"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELED = "canceled"
    FAILED = "failed"


class CompletionVerdict(str, Enum):
    PROCESS = "process"
    DISCARD = "discard"


@dataclass
class Transition:
    """A single valid state transition."""
    from_state: ResponseState
    to_state: ResponseState
    trigger: ResponseTrigger


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: ResponseState
    entered_at: datetime
    trigger: Optional[ResponseTrigger] = None
    response_id: Optional[str] = None


@dataclass
class ResponseRecord:
    """Which agent owned a response, and in which transfer epoch it began."""
    response_id: str
    agent_name: str
    epoch: int


@dataclass
class SessionState:
    """Per-connection protocol state. Reset at disconnect."""
    active_agent: str
    has_active_response: bool = False
    is_transferring: bool = False
    transfer_target: Optional[str] = None
    transfer_source: Optional[str] = None

    def reset(self, active_agent: str) -> None:
        self.active_agent = active_agent
        self.has_active_response = False
        self.is_transferring = False
        self.transfer_target = None
        self.transfer_source = None


class InvalidResponseTransitionError(Exception):
    """Raised by strict callers when a trigger has no transition."""


class ResponseLifecycle:
    """
    Tracks the model's response state for one session.

    Unexpected triggers are protocol noise from the upstream service and
    are tolerated: the state is left unchanged and the event is logged.
    Use ``transition(..., strict=True)`` to raise instead.
    """

    TRANSITIONS: list[Transition] = [
        # --- Requesting ---
        Transition(ResponseState.IDLE, ResponseState.REQUESTED, ResponseTrigger.REQUESTED),
        Transition(ResponseState.REQUESTED, ResponseState.IDLE, ResponseTrigger.FAILED),
        Transition(ResponseState.REQUESTED, ResponseState.IDLE, ResponseTrigger.CANCELED),

        # --- Starting (server VAD may start a response nobody requested) ---
        Transition(ResponseState.IDLE, ResponseState.ACTIVE, ResponseTrigger.STARTED),
        Transition(ResponseState.REQUESTED, ResponseState.ACTIVE, ResponseTrigger.STARTED),

        # --- Finishing ---
        Transition(ResponseState.ACTIVE, ResponseState.IDLE, ResponseTrigger.COMPLETED),
        Transition(ResponseState.ACTIVE, ResponseState.IDLE, ResponseTrigger.CANCELED),
        Transition(ResponseState.REQUESTED, ResponseState.IDLE, ResponseTrigger.COMPLETED),
    ]

    def __init__(self, state: SessionState) -> None:
        self._state = state
        self._current = ResponseState.IDLE
        self._history: list[StateEntry] = [
            StateEntry(state=ResponseState.IDLE, entered_at=datetime.now(timezone.utc))
        ]
        self._responses: dict[str, ResponseRecord] = {}
        self._epoch = 0
        self._deferred_request = False
        self._idle_waiters: list[asyncio.Future] = []
        self._active_id: Optional[str] = None
        # Responses superseded or forced idle; their late events must not settle the state
        self._stale_ids: set[str] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_state(self) -> ResponseState:
        return self._current

    @property
    def transfer_epoch(self) -> int:
        return self._epoch

    @property
    def is_busy(self) -> bool:
        return self._current != ResponseState.IDLE

    # ------------------------------------------------------------------ #
    # Core transition
    # ------------------------------------------------------------------ #

    def transition(
        self,
        trigger: ResponseTrigger,
        response_id: Optional[str] = None,
        strict: bool = False,
    ) -> bool:
        """Apply a trigger. Returns False when no transition matched."""
        for t in self.TRANSITIONS:
            if t.from_state == self._current and t.trigger == trigger:
                old_state = self._current
                self._current = t.to_state
                self._state.has_active_response = t.to_state != ResponseState.IDLE
                self._history.append(StateEntry(
                    state=self._current,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                    response_id=response_id,
                ))
                logger.debug(
                    "Response transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current.value, trigger.value,
                )
                if self._current == ResponseState.IDLE:
                    self._release_idle_waiters()
                return True

        if strict:
            valid = [t.trigger.value for t in self.TRANSITIONS if t.from_state == self._current]
            raise InvalidResponseTransitionError(
                f"No valid transition from '{self._current.value}' "
                f"with trigger '{trigger.value}'. Valid triggers: {valid}"
            )
        return False

    # ------------------------------------------------------------------ #
    # Protocol events
    # ------------------------------------------------------------------ #

    def request_response(self) -> bool:
        """Reserve the right to send ``response.create``.

        Returns True if the caller should send it now. While a response
        is requested or active the request is deferred instead, and
        ``take_deferred_request`` hands it back once the session is idle.
        """
        if self.is_busy:
            self._deferred_request = True
            logger.debug("Response request deferred (state: %s)", self._current.value)
            return False
        return self.transition(ResponseTrigger.REQUESTED)

    def take_deferred_request(self) -> bool:
        if self._deferred_request and not self.is_busy:
            self._deferred_request = False
            return self.transition(ResponseTrigger.REQUESTED)
        return False

    def drop_deferred_request(self) -> None:
        self._deferred_request = False

    def response_agent(self, response_id: Optional[str]) -> Optional[str]:
        """The agent that was active when ``response_id`` started, if known."""
        record = self._responses.get(response_id) if response_id else None
        return record.agent_name if record else None

    def on_response_started(self, response_id: Optional[str]) -> bool:
        """Record a response.created event. Returns False if already active."""
        if response_id:
            self._responses[response_id] = ResponseRecord(
                response_id=response_id,
                agent_name=self._state.active_agent,
                epoch=self._epoch,
            )
        if self._current == ResponseState.ACTIVE:
            logger.warning(
                "Response %s started while %s is active; tracking the newer one",
                response_id, self._active_id,
            )
            if response_id and response_id != self._active_id:
                if self._active_id:
                    self._stale_ids.add(self._active_id)
                self._active_id = response_id
            return False
        started = self.transition(ResponseTrigger.STARTED, response_id)
        if started:
            self._active_id = response_id
        return started

    def _settles_current(self, response_id: Optional[str]) -> bool:
        """True if an end event for ``response_id`` ends the tracked response."""
        if response_id and response_id in self._stale_ids:
            self._stale_ids.discard(response_id)
            return False
        if response_id and self._active_id and response_id != self._active_id:
            return False
        return True

    def on_response_completed(self, response_id: Optional[str]) -> CompletionVerdict:
        """Record a completed response and decide whether to run its tool calls.

        Completion of a superseded or abandoned response leaves the
        response state alone; only the tracked response returns it to IDLE.
        """
        record = self._responses.pop(response_id, None) if response_id else None
        if not self._settles_current(response_id):
            logger.debug("Completion of superseded response %s", response_id)
        elif self.transition(ResponseTrigger.COMPLETED, response_id):
            self._active_id = None
        else:
            logger.debug("Completion of %s while idle", response_id)

        if not self._state.is_transferring:
            return CompletionVerdict.PROCESS

        from_target = (
            record is not None
            and record.epoch == self._epoch
            and record.agent_name == self._state.transfer_target
        )
        if from_target:
            logger.info("Transfer to %s settled", self._state.transfer_target)
        else:
            logger.info(
                "Discarding stale response %s from %s during transfer to %s",
                response_id,
                record.agent_name if record else "unknown agent",
                self._state.transfer_target,
            )
        self.clear_transfer()
        return CompletionVerdict.PROCESS if from_target else CompletionVerdict.DISCARD

    def on_response_canceled(self, response_id: Optional[str] = None) -> bool:
        """Record a cancellation. Cancelling nothing is swallowed."""
        if response_id:
            self._responses.pop(response_id, None)
        if not self._settles_current(response_id):
            logger.debug("Cancellation of superseded response %s ignored", response_id)
            return False
        if self._current == ResponseState.IDLE:
            logger.debug("Cancellation with no active response ignored")
            self._release_idle_waiters()
            return False
        canceled = self.transition(ResponseTrigger.CANCELED, response_id)
        if canceled:
            self._active_id = None
        return canceled

    def on_request_failed(self) -> bool:
        return self.transition(ResponseTrigger.FAILED)

    # ------------------------------------------------------------------ #
    # Transfer guard
    # ------------------------------------------------------------------ #

    def begin_transfer(self, source: str, target: str) -> None:
        self._epoch += 1
        self._state.active_agent = target
        self._state.is_transferring = True
        self._state.transfer_target = target
        self._state.transfer_source = source

    def clear_transfer(self) -> None:
        self._state.is_transferring = False
        self._state.transfer_target = None
        self._state.transfer_source = None

    # ------------------------------------------------------------------ #
    # Cancellation acknowledgement
    # ------------------------------------------------------------------ #

    def wait_until_idle(self) -> "asyncio.Future[None]":
        """Return a future resolved the next time the response state is IDLE."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        if self._current == ResponseState.IDLE:
            future.set_result(None)
        else:
            self._idle_waiters.append(future)
        return future

    def force_idle(self) -> None:
        """Drop the current response without an acknowledgement."""
        if self._current != ResponseState.IDLE:
            logger.warning("Forcing response state %s -> idle", self._current.value)
            if self._active_id:
                self._stale_ids.add(self._active_id)
            self._active_id = None
            self._current = ResponseState.IDLE
            self._state.has_active_response = False
            self._history.append(StateEntry(
                state=ResponseState.IDLE, entered_at=datetime.now(timezone.utc),
            ))
        self._release_idle_waiters()

    def _release_idle_waiters(self) -> None:
        waiters, self._idle_waiters = self._idle_waiters, []
        for future in waiters:
            if not future.done():
                future.set_result(None)

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_history(self) -> list[StateEntry]:
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]

    def reset(self, active_agent: str) -> None:
        """Return to a fresh IDLE state, as after a reconnect."""
        self._state.reset(active_agent)
        self._current = ResponseState.IDLE
        self._responses.clear()
        self._deferred_request = False
        self._epoch = 0
        self._active_id = None
        self._stale_ids.clear()
        self._history.append(StateEntry(
            state=ResponseState.IDLE, entered_at=datetime.now(timezone.utc),
        ))
        for future in self._idle_waiters:
            if not future.done():
                future.cancel()
        self._idle_waiters = []
