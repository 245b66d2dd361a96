"""Tests for the response lifecycle tracker."""

import asyncio

import pytest

from propchat.conversation.lifecycle import (
    CompletionVerdict,
    InvalidResponseTransitionError,
    ResponseLifecycle,
    ResponseState,
    ResponseTrigger,
    SessionState,
)


@pytest.fixture
def lifecycle():
    return ResponseLifecycle(SessionState(active_agent="realEstate"))


class TestTransitions:
    def test_starts_idle(self, lifecycle):
        assert lifecycle.current_state == ResponseState.IDLE
        assert not lifecycle.state.has_active_response

    def test_request_start_complete(self, lifecycle):
        assert lifecycle.request_response()
        assert lifecycle.current_state == ResponseState.REQUESTED
        assert lifecycle.state.has_active_response
        lifecycle.on_response_started("r1")
        assert lifecycle.current_state == ResponseState.ACTIVE
        assert lifecycle.on_response_completed("r1") == CompletionVerdict.PROCESS
        assert lifecycle.current_state == ResponseState.IDLE
        assert not lifecycle.state.has_active_response

    def test_unrequested_start(self, lifecycle):
        lifecycle.on_response_started("vad")
        assert lifecycle.current_state == ResponseState.ACTIVE

    def test_second_start_tolerated(self, lifecycle):
        lifecycle.on_response_started("r1")
        assert not lifecycle.on_response_started("r2")
        assert lifecycle.current_state == ResponseState.ACTIVE

    def test_cancel_while_idle_swallowed(self, lifecycle):
        assert not lifecycle.on_response_canceled()
        assert lifecycle.current_state == ResponseState.IDLE

    def test_request_failure_returns_idle(self, lifecycle):
        lifecycle.request_response()
        lifecycle.on_request_failed()
        assert lifecycle.current_state == ResponseState.IDLE

    def test_strict_invalid_transition(self, lifecycle):
        with pytest.raises(InvalidResponseTransitionError):
            lifecycle.transition(ResponseTrigger.COMPLETED, strict=True)

    def test_state_trace(self, lifecycle):
        lifecycle.request_response()
        lifecycle.on_response_started("r1")
        lifecycle.on_response_completed("r1")
        assert lifecycle.get_state_trace() == ["idle", "requested", "active", "idle"]


class TestDeferredRequests:
    def test_request_while_busy_is_deferred(self, lifecycle):
        assert lifecycle.request_response()
        assert not lifecycle.request_response()
        assert lifecycle.current_state == ResponseState.REQUESTED

    def test_deferred_released_when_idle(self, lifecycle):
        lifecycle.on_response_started("r1")
        lifecycle.request_response()
        assert not lifecycle.take_deferred_request()
        lifecycle.on_response_completed("r1")
        assert lifecycle.take_deferred_request()
        assert lifecycle.current_state == ResponseState.REQUESTED
        assert not lifecycle.take_deferred_request()

    def test_drop_deferred(self, lifecycle):
        lifecycle.on_response_started("r1")
        lifecycle.request_response()
        lifecycle.drop_deferred_request()
        lifecycle.on_response_completed("r1")
        assert not lifecycle.take_deferred_request()


class TestTransferGuard:
    def test_outgoing_agent_response_discarded(self, lifecycle):
        lifecycle.on_response_started("old")
        lifecycle.begin_transfer("realEstate", "authentication")
        assert lifecycle.on_response_completed("old") == CompletionVerdict.DISCARD
        assert not lifecycle.state.is_transferring

    def test_target_response_processed(self, lifecycle):
        lifecycle.begin_transfer("realEstate", "authentication")
        lifecycle.on_response_started("new")
        assert lifecycle.on_response_completed("new") == CompletionVerdict.PROCESS
        assert not lifecycle.state.is_transferring
        assert lifecycle.state.transfer_target is None

    def test_unknown_response_discarded_while_transferring(self, lifecycle):
        lifecycle.begin_transfer("realEstate", "authentication")
        assert lifecycle.on_response_completed("ghost") == CompletionVerdict.DISCARD

    def test_previous_epoch_of_same_agent_discarded(self, lifecycle):
        lifecycle.begin_transfer("realEstate", "authentication")
        lifecycle.on_response_started("auth_1")
        lifecycle.on_response_completed("auth_1")
        lifecycle.state.active_agent = "authentication"
        lifecycle.on_response_started("auth_2")
        lifecycle.begin_transfer("authentication", "realEstate")
        lifecycle.begin_transfer("realEstate", "authentication")
        assert lifecycle.on_response_completed("auth_2") == CompletionVerdict.DISCARD

    def test_begin_transfer_sets_state(self, lifecycle):
        lifecycle.begin_transfer("realEstate", "scheduleMeeting")
        assert lifecycle.state.active_agent == "scheduleMeeting"
        assert lifecycle.state.transfer_source == "realEstate"
        assert lifecycle.transfer_epoch == 1

    def test_response_agent_recorded(self, lifecycle):
        lifecycle.on_response_started("r1")
        assert lifecycle.response_agent("r1") == "realEstate"
        assert lifecycle.response_agent("missing") is None


class TestCancellationAck:
    @pytest.mark.asyncio
    async def test_idle_future_resolves_immediately(self, lifecycle):
        await asyncio.wait_for(lifecycle.wait_until_idle(), timeout=0.1)

    @pytest.mark.asyncio
    async def test_future_resolves_on_cancel(self, lifecycle):
        lifecycle.on_response_started("r1")
        ack = lifecycle.wait_until_idle()
        assert not ack.done()
        lifecycle.on_response_canceled("r1")
        await asyncio.wait_for(ack, timeout=0.1)

    @pytest.mark.asyncio
    async def test_force_idle_releases_waiters(self, lifecycle):
        lifecycle.on_response_started("r1")
        ack = lifecycle.wait_until_idle()
        lifecycle.force_idle()
        await asyncio.wait_for(ack, timeout=0.1)
        assert lifecycle.current_state == ResponseState.IDLE


class TestReset:
    def test_reset_clears_everything(self, lifecycle):
        lifecycle.on_response_started("r1")
        lifecycle.begin_transfer("realEstate", "authentication")
        lifecycle.reset("realEstate")
        assert lifecycle.current_state == ResponseState.IDLE
        assert lifecycle.state.active_agent == "realEstate"
        assert not lifecycle.state.is_transferring
        assert not lifecycle.state.has_active_response
        assert lifecycle.transfer_epoch == 0


class TestSupersededResponses:
    def test_older_completion_keeps_newer_active(self, lifecycle):
        lifecycle.on_response_started("r1")
        lifecycle.on_response_started("r2")
        lifecycle.on_response_completed("r1")
        assert lifecycle.current_state == ResponseState.ACTIVE
        assert not lifecycle.request_response()

        lifecycle.on_response_completed("r2")
        assert lifecycle.current_state == ResponseState.IDLE
        assert lifecycle.take_deferred_request()

    def test_older_cancel_keeps_newer_active(self, lifecycle):
        lifecycle.on_response_started("r1")
        lifecycle.on_response_started("r2")
        assert not lifecycle.on_response_canceled("r1")
        assert lifecycle.current_state == ResponseState.ACTIVE

    def test_late_completion_after_force_idle_ignored(self, lifecycle):
        lifecycle.on_response_started("r1")
        lifecycle.force_idle()
        assert lifecycle.request_response()
        lifecycle.on_response_completed("r1")
        assert lifecycle.current_state == ResponseState.REQUESTED

        lifecycle.on_response_started("r2")
        lifecycle.on_response_completed("r2")
        assert lifecycle.current_state == ResponseState.IDLE

    def test_superseded_completion_still_judged_by_transfer_guard(self, lifecycle):
        lifecycle.on_response_started("r1")
        lifecycle.on_response_started("r2")
        lifecycle.begin_transfer("realEstate", "authentication")
        assert lifecycle.on_response_completed("r1") == CompletionVerdict.DISCARD
        assert lifecycle.current_state == ResponseState.ACTIVE

    def test_reset_forgets_superseded_ids(self, lifecycle):
        lifecycle.on_response_started("r1")
        lifecycle.force_idle()
        lifecycle.reset("realEstate")
        lifecycle.on_response_started("r1")
        lifecycle.on_response_completed("r1")
        assert lifecycle.current_state == ResponseState.IDLE
