"""Tests for the scheduling agent's slot and booking handlers."""

import pytest

from propchat.agents.scheduling_agent import (
    get_available_slots,
    request_authentication,
    resolve_property_id,
    schedule_visit,
)
from tests.conftest import OCEAN_VIEW_ID, SESSION_ID, SKYLINE_ID, base_metadata, handler_args, make_context


def _verified(**overrides):
    metadata = base_metadata(
        is_verified=True,
        customer_name="Asha Rao",
        phone_number="+14155552671",
        property_id_to_schedule=OCEAN_VIEW_ID,
    )
    metadata.update(overrides)
    return metadata


class TestResolvePropertyId:
    def test_explicit_id_wins(self):
        assert resolve_property_id({"property_id": "x", "property_id_to_schedule": "y"}) == "x"

    def test_handed_over_id(self):
        assert resolve_property_id({"property_id_to_schedule": "y", "active_project_id": "z"}) == "y"

    def test_active_project_id(self):
        assert resolve_property_id({"active_project_id": "z", "project_ids": ["p1"]}) == "z"

    def test_first_project_when_nothing_else(self):
        assert resolve_property_id({"project_ids": ["p1", "p2"]}) == "p1"

    def test_nothing_known(self):
        assert resolve_property_id({"project_ids": []}) is None


class TestGetAvailableSlots:
    @pytest.mark.asyncio
    async def test_slots_shown_in_scheduling_form(self, backend):
        metadata = base_metadata(property_id_to_schedule=OCEAN_VIEW_ID)
        result = await get_available_slots(handler_args(metadata), make_context(backend, metadata, "scheduleMeeting"))
        assert result["ui_display_hint"] == "SCHEDULING_FORM"
        assert result["property_name"] == "Ocean View"
        assert result["slots"]
        assert all(times for times in result["slots"].values())
        assert result["metadata_updates"] == {
            "property_id_to_schedule": OCEAN_VIEW_ID,
            "property_name": "Ocean View",
        }

    @pytest.mark.asyncio
    async def test_no_property(self, backend):
        metadata = base_metadata(project_ids=[])
        result = await get_available_slots(handler_args(metadata), make_context(backend, metadata, "scheduleMeeting"))
        assert result["error"] == "No property is selected for the visit."

    @pytest.mark.asyncio
    async def test_backend_failure(self, backend):
        backend.fail_actions.add("getAvailableSlots")
        metadata = base_metadata()
        result = await get_available_slots(handler_args(metadata), make_context(backend, metadata, "scheduleMeeting"))
        assert result["error"].startswith("Could not load visit slots")


class TestScheduleVisit:
    @pytest.mark.asyncio
    async def test_date_and_time_required(self, backend):
        metadata = _verified()
        result = await schedule_visit(
            handler_args(metadata, selected_date="2026-10-21"), make_context(backend, metadata, "scheduleMeeting")
        )
        assert result["ui_display_hint"] == "SCHEDULING_FORM"
        assert "date and a time" in result["error"]

    @pytest.mark.asyncio
    async def test_unverified_visitor_sent_to_verification(self, backend):
        metadata = base_metadata()
        result = await schedule_visit(
            handler_args(metadata, selected_date="2026-10-21", selected_time="10:00 AM"),
            make_context(backend, metadata, "scheduleMeeting"),
        )
        assert result == {
            "destination_agent": "authentication",
            "selected_date": "2026-10-21",
            "selected_time": "10:00 AM",
        }
        assert backend.bookings == []

    @pytest.mark.asyncio
    async def test_verified_visitor_booked(self, backend):
        metadata = _verified()
        result = await schedule_visit(
            handler_args(metadata, selected_date="2026-10-21", selected_time="10:00 AM"),
            make_context(backend, metadata, "scheduleMeeting"),
        )
        assert result["destination_agent"] == "realEstate"
        assert result["silentTransfer"] is True
        assert result["has_scheduled"] is True
        assert result["flow_context"] == "from_full_scheduling"
        assert result["booking_ref"] == "PV-0001"

        booking = backend.bookings[0]
        assert booking.property_id == OCEAN_VIEW_ID
        assert booking.property_name == "Ocean View"
        assert booking.visit_date_time == "2026-10-21 10:00 AM"
        assert booking.session_id == SESSION_ID

    @pytest.mark.asyncio
    async def test_first_project_used_without_selection(self, backend):
        metadata = _verified(property_id_to_schedule=None)
        await schedule_visit(
            handler_args(metadata, selected_date="2026-10-21", selected_time="10:00 AM"),
            make_context(backend, metadata, "scheduleMeeting"),
        )
        assert backend.bookings[0].property_id == SKYLINE_ID

    @pytest.mark.asyncio
    async def test_missing_customer_details(self, backend):
        metadata = _verified(customer_name=None)
        result = await schedule_visit(
            handler_args(metadata, selected_date="2026-10-21", selected_time="10:00 AM"),
            make_context(backend, metadata, "scheduleMeeting"),
        )
        assert result["error"] == "Missing customer name for the booking."

    @pytest.mark.asyncio
    async def test_backend_failure(self, backend):
        backend.fail_actions.add("scheduleVisit")
        metadata = _verified()
        result = await schedule_visit(
            handler_args(metadata, selected_date="2026-10-21", selected_time="10:00 AM"),
            make_context(backend, metadata, "scheduleMeeting"),
        )
        assert result["error"].startswith("Failed to schedule the visit")


class TestRequestAuthentication:
    @pytest.mark.asyncio
    async def test_transfers_to_authentication(self, backend):
        metadata = base_metadata()
        result = await request_authentication(handler_args(metadata), make_context(backend, metadata, "scheduleMeeting"))
        assert result == {"destination_agent": "authentication"}
