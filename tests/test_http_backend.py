"""Tests for the HTTP backend against a mocked transport."""

import json

import httpx
import pytest

from propchat.config import BackendConfig
from propchat.schemas.backend_schema import PhoneAuthRequest, VisitRequest
from propchat.tools.backend import BackendError
from propchat.tools.http_backend import HttpBackend
from propchat.tools.mock_backend import DEMO_CHATBOT_ID, DEMO_ORG_ID
from tests.conftest import OCEAN_VIEW_ID, SESSION_ID

TOOLS_URL = "https://backend.test/functions/v1/realtime_tools"
AUTH_URL = "https://backend.test/functions/v1/phoneAuth"
SCHEDULE_URL = "https://backend.test/functions/v1/schedule-visit"


def _backend(handler, api_key="test-key", notify_url="") -> tuple[HttpBackend, list[httpx.Request]]:
    """HttpBackend whose requests are answered by ``handler`` and recorded."""
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    config = BackendConfig(
        tools_url=TOOLS_URL,
        phone_auth_url=AUTH_URL,
        schedule_visit_url=SCHEDULE_URL,
        visit_notify_url=notify_url,
        api_key=api_key,
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(record))
    return HttpBackend(config, client=client), seen


def _json(payload, status=200):
    return lambda request: httpx.Response(status, json=payload)


def _auth_request(**extra) -> PhoneAuthRequest:
    fields = {
        "action": "verify_otp",
        "phone_number": "+14155552671",
        "session_id": SESSION_ID,
        "org_id": DEMO_ORG_ID,
        "chatbot_id": DEMO_CHATBOT_ID,
        **extra,
    }
    return PhoneAuthRequest(**fields)


def _visit() -> VisitRequest:
    return VisitRequest(
        customer_name="Asha Rao",
        phone_number="+14155552671",
        property_id=OCEAN_VIEW_ID,
        visit_date_time="2026-10-21 10:00 AM",
        chatbot_id=DEMO_CHATBOT_ID,
        session_id=SESSION_ID,
    )


class TestRequests:
    @pytest.mark.asyncio
    async def test_bearer_header_and_action_body(self):
        backend, seen = _backend(_json({"org_name": "Horizon Realty", "project_ids": ["p1"]}))
        metadata = await backend.fetch_org_metadata(SESSION_ID, DEMO_CHATBOT_ID)
        assert metadata.org_name == "Horizon Realty"

        request = seen[0]
        assert str(request.url) == TOOLS_URL
        assert request.headers["Authorization"] == "Bearer test-key"
        assert json.loads(request.content) == {
            "action": "fetchOrgMetadata",
            "session_id": SESSION_ID,
            "chatbot_id": DEMO_CHATBOT_ID,
        }
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_no_authorization_without_key(self):
        backend, seen = _backend(_json({"routeSummary": "20 minutes"}), api_key="")
        assert await backend.calculate_route("Airport", "Kondapur") == "20 minutes"
        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_none_values_not_sent(self):
        backend, seen = _backend(_json({"properties": []}))
        await backend.get_project_details([], "Ocean View")
        assert json.loads(seen[0].content) == {"action": "getProjectDetails", "project_name": "Ocean View"}


class TestErrors:
    @pytest.mark.asyncio
    async def test_http_status_error(self):
        backend, _ = _backend(_json({"detail": "boom"}, status=500))
        with pytest.raises(BackendError, match="fetchOrgMetadata request failed"):
            await backend.fetch_org_metadata(SESSION_ID, DEMO_CHATBOT_ID)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        backend, _ = _backend(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(BackendError, match="invalid JSON"):
            await backend.calculate_route("a", "b")

    @pytest.mark.asyncio
    async def test_non_object_payload(self):
        backend, _ = _backend(_json(["not", "an", "object"]))
        with pytest.raises(BackendError, match="unexpected payload"):
            await backend.find_nearest_place("school", "Ocean View")

    @pytest.mark.asyncio
    async def test_error_payload_raises_for_tools(self):
        backend, _ = _backend(_json({"error": "Project not found"}))
        with pytest.raises(BackendError, match="Project not found"):
            await backend.get_project_details(["p9"])

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend, _ = _backend(refuse)
        with pytest.raises(BackendError, match="request failed"):
            await backend.get_available_slots(OCEAN_VIEW_ID)


class TestPhoneAuth:
    @pytest.mark.asyncio
    async def test_send_otp_error_payload_is_result(self):
        backend, seen = _backend(_json({"success": False, "error": "Rate limited"}))
        result = await backend.send_otp(_auth_request(action="send_otp", name="Asha"))
        assert result.success is False
        assert result.error == "Rate limited"
        assert str(seen[0].url) == AUTH_URL

    @pytest.mark.asyncio
    async def test_verified_flag_is_source_of_truth(self):
        backend, _ = _backend(_json({"success": True, "verified": False, "error": "Expired code"}))
        verification = await backend.verify_otp(_auth_request(otp="123456"))
        assert verification.verified is False
        assert verification.error == "Expired code"

    @pytest.mark.asyncio
    async def test_missing_verified_flag_raises(self):
        backend, _ = _backend(_json({"success": True, "message": "ok"}))
        with pytest.raises(BackendError, match="verified"):
            await backend.verify_otp(_auth_request(otp="123456"))

    @pytest.mark.asyncio
    async def test_non_boolean_verified_raises(self):
        backend, _ = _backend(_json({"verified": "true"}))
        with pytest.raises(BackendError):
            await backend.verify_otp(_auth_request(otp="123456"))


class TestScheduling:
    @pytest.mark.asyncio
    async def test_slots(self):
        backend, seen = _backend(_json({"slots": {"2026-10-21": ["10:00 AM"]}}))
        assert await backend.get_available_slots(OCEAN_VIEW_ID) == {"2026-10-21": ["10:00 AM"]}
        assert json.loads(seen[0].content) == {"action": "getAvailableSlots", "property_id": OCEAN_VIEW_ID}

    @pytest.mark.asyncio
    async def test_schedule_visit_confirmation(self):
        backend, seen = _backend(_json({"success": True, "booking_ref": "BK-17"}))
        confirmation = await backend.schedule_visit(_visit())
        assert confirmation.booking_ref == "BK-17"
        assert json.loads(seen[0].content)["action"] == "scheduleVisit"

    @pytest.mark.asyncio
    async def test_schedule_visit_failure_payload(self):
        backend, _ = _backend(_json({"success": False, "error": "Slot taken"}))
        confirmation = await backend.schedule_visit(_visit())
        assert confirmation.success is False
        assert confirmation.error == "Slot taken"

    @pytest.mark.asyncio
    async def test_notify_skipped_without_endpoint(self):
        backend, seen = _backend(_json({}))
        await backend.notify_visit_scheduled(_visit())
        assert seen == []

    @pytest.mark.asyncio
    async def test_notify_posts_to_endpoint(self):
        backend, seen = _backend(_json({"ok": True}), notify_url="https://backend.test/notify")
        await backend.notify_visit_scheduled(_visit())
        assert str(seen[0].url) == "https://backend.test/notify"
        assert json.loads(seen[0].content)["action"] == "notifyVisitScheduled"
