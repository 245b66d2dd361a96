"""Tests for the authentication agent's OTP handlers."""

import pytest

from propchat.agents.authentication_agent import submit_phone_number, verify_otp
from propchat.tools.mock_backend import DEMO_CHATBOT_ID, DEMO_ORG_ID, DEMO_OTP_CODE
from tests.conftest import SESSION_ID, base_metadata, handler_args, make_context

PHONE = "+14155552671"


async def _send_code(backend, metadata, phone=PHONE, name="Asha Rao"):
    return await submit_phone_number(
        handler_args(metadata, name=name, phone_number=phone),
        make_context(backend, metadata, agent_name="authentication"),
    )


class TestSubmitPhoneNumber:
    @pytest.mark.asyncio
    async def test_sends_otp_scoped_by_session_ids(self, backend):
        result = await _send_code(backend, base_metadata())
        assert result["success"] is True
        assert result["ui_display_hint"] == "OTP_FORM"
        assert result["metadata_updates"] == {"customer_name": "Asha Rao", "phone_number": PHONE}

        sent = backend.calls_for("send_otp")[0]
        assert sent["action"] == "send_otp"
        assert sent["session_id"] == SESSION_ID
        assert sent["org_id"] == DEMO_ORG_ID
        assert sent["chatbot_id"] == DEMO_CHATBOT_ID
        assert sent["name"] == "Asha Rao"

    @pytest.mark.asyncio
    async def test_invalid_number_rejected_without_backend_call(self, backend):
        result = await _send_code(backend, base_metadata(), phone="555-2671")
        assert result["success"] is False
        assert "country code" in result["error"]
        assert result["ui_display_hint"] == "VERIFICATION_FORM"
        assert backend.calls_for("send_otp") == []

    @pytest.mark.asyncio
    async def test_missing_number(self, backend):
        result = await _send_code(backend, base_metadata(), phone="")
        assert result["error"] == "Phone number is required."

    @pytest.mark.asyncio
    async def test_invented_identifiers_fall_back_to_stored(self, backend):
        metadata = base_metadata()
        await submit_phone_number(
            handler_args(metadata, name="Asha", phone_number=PHONE, session_id="session_123", org_id="default"),
            make_context(backend, metadata, agent_name="authentication"),
        )
        sent = backend.calls_for("send_otp")[0]
        assert sent["session_id"] == SESSION_ID
        assert sent["org_id"] == DEMO_ORG_ID

    @pytest.mark.asyncio
    async def test_missing_org_id_is_error(self, backend):
        metadata = base_metadata(org_id=None)
        result = await _send_code(backend, metadata)
        assert result["success"] is False
        assert "organization ID" in result["error"]
        assert backend.calls_for("send_otp") == []

    @pytest.mark.asyncio
    async def test_backend_failure(self, backend):
        backend.fail_actions.add("send_otp")
        result = await _send_code(backend, base_metadata())
        assert result["success"] is False
        assert result["error"].startswith("Failed to send the verification code")


class TestVerifyOtp:
    @pytest.mark.asyncio
    async def test_success_returns_to_real_estate(self, backend):
        metadata = base_metadata(phone_number=PHONE)
        await _send_code(backend, metadata)
        result = await verify_otp(
            handler_args(metadata, otp=DEMO_OTP_CODE),
            make_context(backend, metadata, agent_name="authentication"),
        )
        assert result["destination_agent"] == "realEstate"
        assert result["silentTransfer"] is True
        assert result["is_verified"] is True
        assert result["customer_name"] == "Asha Rao"
        assert result["flow_context"] == "from_direct_auth"
        assert result["session_id"] == SESSION_ID

    @pytest.mark.asyncio
    async def test_success_returns_to_scheduling(self, backend):
        metadata = base_metadata(phone_number=PHONE, came_from="scheduleMeeting")
        await _send_code(backend, metadata)
        result = await verify_otp(
            handler_args(metadata, otp=DEMO_OTP_CODE),
            make_context(backend, metadata, agent_name="authentication"),
        )
        assert result["destination_agent"] == "scheduleMeeting"
        assert result["flow_context"] == "from_scheduling_verification"

    @pytest.mark.asyncio
    async def test_wrong_code_stays_on_otp_form(self, backend):
        metadata = base_metadata(phone_number=PHONE)
        await _send_code(backend, metadata)
        result = await verify_otp(
            handler_args(metadata, otp="000000"),
            make_context(backend, metadata, agent_name="authentication"),
        )
        assert result["success"] is False
        assert result["ui_display_hint"] == "OTP_FORM"
        assert "destination_agent" not in result

    @pytest.mark.asyncio
    async def test_code_and_phone_required(self, backend):
        metadata = base_metadata()
        result = await verify_otp(
            handler_args(metadata, otp=DEMO_OTP_CODE),
            make_context(backend, metadata, agent_name="authentication"),
        )
        assert result["error"] == "Both the phone number and the code are required."

    @pytest.mark.asyncio
    async def test_backend_failure(self, backend):
        backend.fail_actions.add("verify_otp")
        metadata = base_metadata(phone_number=PHONE)
        result = await verify_otp(
            handler_args(metadata, otp=DEMO_OTP_CODE),
            make_context(backend, metadata, agent_name="authentication"),
        )
        assert result["success"] is False
        assert result["error"].startswith("Could not verify the code")
