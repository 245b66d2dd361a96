"""
Authentication agent -- verifies the visitor's phone number with an OTP.

On success the visitor is handed back to whichever agent sent them:
the scheduling agent when verification interrupted a booking, otherwise
the real estate agent.
"""

from enum import Enum
from typing import Any

from propchat.agents.base import AgentDefinition, ToolContext, function_tool
from propchat.conversation.ui_hints import UiHint
from propchat.identifiers import IdentifierError, resolve_identity
from propchat.logging_context import get_session_logger
from propchat.prompts.prompt_templates import (
    FROM_DIRECT_AUTH,
    FROM_SCHEDULING_VERIFICATION,
    authentication_kickoff,
)
from propchat.prompts.system_prompts import authentication_instructions
from propchat.schemas.backend_schema import PhoneAuthRequest
from propchat.tools.backend import BackendError
from propchat.utils import is_e164

logger = get_session_logger(__name__)

NAME = "authentication"


class AuthenticationTool(str, Enum):
    SUBMIT_PHONE_NUMBER = "submitPhoneNumber"
    VERIFY_OTP = "verifyOTP"
    TRACK_USER_MESSAGE = "trackUserMessage"
    DETECT_PROPERTY = "detectPropertyInMessage"


def _auth_request(action: str, args: dict[str, Any], ctx: ToolContext, **extra: Any) -> PhoneAuthRequest:
    widget = ctx.settings.widget
    identity = resolve_identity(args, ctx.metadata, widget.fallback_chatbot_id)
    return PhoneAuthRequest(
        action=action,
        phone_number=args["phone_number"],
        session_id=identity.session_id,
        org_id=identity.org_id,
        chatbot_id=identity.chatbot_id,
        platform=widget.platform,
        chat_mode=widget.chat_mode,
        **extra,
    )


async def submit_phone_number(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    """Validate the phone number and ask the backend to send an OTP."""
    phone = args.get("phone_number") or ""
    name = (args.get("name") or args.get("customer_name") or "").strip()
    if not phone:
        return {"success": False, "error": "Phone number is required.", "ui_display_hint": UiHint.VERIFICATION_FORM.value}
    if not is_e164(phone):
        return {
            "success": False,
            "error": "Invalid phone number format. Please include the country code, e.g. +14155552671.",
            "ui_display_hint": UiHint.VERIFICATION_FORM.value,
        }

    try:
        request = _auth_request("send_otp", args, ctx, name=name or None)
    except IdentifierError as exc:
        return {"success": False, "error": str(exc)}

    try:
        result = await ctx.backend.send_otp(request)
    except BackendError as exc:
        logger.warning("OTP send failed: %s", exc)
        return {"success": False, "error": f"Failed to send the verification code: {exc}"}

    if not result.success:
        return {
            "success": False,
            "error": result.error or "Failed to send the verification code.",
            "ui_display_hint": UiHint.VERIFICATION_FORM.value,
        }

    logger.info("OTP sent for session %s", request.session_id)
    return {
        "success": True,
        "message": result.message or "A verification code was sent to your phone.",
        "ui_display_hint": UiHint.OTP_FORM.value,
        "metadata_updates": {
            "customer_name": name or ctx.metadata.get("customer_name"),
            "phone_number": phone,
        },
    }


async def verify_otp(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    """Check the OTP and transfer back on success."""
    phone = args.get("phone_number") or ""
    otp = str(args.get("otp") or "").strip()
    if not phone or not otp:
        return {"success": False, "error": "Both the phone number and the code are required.", "ui_display_hint": UiHint.OTP_FORM.value}

    try:
        request = _auth_request("verify_otp", args, ctx, otp=otp)
    except IdentifierError as exc:
        return {"success": False, "error": str(exc)}

    try:
        verification = await ctx.backend.verify_otp(request)
    except BackendError as exc:
        logger.warning("OTP verification failed: %s", exc)
        return {"success": False, "error": f"Could not verify the code: {exc}"}

    if not verification.verified:
        return {
            "success": False,
            "error": verification.error or "The code you entered is incorrect.",
            "ui_display_hint": UiHint.OTP_FORM.value,
        }

    from_scheduling = ctx.metadata.get("came_from") == "scheduleMeeting"
    destination = "scheduleMeeting" if from_scheduling else "realEstate"
    logger.info("Phone verified, returning to %s", destination)
    return {
        "destination_agent": destination,
        "silentTransfer": True,
        "is_verified": True,
        "customer_name": verification.customer_name or args.get("customer_name") or args.get("name"),
        "phone_number": phone,
        "flow_context": FROM_SCHEDULING_VERIFICATION if from_scheduling else FROM_DIRECT_AUTH,
        "session_id": request.session_id,
        "org_id": request.org_id,
        "chatbot_id": request.chatbot_id,
    }


async def _not_tracked(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    return {"success": True, "message": "Messages are not tracked during verification."}


TOOLS = (
    function_tool(
        AuthenticationTool.SUBMIT_PHONE_NUMBER.value,
        "Sends a one-time code to the user's phone. Include the country code.",
        {
            "name": {"type": "string", "description": "The user's full name."},
            "phone_number": {"type": "string", "description": "Phone number with country code, e.g. +14155552671."},
        },
        ["name", "phone_number"],
    ),
    function_tool(
        AuthenticationTool.VERIFY_OTP.value,
        "Verifies the one-time code the user received.",
        {
            "phone_number": {"type": "string"},
            "otp": {"type": "string", "description": "The 6-digit code."},
        },
        ["otp"],
    ),
    function_tool(
        AuthenticationTool.TRACK_USER_MESSAGE.value,
        "Internal tool: no-op for this agent.",
        {"message": {"type": "string"}},
    ),
    function_tool(
        AuthenticationTool.DETECT_PROPERTY.value,
        "Internal tool: no-op for this agent.",
        {"message": {"type": "string"}},
    ),
)

HANDLERS = {
    AuthenticationTool.SUBMIT_PHONE_NUMBER.value: submit_phone_number,
    AuthenticationTool.VERIFY_OTP.value: verify_otp,
    AuthenticationTool.TRACK_USER_MESSAGE.value: _not_tracked,
    AuthenticationTool.DETECT_PROPERTY.value: _not_tracked,
}


def build_authentication_agent() -> AgentDefinition:
    return AgentDefinition(
        name=NAME,
        public_description="Handles user verification by phone number and one-time code.",
        instructions=authentication_instructions,
        tools=TOOLS,
        handlers=HANDLERS,
        tool_names=AuthenticationTool,
        downstream=("realEstate", "simulatedHuman", "scheduleMeeting"),
        display_mode=UiHint.VERIFICATION_FORM,
        always_silent_transfer=True,
        kickoff=authentication_kickoff,
        unsupported_hints={
            "getAvailableSlots": "Verify the user first with submitPhoneNumber and verifyOTP; "
            "scheduling resumes automatically afterwards.",
            "getProjectDetails": "Property questions resume after verification; "
            "ask for the user's name and phone number.",
        },
    )
