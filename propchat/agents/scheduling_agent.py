"""
Scheduling agent -- shows open visit slots and books the chosen one.

Booking requires a verified phone number. An unverified visitor who picks
a slot is sent to the authentication agent with the slot carried in the
session metadata, and comes back here once verified.
"""

from enum import Enum
from typing import Any, Optional

from propchat.agents.base import AgentDefinition, ToolContext, function_tool
from propchat.conversation.ui_hints import UiHint
from propchat.identifiers import resolve_identifier
from propchat.logging_context import get_session_logger
from propchat.prompts.prompt_templates import FROM_FULL_SCHEDULING, scheduling_kickoff
from propchat.prompts.system_prompts import scheduling_instructions
from propchat.schemas.backend_schema import VisitRequest
from propchat.tools.backend import BackendError
from propchat.utils import first_non_empty

logger = get_session_logger(__name__)

NAME = "scheduleMeeting"


class SchedulingTool(str, Enum):
    GET_AVAILABLE_SLOTS = "getAvailableSlots"
    SCHEDULE_VISIT = "scheduleVisit"
    REQUEST_AUTHENTICATION = "requestAuthentication"


def resolve_property_id(args: dict[str, Any]) -> Optional[str]:
    """The property to schedule: explicit, handed over, focused, or first known."""
    project_ids = args.get("project_ids") or []
    return first_non_empty(
        args.get("property_id"),
        args.get("property_id_to_schedule"),
        args.get("active_project_id"),
        project_ids[0] if project_ids else None,
    )


def _property_name(args: dict[str, Any], property_id: Optional[str]) -> str:
    if args.get("property_name"):
        return args["property_name"]
    for name, pid in (args.get("project_id_map") or {}).items():
        if pid == property_id:
            return name
    active = args.get("active_project")
    return active if active and active != "N/A" else "the property"


async def get_available_slots(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    property_id = resolve_property_id(args)
    if not property_id:
        return {
            "error": "No property is selected for the visit.",
            "ui_display_hint": UiHint.CHAT.value,
        }
    try:
        slots = await ctx.backend.get_available_slots(property_id)
    except BackendError as exc:
        return {"error": f"Could not load visit slots: {exc}", "ui_display_hint": UiHint.CHAT.value}

    property_name = _property_name(args, property_id)
    if not slots:
        return {
            "slots": {},
            "property_id": property_id,
            "message": f"There are no open visit slots for {property_name} right now.",
            "ui_display_hint": UiHint.CHAT.value,
        }
    return {
        "slots": slots,
        "property_id": property_id,
        "property_name": property_name,
        "message": "Please select a date and time for your visit.",
        "ui_display_hint": UiHint.SCHEDULING_FORM.value,
        "metadata_updates": {
            "property_id_to_schedule": property_id,
            "property_name": property_name,
        },
    }


async def schedule_visit(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    """Book the selected slot, or send an unverified visitor to verification."""
    date = args.get("selected_date")
    time = args.get("selected_time")
    if not date or not time:
        return {
            "error": "Both a date and a time are needed to book the visit.",
            "ui_display_hint": UiHint.SCHEDULING_FORM.value,
        }

    if not args.get("is_verified"):
        logger.info("Visitor picked %s %s but is not verified", date, time)
        return {
            "destination_agent": "authentication",
            "selected_date": date,
            "selected_time": time,
        }

    property_id = resolve_property_id(args)
    customer_name = args.get("customer_name")
    phone_number = args.get("phone_number")
    missing = [
        label for label, value in (
            ("customer name", customer_name),
            ("phone number", phone_number),
            ("property", property_id),
        ) if not value
    ]
    if missing:
        return {"error": f"Missing {', '.join(missing)} for the booking."}

    chatbot_id = resolve_identifier(
        args.get("chatbot_id"), ctx.metadata.get("chatbot_id"),
        ctx.settings.widget.fallback_chatbot_id,
    )
    session_id = resolve_identifier(args.get("session_id"), ctx.metadata.get("session_id"))
    property_name = _property_name(args, property_id)
    request = VisitRequest(
        customer_name=customer_name,
        phone_number=phone_number,
        property_id=property_id,
        property_name=property_name,
        visit_date_time=f"{date} {time}",
        chatbot_id=chatbot_id,
        session_id=session_id or ctx.metadata.get("session_id") or "",
    )
    try:
        confirmation = await ctx.backend.schedule_visit(request)
    except BackendError as exc:
        return {"error": f"Failed to schedule the visit: {exc}"}
    if not confirmation.success:
        return {"error": confirmation.error or "The visit could not be booked."}

    logger.info("Visit booked for %s (%s)", property_name, confirmation.booking_ref)
    return {
        "destination_agent": "realEstate",
        "silentTransfer": True,
        "has_scheduled": True,
        "selected_date": date,
        "selected_time": time,
        "property_name": property_name,
        "booking_ref": confirmation.booking_ref,
        "flow_context": FROM_FULL_SCHEDULING,
    }


async def request_authentication(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    return {"destination_agent": "authentication"}


TOOLS = (
    function_tool(
        SchedulingTool.GET_AVAILABLE_SLOTS.value,
        "Lists open visit slots for the property. Call this first, without arguments.",
        {"property_id": {"type": "string"}},
    ),
    function_tool(
        SchedulingTool.SCHEDULE_VISIT.value,
        "Books the visit for the date and time the user selected.",
        {
            "selected_date": {"type": "string", "description": "YYYY-MM-DD"},
            "selected_time": {"type": "string", "description": "e.g. 11:30 AM"},
        },
        ["selected_date", "selected_time"],
    ),
    function_tool(
        SchedulingTool.REQUEST_AUTHENTICATION.value,
        "Sends the user to phone verification.",
    ),
)

HANDLERS = {
    SchedulingTool.GET_AVAILABLE_SLOTS.value: get_available_slots,
    SchedulingTool.SCHEDULE_VISIT.value: schedule_visit,
    SchedulingTool.REQUEST_AUTHENTICATION.value: request_authentication,
}


def build_scheduling_agent() -> AgentDefinition:
    return AgentDefinition(
        name=NAME,
        public_description="Helps users schedule a property visit by showing open slots and booking one.",
        instructions=scheduling_instructions,
        tools=TOOLS,
        handlers=HANDLERS,
        tool_names=SchedulingTool,
        downstream=("authentication", "realEstate", "simulatedHuman"),
        default_metadata={"selected_date": None, "selected_time": None},
        display_mode=UiHint.SCHEDULING_FORM,
        always_silent_transfer=True,
        kickoff=scheduling_kickoff,
        unsupported_hints={
            "initiateScheduling": "The scheduling agent cannot initiate scheduling; "
            "call getAvailableSlots to show open visit slots.",
            "completeScheduling": "Call scheduleVisit with selected_date and selected_time "
            "to book the visit.",
            "trackUserMessage": "Messages are not tracked here; call getAvailableSlots "
            "or scheduleVisit.",
        },
    )
