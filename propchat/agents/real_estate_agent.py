"""
Real estate agent -- answers property questions and routes to verification
and visit scheduling.

This is the default agent. It counts the visitor's questions through
``trackUserMessage`` and uses that counter to decide when to ask for phone
verification and when to suggest a visit.
"""

import re
from enum import Enum
from typing import Any, Optional

from propchat.agents.base import AgentDefinition, ToolContext, function_tool
from propchat.conversation.metadata import apply_org_metadata
from propchat.conversation.ui_hints import UiHint
from propchat.logging_context import get_session_logger
from propchat.prompts.prompt_templates import (
    FINALIZE_SCHEDULING_MESSAGE,
    FROM_DIRECT_AUTH,
    FROM_FULL_SCHEDULING,
    TRIGGER_PREFIX,
    build_booking_details,
    build_booking_message,
    build_verification_message,
    real_estate_kickoff,
)
from propchat.prompts.system_prompts import real_estate_instructions
from propchat.schemas.backend_schema import PropertyRecord, VisitRequest
from propchat.tools.backend import BackendError

logger = get_session_logger(__name__)

NAME = "realEstate"
DEFAULT_PROPERTY_NAME = "the selected property"

_SCHEDULE_BUTTON = re.compile(r"^Yes, I'd like to schedule a visit for (.+?)[.!]?$", re.IGNORECASE)
_SCHEDULING_INTENT = [
    re.compile(r"\b(schedule|book|arrange|set up|plan) .*?(visit|tour|viewing|showing|appointment|meeting)", re.IGNORECASE),
    re.compile(r"\b(visit|tour|see|view) .*?(property|home|house|apartment|place) in person", re.IGNORECASE),
    re.compile(r"\bcan i .*?(visit|tour|see|view|come)", re.IGNORECASE),
    re.compile(r"\bwhen can i .*?(visit|tour|see|view|come)", re.IGNORECASE),
    re.compile(r"\b(interested|want) .*?(visit|tour|see|view)", re.IGNORECASE),
    re.compile(r"\bhow do i .*?(visit|tour|see|view)", re.IGNORECASE),
    re.compile(r"\btake a look .*?(at|in person)", re.IGNORECASE),
]


class RealEstateTool(str, Enum):
    TRACK_USER_MESSAGE = "trackUserMessage"
    DETECT_PROPERTY = "detectPropertyInMessage"
    UPDATE_ACTIVE_PROJECT = "updateActiveProject"
    LOOKUP_PROPERTY = "lookupProperty"
    CALCULATE_ROUTE = "calculateRoute"
    FIND_NEAREST_PLACE = "findNearestPlace"
    FETCH_ORG_METADATA = "fetchOrgMetadata"
    GET_PROPERTY_IMAGES = "getPropertyImages"
    GET_PROJECT_DETAILS = "getProjectDetails"
    INITIATE_SCHEDULING = "initiateScheduling"


# ------------------------------------------------------------------ #
# Property resolution helpers
# ------------------------------------------------------------------ #

def _project_id_map(args: dict[str, Any]) -> dict[str, str]:
    mapping = args.get("project_id_map")
    if mapping:
        return dict(mapping)
    names = args.get("project_names") or []
    ids = args.get("project_ids") or []
    return {name: pid for name, pid in zip(names, ids) if name and pid}


def _match_project_name(candidate: str, names: list[str]) -> Optional[str]:
    lowered = candidate.strip().lower()
    for name in names:
        if name.lower() == lowered:
            return name
    return None


def _resolve_property(args: dict[str, Any], requested_id: Optional[str] = None) -> tuple[Optional[str], str]:
    """Resolve (property_id, property_name) for a scheduling request.

    Order: explicit id, active project, first known project.
    """
    id_map = _project_id_map(args)
    names_by_id = {pid: name for name, pid in id_map.items()}
    ids = list(args.get("project_ids") or [])

    if requested_id and requested_id in names_by_id:
        return requested_id, names_by_id[requested_id]
    if requested_id and requested_id in ids:
        return requested_id, DEFAULT_PROPERTY_NAME

    active = args.get("active_project")
    if active and active != "N/A":
        property_id = args.get("active_project_id") or id_map.get(active)
        if property_id:
            return property_id, active

    if ids:
        return ids[0], names_by_id.get(ids[0], (args.get("project_names") or [DEFAULT_PROPERTY_NAME])[0])
    return None, DEFAULT_PROPERTY_NAME


def _has_scheduling_intent(message: str) -> bool:
    return any(pattern.search(message) for pattern in _SCHEDULING_INTENT)


def _find_property_in(message: str, names: list[str]) -> Optional[str]:
    """Whole-word or spaceless match of a known project name in ``message``."""
    normalized = message.lower().strip()
    without_spaces = re.sub(r"\s+", "", normalized)
    for name in names:
        trimmed = name.strip().lower()
        if not trimmed:
            continue
        if re.search(rf"\b{re.escape(trimmed)}\b", normalized):
            return name
        if re.sub(r"\s+", "", trimmed) in without_spaces:
            return name
    return None


def _present_property(record: PropertyRecord) -> dict[str, Any]:
    images = record.images or []
    main = images[0] if images else {"url": "", "alt": record.name}
    return {
        "id": record.id,
        "name": record.name,
        "price": record.price or "Price on request",
        "area": record.area,
        "location": record.location,
        "description": record.description,
        "amenities": record.amenities,
        "mainImage": main.get("url", ""),
        "galleryImages": [
            {"url": img.get("url", ""), "alt": img.get("alt", record.name)} for img in images[1:]
        ],
    }


# ------------------------------------------------------------------ #
# Message tracking
# ------------------------------------------------------------------ #

async def track_user_message(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    """Count the visitor's questions and decide on verification or scheduling."""
    message = (args.get("message") or "").strip()
    thresholds = ctx.settings.orchestration

    if message.startswith(TRIGGER_PREFIX):
        return {"success": True, "is_trigger_message": True, "message": None}

    flow_context = args.get("flow_context")
    if flow_context == FROM_FULL_SCHEDULING or message == FINALIZE_SCHEDULING_MESSAGE:
        return await complete_scheduling(args, ctx)

    if flow_context == FROM_DIRECT_AUTH:
        return {
            "success": True,
            "message": build_verification_message(args.get("customer_name")),
            "ui_display_hint": UiHint.CHAT.value,
            "metadata_updates": {"flow_context": None, "question_count": 0},
        }

    button = _SCHEDULE_BUTTON.match(message)
    if button or _has_scheduling_intent(message):
        property_id, property_name = _resolve_property(args)
        if button:
            named = _match_project_name(button.group(1), list(args.get("project_names") or []))
            if named:
                property_name = named
                property_id = _project_id_map(args).get(named, property_id)
        logger.info("Scheduling intent detected, property=%s", property_name)
        result: dict[str, Any] = {
            "destination_agent": "scheduleMeeting",
            "silentTransfer": True,
            "property_name": property_name,
        }
        if property_id:
            result["property_id_to_schedule"] = property_id
        return result

    count = int(args.get("question_count") or 0) + 1
    is_verified = bool(args.get("is_verified"))
    has_scheduled = bool(args.get("has_scheduled"))
    logger.debug("Question #%d, verified=%s, scheduled=%s", count, is_verified, has_scheduled)

    if not is_verified and count >= thresholds.auth_question_threshold:
        logger.info("Visitor not verified after %d questions, requesting verification", count)
        return {
            "destination_agent": "authentication",
            "metadata_updates": {"question_count": 0},
        }

    if is_verified and not has_scheduled and count >= thresholds.schedule_prompt_threshold:
        return {
            "askToSchedule": True,
            "message": "Would you like to schedule a visit to see a property in person?",
            "metadata_updates": {"question_count": 0},
        }

    return {"success": True, "questionCount": count, "metadata_updates": {"question_count": count}}


async def detect_property_in_message(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    message = args.get("message") or ""
    if message.strip().startswith(TRIGGER_PREFIX):
        return {"propertyDetected": False, "isTriggerMessage": True}

    names = list(args.get("project_names") or [])
    button = _SCHEDULE_BUTTON.match(message.strip())
    if button:
        named = _match_project_name(button.group(1), names) or button.group(1).strip()
        return {
            "propertyDetected": True,
            "detectedProperty": named,
            "shouldUpdateActiveProject": True,
            "isScheduleRequest": True,
            "schedulePropertyId": _project_id_map(args).get(named),
        }

    if not names:
        return {"propertyDetected": False, "message": "No properties available"}

    detected = _find_property_in(message, names)
    if detected and detected != args.get("active_project"):
        return {
            "propertyDetected": True,
            "detectedProperty": detected,
            "shouldUpdateActiveProject": True,
        }
    return {"propertyDetected": bool(detected), "detectedProperty": detected}


async def update_active_project(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    requested = args.get("project_name") or ""
    matched = _match_project_name(requested, list(args.get("project_names") or []))
    if matched is None:
        return {"success": False, "error": f"Project '{requested}' is not one of our properties."}
    project_id = _project_id_map(args).get(matched)
    return {
        "success": True,
        "active_project": matched,
        "metadata_updates": {"active_project": matched, "active_project_id": project_id},
    }


# ------------------------------------------------------------------ #
# Property data
# ------------------------------------------------------------------ #

async def fetch_org_metadata(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    session_id = ctx.metadata.get("session_id") or args.get("session_id")
    chatbot_id = ctx.metadata.get("chatbot_id") or args.get("chatbot_id")
    try:
        fetched = await ctx.backend.fetch_org_metadata(session_id, chatbot_id)
    except BackendError as exc:
        return {"error": f"Error fetching organizational metadata: {exc}"}
    refreshed = apply_org_metadata(ctx.metadata, fetched)
    return {
        "success": True,
        "org_name": refreshed.get("org_name"),
        "project_names": refreshed.get("project_names"),
        "metadata_updates": refreshed,
    }


async def get_project_details(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    project_id = args.get("project_id")
    project_name = args.get("project_name")
    if project_id:
        ids = [project_id]
    elif project_name:
        ids = [pid for name, pid in _project_id_map(args).items() if name.lower() == project_name.lower()]
    else:
        ids = list(args.get("project_ids") or [])

    try:
        records = await ctx.backend.get_project_details(ids, project_name)
    except BackendError as exc:
        return {
            "error": str(exc),
            "ui_display_hint": UiHint.CHAT.value,
            "message": "Sorry, I couldn't load the property details right now.",
        }

    if not records:
        return {
            "properties": [],
            "ui_display_hint": UiHint.CHAT.value,
            "message": "I couldn't find details for that property.",
        }
    if len(records) == 1:
        return {
            "property_details": _present_property(records[0]),
            "ui_display_hint": UiHint.PROPERTY_DETAILS.value,
            "message": f"Here are the details for {records[0].name}.",
        }
    return {
        "properties": [_present_property(r) for r in records],
        "ui_display_hint": UiHint.PROPERTY_LIST.value,
        "message": "Here are the properties I found. You can click on the cards below for more details.",
    }


async def lookup_property(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    query = args.get("query") or ""
    if not query:
        return {"error": "A search query is required.", "ui_display_hint": UiHint.CHAT.value}
    try:
        records = await ctx.backend.lookup_property(
            query, int(args.get("k") or 3), list(args.get("project_ids") or [])
        )
    except BackendError as exc:
        return {
            "error": str(exc),
            "ui_display_hint": UiHint.CHAT.value,
            "message": f"Lookup failed: {exc}",
        }
    return {
        "search_results": [
            {"name": r.name, "description": r.description, "location": r.location} for r in records
        ],
        "ui_display_hint": UiHint.CHAT.value,
        "message": "Summarize these search results for the user." if records else "No matching properties found.",
    }


async def get_property_images(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    target = args.get("property_name") or args.get("active_project")
    if not target or target == "N/A":
        return {
            "error": "Please specify a property name",
            "ui_display_hint": UiHint.CHAT.value,
        }
    try:
        images = await ctx.backend.get_property_images(
            target, args.get("query"), list(args.get("project_ids") or [])
        )
    except BackendError as exc:
        return {"error": str(exc), "ui_display_hint": UiHint.CHAT.value}

    if not images:
        return {
            "images": [],
            "ui_display_hint": UiHint.CHAT.value,
            "message": f"No images found for {target}.",
        }
    return {
        "property_name": target,
        "images": images,
        "ui_display_hint": UiHint.IMAGE_GALLERY.value,
        "message": "Here are the images.",
    }


async def calculate_route(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    origin = args.get("origin")
    destination = args.get("destination_property") or args.get("active_project")
    if not origin or not destination or destination == "N/A":
        return {"error": "Both an origin and a property are needed for directions."}
    locations = args.get("project_locations") or {}
    target = locations.get(destination, destination) if isinstance(locations, dict) else destination
    try:
        summary = await ctx.backend.calculate_route(origin, str(target))
    except BackendError as exc:
        return {"error": f"Error calculating route: {exc}"}
    return {"routeSummary": summary, "ui_display_hint": UiHint.CHAT.value}


async def find_nearest_place(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    query = args.get("query")
    reference = args.get("reference_property") or args.get("active_project")
    if not query:
        return {"error": "Tell me what kind of place to look for."}
    if not reference or reference == "N/A":
        return {"error": "Which property should I search around?"}
    try:
        result = await ctx.backend.find_nearest_place(query, reference)
    except BackendError as exc:
        return {"error": f"Error finding nearby places: {exc}"}
    return {"nearestPlace": result, "ui_display_hint": UiHint.CHAT.value}


# ------------------------------------------------------------------ #
# Scheduling handoff and confirmation
# ------------------------------------------------------------------ #

async def initiate_scheduling(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    property_id, property_name = _resolve_property(args, args.get("property_id"))
    logger.info("Initiating scheduling for %s (%s)", property_name, property_id)
    result: dict[str, Any] = {
        "destination_agent": "scheduleMeeting",
        "silentTransfer": True,
        "property_name": property_name,
    }
    if property_id:
        result["property_id_to_schedule"] = property_id
    return result


async def complete_scheduling(args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    """Show the booking confirmation once a visit has been booked."""
    has_slot = args.get("selected_date") or args.get("selected_time")
    customer_name = args.get("customer_name")
    cleared = {"flow_context": None, "selected_date": None, "selected_time": None}

    if not (has_slot and customer_name):
        return {
            "success": True,
            "message": "Thanks! Is there anything else I can help you with?",
            "ui_display_hint": UiHint.CHAT.value,
            "metadata_updates": cleared,
        }

    details = build_booking_details(args)
    property_id, _ = _resolve_property(args, args.get("property_id_to_schedule"))
    try:
        await ctx.backend.notify_visit_scheduled(VisitRequest(
            customer_name=customer_name,
            phone_number=args.get("phone_number") or "",
            property_id=property_id or "",
            property_name=details["propertyName"],
            visit_date_time=" ".join(p for p in (args.get("selected_date"), args.get("selected_time")) if p),
            chatbot_id=args.get("chatbot_id") or "",
            session_id=args.get("session_id") or "",
        ))
    except BackendError as exc:
        logger.warning("Visit notification failed: %s", exc)

    updates = dict(cleared)
    updates.update({"has_scheduled": True, "is_verified": True})
    return {
        "success": True,
        "message": build_booking_message(
            customer_name, details["propertyName"], details["date"], details["time"]
        ),
        "booking_details": details,
        "ui_display_hint": UiHint.BOOKING_CONFIRMATION.value,
        "metadata_updates": updates,
    }


# ------------------------------------------------------------------ #
# Definition
# ------------------------------------------------------------------ #

_MESSAGE_PARAM = {"message": {"type": "string", "description": "The user's message."}}

TOOLS = (
    function_tool(
        RealEstateTool.TRACK_USER_MESSAGE.value,
        "Internal tool: tracks every user message. Call at the start of each user turn.",
        _MESSAGE_PARAM, ["message"],
    ),
    function_tool(
        RealEstateTool.DETECT_PROPERTY.value,
        "Detects whether the user's message mentions one of the company's properties.",
        _MESSAGE_PARAM, ["message"],
    ),
    function_tool(
        RealEstateTool.UPDATE_ACTIVE_PROJECT.value,
        "Sets the property the conversation is focused on.",
        {"project_name": {"type": "string"}}, ["project_name"],
    ),
    function_tool(
        RealEstateTool.LOOKUP_PROPERTY.value,
        "Semantic search over property documents for vague or feature-based questions.",
        {"query": {"type": "string"}, "k": {"type": "number", "description": "Number of results."}},
        ["query"],
    ),
    function_tool(
        RealEstateTool.CALCULATE_ROUTE.value,
        "Driving directions from the user's location to a property.",
        {"origin": {"type": "string"}, "destination_property": {"type": "string"}},
        ["origin"],
    ),
    function_tool(
        RealEstateTool.FIND_NEAREST_PLACE.value,
        "Finds the nearest place of a given kind (school, hospital, metro...) to a property.",
        {"query": {"type": "string"}, "reference_property": {"type": "string"}},
        ["query"],
    ),
    function_tool(
        RealEstateTool.FETCH_ORG_METADATA.value,
        "Refreshes the organisation's metadata and project list.",
    ),
    function_tool(
        RealEstateTool.GET_PROPERTY_IMAGES.value,
        "Retrieves images for a property.",
        {"property_name": {"type": "string"}, "query": {"type": "string"}},
    ),
    function_tool(
        RealEstateTool.GET_PROJECT_DETAILS.value,
        "Details for one property (by id or name) or all properties when no filter is given.",
        {"project_id": {"type": "string"}, "project_name": {"type": "string"}},
    ),
    function_tool(
        RealEstateTool.INITIATE_SCHEDULING.value,
        "Starts booking a visit. Transfers silently to the scheduling agent.",
        {"property_id": {"type": "string"}},
    ),
)

HANDLERS = {
    RealEstateTool.TRACK_USER_MESSAGE.value: track_user_message,
    RealEstateTool.DETECT_PROPERTY.value: detect_property_in_message,
    RealEstateTool.UPDATE_ACTIVE_PROJECT.value: update_active_project,
    RealEstateTool.LOOKUP_PROPERTY.value: lookup_property,
    RealEstateTool.CALCULATE_ROUTE.value: calculate_route,
    RealEstateTool.FIND_NEAREST_PLACE.value: find_nearest_place,
    RealEstateTool.FETCH_ORG_METADATA.value: fetch_org_metadata,
    RealEstateTool.GET_PROPERTY_IMAGES.value: get_property_images,
    RealEstateTool.GET_PROJECT_DETAILS.value: get_project_details,
    RealEstateTool.INITIATE_SCHEDULING.value: initiate_scheduling,
}


def build_real_estate_agent() -> AgentDefinition:
    return AgentDefinition(
        name=NAME,
        public_description="Real estate agent that answers property questions, "
        "shows property details and images, and starts visit scheduling.",
        instructions=real_estate_instructions,
        tools=TOOLS,
        handlers=HANDLERS,
        tool_names=RealEstateTool,
        downstream=("authentication", "simulatedHuman", "scheduleMeeting"),
        default_metadata={"active_project": "N/A", "question_count": 0},
        display_mode=UiHint.CHAT,
        kickoff=real_estate_kickoff,
        unsupported_hints={
            "getAvailableSlots": "Visit slots are handled by the scheduling agent; "
            "call initiateScheduling to hand the user over.",
            "scheduleVisit": "Call initiateScheduling; the scheduling agent books the visit.",
            "submitPhoneNumber": "Phone verification is handled by the authentication agent; "
            "transfer with transferAgents.",
            "verifyOTP": "Phone verification is handled by the authentication agent; "
            "transfer with transferAgents.",
        },
    )
