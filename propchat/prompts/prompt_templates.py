"""Kickoff phrases and confirmation messages built from session metadata."""

from typing import Any, Mapping, Optional

FINALIZE_SCHEDULING_MESSAGE = "Finalize scheduling confirmation"
TRIGGER_PREFIX = "{Trigger msg:"

FROM_DIRECT_AUTH = "from_direct_auth"
FROM_SCHEDULING_VERIFICATION = "from_scheduling_verification"
FROM_FULL_SCHEDULING = "from_full_scheduling"


def real_estate_kickoff(metadata: Mapping[str, Any]) -> str:
    if metadata.get("flow_context") == FROM_FULL_SCHEDULING:
        return FINALIZE_SCHEDULING_MESSAGE
    if metadata.get("flow_context") == FROM_DIRECT_AUTH:
        return "I have verified my phone number."
    return "Hi, I have a question about your properties."


def authentication_kickoff(metadata: Mapping[str, Any]) -> str:
    return "I need to verify my details."


def scheduling_kickoff(metadata: Mapping[str, Any]) -> str:
    if metadata.get("flow_context") == FROM_SCHEDULING_VERIFICATION:
        return "I'm verified now, please book my visit."
    return "I'd like to schedule a visit."


def build_verification_message(customer_name: Optional[str]) -> str:
    name = f", {customer_name}" if customer_name else ""
    return f"You're verified{name}! What else would you like to know about our properties?"


def build_booking_message(
    customer_name: Optional[str],
    property_name: str,
    date: Optional[str],
    time: Optional[str],
) -> str:
    """Build the confirmation line shown with the booking card."""
    who = f"Thanks {customer_name}! " if customer_name else "Thanks! "
    when = " at ".join(part for part in (date, time) if part)
    if when:
        return f"{who}Your visit to {property_name} is confirmed for {when}."
    return f"{who}Your visit to {property_name} is confirmed."


def build_booking_details(metadata: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "customerName": metadata.get("customer_name"),
        "propertyName": metadata.get("property_name") or "the property",
        "date": metadata.get("selected_date"),
        "time": metadata.get("selected_time"),
        "phoneNumber": metadata.get("phone_number"),
    }
