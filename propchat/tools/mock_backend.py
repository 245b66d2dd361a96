"""
In-memory property backend.

Serves a seeded organisation with two projects, a generated visit
schedule, and a fixed OTP code. In production these calls go to the
edge functions via ``HttpBackend``.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from propchat.schemas.backend_schema import (
    OrgMetadata,
    OtpVerification,
    PhoneAuthRequest,
    PhoneAuthResult,
    PropertyRecord,
    VisitConfirmation,
    VisitRequest,
)
from propchat.tools.backend import BackendError
from propchat.utils import is_e164

logger = logging.getLogger(__name__)

DEMO_ORG_ID = "8b1f9a52-3c4d-4e6f-9a1b-2c3d4e5f6a7b"
DEMO_CHATBOT_ID = "1a2b3c4d-5e6f-4a7b-8c9d-0e1f2a3b4c5d"
DEMO_OTP_CODE = "123456"

# Schedule generation parameters
SCHEDULE_DAYS = 7
VISIT_TIMES = ["10:00 AM", "11:30 AM", "2:00 PM", "4:30 PM"]

_PROJECTS: list[dict[str, Any]] = [
    {
        "id": "d3f1a9c2-6b7e-4c1d-9e2f-3a4b5c6d7e8f",
        "name": "Skyline Heights",
        "price": "1.2 Cr onwards",
        "area": "1450 sqft",
        "location": {"city": "Gachibowli, Hyderabad", "coords": "17.4401,78.3489"},
        "description": "Premium 2 and 3 BHK apartments with skyline views.",
        "amenities": ["Clubhouse", "Swimming pool", "Gym", "Children's play area"],
        "images": [
            {"url": "https://images.example.com/skyline/tower.jpg", "alt": "Tower exterior"},
            {"url": "https://images.example.com/skyline/lobby.jpg", "alt": "Lobby"},
            {"url": "https://images.example.com/skyline/pool.jpg", "alt": "Pool deck"},
        ],
    },
    {
        "id": "e4a2b8d3-7c8f-4d2e-8f3a-4b5c6d7e8f9a",
        "name": "Ocean View",
        "price": "95 L onwards",
        "area": "1180 sqft",
        "location": {"city": "Kondapur, Hyderabad", "coords": "17.4622,78.3568"},
        "description": "Lake-facing homes close to the IT corridor.",
        "amenities": ["Jogging track", "Co-working lounge", "EV charging"],
        "images": [
            {"url": "https://images.example.com/ocean/facade.jpg", "alt": "Facade"},
        ],
    },
]


def _generate_schedule(days: int = SCHEDULE_DAYS) -> dict[str, list[str]]:
    """Visit slots for the next ``days`` days, skipping Sundays."""
    schedule: dict[str, list[str]] = {}
    base = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    for offset in range(1, days + 1):
        day = base + timedelta(days=offset)
        if day.weekday() == 6:
            continue
        schedule[day.strftime("%Y-%m-%d")] = list(VISIT_TIMES)
    return schedule


class InMemoryBackend:
    """Deterministic stand-in for the property, OTP and scheduling services."""

    def __init__(self, otp_code: str = DEMO_OTP_CODE) -> None:
        self.otp_code = otp_code
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_actions: set[str] = set()
        self.org_metadata: dict[str, Any] = {}
        self.reset()

    def reset(self) -> None:
        """Restore seeded data. Call between tests for isolation."""
        self.calls.clear()
        self.fail_actions.clear()
        self.org_metadata = {
            "org_id": DEMO_ORG_ID,
            "org_name": "Horizon Realty",
            "chatbot_id": DEMO_CHATBOT_ID,
            "project_ids": [p["id"] for p in _PROJECTS],
            "project_names": [p["name"] for p in _PROJECTS],
            "project_locations": {p["name"]: p["location"]["city"] for p in _PROJECTS},
            "is_verified": False,
        }
        self._pending_otp: dict[str, Optional[str]] = {}
        self._bookings: list[VisitRequest] = []
        self._schedules: dict[str, dict[str, list[str]]] = {}

    @property
    def bookings(self) -> list[VisitRequest]:
        return list(self._bookings)

    def _record(self, action: str, /, **payload: Any) -> None:
        self.calls.append((action, payload))
        if action in self.fail_actions:
            raise BackendError(f"{action} failed")

    def calls_for(self, action: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.calls if name == action]

    # --- Property data --- #

    async def fetch_org_metadata(self, session_id: str, chatbot_id: str) -> OrgMetadata:
        self._record("fetchOrgMetadata", session_id=session_id, chatbot_id=chatbot_id)
        return OrgMetadata(**self.org_metadata)

    async def get_project_details(
        self, project_ids: list[str], project_name: Optional[str] = None
    ) -> list[PropertyRecord]:
        self._record("getProjectDetails", project_ids=project_ids, project_name=project_name)
        if project_ids:
            rows = [p for p in _PROJECTS if p["id"] in project_ids]
        elif project_name:
            rows = [p for p in _PROJECTS if p["name"].lower() == project_name.lower()]
        else:
            rows = []
        return [PropertyRecord(**row) for row in rows]

    async def lookup_property(
        self, query: str, k: int, project_ids: list[str]
    ) -> list[PropertyRecord]:
        self._record("lookupProperty", query=query, k=k, project_ids=project_ids)
        words = {w for w in query.lower().split() if len(w) > 2}
        scored = []
        for row in _PROJECTS:
            if project_ids and row["id"] not in project_ids:
                continue
            haystack = " ".join(
                [row["name"], row["description"], row["location"]["city"], *row["amenities"]]
            ).lower()
            scored.append((sum(1 for w in words if w in haystack), row))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [PropertyRecord(**row) for _, row in scored[:k]]

    async def get_property_images(
        self, property_name: str, query: Optional[str], project_ids: list[str]
    ) -> list[dict]:
        self._record(
            "getPropertyImages", property_name=property_name, query=query, project_ids=project_ids
        )
        for row in _PROJECTS:
            if row["name"].lower() == property_name.lower():
                return [
                    {"image_url": img["url"], "description": img["alt"]}
                    for img in row["images"]
                ]
        return []

    async def calculate_route(self, origin: str, destination: str) -> str:
        self._record("calculateRoute", origin=origin, destination=destination)
        return f"Route Summary:\nFrom {origin} to {destination}: about 25 minutes by car."

    async def find_nearest_place(self, query: str, reference: str) -> str:
        self._record("findNearestPlace", query=query, reference=reference)
        return f"The nearest {query} to {reference} is about 1.2 km away."

    # --- Phone verification --- #

    async def send_otp(self, request: PhoneAuthRequest) -> PhoneAuthResult:
        self._record("send_otp", **request.model_dump())
        if not is_e164(request.phone_number):
            return PhoneAuthResult(success=False, error="Invalid phone number format.")
        self._pending_otp[request.phone_number] = request.name
        return PhoneAuthResult(success=True, message="OTP sent successfully.")

    async def verify_otp(self, request: PhoneAuthRequest) -> OtpVerification:
        self._record("verify_otp", **request.model_dump())
        if request.phone_number not in self._pending_otp:
            return OtpVerification(verified=False, error="No OTP was requested for this number.")
        if request.otp != self.otp_code:
            return OtpVerification(verified=False, error="The code you entered is incorrect.")
        name = self._pending_otp.pop(request.phone_number)
        return OtpVerification(verified=True, customer_name=name, message="Phone verified.")

    # --- Scheduling --- #

    async def get_available_slots(self, property_id: str) -> dict[str, list[str]]:
        self._record("getAvailableSlots", property_id=property_id)
        schedule = self._schedules.setdefault(property_id, _generate_schedule())
        return {day: list(times) for day, times in schedule.items() if times}

    async def schedule_visit(self, request: VisitRequest) -> VisitConfirmation:
        self._record("scheduleVisit", **request.model_dump())
        self._bookings.append(request)
        ref = f"PV-{len(self._bookings):04d}"
        logger.info("Visit booked: %s for %s", ref, request.customer_name)
        return VisitConfirmation(success=True, booking_ref=ref, message="Visit scheduled.")

    async def notify_visit_scheduled(self, request: VisitRequest) -> None:
        self._record("notifyVisitScheduled", **request.model_dump())
