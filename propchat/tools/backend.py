"""
Interface of the external services the agents' tool handlers call.

Two implementations exist: ``HttpBackend`` talks to the deployed edge
functions over HTTP, ``InMemoryBackend`` serves seeded data for the
console demo and the test suite.
"""

from typing import Optional, Protocol

from propchat.schemas.backend_schema import (
    OrgMetadata,
    OtpVerification,
    PhoneAuthRequest,
    PhoneAuthResult,
    PropertyRecord,
    VisitConfirmation,
    VisitRequest,
)


class BackendError(Exception):
    """A backend call failed (network, HTTP status, or error payload)."""


class PropertyBackend(Protocol):
    async def fetch_org_metadata(self, session_id: str, chatbot_id: str) -> OrgMetadata:
        ...

    async def get_project_details(
        self, project_ids: list[str], project_name: Optional[str] = None
    ) -> list[PropertyRecord]:
        ...

    async def lookup_property(
        self, query: str, k: int, project_ids: list[str]
    ) -> list[PropertyRecord]:
        ...

    async def get_property_images(
        self, property_name: str, query: Optional[str], project_ids: list[str]
    ) -> list[dict]:
        ...

    async def calculate_route(self, origin: str, destination: str) -> str:
        ...

    async def find_nearest_place(self, query: str, reference: str) -> str:
        ...

    async def send_otp(self, request: PhoneAuthRequest) -> PhoneAuthResult:
        ...

    async def verify_otp(self, request: PhoneAuthRequest) -> OtpVerification:
        ...

    async def get_available_slots(self, property_id: str) -> dict[str, list[str]]:
        ...

    async def schedule_visit(self, request: VisitRequest) -> VisitConfirmation:
        ...

    async def notify_visit_scheduled(self, request: VisitRequest) -> None:
        ...
