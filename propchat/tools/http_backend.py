"""HTTP backend -- edge-function calls for property data, OTP and scheduling."""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from propchat.config import BackendConfig
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

logger = logging.getLogger(__name__)


def _property_from_row(row: dict[str, Any]) -> PropertyRecord:
    """Accept both formatted project rows and raw vector-store documents."""
    if "name" in row:
        return PropertyRecord.model_validate(row)
    meta = row.get("metadata") or {}
    return PropertyRecord(
        id=meta.get("project_id"),
        name=meta.get("property_name") or "Property",
        description=row.get("pageContent", ""),
    )


class HttpBackend:
    """Backend collaborators reached over HTTPS with a shared client."""

    def __init__(self, config: BackendConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self._config = config
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Return (or create) the shared httpx client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout_sec)
        return self._client

    async def aclose(self) -> None:
        """Close the shared HTTP client. Called at session teardown."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return headers

    async def _post(
        self, url: str, payload: dict[str, Any], allow_error_payload: bool = False
    ) -> dict[str, Any]:
        action = payload.get("action", url)
        try:
            response = await self._get_client().post(url, json=payload, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise BackendError(f"{action} request failed: {exc}") from exc
        except ValueError as exc:
            raise BackendError(f"{action} returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise BackendError(f"{action} returned an unexpected payload")
        if data.get("error") and not allow_error_payload:
            raise BackendError(str(data["error"]))
        return data

    async def _tools(self, action: str, **payload: Any) -> dict[str, Any]:
        body = {"action": action}
        body.update({k: v for k, v in payload.items() if v is not None})
        return await self._post(self._config.tools_url, body)

    # --- Property data --- #

    async def fetch_org_metadata(self, session_id: str, chatbot_id: str) -> OrgMetadata:
        data = await self._tools("fetchOrgMetadata", session_id=session_id, chatbot_id=chatbot_id)
        try:
            return OrgMetadata.model_validate(data)
        except ValidationError as exc:
            raise BackendError(f"fetchOrgMetadata returned malformed metadata: {exc}") from exc

    async def get_project_details(
        self, project_ids: list[str], project_name: Optional[str] = None
    ) -> list[PropertyRecord]:
        data = await self._tools(
            "getProjectDetails",
            project_ids=project_ids or None,
            project_name=None if project_ids else project_name,
        )
        return [_property_from_row(row) for row in data.get("properties", [])]

    async def lookup_property(
        self, query: str, k: int, project_ids: list[str]
    ) -> list[PropertyRecord]:
        data = await self._tools("lookupProperty", query=query, k=k, project_ids=project_ids)
        return [_property_from_row(row) for row in data.get("properties", [])]

    async def get_property_images(
        self, property_name: str, query: Optional[str], project_ids: list[str]
    ) -> list[dict]:
        data = await self._tools(
            "getPropertyImages", property_name=property_name, query=query, project_ids=project_ids
        )
        return list(data.get("images", []))

    async def calculate_route(self, origin: str, destination: str) -> str:
        data = await self._tools("calculateRoute", origin=origin, destination=destination)
        return data.get("routeSummary", "")

    async def find_nearest_place(self, query: str, reference: str) -> str:
        data = await self._tools("findNearestPlace", query=query, reference=reference)
        return data.get("result", "")

    # --- Phone verification --- #

    async def send_otp(self, request: PhoneAuthRequest) -> PhoneAuthResult:
        data = await self._post(
            self._config.phone_auth_url,
            request.model_dump(exclude_none=True),
            allow_error_payload=True,
        )
        return PhoneAuthResult(
            success=data.get("success") is True,
            message=data.get("message"),
            error=data.get("error"),
        )

    async def verify_otp(self, request: PhoneAuthRequest) -> OtpVerification:
        data = await self._post(
            self._config.phone_auth_url,
            request.model_dump(exclude_none=True),
            allow_error_payload=True,
        )
        try:
            return OtpVerification.model_validate(data)
        except ValidationError as exc:
            raise BackendError("Verification service did not return a 'verified' flag") from exc

    # --- Scheduling --- #

    async def get_available_slots(self, property_id: str) -> dict[str, list[str]]:
        data = await self._post(
            self._config.schedule_visit_url,
            {"action": "getAvailableSlots", "property_id": property_id},
        )
        return dict(data.get("slots", {}))

    async def schedule_visit(self, request: VisitRequest) -> VisitConfirmation:
        payload = {"action": "scheduleVisit"}
        payload.update(request.model_dump(exclude_none=True))
        data = await self._post(
            self._config.schedule_visit_url, payload, allow_error_payload=True
        )
        try:
            return VisitConfirmation.model_validate(data)
        except ValidationError as exc:
            raise BackendError(f"scheduleVisit returned a malformed confirmation: {exc}") from exc

    async def notify_visit_scheduled(self, request: VisitRequest) -> None:
        if not self._config.visit_notify_url:
            logger.debug("No visit notification endpoint configured")
            return
        payload = {"action": "notifyVisitScheduled"}
        payload.update(request.model_dump(exclude_none=True))
        await self._post(self._config.visit_notify_url, payload)
