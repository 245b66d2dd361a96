"""Schemas for the backend collaborators called by tool handlers."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool


class OrgMetadata(BaseModel):
    """Organisation data returned by the metadata-fetch collaborator."""

    model_config = ConfigDict(extra="allow")

    org_id: Optional[str] = None
    org_name: Optional[str] = None
    chatbot_id: Optional[str] = None
    project_ids: list[str] = Field(default_factory=list)
    project_names: list[str] = Field(default_factory=list)
    project_locations: dict[str, Any] = Field(default_factory=dict)
    project_id_map: Optional[dict[str, str]] = None
    active_project: Optional[str] = None
    active_project_id: Optional[str] = None
    is_verified: Optional[bool] = None
    customer_name: Optional[str] = None
    phone_number: Optional[str] = None
    has_scheduled: Optional[bool] = None
    language: Optional[str] = None


class PropertyRecord(BaseModel):
    """A property (project) as returned by the property search backend."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: str
    description: str = ""
    location: dict[str, Any] = Field(default_factory=dict)
    price: Optional[str] = None
    area: Optional[str] = None
    images: list[dict[str, Any]] = Field(default_factory=list)
    amenities: list[Any] = Field(default_factory=list)


class PhoneAuthRequest(BaseModel):
    """Body of the OTP send and verify calls."""

    action: str
    phone_number: str
    session_id: str
    org_id: str
    chatbot_id: str
    name: Optional[str] = None
    otp: Optional[str] = None
    platform: str = "WebChat"
    chat_mode: str = "voice"


class PhoneAuthResult(BaseModel):
    success: bool = False
    message: Optional[str] = None
    error: Optional[str] = None


class OtpVerification(BaseModel):
    """Outcome of an OTP check.

    ``verified`` is the single source of truth; no other field of the
    upstream response is interpreted as success.
    """

    verified: StrictBool
    customer_name: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None


class VisitRequest(BaseModel):
    customer_name: str
    phone_number: str
    property_id: str
    visit_date_time: str
    chatbot_id: str
    session_id: str
    property_name: Optional[str] = None


class VisitConfirmation(BaseModel):
    success: bool = False
    booking_ref: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
