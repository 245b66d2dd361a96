"""
Session metadata: creation, enrichment, transfer merges and identity checks.

The metadata map is a flat dict owned by the session. Only functions in
this module and the session itself produce new versions of it; tool
handlers see a read-only snapshot and return deltas.
"""

import logging
from itertools import combinations
from typing import Any, Mapping, Optional

from propchat.identifiers import generate_id, is_canonical_id, resolve_identifier
from propchat.schemas.backend_schema import OrgMetadata

logger = logging.getLogger(__name__)

IDENTITY_KEYS: tuple[str, ...] = ("session_id", "org_id", "chatbot_id")

# Keys that steer a transfer and must not persist as session state
TRANSFER_CONTROL_KEYS: frozenset[str] = frozenset({
    "destination",
    "destination_agent",
    "silent",
    "silentTransfer",
    "silent_transfer",
    "success",
    "error",
    "status",
    "message",
    "ui_display_hint",
    "metadata_updates",
    "suggested_action",
})

# Visitor progress that an org metadata refresh must never wipe
_PRESERVED_ON_REFRESH: tuple[str, ...] = (
    "is_verified",
    "has_scheduled",
    "customer_name",
    "phone_number",
    "selected_date",
    "selected_time",
    "property_name",
    "project_id_map",
    "active_project_id",
)


class IdentityConflictError(Exception):
    """Raised when two of session/org/chatbot ids coincide."""


def bootstrap_metadata(
    session_id: Optional[str],
    chatbot_id: Optional[str],
    org_id: Optional[str] = None,
    language: str = "English",
    org_name: str = "the company",
    fallback_chatbot_id: Optional[str] = None,
) -> dict[str, Any]:
    """Minimal metadata for a new session: ids and neutral defaults.

    Non-canonical ids are not trusted: the session id is regenerated, the
    chatbot id falls back to ``fallback_chatbot_id`` and the org id is left
    unset until the org metadata fetch supplies one.
    """
    metadata: dict[str, Any] = {
        "session_id": session_id if is_canonical_id(session_id) else generate_id(),
        "chatbot_id": resolve_identifier(chatbot_id, fallback=fallback_chatbot_id),
        "org_id": resolve_identifier(org_id),
        "org_name": org_name,
        "language": language,
        "active_project": "N/A",
        "project_ids": [],
        "project_names": [],
        "is_verified": False,
        "has_scheduled": False,
        "question_count": 0,
    }
    return metadata


def check_identity(metadata: Mapping[str, Any]) -> None:
    """Ensure the identity keys present in ``metadata`` are pairwise distinct.

    Raises:
        IdentityConflictError: If any two identity values coincide.
    """
    present = [(key, metadata.get(key)) for key in IDENTITY_KEYS if metadata.get(key)]
    for (key_a, value_a), (key_b, value_b) in combinations(present, 2):
        if value_a == value_b:
            raise IdentityConflictError(
                f"{key_a} and {key_b} share the value {value_a!r}"
            )


def strip_control_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if k not in TRANSFER_CONTROL_KEYS}


def merge_transfer_metadata(
    destination_defaults: Mapping[str, Any],
    live: Mapping[str, Any],
    fields: Mapping[str, Any],
    came_from: str,
) -> dict[str, Any]:
    """Compute the metadata handed to a transfer destination.

    Precedence, lowest to highest: destination defaults, live session
    metadata, fields returned by the transferring tool. ``came_from`` is
    stamped last and control keys are stripped.
    """
    merged: dict[str, Any] = {}
    merged.update(destination_defaults)
    merged.update(live)
    merged.update(fields)
    merged["came_from"] = came_from
    return strip_control_fields(merged)


def build_project_id_map(project_ids: list[str], project_names: list[str]) -> dict[str, str]:
    """Map project name -> id from the parallel lists returned by the backend."""
    return {
        name: project_id
        for name, project_id in zip(project_names, project_ids)
        if name and project_id
    }


def apply_org_metadata(live: Mapping[str, Any], fetched: OrgMetadata) -> dict[str, Any]:
    """Overlay freshly fetched org metadata onto the live session metadata.

    The session id is never replaced by the fetch, visitor progress is
    kept unless the backend reports it, and the question counter resets.
    """
    data = fetched.model_dump(exclude_none=True)
    data.pop("session_id", None)
    for key in ("org_id", "chatbot_id"):
        if key in data and not is_canonical_id(data[key]):
            logger.warning("Ignoring non-canonical %s %r from org metadata", key, data[key])
            del data[key]
    if not data.get("project_id_map"):
        data.pop("project_id_map", None)

    merged: dict[str, Any] = dict(live)
    merged.update(data)
    for key in _PRESERVED_ON_REFRESH:
        if key not in data and live.get(key) is not None:
            merged[key] = live[key]

    if not merged.get("project_id_map"):
        merged["project_id_map"] = build_project_id_map(
            merged.get("project_ids") or [], merged.get("project_names") or []
        )
    if not merged.get("active_project"):
        merged["active_project"] = "N/A"
    merged["question_count"] = 0
    logger.debug(
        "Org metadata applied: %d projects, verified=%s",
        len(merged.get("project_ids") or []), merged.get("is_verified"),
    )
    return merged
