"""
Identifier validation and fallback, shared by every tool handler.

Session, organisation and chatbot ids arrive from three places: the
embedding page, the metadata-fetch collaborator, and the model itself
(which happily invents values such as "session_123" or "default").
Only canonical identifiers are trusted; anything else falls back to the
stored value, then to a generated or configured default.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

_CANONICAL_ID = re.compile(
    r"^(?:[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}|[0-9a-f]{32})$",
    re.IGNORECASE,
)


class IdentifierError(ValueError):
    """Raised when no trustworthy identifier can be resolved."""


def is_canonical_id(value: Any) -> bool:
    """Recognize 36-character hyphenated hex or 32-character hex ids."""
    return isinstance(value, str) and bool(_CANONICAL_ID.match(value))


def generate_id() -> str:
    """Return a fresh canonical identifier."""
    return str(uuid.uuid4())


def resolve_identifier(
    candidate: Any,
    stored: Any = None,
    fallback: Optional[str] = None,
) -> Optional[str]:
    """Pick the first canonical value among candidate, stored, fallback."""
    if is_canonical_id(candidate):
        return candidate
    if candidate:
        logger.debug("Untrusted identifier %r, falling back", candidate)
    if is_canonical_id(stored):
        return stored
    return fallback


@dataclass(frozen=True)
class SessionIdentity:
    """The three ids every backend call is scoped by."""

    session_id: str
    org_id: str
    chatbot_id: str


def resolve_identity(
    args: Mapping[str, Any],
    stored: Mapping[str, Any],
    fallback_chatbot_id: str,
) -> SessionIdentity:
    """Resolve session/org/chatbot ids from call arguments and stored metadata.

    Raises:
        IdentifierError: If no canonical org id is available.
    """
    org_id = resolve_identifier(args.get("org_id"), stored.get("org_id"))
    if org_id is None:
        raise IdentifierError(
            f"Invalid or missing organization ID: {args.get('org_id') or stored.get('org_id')!r}"
        )
    chatbot_id = resolve_identifier(
        args.get("chatbot_id"), stored.get("chatbot_id"), fallback_chatbot_id
    )
    session_id = resolve_identifier(args.get("session_id"), stored.get("session_id"))
    if session_id is None:
        session_id = stored.get("session_id") or args.get("session_id") or generate_id()
    return SessionIdentity(session_id=session_id, org_id=org_id, chatbot_id=chatbot_id)
