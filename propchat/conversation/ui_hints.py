"""UI display hints forwarded to the presentation layer."""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class UiHint(str, Enum):
    CHAT = "CHAT"
    PROPERTY_LIST = "PROPERTY_LIST"
    PROPERTY_DETAILS = "PROPERTY_DETAILS"
    IMAGE_GALLERY = "IMAGE_GALLERY"
    SCHEDULING_FORM = "SCHEDULING_FORM"
    VERIFICATION_FORM = "VERIFICATION_FORM"
    OTP_FORM = "OTP_FORM"
    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"


HintListener = Callable[[str, dict[str, Any]], None]


class UiHintTracker:
    """Holds the current hint and resets non-chat hints to CHAT after a TTL.

    Hints are opaque strings to the core: unknown values are forwarded
    unchanged.
    """

    def __init__(self, ttl_sec: float) -> None:
        self._ttl_sec = ttl_sec
        self._current: str = UiHint.CHAT.value
        self._payload: dict[str, Any] = {}
        self._listeners: list[HintListener] = []
        self._expiry: Optional[asyncio.TimerHandle] = None

    @property
    def current(self) -> str:
        return self._current

    @property
    def payload(self) -> dict[str, Any]:
        return dict(self._payload)

    def subscribe(self, listener: HintListener) -> None:
        self._listeners.append(listener)

    def show(self, hint: Any, payload: Optional[dict[str, Any]] = None) -> None:
        value = hint.value if isinstance(hint, UiHint) else str(hint)
        self._cancel_expiry()
        self._current = value
        self._payload = dict(payload or {})
        self._notify()
        if value != UiHint.CHAT.value:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return
            self._expiry = loop.call_later(self._ttl_sec, self._expire)

    def _expire(self) -> None:
        self._expiry = None
        logger.debug("UI hint %s expired", self._current)
        self._current = UiHint.CHAT.value
        self._payload = {}
        self._notify()

    def _notify(self) -> None:
        for listener in self._listeners:
            listener(self._current, self._payload)

    def _cancel_expiry(self) -> None:
        if self._expiry is not None:
            self._expiry.cancel()
            self._expiry = None

    def close(self) -> None:
        self._cancel_expiry()
        self._current = UiHint.CHAT.value
        self._payload = {}
