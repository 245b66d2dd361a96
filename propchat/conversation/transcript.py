"""
Transcript log with duplicate protection and streaming deltas.

The realtime service may replay ``conversation.item.created`` events and
keep streaming deltas for an item after it was marked done. The log keeps
at most one item per id and treats completed items as closed.

Usage:
    log = TranscriptLog()
    log.add_message("item_1", Role.ASSISTANT, agent_name="realEstate")
    log.upsert("item_1", Role.ASSISTANT, "Hel", is_delta=True)
    log.upsert("item_1", Role.ASSISTANT, "lo", is_delta=True)
    log.mark_status("item_1", ItemStatus.DONE)
"""

import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

MAX_ITEM_ID_LENGTH = 32
TRANSCRIBING_PLACEHOLDER = "[Transcribing...]"
INAUDIBLE_PLACEHOLDER = "[inaudible]"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ItemStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ERROR = "error"


@dataclass
class TranscriptItem:
    """One logical message in the user-facing log."""
    item_id: str
    role: Role
    text: str = ""
    status: ItemStatus = ItemStatus.IN_PROGRESS
    agent_name: Optional[str] = None
    created_at_ms: int = field(default_factory=lambda: int(time.time() * 1000))
    hidden: bool = False


def new_item_id(prefix: str = "item") -> str:
    """Generate a fresh item id that fits the service's length limit."""
    return bounded_item_id(f"{prefix}_{uuid.uuid4().hex}")


def bounded_item_id(item_id: str) -> str:
    return item_id[:MAX_ITEM_ID_LENGTH]


class TranscriptLog:
    """Ordered, id-keyed transcript."""

    def __init__(self) -> None:
        self._items: dict[str, TranscriptItem] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: str) -> bool:
        return bounded_item_id(item_id) in self._items

    def get(self, item_id: str) -> Optional[TranscriptItem]:
        return self._items.get(bounded_item_id(item_id))

    def add_message(
        self,
        item_id: str,
        role: Role,
        text: str = "",
        agent_name: Optional[str] = None,
        hidden: bool = False,
    ) -> Optional[TranscriptItem]:
        """Insert a new item; a duplicate id is refused and returns None."""
        key = bounded_item_id(item_id)
        if key in self._items:
            logger.debug("Duplicate item %s ignored", key)
            return None
        status = ItemStatus.DONE if role == Role.SYSTEM else ItemStatus.IN_PROGRESS
        item = TranscriptItem(
            item_id=key,
            role=role,
            text=text,
            status=status,
            agent_name=agent_name,
            hidden=hidden,
        )
        self._items[key] = item
        return item

    def add_system_notice(self, text: str) -> TranscriptItem:
        """Append a DONE system item under a freshly generated id."""
        item = None
        while item is None:
            item = self.add_message(new_item_id("sys"), Role.SYSTEM, text)
        return item

    def upsert(
        self,
        item_id: str,
        role: Role,
        text: str,
        is_delta: bool = False,
        agent_name: Optional[str] = None,
    ) -> Optional[TranscriptItem]:
        """Insert, replace, or append to an item.

        Returns the affected item, or None when the item is already
        done and the update was ignored.
        """
        key = bounded_item_id(item_id)
        item = self._items.get(key)
        if item is None:
            return self.add_message(key, role, text, agent_name=agent_name)
        if item.status != ItemStatus.IN_PROGRESS:
            logger.debug("Late update for completed item %s ignored", key)
            return None
        item.text = item.text + text if is_delta else text
        return item

    def mark_status(self, item_id: str, status: ItemStatus) -> bool:
        """Set an item's status. Returns False if the item is unknown."""
        item = self._items.get(bounded_item_id(item_id))
        if item is None:
            return False
        if item.status != status:
            logger.debug("Item %s: %s -> %s", item.item_id, item.status.value, status.value)
            item.status = status
        return True

    def items(self) -> list[TranscriptItem]:
        return list(self._items.values())

    def visible(self) -> list[TranscriptItem]:
        return [item for item in self._items.values() if not item.hidden]

    def snapshot(self) -> tuple[TranscriptItem, ...]:
        """Copies of every item, safe to hand to tool handlers."""
        return tuple(replace(item) for item in self._items.values())

    def clear(self) -> None:
        self._items.clear()
