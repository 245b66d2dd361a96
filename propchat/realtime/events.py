"""Realtime wire codec: inbound event types and outbound event builders."""

import json
from typing import Any, Optional

from propchat.schemas.tool_schema import ToolDefinition

# Inbound
SESSION_CREATED = "session.created"
SESSION_UPDATED = "session.updated"
RESPONSE_CREATED = "response.created"
RESPONSE_DONE = "response.done"
RESPONSE_CANCELLED = "response.cancelled"
ITEM_CREATED = "conversation.item.created"
AUDIO_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
TEXT_DELTA = "response.text.delta"
TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
OUTPUT_ITEM_DONE = "response.output_item.done"
ERROR = "error"

# Error codes that are expected protocol noise
CANCEL_NOT_ACTIVE = "response_cancel_not_active"
ALREADY_HAS_ACTIVE_RESPONSE = "conversation_already_has_active_response"


def session_update(
    instructions: str,
    tools: list[ToolDefinition],
    language: Optional[str] = None,
) -> dict[str, Any]:
    """Push an agent's instructions and tool catalog to the model."""
    session: dict[str, Any] = {
        "instructions": instructions,
        "tools": [tool.model_dump() for tool in tools],
        "tool_choice": "auto" if tools else "none",
    }
    if language:
        session["metadata"] = {"language": language}
    return {"type": "session.update", "session": session}


def user_message(text: str, item_id: Optional[str] = None) -> dict[str, Any]:
    item: dict[str, Any] = {
        "type": "message",
        "role": "user",
        "content": [{"type": "input_text", "text": text}],
    }
    if item_id:
        item["id"] = item_id
    return {"type": "conversation.item.create", "item": item}


def function_call_output(call_id: str, output: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "conversation.item.create",
        "item": {
            "type": "function_call_output",
            "call_id": call_id,
            "output": json.dumps(output),
        },
    }


def response_create() -> dict[str, Any]:
    return {"type": "response.create"}


def response_cancel() -> dict[str, Any]:
    return {"type": "response.cancel"}


def input_audio_buffer_clear() -> dict[str, Any]:
    return {"type": "input_audio_buffer.clear"}
