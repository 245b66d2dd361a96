"""
Offline console demo -- replays a scripted widget conversation without any API keys.

The realtime model is simulated by a script of server events (responses
with function calls). Everything else is real: the session, the tool
dispatcher, transfers, the response lifecycle and the agents' handlers,
backed by the in-memory backend. No network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario scheduling
"""

import argparse
import asyncio
import json
import sys
from itertools import count
from typing import Any

from propchat.agents.registry import create_default_registry
from propchat.conversation.session import RealtimeSession
from propchat.realtime.channel import InMemoryChannel
from propchat.tools.mock_backend import DEMO_CHATBOT_ID, DEMO_ORG_ID, DEMO_OTP_CODE, InMemoryBackend

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_PHONE = "+1 (415) 555-2671"

# Each step is either ("user", text) or ("model", [(tool_name, arguments), ...])
SCENARIOS: dict[str, list[tuple[str, Any]]] = {
    "verification": [
        ("user", "Tell me about Skyline Heights"),
        ("model", [("trackUserMessage", {"message": "Tell me about Skyline Heights"}),
                   ("getProjectDetails", {"project_name": "Skyline Heights"})]),
        ("user", "I'd like to verify my number"),
        ("model", [("transferAgents", {"destination_agent": "authentication"})]),
        ("model", [("submitPhoneNumber", {"name": "Asha Rao", "phone_number": DEMO_PHONE})]),
        ("user", DEMO_OTP_CODE),
        ("model", [("verifyOTP", {"otp": DEMO_OTP_CODE})]),
        ("model", [("trackUserMessage", {"message": "I have verified my phone number."})]),
    ],
    "scheduling": [
        ("user", "Can I visit Ocean View this week?"),
        ("model", [("updateActiveProject", {"project_name": "Ocean View"})]),
        ("model", [("initiateScheduling", {})]),
        ("model", [("getAvailableSlots", {})]),
        ("user", "The first slot works for me"),
        ("model", [("scheduleVisit", "first-slot")]),
        ("model", [("submitPhoneNumber", {"name": "Asha Rao", "phone_number": DEMO_PHONE})]),
        ("model", [("verifyOTP", {"otp": DEMO_OTP_CODE})]),
        ("model", [("scheduleVisit", "first-slot")]),
        ("model", [("trackUserMessage", {"message": "Finalize scheduling confirmation"})]),
    ],
}


class ConsoleReplay:
    """Drives a RealtimeSession with scripted model events."""

    def __init__(self) -> None:
        self.channel = InMemoryChannel()
        self.backend = InMemoryBackend()
        self.session = RealtimeSession(create_default_registry(), self.channel, self.backend)
        self.session.ui_hints.subscribe(self._on_hint)
        self._ids = count(1)
        self._shown = 0
        self._first_slot: tuple[str, str] = ("", "")

    def _on_hint(self, hint: str, payload: dict[str, Any]) -> None:
        if hint != "CHAT":
            print(f"{YELLOW}  [ui] {hint}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _print_outbound(self) -> None:
        for event in self.channel.sent[self._shown:]:
            kind = event["type"]
            if kind == "session.update":
                self.system_log(f"session.update -> {self.session.state.active_agent}")
            elif kind == "conversation.item.create":
                item = event["item"]
                if item["type"] == "function_call_output":
                    output = json.loads(item["output"])
                    text = output.get("error") or output.get("message") or output.get("status") or ""
                    print(f"{GREEN}  [tool result] {text}{RESET}")
                else:
                    self.system_log(f"user message: {item['content'][0]['text']}")
            else:
                self.system_log(kind)
        self._shown = len(self.channel.sent)

    async def _spoken_reply(self) -> None:
        """Play a plain spoken answer for the response the session last requested."""
        response_id = f"resp_{next(self._ids)}"
        item_id = f"item_{next(self._ids)}"
        agent = self.session.state.active_agent
        await self.session.handle_event({"type": "response.created", "response": {"id": response_id}})
        await self.session.handle_event({
            "type": "conversation.item.created",
            "item": {"id": item_id, "type": "message", "role": "assistant", "content": []},
        })
        await self.session.handle_event({
            "type": "response.text.delta", "item_id": item_id, "delta": "(answers the visitor)",
        })
        await self.session.handle_event({"type": "response.output_item.done", "item": {"id": item_id}})
        await self.session.handle_event({
            "type": "response.done",
            "response": {"id": response_id, "status": "completed", "output": []},
        })
        print(f"{GREEN}{BOLD}[{agent}]{RESET} {GREEN}(answers the visitor){RESET}")

    async def _model_turn(self, calls: list[tuple[str, Any]]) -> None:
        response_id = f"resp_{next(self._ids)}"
        agent = self.session.state.active_agent
        await self.session.handle_event({"type": "response.created", "response": {"id": response_id}})
        output = []
        for name, arguments in calls:
            if arguments == "first-slot":
                arguments = {"selected_date": self._first_slot[0], "selected_time": self._first_slot[1]}
            print(f"{BLUE}{BOLD}[{agent}]{RESET} {BLUE}calls {name}{RESET}")
            output.append({
                "type": "function_call",
                "name": name,
                "call_id": f"call_{next(self._ids)}",
                "arguments": json.dumps(arguments),
            })
        await self.session.handle_event({
            "type": "response.done",
            "response": {"id": response_id, "status": "completed", "output": output},
        })
        await self.session.drain()

    async def run(self, scenario: str) -> int:
        steps = SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return 1

        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  PROPCHAT ORCHESTRATOR - Scenario: {scenario}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

        ocean_view = self.backend.org_metadata["project_ids"][1]
        schedule = await self.backend.get_available_slots(ocean_view)
        first_day = sorted(schedule)[0]
        self._first_slot = (first_day, schedule[first_day][0])
        self.backend.calls.clear()

        await self.session.start(chatbot_id=DEMO_CHATBOT_ID, org_id=DEMO_ORG_ID)
        await self.session.handle_event({"type": "session.created"})
        self._print_outbound()

        for kind, payload in steps:
            if kind == "user":
                if self.session.lifecycle.is_busy:
                    await self._spoken_reply()
                print(f"\n{BOLD}[Visitor]{RESET} {payload}")
                await self.session.send_user_text(payload)
            else:
                await self._model_turn(payload)
            self._print_outbound()

        metadata = self.session.metadata
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  Scenario '{scenario}' complete.{RESET}")
        print(f"{DIM}  Active agent: {self.session.state.active_agent}{RESET}")
        print(f"{DIM}  Verified: {metadata.get('is_verified')}  Scheduled: {metadata.get('has_scheduled')}{RESET}")
        print(f"{DIM}  Bookings: {len(self.backend.bookings)}{RESET}")
        print(f"{DIM}  Response trace: {' -> '.join(self.session.lifecycle.get_state_trace())}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        await self.session.close("demo finished")
        return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="PropChat offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(SCENARIOS),
        default="verification",
        help="Scripted conversation to replay",
    )
    args = parser.parse_args()
    sys.exit(asyncio.run(ConsoleReplay().run(args.scenario)))


if __name__ == "__main__":
    main()
