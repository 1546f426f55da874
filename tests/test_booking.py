"""Tests for the table-driven booking sub-agent."""

from __future__ import annotations

import pytest

from assistant.agents.booking import AGENTS, TRANSPORT_BOOKING, SlotFillingAgent, SlotStep, get_agent
from assistant.menus import MENUS

HAPPY = ["tomorrow", "10:30 AM", "home - clinic", "yes"]


def run(agent, inputs, state, sink=None):
    out = None
    for text in inputs:
        out = agent.handle(text, state, role="guest", user_id="u1", conversation_id="c1", sink=sink)
        state = out["next_state"]
    return out


class TestStart:
    def test_start_enters_step_one(self):
        out = TRANSPORT_BOOKING.start()
        assert out["next_state"] == {"mode": "booking_transport", "step": 1, "data": {}}
        assert TRANSPORT_BOOKING.steps[0].prompt in out["text"]

    def test_registry(self):
        assert get_agent("booking_transport") is TRANSPORT_BOOKING
        assert get_agent("nope") is None
        assert set(AGENTS) == {"booking_transport"}


class TestSteps:
    def test_each_step_stores_raw_text_and_advances(self):
        state = TRANSPORT_BOOKING.start()["next_state"]
        out = TRANSPORT_BOOKING.handle("  tomorrow ", state, role="guest")
        assert out["next_state"] == {"mode": "booking_transport", "step": 2, "data": {"date": "tomorrow"}}
        assert out["text"] == TRANSPORT_BOOKING.steps[1].prompt

    def test_invalid_input_keeps_step_and_data(self):
        state = {"mode": "booking_transport", "step": 1, "data": {}}
        first = TRANSPORT_BOOKING.handle("", state, role="guest")
        second = TRANSPORT_BOOKING.handle("   ", first["next_state"], role="guest")

        assert first["next_state"] == state
        assert second["next_state"] == state
        assert first["text"] == second["text"]
        assert TRANSPORT_BOOKING.steps[0].retry in first["text"]

    def test_short_route_is_rejected(self):
        state = {"mode": "booking_transport", "step": 3, "data": {"date": "tomorrow", "time": "10"}}
        out = TRANSPORT_BOOKING.handle("x", state, role="guest")
        assert out["next_state"] == state

    def test_confirmation_shows_every_slot(self):
        state = {"mode": "booking_transport", "step": 3, "data": {"date": "tomorrow", "time": "10:30 AM"}}
        out = TRANSPORT_BOOKING.handle("home - clinic", state, role="guest")
        assert out["next_state"]["step"] == 4
        for value in ("tomorrow", "10:30 AM", "home - clinic"):
            assert value in out["text"]
        assert "yes / no" in out["text"]

    def test_summary_adds_iso_date_when_parseable(self):
        summary = TRANSPORT_BOOKING.summary({"date": "21/10/2026", "time": "9", "route": "a - b"})
        assert "2026-10-21" in summary

    @pytest.mark.parametrize("value", ["in 3 days", "tomorrow at 5", "next monday after 10"])
    def test_relative_dates_are_echoed_verbatim(self, value):
        summary = TRANSPORT_BOOKING.summary({"date": value, "time": "9", "route": "a - b"})
        date_line = summary.splitlines()[0]
        assert date_line.endswith(f"Date: {value}")
        assert "(" not in date_line


class TestConfirmation:
    @pytest.mark.parametrize("start_step", [1, 2, 3, 4])
    def test_happy_path_terminates(self, start_step, store):
        data = {"date": "tomorrow", "time": "10:30 AM", "route": "home - clinic"}
        state = {
            "mode": "booking_transport",
            "step": start_step,
            "data": {k: v for k, v in list(data.items())[: start_step - 1]},
        }
        out = run(TRANSPORT_BOOKING, HAPPY[start_step - 1:], state, sink=store)

        assert out["next_state"]["mode"] == "idle"
        assert out["next_state"]["step"] == 0
        assert out["next_state"]["data"] == {}
        assert "registered" in out["text"]
        assert out["menu_id"] == "guest_root"
        assert out["next_state"]["lastOptions"] == MENUS["guest_root"]["options"]

    def test_commit_hands_off_to_sink(self, store):
        run(TRANSPORT_BOOKING, HAPPY, TRANSPORT_BOOKING.start()["next_state"], sink=store)
        assert store.bookings == [{
            "user_id": "u1",
            "conversation_id": "c1",
            "agent": "booking_transport",
            "details": {"date": "tomorrow", "time": "10:30 AM", "route": "home - clinic"},
        }]

    def test_anything_but_yes_cancels(self, store):
        out = run(TRANSPORT_BOOKING, HAPPY[:3] + ["yse"], TRANSPORT_BOOKING.start()["next_state"], sink=store)
        assert out["next_state"]["mode"] == "idle"
        assert out["text"] == TRANSPORT_BOOKING.cancelled_text
        assert store.bookings == []

    def test_sink_failure_still_confirms(self):
        class BrokenSink:
            def submit(self, *args):
                raise RuntimeError("db down")

        out = run(TRANSPORT_BOOKING, HAPPY, TRANSPORT_BOOKING.start()["next_state"], sink=BrokenSink())
        assert "registered" in out["text"]
        assert out["next_state"]["mode"] == "idle"

    def test_client_role_returns_client_hub(self):
        state = {"mode": "booking_transport", "step": 4, "data": {"date": "a1", "time": "b", "route": "c-d"}}
        out = TRANSPORT_BOOKING.handle("ok", state, role="client")
        assert out["menu_id"] == "client_root"


class TestOtherFlows:
    def test_same_stepper_drives_a_two_slot_flow(self):
        agent = SlotFillingAgent(
            name="callback",
            steps=[
                SlotStep(slot="phone", label="Phone", prompt="Your phone?", retry="Need a phone.", min_length=6),
                SlotStep(slot="hour", label="Hour", prompt="Best hour?", retry="Need an hour."),
            ],
            intro="Let's arrange a call.",
            confirm_prompt="{summary}\nConfirm?",
            committed_text="Call registered.",
            cancelled_text="No call then.",
        )
        out = run(agent, ["+56 9 1234", "17h", "yes"], agent.start()["next_state"])
        assert out["text"] == "Call registered."
        assert out["next_state"]["mode"] == "idle"
