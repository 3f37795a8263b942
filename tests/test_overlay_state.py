"""Tests for OverlayState and its observable store."""
import pytest

from quizlens.core.overlay_state import (
    OverlayState, OverlayStateStore, is_error_answer, is_placeholder_answer
)


def test_initial_state():
    assert OverlayStateStore().value == OverlayState("Waiting...", False, "")


def test_payload_uses_camel_case():
    payload = OverlayState("Paris", True, "Thinking...").to_payload()
    assert payload == {"answer": "Paris", "isLoading": True, "statusText": "Thinking..."}


def test_update_replaces_only_given_fields(state_store, recorded_states):
    state_store.publish(OverlayState("Paris", False, ""))
    state_store.update(is_loading=True, status_text="Scanning...")

    assert state_store.value == OverlayState("Paris", True, "Scanning...")
    assert recorded_states == [OverlayState("Paris", False, ""), OverlayState("Paris", True, "Scanning...")]


def test_failing_listener_does_not_block_others(state_store, recorded_states):
    def broken(state):
        raise RuntimeError("renderer gone")

    state_store.subscribe(broken)
    state_store.publish(OverlayState("Paris"))

    assert recorded_states == [OverlayState("Paris")]


def test_unsubscribe(state_store):
    seen = []
    unsubscribe = state_store.subscribe(seen.append)
    unsubscribe()
    unsubscribe()

    state_store.publish(OverlayState("Paris"))
    assert seen == []


@pytest.mark.parametrize("answer", ["", "  ", "Waiting...", "No question found", "Capture failed",
                                    "No answer", "Error: API Key missing", "API error: 500"])
def test_placeholders(answer):
    assert is_placeholder_answer(answer)


def test_real_answer_is_not_placeholder():
    assert not is_placeholder_answer("Paris")
    assert not is_error_answer("Paris")
    assert is_error_answer("Error: timeout")
