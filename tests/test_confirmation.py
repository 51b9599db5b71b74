import pytest

from biblecloud.confirmation import ConfirmationState, UnreadConfirmation
from biblecloud.errors import ConfirmationError


def test_request_then_confirm_runs_action_and_returns_to_idle():
    confirmation = UnreadConfirmation()
    observed = []

    confirmation.request("juan-3")
    assert confirmation.state is ConfirmationState.PENDING_CONFIRMATION
    assert confirmation.is_pending("juan-3")

    def action():
        observed.append(confirmation.state)
        return "done"

    assert confirmation.confirm("juan-3", action) == "done"
    assert observed == [ConfirmationState.EXECUTING]
    assert confirmation.state is ConfirmationState.IDLE
    assert confirmation.chapter_id is None


def test_confirm_without_request_is_rejected():
    confirmation = UnreadConfirmation()
    calls = []

    with pytest.raises(ConfirmationError):
        confirmation.confirm("juan-3", lambda: calls.append(1))
    assert calls == []


def test_confirm_for_other_chapter_is_rejected():
    confirmation = UnreadConfirmation()
    confirmation.request("juan-3")

    with pytest.raises(ConfirmationError):
        confirmation.confirm("juan-4", lambda: None)
    assert confirmation.is_pending("juan-3")


def test_cancel_returns_to_idle():
    confirmation = UnreadConfirmation()
    confirmation.request("rut-1")
    confirmation.cancel()

    assert confirmation.state is ConfirmationState.IDLE
    with pytest.raises(ConfirmationError):
        confirmation.confirm("rut-1", lambda: None)


def test_failed_action_returns_to_idle_and_propagates():
    confirmation = UnreadConfirmation()
    confirmation.request("rut-1")

    def boom():
        raise RuntimeError("network down")

    with pytest.raises(RuntimeError):
        confirmation.confirm("rut-1", boom)
    assert confirmation.state is ConfirmationState.IDLE


def test_request_while_executing_is_rejected():
    confirmation = UnreadConfirmation()
    confirmation.request("rut-1")

    def nested():
        with pytest.raises(ConfirmationError):
            confirmation.request("rut-2")
        with pytest.raises(ConfirmationError):
            confirmation.cancel()

    confirmation.confirm("rut-1", nested)
    assert confirmation.state is ConfirmationState.IDLE


def test_reset_during_execution_leaves_action_running():
    confirmation = UnreadConfirmation()
    confirmation.request("rut-1")
    states = []

    def sign_out_midway():
        confirmation.reset()
        states.append(confirmation.state)
        return "done"

    assert confirmation.confirm("rut-1", sign_out_midway) == "done"
    assert states == [ConfirmationState.EXECUTING]
    assert confirmation.state is ConfirmationState.IDLE
