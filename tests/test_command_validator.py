import pytest

from mission_control.command_validator import (
    MSG_CANCELLED,
    MSG_COMMAND_REQUIRED,
    MSG_HAZARDOUS_CODE,
    MSG_SENDING,
    MSG_SENT,
    CommandRequest,
    CommandState,
    CommandWorkflow,
    has_valid_two_factor_code,
    validate_request,
)
from mission_control.errors import ValidationError
from mission_control.models import CommandIssuerProps, CommandParameter, ValidationRule


def _param(key, value, required=False, pattern=None, error_message=None):
    return CommandParameter(key, value, ValidationRule(required, pattern, error_message))


def _message_for(request):
    with pytest.raises(ValidationError) as excinfo:
        validate_request(request)
    return excinfo.value.message


def test_arm_sends_without_confirmation(scheduler) -> None:
    workflow = CommandWorkflow(scheduler)
    request = CommandRequest("ARM")

    assert workflow.submit(request) == CommandState.SENDING
    assert request.status_message == MSG_SENDING

    scheduler.advance(1.0)
    assert request.state == CommandState.SENT
    assert request.status_message == MSG_SENT
    assert request.history == [
        CommandState.IDLE,
        CommandState.VALIDATING,
        CommandState.VALID_READY,
        CommandState.SENDING,
        CommandState.SENT,
    ]


def test_purge_with_bad_code_returns_to_idle(scheduler) -> None:
    workflow = CommandWorkflow(scheduler)
    request = CommandRequest("PURGE", is_hazardous=True, two_factor_code="12a456")

    assert workflow.submit(request) == CommandState.IDLE
    assert request.status_message == MSG_HAZARDOUS_CODE
    assert CommandState.INVALID in request.history
    assert CommandState.SENDING not in request.history


@pytest.mark.parametrize(
    "code", ["", "12345", "1234567", " 123456", "123456\n", "12 456", "١٢٣٤٥٦", "abcdef"]
)
def test_hazardous_gate_rejects_bad_codes(code) -> None:
    request = CommandRequest(
        "VENT",
        parameters=[_param("valve", "3", required=True, pattern="^[0-9]+$")],
        is_hazardous=True,
        two_factor_code=code,
    )
    assert _message_for(request) == MSG_HAZARDOUS_CODE


def test_hazardous_gate_accepts_six_digits() -> None:
    assert has_valid_two_factor_code("004200")
    validate_request(CommandRequest("VENT", is_hazardous=True, two_factor_code="004200"))


def test_code_is_ignored_for_safe_commands() -> None:
    validate_request(CommandRequest("PING", is_hazardous=False, two_factor_code="nope"))


def test_command_name_is_checked_first() -> None:
    request = CommandRequest(
        "   ",
        parameters=[_param("a", "", required=True)],
        is_hazardous=True,
        two_factor_code="x",
    )
    assert _message_for(request) == MSG_COMMAND_REQUIRED


def test_first_failing_parameter_wins() -> None:
    request = CommandRequest(
        "SET",
        parameters=[
            _param("ok", "5", required=True),
            _param("first", "", required=True, error_message="first is missing"),
            _param("second", "", required=True, error_message="second is missing"),
        ],
    )
    assert _message_for(request) == "first is missing"


def test_default_parameter_messages() -> None:
    assert _message_for(CommandRequest("SET", [_param("freq", "  ", required=True)])) == (
        'Value for "freq" is required.'
    )
    assert _message_for(CommandRequest("SET", [_param("freq", "abc", pattern="^[0-9]+$")])) == (
        'Value for "freq" does not match pattern.'
    )


def test_custom_message_overrides_mismatch() -> None:
    request = CommandRequest("SET", [_param("freq", "abc", pattern="^[0-9]+$", error_message="digits only")])
    assert _message_for(request) == "digits only"


def test_invalid_pattern_has_its_own_message() -> None:
    request = CommandRequest("SET", [_param("freq", "1", pattern="([", error_message="digits only")])
    assert _message_for(request) == 'Invalid regex pattern in "freq".'


def test_pattern_matches_anywhere_in_value() -> None:
    validate_request(CommandRequest("SET", [_param("mode", "auto-2", pattern="[0-9]")]))


def test_confirmation_required_waits_for_confirm(scheduler) -> None:
    workflow = CommandWorkflow(scheduler)
    request = CommandRequest("ARM", confirmation_required=True)

    assert workflow.submit(request) == CommandState.VALID_AWAITING_CONFIRMATION
    scheduler.advance(5.0)
    assert request.state == CommandState.VALID_AWAITING_CONFIRMATION

    assert workflow.confirm() is True
    scheduler.advance(1.0)
    assert request.state == CommandState.SENT
    history = request.history
    assert history.index(CommandState.VALID_AWAITING_CONFIRMATION) < history.index(CommandState.SENDING)


def test_cancel_returns_to_idle_without_sending(scheduler) -> None:
    sent = []
    workflow = CommandWorkflow(scheduler, transport=lambda req, done: sent.append(req))
    request = CommandRequest("ARM", confirmation_required=True)
    workflow.submit(request)

    assert workflow.cancel() is True
    assert request.state == CommandState.IDLE
    assert request.status_message == MSG_CANCELLED
    assert sent == []
    assert CommandState.SENDING not in request.history


def test_confirm_without_pending_request(scheduler) -> None:
    workflow = CommandWorkflow(scheduler)
    assert workflow.confirm() is False
    workflow.submit(CommandRequest("ARM"))
    assert workflow.confirm() is False
    assert workflow.cancel() is False


def test_invalid_request_never_asks_for_confirmation(scheduler) -> None:
    workflow = CommandWorkflow(scheduler)
    request = CommandRequest("", confirmation_required=True)
    workflow.submit(request)
    assert CommandState.VALID_AWAITING_CONFIRMATION not in request.history
    assert request.state == CommandState.IDLE


def test_no_confirmation_never_visits_awaiting_state(scheduler) -> None:
    workflow = CommandWorkflow(scheduler)
    request = CommandRequest("ARM", confirmation_required=False)
    workflow.submit(request)
    scheduler.advance(1.0)
    assert CommandState.VALID_AWAITING_CONFIRMATION not in request.history


def test_status_clears_after_delay(scheduler) -> None:
    workflow = CommandWorkflow(scheduler)
    request = CommandRequest("")
    workflow.submit(request)

    scheduler.advance(2.9)
    assert request.status_message == MSG_COMMAND_REQUIRED
    scheduler.advance(0.2)
    assert request.status_message is None


def test_newer_status_cancels_earlier_clear(scheduler) -> None:
    workflow = CommandWorkflow(scheduler)
    request = CommandRequest("ARM")
    workflow.submit(request)

    # "Sending" at t=0 would clear at t=3; "Sent" at t=1 replaces that clear with t=4
    scheduler.advance(1.0)
    assert request.status_message == MSG_SENT
    scheduler.advance(2.5)
    assert request.status_message == MSG_SENT
    scheduler.advance(0.6)
    assert request.status_message is None
    assert request.state == CommandState.SENT
    assert len(scheduler.pending()) == 0


def test_one_clear_timer_outstanding(scheduler) -> None:
    workflow = CommandWorkflow(scheduler)
    workflow.submit(CommandRequest(""))
    scheduler.advance(1.0)
    workflow.submit(CommandRequest(""))
    assert len(scheduler.pending()) == 1


def test_transport_failure_surfaces_and_returns_to_idle(scheduler) -> None:
    workflow = CommandWorkflow(scheduler, transport=lambda req, done: done("device offline"))
    request = CommandRequest("ARM")
    workflow.submit(request)

    assert request.state == CommandState.IDLE
    assert CommandState.FAILED in request.history
    assert request.status_message == "Command failed: device offline"


def test_transport_success(scheduler) -> None:
    received = []

    def transport(req, done):
        received.append(req.command)
        done(None)

    workflow = CommandWorkflow(scheduler, transport=transport)
    request = CommandRequest(" ARM ")
    workflow.submit(request)
    assert received == [" ARM "]
    assert request.state == CommandState.SENT


def test_superseded_completion_is_ignored(scheduler) -> None:
    completions = []
    workflow = CommandWorkflow(scheduler, transport=lambda req, done: completions.append(done))
    first = CommandRequest("FIRST")
    second = CommandRequest("SECOND")
    workflow.submit(first)
    workflow.submit(second)

    completions[0](None)
    assert first.state == CommandState.SENDING
    assert second.state == CommandState.SENDING
    completions[1](None)
    assert second.state == CommandState.SENT


def test_teardown_cancels_deferred_work(scheduler) -> None:
    workflow = CommandWorkflow(scheduler)
    request = CommandRequest("ARM")
    workflow.submit(request)
    workflow.teardown()

    scheduler.advance(10.0)
    assert request.state == CommandState.SENDING
    assert request.status_message == MSG_SENDING


def test_completion_after_teardown_is_ignored(scheduler) -> None:
    completions = []
    seen = []
    workflow = CommandWorkflow(scheduler, transport=lambda req, done: completions.append(done))
    request = CommandRequest("ARM")
    workflow.submit(request)
    workflow.changed_callback = lambda req: seen.append(req.state)
    workflow.teardown()

    completions[0](None)
    assert request.state == CommandState.SENDING
    assert seen == []
    assert scheduler.pending() == []
    assert workflow.state == CommandState.IDLE


def test_non_string_pattern_reports_invalid_pattern() -> None:
    request = CommandRequest("SET", parameters=[_param("freq", "10", pattern=5)])
    assert _message_for(request) == 'Invalid regex pattern in "freq".'


def test_changed_callback_sees_each_step(scheduler) -> None:
    seen = []
    workflow = CommandWorkflow(scheduler)
    workflow.changed_callback = lambda req: seen.append(req.state)
    workflow.submit(CommandRequest("ARM"))
    scheduler.advance(1.0)
    assert CommandState.VALID_READY in seen
    assert seen[-1] == CommandState.SENT


def test_request_from_props() -> None:
    props = CommandIssuerProps(
        command="ARM",
        parameters=(_param("a", "1"),),
        is_hazardous=True,
        confirmation_required=True,
        two_factor_code="123456",
    )
    request = CommandRequest.from_props(props)
    assert request.command == "ARM"
    assert request.parameters == [_param("a", "1")]
    assert request.is_hazardous and request.confirmation_required
    assert request.two_factor_code == "123456"
    assert request.state == CommandState.IDLE
