"""
Command Validator: Request validation and the send/confirm state machine for the command issuer.

State flow:
    IDLE -> VALIDATING -> INVALID -> IDLE                      (status carries the error)
                       -> VALID_AWAITING_CONFIRMATION -> SENDING (confirm)
                                                      -> IDLE    (cancel)
                       -> VALID_READY -> SENDING
    SENDING -> SENT                                            (success status)
            -> FAILED -> IDLE                                  (error status, no retry)

Validation short-circuits: the first failing check produces the one and only
status message.

Deferred work (status auto-clear, simulated send completion) goes through a
scheduler object with ``schedule(delay_seconds, callback) -> handle`` where
``handle.cancel()`` stops the callback. The UI passes a QTimer-backed one.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from mission_control.errors import ValidationError
from mission_control.models import CommandIssuerProps, CommandParameter

logger = logging.getLogger(__name__)

# Exactly six ASCII digits, matched against the whole code
TWO_FACTOR_PATTERN = re.compile(r"[0-9]{6}")

MSG_COMMAND_REQUIRED = "Command name is required."
MSG_HAZARDOUS_CODE = "Hazardous commands require a valid 6-digit 2FA code."
MSG_SENDING = "Sending command..."
MSG_SENT = "Command sent successfully."
MSG_CANCELLED = "Command cancelled."

STATUS_CLEAR_DELAY = 3.0  # seconds before a status message disappears
SEND_DELAY = 1.0          # simulated transport latency when no transport is wired


class CommandState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    INVALID = "invalid"
    VALID_AWAITING_CONFIRMATION = "valid_awaiting_confirmation"
    VALID_READY = "valid_ready"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class CommandRequest:
    """One submission attempt. Built fresh from the form each time Send is pressed."""

    command: str
    parameters: List[CommandParameter] = field(default_factory=list)
    is_hazardous: bool = False
    confirmation_required: bool = False
    two_factor_code: str = ""
    state: CommandState = CommandState.IDLE
    status_message: Optional[str] = None
    history: List[CommandState] = field(default_factory=list)

    @classmethod
    def from_props(cls, props: CommandIssuerProps) -> "CommandRequest":
        return cls(
            command=props.command,
            parameters=list(props.parameters),
            is_hazardous=props.is_hazardous,
            confirmation_required=props.confirmation_required,
            two_factor_code=props.two_factor_code,
        )


def has_valid_two_factor_code(code: Optional[str]) -> bool:
    return bool(code) and TWO_FACTOR_PATTERN.fullmatch(code) is not None


def validate_parameter(param: CommandParameter) -> None:
    """Check one parameter against its rule. Raises ValidationError on the first failure."""
    rule = param.rule
    value = param.value or ""
    if rule.required and not value.strip():
        raise ValidationError(rule.error_message or f'Value for "{param.key}" is required.')
    if rule.pattern:
        try:
            regex = re.compile(rule.pattern)
        except (re.error, TypeError):
            raise ValidationError(f'Invalid regex pattern in "{param.key}".')
        if regex.search(value) is None:
            raise ValidationError(
                rule.error_message or f'Value for "{param.key}" does not match pattern.'
            )


def validate_request(request: CommandRequest) -> None:
    """Validate a request in fixed order, stopping at the first failure.

    1. command name present
    2. hazardous commands carry a six-digit code
    3. parameters, in declared order

    Raises ValidationError carrying the operator-facing message.
    """
    if not (request.command or "").strip():
        raise ValidationError(MSG_COMMAND_REQUIRED)
    if request.is_hazardous and not has_valid_two_factor_code(request.two_factor_code):
        raise ValidationError(MSG_HAZARDOUS_CODE)
    for param in request.parameters:
        validate_parameter(param)


# Transport: called with the request and a completion callback taking an
# optional error message (None means the device accepted the command).
Transport = Callable[[CommandRequest, Callable[[Optional[str]], None]], None]


class CommandWorkflow:
    """Drives a CommandRequest through validation, confirmation and sending.

    ``changed_callback`` (if set) is called with the request after every state
    or status change.
    """

    def __init__(
        self,
        scheduler,
        transport: Optional[Transport] = None,
        status_clear_delay: float = STATUS_CLEAR_DELAY,
        send_delay: float = SEND_DELAY,
    ):
        self._scheduler = scheduler
        self._transport = transport
        self._status_clear_delay = status_clear_delay
        self._send_delay = send_delay
        self._request: Optional[CommandRequest] = None
        self._status_timer = None
        self._send_timer = None
        self.changed_callback = None

    @property
    def request(self) -> Optional[CommandRequest]:
        return self._request

    @property
    def state(self) -> CommandState:
        return self._request.state if self._request else CommandState.IDLE

    def submit(self, request: CommandRequest) -> CommandState:
        """Start a new submission attempt. Returns the state it settles in."""
        self._cancel_pending()
        self._request = request
        request.history.clear()
        self._transition(CommandState.IDLE)
        self._transition(CommandState.VALIDATING)
        try:
            validate_request(request)
        except ValidationError as e:
            logger.info("Command %r rejected: %s", request.command, e.message)
            self._transition(CommandState.INVALID)
            self._set_status(e.message)
            self._transition(CommandState.IDLE)
            return request.state

        if request.confirmation_required:
            self._transition(CommandState.VALID_AWAITING_CONFIRMATION)
            return request.state

        self._transition(CommandState.VALID_READY)
        self._send()
        return request.state

    def confirm(self) -> bool:
        """Operator confirmed the pending command. Returns False if nothing awaits confirmation."""
        if self.state != CommandState.VALID_AWAITING_CONFIRMATION:
            return False
        self._send()
        return True

    def cancel(self) -> bool:
        """Operator declined the pending command. Returns False if nothing awaits confirmation."""
        if self.state != CommandState.VALID_AWAITING_CONFIRMATION:
            return False
        self._transition(CommandState.IDLE)
        self._set_status(MSG_CANCELLED)
        return True

    def teardown(self) -> None:
        """Cancel every deferred task; call when the owning view goes away.

        The current request is detached, so a transport completion arriving
        afterwards is ignored.
        """
        self._cancel_pending()
        self._request = None

    # -- Internals --

    def _send(self) -> None:
        request = self._request
        self._transition(CommandState.SENDING)
        self._set_status(MSG_SENDING)
        logger.info("Sending command %r", request.command)
        if self._transport is None:
            self._send_timer = self._scheduler.schedule(
                self._send_delay, lambda: self._finish_send(request, None)
            )
        else:
            self._transport(request, lambda error=None: self._finish_send(request, error))

    def _finish_send(self, request: CommandRequest, error: Optional[str]) -> None:
        self._send_timer = None
        if request is not self._request or request.state != CommandState.SENDING:
            # A newer submission superseded this one
            return
        if error:
            logger.warning("Command %r failed: %s", request.command, error)
            self._transition(CommandState.FAILED)
            self._set_status(f"Command failed: {error}")
            self._transition(CommandState.IDLE)
        else:
            logger.info("Command %r sent", request.command)
            self._transition(CommandState.SENT)
            self._set_status(MSG_SENT)

    def _transition(self, state: CommandState) -> None:
        request = self._request
        request.state = state
        request.history.append(state)
        self._emit_changed()

    def _set_status(self, message: str) -> None:
        """Show a status message and schedule its clear, replacing any earlier clear."""
        request = self._request
        if self._status_timer is not None:
            self._status_timer.cancel()
        request.status_message = message
        self._status_timer = self._scheduler.schedule(
            self._status_clear_delay, lambda: self._clear_status(request)
        )
        self._emit_changed()

    def _clear_status(self, request: CommandRequest) -> None:
        self._status_timer = None
        request.status_message = None
        if request is self._request:
            self._emit_changed()

    def _cancel_pending(self) -> None:
        if self._status_timer is not None:
            self._status_timer.cancel()
            self._status_timer = None
        if self._send_timer is not None:
            self._send_timer.cancel()
            self._send_timer = None

    def _emit_changed(self) -> None:
        if self.changed_callback:
            self.changed_callback(self._request)
