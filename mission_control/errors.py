"""
Errors: Exception taxonomy shared by the store, validator, persistence and transport layers.

None of these are fatal. Callers surface them to the operator (status text or
an alert) or log and absorb them, then keep running.
"""


class ValidationError(Exception):
    """Field-level input problem; the message is shown to the operator as-is."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ShapeError(Exception):
    """A configuration document is well-formed but structurally incomplete."""

    pass


class ParseError(Exception):
    """A configuration byte stream could not be decoded at all."""

    pass


class TransportError(Exception):
    """Telemetry fetch, stream or command send failed."""

    pass
