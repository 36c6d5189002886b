"""
Exception hierarchy for the TDS3000 acquisition engine.

Still-acquiring and reboot outcomes are reported as return statuses, not as
exceptions. See waveform.AcquireStatus and waveform.ResetStatus.
"""


class ScopeError(Exception):
    """Base class for all errors raised by tds_instruments."""


class InvalidParameterError(ScopeError, ValueError):
    """Average count, channel or waveform slots rejected before any device I/O."""


class TransportError(ScopeError):
    """
    Failure reported by the transport (VISA) layer.

    Attributes:
        status: VISA status code of the underlying error, or None when the
            failure did not originate in the VISA library.
    """

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class WaveformMismatchError(ScopeError):
    """The instrument returned structurally invalid data for a channel."""

    def __init__(self, message, channel=None):
        super().__init__(message)
        self.channel = channel


class DecodeError(ScopeError):
    """Raw curve data could not be decoded."""


class BadHeaderError(DecodeError):
    """Binary block does not start with '#<x><yy..>'."""


class LengthMismatchError(DecodeError):
    """
    Declared or delivered length does not match what was expected.

    Attributes:
        expected: Number of bytes (binary) or values (ASCII) expected.
        declared: Number the instrument declared (ASCII: number delivered).
        delivered: Payload bytes actually received when fewer than declared
            arrived, else None.
    """

    def __init__(self, expected: int, declared: int, what: str = "bytes", delivered=None):
        if delivered is None:
            message = f"Curve length mismatch: expected {expected} {what}, instrument declared {declared}"
        else:
            message = f"Curve truncated: instrument declared {declared} {what}, delivered {delivered}"
        super().__init__(message)
        self.expected = expected
        self.declared = declared
        self.delivered = delivered
