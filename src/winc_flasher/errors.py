"""
Exception hierarchy for the WINC flasher.

Every failure raised by the transport, the protocol layer or the flash
engine derives from FlasherError, so callers can catch one type at the
outermost layer (CLI, actions) and let everything else propagate.
"""

from typing import Optional


class FlasherError(Exception):
    """Base exception for all flasher errors."""


class TransportError(FlasherError):
    """Underlying serial read/write failed or the port could not be opened."""


class TransportClosedError(TransportError):
    """The byte stream ended before the expected number of bytes arrived."""

    def __init__(self, expected: int, received: int):
        super().__init__(
            f"Serial port closed unexpectedly ({received}/{expected} bytes received)"
        )
        self.expected = expected
        self.received = received


class TransportTimeoutError(TransportError):
    """A bounded read did not complete before its deadline."""


class ProtocolMismatchError(FlasherError):
    """
    The programmer answered with something other than the expected token.

    Attributes:
        operation: Name of the exchange that failed (e.g. "write", "hello")
        raw: The offending bytes exactly as received
    """

    def __init__(self, operation: str, raw: bytes, message: Optional[str] = None):
        if message is None:
            message = f"Missing ack on {operation}: {raw!r}"
        super().__init__(message)
        self.operation = operation
        self.raw = bytes(raw)


class CapabilityError(FlasherError):
    """The programmer's maximum payload size is too small to be usable."""

    def __init__(self, payload_size: int, minimum: int):
        super().__init__(
            f"programmer reports {payload_size} as maximum payload size "
            f"({minimum} is needed)"
        )
        self.payload_size = payload_size
        self.minimum = minimum


class VerificationError(FlasherError):
    """Readback did not match the image that was written."""

    def __init__(self, address: int, offset: int):
        super().__init__(
            f"flash data does not match written (first difference at "
            f"0x{address:08X}, image offset {offset})"
        )
        self.address = address
        self.offset = offset


class FlashStateError(FlasherError):
    """A flash operation attempted an out-of-order phase transition."""


class FirmwareIndexError(FlasherError):
    """Firmware index lookup failed (unknown board, version, or module)."""
