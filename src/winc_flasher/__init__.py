"""
WINC Flasher - firmware uploader for serial-attached WINC1500 Wi-Fi modules

Erase, chunked write and full readback verification over the programmer
sketch's OK-acknowledged command protocol.
"""

__version__ = "0.1.0"

from winc_flasher.errors import (
    CapabilityError,
    FlasherError,
    ProtocolMismatchError,
    TransportClosedError,
    TransportError,
    TransportTimeoutError,
    VerificationError,
)
from winc_flasher.flasher import FlashOperation, FlashPhase, WincFlasher
from winc_flasher.image import FirmwareImage

__all__ = [
    "WincFlasher",
    "FlashOperation",
    "FlashPhase",
    "FirmwareImage",
    "FlasherError",
    "TransportError",
    "TransportClosedError",
    "TransportTimeoutError",
    "ProtocolMismatchError",
    "CapabilityError",
    "VerificationError",
    "__version__",
]
