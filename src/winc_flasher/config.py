"""
Default connection and flashing parameters.

Values mirror what the stock programmer sketch expects; the CLI exposes
overrides for the ones that vary between boards.
"""

from dataclasses import dataclass
from typing import Optional

DEFAULT_BAUDRATE = 115200
MIN_PAYLOAD_SIZE = 1024
PRIMARY_FIRMWARE_ADDRESS = 0x0000
ADDRESS_SPACE = 0x100000000
EXPECTED_PROGRAMMER_VERSION = b"v10000"


@dataclass(frozen=True)
class SerialConfig:
    """
    Serial port settings.

    Attributes:
        baudrate: Line speed (the programmer sketch ignores it on native USB)
        read_timeout: Seconds to wait for each read; None blocks forever
        write_timeout: Seconds to wait for each write; None blocks forever
    """
    baudrate: int = DEFAULT_BAUDRATE
    read_timeout: Optional[float] = None
    write_timeout: Optional[float] = None


@dataclass(frozen=True)
class FlashConfig:
    """
    Flash session settings.

    Attributes:
        address: Base address of the image in module flash
        min_payload_size: Smallest negotiated payload accepted at setup
        hello_delay: Settle time between HELLO and reading its reply
        fill_timeout: Optional deadline (seconds) for each exact-count read
        verify_programmer: Run HELLO before accepting the session
    """
    address: int = PRIMARY_FIRMWARE_ADDRESS
    min_payload_size: int = MIN_PAYLOAD_SIZE
    hello_delay: float = 0.1
    fill_timeout: Optional[float] = None
    verify_programmer: bool = False
