"""
Core module for the WINC flasher.

- Result objects (results.py)
- Connect / flash / read workflows used by the CLI (actions.py)
"""

from .results import OperationResult, format_region
from .actions import check_programmer, flash_firmware, read_region

__all__ = [
    "OperationResult",
    "format_region",
    "check_programmer",
    "flash_firmware",
    "read_region",
]
