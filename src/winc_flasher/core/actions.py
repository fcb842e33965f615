"""
Core workflow actions for the WINC flasher.

Each action opens the serial port, builds a session, runs one workflow and
closes the port again, returning an OperationResult the CLI can print.
Flasher errors are logged and reported in the result; they are never
retried here.
"""

import hashlib
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from ..config import FlashConfig, SerialConfig
from ..errors import FlasherError
from ..flasher import WincFlasher
from ..image import FirmwareImage
from ..protocol.transport import open_serial
from .results import OperationResult, format_region

logger = logging.getLogger(__name__)


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records: List[str] = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "winc_flasher") -> Iterator[List[str]]:
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


def _connect(
    port: str,
    serial_config: Optional[SerialConfig],
    flash_config: Optional[FlashConfig],
) -> WincFlasher:
    return WincFlasher.connect(open_serial(port, serial_config), flash_config)


def _failed(operation: str, port: str, exc: FlasherError, logs: List[str]) -> OperationResult:
    logger.error(f"{operation} failed: {exc}")
    result = OperationResult.failure(operation=operation, error=str(exc), port=port)
    result.metadata["error_type"] = type(exc).__name__
    result.logs = logs
    return result


def check_programmer(
    port: str,
    serial_config: Optional[SerialConfig] = None,
    flash_config: Optional[FlashConfig] = None,
) -> OperationResult:
    """
    Connect, then run the HELLO handshake explicitly.

    Returns:
        OperationResult with payload_size and metadata["version"]
    """
    with _capture_logs() as logs:
        try:
            with _connect(port, serial_config, flash_config) as flasher:
                version = flasher.hello()
                result = OperationResult.success(
                    operation="check_programmer",
                    port=port,
                    payload_size=flasher.payload_size,
                )
                result.metadata["version"] = version.decode(errors="replace")
        except FlasherError as e:
            return _failed("check_programmer", port, e, logs)
        result.logs = logs
        return result


def flash_firmware(
    port: str,
    firmware: Union[str, Path, bytes],
    address: Optional[int] = None,
    serial_config: Optional[SerialConfig] = None,
    flash_config: Optional[FlashConfig] = None,
    progress_cb: Optional[Callable[[int, int], None]] = None,
) -> OperationResult:
    """
    Erase, write and verify a firmware image on the module.

    Args:
        port: Serial port path
        firmware: Path to the firmware binary, or its bytes
        address: Base address; defaults to flash_config.address (0)
        serial_config: Serial settings
        flash_config: Session settings
        progress_cb: Optional progress callback(bytes_written, total)

    Returns:
        OperationResult with:
            - hashes["sha256"]: digest of the image
            - metadata["chunks"]: number of write/read chunks
            - metadata["phase"]: last phase reached ("done")
            - metadata["failed_phase"]: on failure, the phase that failed
    """
    flash_config = flash_config or FlashConfig()
    if address is None:
        address = flash_config.address

    if isinstance(firmware, (bytes, bytearray)):
        image = FirmwareImage(firmware, address)
    else:
        image = FirmwareImage.from_file(firmware, address)

    region = format_region(image.address, len(image))
    with _capture_logs() as logs:
        flasher = None
        try:
            flasher = _connect(port, serial_config, flash_config)
            with flasher:
                op = flasher.flash_image(image, progress_cb=progress_cb)
        except FlasherError as e:
            result = _failed("flash_firmware", port, e, logs)
            result.region = region
            result.bytes_len = len(image)
            result.hashes["sha256"] = image.sha256
            if flasher is not None:
                result.payload_size = flasher.payload_size
                if flasher.last_operation is not None:
                    result.metadata["failed_phase"] = flasher.last_operation.history[-2].value
                    result.metadata["chunks_written"] = flasher.last_operation.chunks_written
            return result

        result = OperationResult.success(
            operation="flash_firmware",
            port=port,
            region=region,
            bytes_len=len(image),
            payload_size=flasher.payload_size,
        )
        result.hashes["sha256"] = image.sha256
        result.metadata["chunks"] = len(op.plan)
        result.metadata["phase"] = op.phase.value
        result.logs = logs
        return result


def read_region(
    port: str,
    address: int,
    length: int,
    serial_config: Optional[SerialConfig] = None,
    flash_config: Optional[FlashConfig] = None,
) -> OperationResult:
    """
    Read a flash region back from the module.

    Returns:
        OperationResult with metadata["data"] holding the bytes read and
        hashes["sha256"] their digest
    """
    region = format_region(address, length)
    with _capture_logs() as logs:
        try:
            with _connect(port, serial_config, flash_config) as flasher:
                data = flasher.read_region(address, length)
                payload_size = flasher.payload_size
        except FlasherError as e:
            result = _failed("read_region", port, e, logs)
            result.region = region
            return result

        result = OperationResult.success(
            operation="read_region",
            port=port,
            region=region,
            bytes_len=len(data),
            payload_size=payload_size,
        )
        result.hashes["sha256"] = hashlib.sha256(data).hexdigest()
        result.metadata["data"] = data
        result.logs = logs
        return result
