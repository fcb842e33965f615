"""
WINC module flash engine.

A WincFlasher is one session with the programmer sketch: it owns the
transport, knows the negotiated payload size and drives the
erase -> write -> readback -> verify sequence for a firmware image.

The sequence is tracked by a FlashOperation whose phase can only move
forward one step at a time (or to FAILED). A failed operation cannot be
resumed; flash the image again to start over from the erase.
"""

import logging
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional

from .config import FlashConfig, SerialConfig
from .errors import CapabilityError, FlashStateError, VerificationError
from .image import Chunk, FirmwareImage, first_mismatch, plan_chunks
from .protocol.programmer import ProgrammerLink
from .protocol.transport import ByteTransport, open_serial

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class FlashPhase(Enum):
    """Phases of one flashing operation."""
    IDLE = "idle"
    ERASING = "erasing"
    WRITING = "writing"
    READING = "reading"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: Dict[FlashPhase, FrozenSet[FlashPhase]] = {
    FlashPhase.IDLE: frozenset({FlashPhase.ERASING, FlashPhase.FAILED}),
    FlashPhase.ERASING: frozenset({FlashPhase.WRITING, FlashPhase.FAILED}),
    FlashPhase.WRITING: frozenset({FlashPhase.READING, FlashPhase.FAILED}),
    FlashPhase.READING: frozenset({FlashPhase.VERIFYING, FlashPhase.FAILED}),
    FlashPhase.VERIFYING: frozenset({FlashPhase.DONE, FlashPhase.FAILED}),
    FlashPhase.DONE: frozenset(),
    FlashPhase.FAILED: frozenset(),
}


class FlashOperation:
    """Progress record for flashing one image."""

    def __init__(self, image: FirmwareImage, payload_size: int):
        self.image = image
        self.plan: List[Chunk] = plan_chunks(len(image), payload_size)
        self.phase = FlashPhase.IDLE
        self.history: List[FlashPhase] = [FlashPhase.IDLE]
        self.chunks_written = 0
        self.chunks_read = 0

    def advance(self, phase: FlashPhase) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise FlashStateError(
                f"cannot go from {self.phase.value} to {phase.value}"
            )
        logger.debug(f"Flash phase {self.phase.value} -> {phase.value}")
        self.phase = phase
        self.history.append(phase)

    def fail(self) -> None:
        if self.phase not in (FlashPhase.DONE, FlashPhase.FAILED):
            self.advance(FlashPhase.FAILED)

    @property
    def succeeded(self) -> bool:
        return self.phase is FlashPhase.DONE


class WincFlasher:
    """
    Flashing session bound to an open transport.

    Use connect() (or open() for a serial port) rather than the constructor:
    they query the payload size and refuse programmers that cannot take at
    least FlashConfig.min_payload_size bytes per frame.

    Example:
        with WincFlasher.open("/dev/ttyACM0") as flasher:
            flasher.flash_firmware(data)
    """

    def __init__(
        self,
        link: ProgrammerLink,
        payload_size: int,
        config: Optional[FlashConfig] = None,
    ):
        self._link = link
        self._payload_size = payload_size
        self.config = config or FlashConfig()
        self.last_operation: Optional[FlashOperation] = None

    @classmethod
    def connect(
        cls,
        transport: ByteTransport,
        config: Optional[FlashConfig] = None,
    ) -> "WincFlasher":
        """
        Build a session on an already-open transport.

        The HELLO handshake is only sent when config.verify_programmer is set.
        The transport is closed if setup fails.

        Raises:
            CapabilityError: Payload size below config.min_payload_size
        """
        config = config or FlashConfig()
        link = ProgrammerLink(transport, fill_timeout=config.fill_timeout)
        try:
            payload_size = link.get_maximum_payload_size()
            if payload_size < config.min_payload_size:
                raise CapabilityError(payload_size, config.min_payload_size)
            if config.verify_programmer:
                link.hello(config.hello_delay)
        except BaseException:
            transport.close()
            raise
        logger.info(f"Programmer accepts {payload_size} bytes per frame")
        return cls(link, payload_size, config)

    @classmethod
    def open(
        cls,
        port: str,
        serial_config: Optional[SerialConfig] = None,
        config: Optional[FlashConfig] = None,
    ) -> "WincFlasher":
        """Open a serial port and build a session on it."""
        return cls.connect(open_serial(port, serial_config), config)

    @property
    def payload_size(self) -> int:
        return self._payload_size

    @property
    def transport(self) -> ByteTransport:
        return self._link.transport

    def close(self) -> None:
        self._link.transport.close()

    def __enter__(self) -> "WincFlasher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Single exchanges ----------------------------------------------------

    def hello(self) -> bytes:
        return self._link.hello(self.config.hello_delay)

    def erase(self, address: int, length: int) -> None:
        self._link.erase(address, length)

    def write(self, address: int, data: bytes) -> None:
        if len(data) > self._payload_size:
            raise ValueError(
                f"chunk of {len(data)} bytes exceeds payload size {self._payload_size}"
            )
        self._link.write(address, data)

    def read(self, address: int, length: int) -> bytes:
        if length > self._payload_size:
            raise ValueError(
                f"read of {length} bytes exceeds payload size {self._payload_size}"
            )
        return self._link.read(address, length)

    # Multi-chunk operations ----------------------------------------------

    def read_region(self, address: int, length: int) -> bytes:
        """Read an arbitrary-length region in payload-sized chunks."""
        return bytes(self._read_chunks(address, plan_chunks(length, self._payload_size), length))

    def _read_chunks(self, address: int, plan: List[Chunk], total: int) -> bytearray:
        buffer = bytearray(total)
        for chunk in plan:
            buffer[chunk.offset:chunk.end] = self.read(address + chunk.offset, chunk.length)
        return buffer

    def flash_firmware(
        self,
        data: bytes,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> FlashOperation:
        """Flash data at the configured base address (0 for the primary image)."""
        return self.flash_image(FirmwareImage(data, self.config.address), progress_cb)

    def flash_image(
        self,
        image: FirmwareImage,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> FlashOperation:
        """
        Erase, write, read back and verify an image.

        Args:
            image: Bytes and base address to program
            progress_cb: Optional callback(bytes_written, total) after each
                acknowledged write chunk

        Returns:
            The completed FlashOperation (phase DONE)

        Raises:
            ProtocolMismatchError: A chunk was not acknowledged; later chunks
                are not sent
            TransportError: The transport failed or closed mid-exchange
            VerificationError: Readback differs from the image
        """
        op = FlashOperation(image, self._payload_size)
        self.last_operation = op
        total = len(image)
        try:
            op.advance(FlashPhase.ERASING)
            self.erase(image.address, total)

            op.advance(FlashPhase.WRITING)
            for chunk in op.plan:
                logger.debug(f"Flashing: {chunk.offset * 100 // total}%")
                self.write(image.address + chunk.offset, image.view(chunk))
                op.chunks_written += 1
                if progress_cb:
                    progress_cb(chunk.end, total)
            logger.info(f"Wrote {total} bytes in {len(op.plan)} chunks")

            op.advance(FlashPhase.READING)
            readback = bytearray(total)
            for chunk in op.plan:
                readback[chunk.offset:chunk.end] = self.read(
                    image.address + chunk.offset, chunk.length
                )
                op.chunks_read += 1

            op.advance(FlashPhase.VERIFYING)
            offset = first_mismatch(image.data, readback)
            if offset is not None:
                raise VerificationError(image.address + offset, offset)

            op.advance(FlashPhase.DONE)
            logger.info(f"Verified {total} bytes at 0x{image.address:08X}")
        except Exception:
            op.fail()
            raise
        return op
