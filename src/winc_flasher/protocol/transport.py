"""
Byte transport layer for the WINC programmer.

Handles low-level serial communication with the board running the
programmer sketch.

This module provides:
- The minimal ByteTransport interface the flash engine depends on
- A pyserial-backed implementation
- ReliableReader, which turns "read up to n" into "read exactly n"
"""

import logging
import time
from typing import List, Optional, Protocol

import serial
import serial.tools.list_ports

from ..config import SerialConfig
from ..errors import TransportClosedError, TransportError, TransportTimeoutError

logger = logging.getLogger(__name__)


class ByteTransport(Protocol):
    """
    Bidirectional blocking byte stream.

    ``read`` returns at most ``size`` bytes and returns ``b""`` only once the
    stream is closed. When ``timeout`` is given, a read that gets nothing
    within that many seconds raises TransportTimeoutError instead of
    blocking. ``write`` returns how many bytes were accepted.
    """

    def read(self, size: int, timeout: Optional[float] = None) -> bytes:
        ...

    def write(self, data: bytes) -> int:
        ...

    def close(self) -> None:
        ...


class SerialTransport:
    """
    pyserial transport for the programmer sketch.

    Example:
        transport = SerialTransport(port="/dev/ttyACM0")
        transport.open()
        transport.write(frame)
        reply = transport.read(2)
        transport.close()
    """

    def __init__(self, port: str, config: Optional[SerialConfig] = None):
        """
        Initialize transport layer.

        Args:
            port: Serial port (e.g., "/dev/ttyACM0", "COM3")
            config: Serial settings; defaults to SerialConfig()
        """
        self.port = port
        self.config = config or SerialConfig()
        self.ser: Optional[serial.Serial] = None

    @property
    def is_open(self) -> bool:
        return self.ser is not None and self.ser.is_open

    def open(self) -> None:
        """
        Open and configure the serial port (8N1).

        Raises:
            TransportError: If port cannot be opened
        """
        try:
            self.ser = serial.Serial(
                port=self.port,
                baudrate=self.config.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self.config.read_timeout,
                write_timeout=self.config.write_timeout,
            )
            self.ser.reset_input_buffer()
            self.ser.reset_output_buffer()
            logger.debug(
                f"Opened {self.port} at {self.config.baudrate} bps "
                f"(read_timeout={self.config.read_timeout})"
            )
        except serial.SerialException as e:
            raise TransportError(f"Cannot open port {self.port}: {e}") from e

    def close(self) -> None:
        """Close serial port. Safe to call more than once."""
        if self.ser and self.ser.is_open:
            self.ser.close()
            logger.debug(f"Closed {self.port}")

    def write(self, data: bytes) -> int:
        """
        Send every byte of data, looping over partial writes.

        Raises:
            TransportError: If the port is not open or the write fails
            TransportTimeoutError: If a configured write timeout expires
        """
        if not self.is_open:
            raise TransportError("Serial port not open")

        view = memoryview(data)
        sent = 0
        try:
            while sent < len(view):
                n = self.ser.write(view[sent:])
                if n is None:
                    n = len(view) - sent
                sent += n
        except serial.SerialTimeoutException as e:
            raise TransportTimeoutError(
                f"Write timeout after {sent}/{len(view)} bytes"
            ) from e
        except serial.SerialException as e:
            raise TransportError(f"Write error: {e}") from e
        logger.debug(f">>> {bytes(view[:32]).hex().upper()}{'...' if len(view) > 32 else ''}")
        return sent

    def read(self, size: int, timeout: Optional[float] = None) -> bytes:
        """
        Read up to size bytes.

        Blocks for the first byte, then returns it together with whatever
        else is already buffered (never more than size).

        Args:
            size: Maximum number of bytes to return
            timeout: Seconds to wait for the first byte on this call only;
                the configured read_timeout applies when omitted

        Returns:
            The bytes read; b"" once the port has been closed

        Raises:
            TransportError: If the read fails
            TransportTimeoutError: If a timeout applies and nothing arrived
        """
        if not self.is_open or size <= 0:
            return b""

        wait = self.config.read_timeout
        if timeout is not None:
            wait = timeout if wait is None else min(wait, timeout)
            self.ser.timeout = wait
        try:
            data = self.ser.read(1)
            if data and size > 1:
                pending = min(self.ser.in_waiting, size - 1)
                if pending:
                    data += self.ser.read(pending)
        except serial.SerialException as e:
            if not self.is_open:
                return b""
            raise TransportError(f"Read error: {e}") from e
        finally:
            if timeout is not None:
                self.ser.timeout = self.config.read_timeout

        if not data and wait is not None and self.is_open:
            raise TransportTimeoutError(f"Programmer did not respond within {wait}s")
        if data:
            logger.debug(f"<<< {data[:32].hex().upper()}{'...' if len(data) > 32 else ''}")
        return data

    def __enter__(self) -> "SerialTransport":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ReliableReader:
    """Exact-count reads on top of a ByteTransport."""

    def __init__(self, transport: ByteTransport, timeout: Optional[float] = None):
        """
        Args:
            transport: Stream to read from
            timeout: Optional deadline in seconds for each fill() call
        """
        self.transport = transport
        self.timeout = timeout

    def fill(self, n: int) -> bytes:
        """
        Return exactly n bytes, issuing as many reads as needed.

        With a timeout set, each underlying read is only allowed the time
        left until the deadline, so a stalled device cannot block past it.

        Raises:
            TransportClosedError: A read returned no data before n bytes arrived
            TransportTimeoutError: The per-call deadline expired
        """
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        out = bytearray()
        while len(out) < n:
            if deadline is None:
                chunk = self.transport.read(n - len(out))
            else:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TransportTimeoutError(
                        f"Timed out after {self.timeout}s with {len(out)}/{n} bytes"
                    )
                chunk = self.transport.read(n - len(out), timeout=remaining)
            if not chunk:
                raise TransportClosedError(n, len(out))
            out.extend(chunk[: n - len(out)])
        return bytes(out)


def open_serial(port: str, config: Optional[SerialConfig] = None) -> SerialTransport:
    """
    Open a programmer transport connection.

    Returns:
        SerialTransport instance (already open)
    """
    transport = SerialTransport(port, config)
    transport.open()
    return transport


def list_serial_ports() -> List[str]:
    """Return device names of all serial ports visible to pyserial."""
    return [p.device for p in serial.tools.list_ports.comports()]
