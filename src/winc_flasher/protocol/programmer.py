"""
Request/response exchanges with the WINC programmer sketch.

Each method sends exactly one command frame and then consumes the fixed
response shape for that opcode. Nothing here retries: a bad ack or a
short read is raised to the caller as-is.

    HELLO             -> version token (e.g. "v10000")
    MAX_PAYLOAD_SIZE  -> u16 big-endian
    ERASE / WRITE     -> "OK"
    READ              -> <length bytes> "OK"
"""

import logging
import time
from typing import Optional

from ..config import EXPECTED_PROGRAMMER_VERSION
from ..errors import ProtocolMismatchError
from .frames import (
    ACK_SIZE,
    EraseRequest,
    HelloRequest,
    MaxPayloadSizeRequest,
    ReadRequest,
    Request,
    WriteRequest,
    check_ack,
    encode_request,
)
from .transport import ByteTransport, ReliableReader

logger = logging.getLogger(__name__)

# HELLO replies are read in one go; anything older than the last six bytes
# is leftover from a previous session.
HELLO_READ_SIZE = 65535


class ProgrammerLink:
    """Single-exchange operations over a ByteTransport."""

    def __init__(self, transport: ByteTransport, fill_timeout: Optional[float] = None):
        self.transport = transport
        self.reader = ReliableReader(transport, timeout=fill_timeout)

    def send(self, request: Request) -> None:
        self.transport.write(encode_request(request))

    def hello(self, delay: float = 0.1) -> bytes:
        """
        Probe the programmer and check its version token.

        Returns:
            The version token reported by the programmer

        Raises:
            ProtocolMismatchError: No reply, or a version other than v10000
        """
        self.send(HelloRequest())
        if delay:
            time.sleep(delay)

        res = self.transport.read(HELLO_READ_SIZE)
        token_len = len(EXPECTED_PROGRAMMER_VERSION)
        if len(res) >= token_len:
            res = res[-token_len:]

        if res[:1] != b"v":
            raise ProtocolMismatchError("hello", res, "Programmer is not responding")
        if res != EXPECTED_PROGRAMMER_VERSION:
            raise ProtocolMismatchError(
                "hello",
                res,
                f"Programmer version mismatch, "
                f"{EXPECTED_PROGRAMMER_VERSION.decode()} needed: {res!r}",
            )
        logger.info(f"Programmer version {res.decode(errors='replace')}")
        return res

    def get_maximum_payload_size(self) -> int:
        """Ask the programmer how many payload bytes one frame may carry."""
        self.send(MaxPayloadSizeRequest())
        res = self.reader.fill(2)
        return int.from_bytes(res, "big")

    def erase(self, address: int, length: int) -> None:
        """Erase length bytes of flash starting at address."""
        self.send(EraseRequest(address, length))
        logger.info(f"Erasing {length} bytes from address 0x{address:X}")
        check_ack(self.reader.fill(ACK_SIZE), "erase")

    def write(self, address: int, data: bytes) -> None:
        """Program data at address. The region must already be erased."""
        self.send(WriteRequest(address, data))
        check_ack(self.reader.fill(ACK_SIZE), "write")

    def read(self, address: int, length: int) -> bytes:
        """Read length bytes of flash starting at address."""
        self.send(ReadRequest(address, length))
        result = self.reader.fill(length)
        check_ack(self.reader.fill(ACK_SIZE), "read")
        return result
