"""
WINC programmer command frames.

Frame layout (all fields big-endian)::

    +---------+-----------+-----------+-------------+-----------------+
    | opcode  |  address  |   value   | payload len |     payload     |
    | 1 byte  |  4 bytes  |  4 bytes  |   2 bytes   | payload len B   |
    +---------+-----------+-----------+-------------+-----------------+

There is no checksum, terminator or padding. Write, erase and read are
acknowledged with the two ASCII bytes ``OK``.

The ``value`` field means different things per opcode (a length for read
and erase, nothing for write), so callers build one of the request
dataclasses below and let it lower itself to a CommandFrame.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union

from ..errors import ProtocolMismatchError

HEADER = struct.Struct(">BIIH")
HEADER_SIZE = HEADER.size  # 11

ACK = b"OK"
ACK_SIZE = len(ACK)

MAX_PAYLOAD_LENGTH = 0xFFFF

# HELLO carries fixed sentinel values in place of address/value
HELLO_ADDRESS = 0x11223344
HELLO_VALUE = 0x55667788


class Opcode(IntEnum):
    """Programmer command opcodes."""
    READ = 0x01
    WRITE = 0x02
    ERASE = 0x03
    MAX_PAYLOAD_SIZE = 0x50
    HELLO = 0x99


@dataclass(frozen=True)
class CommandFrame:
    """One request frame as it appears on the wire."""

    opcode: int
    address: int = 0
    value: int = 0
    payload: Optional[bytes] = None

    def __post_init__(self) -> None:
        if not 0 <= self.opcode <= 0xFF:
            raise ValueError(f"opcode must fit in uint8: {self.opcode}")
        if not 0 <= self.address <= 0xFFFFFFFF:
            raise ValueError(f"address must fit in uint32: {self.address}")
        if not 0 <= self.value <= 0xFFFFFFFF:
            raise ValueError(f"value must fit in uint32: {self.value}")
        if self.payload is not None:
            if len(self.payload) == 0:
                raise ValueError("payload must be None or non-empty")
            if len(self.payload) > MAX_PAYLOAD_LENGTH:
                raise ValueError(
                    f"payload too large for uint16 length: {len(self.payload)}"
                )

    @property
    def payload_length(self) -> int:
        return 0 if self.payload is None else len(self.payload)

    def __repr__(self) -> str:
        return (
            f"CommandFrame(opcode=0x{self.opcode:02X}, address=0x{self.address:08X}, "
            f"value=0x{self.value:08X}, payload_length={self.payload_length})"
        )


def encode_frame(
    opcode: int,
    address: int = 0,
    value: int = 0,
    payload: Optional[bytes] = None,
) -> bytes:
    """
    Encode a command into its wire representation.

    Args:
        opcode: Command byte (see Opcode)
        address: 32-bit address field
        value: 32-bit immediate/length field
        payload: Optional payload bytes; None means "no payload"

    Returns:
        Header followed by the payload, ready to write to the transport
    """
    frame = CommandFrame(opcode, address, value, payload)
    header = HEADER.pack(frame.opcode, frame.address, frame.value, frame.payload_length)
    if frame.payload is None:
        return header
    return header + bytes(frame.payload)


def decode_frame(data: bytes) -> CommandFrame:
    """
    Parse a complete encoded frame back into a CommandFrame.

    Raises:
        ValueError: If the buffer is shorter than the header or its payload
            length does not match the bytes that follow.
    """
    if len(data) < HEADER_SIZE:
        raise ValueError(f"frame too short: {len(data)} bytes")
    opcode, address, value, length = HEADER.unpack_from(data)
    payload = bytes(data[HEADER_SIZE:])
    if len(payload) != length:
        raise ValueError(
            f"frame length mismatch: header says {length}, got {len(payload)}"
        )
    return CommandFrame(opcode, address, value, payload if length else None)


def is_ack(data: bytes) -> bool:
    """Return True if data is exactly the two-byte acknowledgment."""
    return bytes(data) == ACK


def check_ack(data: bytes, operation: str) -> None:
    """
    Raise ProtocolMismatchError unless data is the ``OK`` acknowledgment.

    The offending bytes are kept on the exception for diagnostics.
    """
    if not is_ack(data):
        raise ProtocolMismatchError(operation, data)


# Request variants ---------------------------------------------------------


@dataclass(frozen=True)
class HelloRequest:
    """Identity/version probe."""

    def to_frame(self) -> CommandFrame:
        return CommandFrame(Opcode.HELLO, HELLO_ADDRESS, HELLO_VALUE)


@dataclass(frozen=True)
class MaxPayloadSizeRequest:
    """Ask the programmer for the largest payload it accepts."""

    def to_frame(self) -> CommandFrame:
        return CommandFrame(Opcode.MAX_PAYLOAD_SIZE)


@dataclass(frozen=True)
class EraseRequest:
    address: int
    length: int

    def to_frame(self) -> CommandFrame:
        return CommandFrame(Opcode.ERASE, self.address, self.length)


@dataclass(frozen=True)
class WriteRequest:
    address: int
    data: bytes

    def to_frame(self) -> CommandFrame:
        return CommandFrame(Opcode.WRITE, self.address, 0, bytes(self.data))


@dataclass(frozen=True)
class ReadRequest:
    address: int
    length: int

    def to_frame(self) -> CommandFrame:
        return CommandFrame(Opcode.READ, self.address, self.length)


Request = Union[HelloRequest, MaxPayloadSizeRequest, EraseRequest, WriteRequest, ReadRequest]


def encode_request(request: Request) -> bytes:
    """Lower a request variant to wire bytes."""
    frame = request.to_frame()
    return encode_frame(frame.opcode, frame.address, frame.value, frame.payload)
