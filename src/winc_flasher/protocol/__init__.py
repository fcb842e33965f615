"""Programmer protocol layer - frames, serial transport and exchanges."""

from .frames import (
    ACK,
    HEADER_SIZE,
    CommandFrame,
    EraseRequest,
    HelloRequest,
    MaxPayloadSizeRequest,
    Opcode,
    ReadRequest,
    WriteRequest,
    check_ack,
    decode_frame,
    encode_frame,
    encode_request,
    is_ack,
)
from .transport import (
    ByteTransport,
    ReliableReader,
    SerialTransport,
    list_serial_ports,
    open_serial,
)
from .programmer import ProgrammerLink

__all__ = [
    # Frames
    "ACK",
    "HEADER_SIZE",
    "CommandFrame",
    "EraseRequest",
    "HelloRequest",
    "MaxPayloadSizeRequest",
    "Opcode",
    "ReadRequest",
    "WriteRequest",
    "check_ack",
    "decode_frame",
    "encode_frame",
    "encode_request",
    "is_ack",
    # Transport
    "ByteTransport",
    "ReliableReader",
    "SerialTransport",
    "list_serial_ports",
    "open_serial",
    # Exchanges
    "ProgrammerLink",
]
