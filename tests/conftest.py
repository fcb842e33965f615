"""Shared fixtures: an in-memory stand-in for the programmer sketch."""

from collections import Counter
from typing import Dict, List, Optional, Tuple

import pytest

from winc_flasher.protocol.frames import ACK, CommandFrame, Opcode, decode_frame


class FakeProgrammer:
    """
    ByteTransport that behaves like the programmer sketch.

    Every write() is one complete frame; responses are queued and handed out
    by read(). An empty queue reads as a closed stream.
    """

    def __init__(
        self,
        payload_size: int = 1024,
        flash_size: int = 0x10000,
        hello_reply: bytes = b"v10000",
        max_read: Optional[int] = None,
    ):
        self.payload_size = payload_size
        self.flash = bytearray(b"\x00" * flash_size)
        self.hello_reply = hello_reply
        self.max_read = max_read
        self.frames: List[CommandFrame] = []
        self.rx = bytearray()
        self.closed = False
        self.counts: Counter = Counter()
        self.ack_overrides: Dict[Tuple[int, int], bytes] = {}
        self.corrupt: Dict[int, int] = {}
        self.read_calls = 0

    def opcodes(self) -> List[int]:
        return [f.opcode for f in self.frames]

    def frames_for(self, opcode: int) -> List[CommandFrame]:
        return [f for f in self.frames if f.opcode == opcode]

    def _ack(self, opcode: int) -> bytes:
        return self.ack_overrides.get((opcode, self.counts[opcode]), ACK)

    def write(self, data: bytes) -> int:
        frame = decode_frame(bytes(data))
        self.frames.append(frame)
        op = frame.opcode

        if op == Opcode.MAX_PAYLOAD_SIZE:
            self.rx += self.payload_size.to_bytes(2, "big")
        elif op == Opcode.HELLO:
            self.rx += self.hello_reply
        elif op == Opcode.ERASE:
            self.flash[frame.address:frame.address + frame.value] = b"\xFF" * frame.value
            self.rx += self._ack(op)
        elif op == Opcode.WRITE:
            end = frame.address + frame.payload_length
            self.flash[frame.address:end] = frame.payload
            self.rx += self._ack(op)
        elif op == Opcode.READ:
            chunk = bytearray(self.flash[frame.address:frame.address + frame.value])
            for addr, value in self.corrupt.items():
                if frame.address <= addr < frame.address + frame.value:
                    chunk[addr - frame.address] = value
            self.rx += chunk + self._ack(op)
        self.counts[op] += 1
        return len(data)

    def read(self, size: int, timeout: Optional[float] = None) -> bytes:
        self.read_calls += 1
        if self.closed or not self.rx:
            return b""
        n = min(size, len(self.rx))
        if self.max_read:
            n = min(n, self.max_read)
        out = bytes(self.rx[:n])
        del self.rx[:n]
        return out

    def close(self) -> None:
        self.closed = True


class ScriptedTransport:
    """Transport that replays a fixed list of read results."""

    def __init__(self, reads: List[bytes]):
        self.reads = list(reads)
        self.written = bytearray()
        self.timeouts: List[Optional[float]] = []
        self.closed = False

    def read(self, size: int, timeout: Optional[float] = None) -> bytes:
        self.timeouts.append(timeout)
        if not self.reads:
            return b""
        data = self.reads.pop(0)
        assert len(data) <= size
        return data

    def write(self, data: bytes) -> int:
        self.written += data
        return len(data)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def programmer() -> FakeProgrammer:
    return FakeProgrammer()


@pytest.fixture
def make_programmer():
    return FakeProgrammer


@pytest.fixture
def scripted():
    return ScriptedTransport
