"""Firmware images and the chunk plan shared by the write and readback passes."""

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, NamedTuple, Optional, Union

from .config import ADDRESS_SPACE, PRIMARY_FIRMWARE_ADDRESS


class Chunk(NamedTuple):
    """One write/read unit, relative to the image base."""
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


def plan_chunks(total: int, payload_size: int) -> List[Chunk]:
    """
    Split total bytes into payload-sized chunks.

    Offsets are 0, P, 2P, ...; the last chunk holds ``total % P`` bytes, or a
    full P when total is an exact multiple.
    """
    if payload_size <= 0:
        raise ValueError(f"payload_size must be positive: {payload_size}")
    if total < 0:
        raise ValueError(f"total must not be negative: {total}")
    return [
        Chunk(offset, min(payload_size, total - offset))
        for offset in range(0, total, payload_size)
    ]


def first_mismatch(expected: bytes, actual: bytes) -> Optional[int]:
    """Return the first offset where the buffers differ, or None if equal."""
    if expected == actual:
        return None
    for i, (a, b) in enumerate(zip(expected, actual)):
        if a != b:
            return i
    return min(len(expected), len(actual))


@dataclass(frozen=True)
class FirmwareImage:
    """Immutable firmware bytes plus the flash address they belong at."""

    data: bytes = field(repr=False)
    address: int = PRIMARY_FIRMWARE_ADDRESS

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))
        if not self.data:
            raise ValueError("firmware image is empty")
        if self.address < 0 or self.address + len(self.data) > ADDRESS_SPACE:
            raise ValueError(
                f"image does not fit the 32-bit address space "
                f"(0x{self.address:X} + {len(self.data)} bytes)"
            )

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        address: int = PRIMARY_FIRMWARE_ADDRESS,
    ) -> "FirmwareImage":
        return cls(Path(path).read_bytes(), address)

    def __len__(self) -> int:
        return len(self.data)

    @property
    def end_address(self) -> int:
        return self.address + len(self.data)

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.data).hexdigest()

    def view(self, chunk: Chunk) -> memoryview:
        """Zero-copy slice of the image for one chunk."""
        return memoryview(self.data)[chunk.offset:chunk.end]
