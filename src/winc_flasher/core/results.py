"""
Result objects for core operations.

Gives the CLI (human and --json output) one structure to report flashing
and readback outcomes from.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class OperationResult:
    """
    Outcome of a core operation.

    Attributes:
        ok: Whether the operation completed successfully
        operation: Name of the operation (e.g., "flash_firmware", "read_region")
        port: Serial port the programmer was reached on
        region: Flash region touched (e.g., "0x00000000-0x000009C4")
        bytes_len: Number of bytes processed
        payload_size: Negotiated bytes per frame (0 if no session was made)
        hashes: sha256 digests keyed by what was hashed
        warnings: Non-blocking issues encountered
        errors: Blocking errors that caused failure
        metadata: Additional operation-specific data (may hold raw bytes)
        logs: Captured log lines from the operation
    """
    ok: bool
    operation: str
    port: str = ""
    region: str = ""
    bytes_len: int = 0
    payload_size: int = 0
    hashes: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def add_error(self, message: str) -> None:
        """Record a blocking error; the result is failed from here on."""
        self.errors.append(message)
        self.ok = False

    def to_summary(self) -> str:
        """Human-readable multi-line summary for CLI output."""
        lines = [f"[{'SUCCESS' if self.ok else 'FAILED'}] {self.operation}"]

        fields = (
            ("Port", self.port),
            ("Region", self.region),
            ("Bytes", f"{self.bytes_len:,}" if self.bytes_len else ""),
            ("Payload size", self.payload_size or ""),
            ("Programmer", self.metadata.get("version", "")),
            ("Failed during", self.metadata.get("failed_phase", "")),
        )
        lines.extend(f"  {label}: {value}" for label, value in fields if value)
        lines.extend(f"  {name}: {digest[:16]}..." for name, digest in self.hashes.items())

        for title, messages in (("Warnings", self.warnings), ("Errors", self.errors)):
            if messages:
                lines.append(f"  {title}:")
                lines.extend(f"    - {msg}" for msg in messages)

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe dictionary; raw byte metadata (e.g. dumped data) is left out."""
        return {
            "ok": self.ok,
            "operation": self.operation,
            "port": self.port,
            "region": self.region,
            "bytes_len": self.bytes_len,
            "payload_size": self.payload_size,
            "hashes": dict(self.hashes),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "metadata": {
                k: v for k, v in self.metadata.items()
                if not isinstance(v, (bytes, bytearray))
            },
            "logs": list(self.logs),
        }

    @classmethod
    def success(cls, operation: str, port: str = "", **kwargs) -> "OperationResult":
        return cls(ok=True, operation=operation, port=port, **kwargs)

    @classmethod
    def failure(cls, operation: str, error: str, port: str = "", **kwargs) -> "OperationResult":
        result = cls(ok=False, operation=operation, port=port, **kwargs)
        result.add_error(error)
        return result


def format_region(start: int, length: int) -> str:
    """Half-open flash range as "0xSTART-0xEND"."""
    return f"0x{start:08X}-0x{start + length:08X}"
