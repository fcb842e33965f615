"""
Module firmware index (module_firmware_index.json).

The index lists, per board FQBN, the firmware versions available for the
board's radio module and the loader sketch that turns the board into a
programmer. It is published with a detached signature next to it
(``<index>.sig``); checking that signature is delegated to a caller-supplied
verifier and only sets the ``is_trusted`` flag.

Usage:
    index = load_index("module_firmware_index.json", verifier=my_gpg_check)
    url = index.get_latest_firmware_url("arduino:samd:mkr1000")
"""

import json
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..errors import FirmwareIndexError

logger = logging.getLogger(__name__)

SignatureVerifier = Callable[[bytes, bytes], bool]

_SEMVER_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)"
    r"(?:\.(?P<minor>0|[1-9]\d*))?"
    r"(?:\.(?P<patch>0|[1-9]\d*))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)


def relaxed_version_key(version: str) -> Tuple:
    """
    Sort key for "relaxed" semantic versions.

    Strings that parse as semver (minor/patch may be omitted) order by semver
    precedence; anything else orders lexicographically below every semver
    version.
    """
    m = _SEMVER_RE.match(version)
    if not m:
        return (0, version)

    core = tuple(int(m.group(g) or 0) for g in ("major", "minor", "patch"))
    pre = m.group("pre")
    if pre is None:
        # A release sorts above all of its pre-releases
        return (1, core, 1, ())

    idents = []
    for part in pre.split("."):
        if part.isdigit():
            idents.append((0, int(part), ""))
        else:
            idents.append((1, 0, part))
    return (1, core, 0, tuple(idents))


@dataclass
class IndexFirmware:
    version: str
    url: str
    checksum: str = ""
    size: int = 0
    module: str = ""


@dataclass
class IndexLoaderSketch:
    url: str
    checksum: str = ""
    size: int = 0


@dataclass
class IndexBoard:
    """One board entry from the index."""
    fqbn: str
    name: str = ""
    module: str = ""
    uploader: str = ""
    uploader_command: Dict[str, str] = field(default_factory=dict)
    upload_touch: bool = False
    upload_wait: bool = False
    firmwares: List[IndexFirmware] = field(default_factory=list)
    loader_sketch: Optional[IndexLoaderSketch] = None

    def get_uploader_command(self, platform: Optional[str] = None) -> str:
        """
        Return the uploader command line for the host OS.

        The linux command is the generic fallback when no OS-specific
        command is listed.
        """
        platform = platform or sys.platform
        if platform.startswith("win") and self.uploader_command.get("windows"):
            return self.uploader_command["windows"]
        if platform == "darwin" and self.uploader_command.get("macosx"):
            return self.uploader_command["macosx"]
        return self.uploader_command.get("linux", "")


def _as_bool(value: Any) -> bool:
    # Older indexes store these flags as the strings "true"/"false"
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _as_int(value: Any) -> int:
    if value in (None, ""):
        return 0
    return int(value)


def _parse_board(entry: Dict[str, Any]) -> IndexBoard:
    if not isinstance(entry, dict):
        raise FirmwareIndexError(f"board entry is not an object: {entry!r}")
    if "fqbn" not in entry:
        raise FirmwareIndexError(f"board entry without fqbn: {entry!r}")
    fqbn = entry["fqbn"]

    try:
        command = entry.get("uploader.command") or {}
        if isinstance(command, str):
            command = {"linux": command}

        firmwares = [
            IndexFirmware(
                version=str(fw["version"]),
                url=fw["url"],
                checksum=fw.get("checksum", ""),
                size=_as_int(fw.get("size")),
                module=fw.get("module", entry.get("module", "")),
            )
            for fw in entry.get("firmware") or []
        ]

        sketch = entry.get("loader_sketch")
        loader_sketch = None
        if sketch:
            loader_sketch = IndexLoaderSketch(
                url=sketch["url"],
                checksum=sketch.get("checksum", ""),
                size=_as_int(sketch.get("size")),
            )

        return IndexBoard(
            fqbn=fqbn,
            name=entry.get("name", ""),
            module=entry.get("module", ""),
            uploader=entry.get("uploader", ""),
            uploader_command=dict(command),
            upload_touch=_as_bool(entry.get("upload.use_1200bps_touch", False)),
            upload_wait=_as_bool(entry.get("upload.wait_for_upload_port", False)),
            firmwares=firmwares,
            loader_sketch=loader_sketch,
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise FirmwareIndexError(f"malformed entry for board {fqbn}: {e!r}") from e


@dataclass
class Index:
    """Parsed firmware index."""
    boards: List[IndexBoard] = field(default_factory=list)
    is_trusted: bool = False

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> "Index":
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            raise FirmwareIndexError(f"invalid firmware index JSON: {e}") from e
        if not isinstance(entries, list):
            raise FirmwareIndexError("firmware index must be a JSON list of boards")
        return cls(boards=[_parse_board(e) for e in entries])

    def get_board(self, fqbn: str) -> Optional[IndexBoard]:
        for board in self.boards:
            if board.fqbn == fqbn:
                return board
        return None

    def _require_board(self, fqbn: str) -> IndexBoard:
        board = self.get_board(fqbn)
        if board is None:
            raise FirmwareIndexError(f"invalid FQBN: {fqbn}")
        return board

    def get_module(self, fqbn: str) -> str:
        return self._require_board(fqbn).module

    def get_firmware_url(self, fqbn: str, version: str) -> str:
        board = self._require_board(fqbn)
        for firmware in board.firmwares:
            if firmware.version == version:
                return firmware.url
        raise FirmwareIndexError(f"invalid version: {version}")

    def get_latest_firmware_url(self, fqbn: str) -> str:
        """
        URL of the highest firmware version listed for the board.

        SARA modules use a version scheme that does not order sensibly, so
        an explicit version is required for them.
        """
        board = self._require_board(fqbn)
        if board.module == "SARA":
            raise FirmwareIndexError("not implemented for SARA module")
        if not board.firmwares:
            raise FirmwareIndexError("cannot find latest version")
        latest = max(board.firmwares, key=lambda fw: relaxed_version_key(fw.version))
        return latest.url

    def get_loader_sketch_url(self, fqbn: str) -> str:
        board = self._require_board(fqbn)
        if board.loader_sketch is None:
            raise FirmwareIndexError(f"no loader sketch for {fqbn}")
        return board.loader_sketch.url


def load_index(
    index_path: Union[str, Path],
    verifier: Optional[SignatureVerifier] = None,
) -> Index:
    """
    Load an index and check its detached signature.

    A failed or impossible signature check is logged and leaves the index
    untrusted; it is not an error.

    Args:
        index_path: Path to module_firmware_index.json
        verifier: Callable(index_bytes, signature_bytes) -> bool

    Raises:
        OSError: The index file cannot be read
        FirmwareIndexError: The index is not valid JSON
    """
    path = Path(index_path)
    raw = path.read_bytes()
    index = Index.from_json(raw)

    sig_path = path.with_name(path.name + ".sig")
    if verifier is None:
        logger.info(f"Checking signature of {path}: no verifier configured")
        return index
    try:
        trusted = bool(verifier(raw, sig_path.read_bytes()))
    except Exception as e:
        logger.info(f"Checking signature of {path} with {sig_path}: {e}")
    else:
        logger.info(f"Checking signature of {path} with {sig_path}: trusted={trusted}")
        index.is_trusted = trusted
    return index


def load_index_no_sign(index_path: Union[str, Path]) -> Index:
    """Load an index without a signature check and mark it trusted."""
    index = Index.from_json(Path(index_path).read_bytes())
    index.is_trusted = True
    return index
