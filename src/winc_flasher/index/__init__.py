"""Firmware index loading and lookup."""

from .firmware_index import (
    Index,
    IndexBoard,
    IndexFirmware,
    IndexLoaderSketch,
    SignatureVerifier,
    load_index,
    load_index_no_sign,
    relaxed_version_key,
)

__all__ = [
    "Index",
    "IndexBoard",
    "IndexFirmware",
    "IndexLoaderSketch",
    "SignatureVerifier",
    "load_index",
    "load_index_no_sign",
    "relaxed_version_key",
]
