"""
Fingerprint Engine — SHA-256 content addressing for document bytes.

The fingerprint is the only durable representation of document content; raw
bytes never reach the ledger. Streams are read in fixed-size chunks so memory
stays bounded regardless of document size.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from pathlib import Path
from typing import BinaryIO, Optional, Union

from gdtiledger.engine.errors import ContentReadError, GDTIValidationError

DEFAULT_CHUNK_SIZE = 8192
FINGERPRINT_LENGTH = 64

_FINGERPRINT_RE = re.compile(r"^[0-9a-f]{64}$")


def compute_fingerprint(
    stream: BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    expected_size: Optional[int] = None,
) -> str:
    """
    Hash `stream` to a 64-char lowercase hex SHA-256 digest.

    Args:
        stream: Binary file-like object, read from its current position to EOF.
        chunk_size: Bytes per read.
        expected_size: If given, the stream must yield exactly this many bytes.

    Raises:
        ContentReadError if reading fails or the byte count does not match.
    """
    digest = hashlib.sha256()
    bytes_read = 0
    try:
        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
            bytes_read += len(chunk)
    except OSError as e:
        raise ContentReadError(
            f"Failed reading content after {bytes_read} bytes: {e}",
            bytes_read=bytes_read,
            expected_size=expected_size,
        ) from e

    if expected_size is not None and bytes_read != expected_size:
        raise ContentReadError(
            f"Content stream yielded {bytes_read} bytes, expected {expected_size}",
            bytes_read=bytes_read,
            expected_size=expected_size,
        )

    return digest.hexdigest()


def fingerprint_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def fingerprint_file(path: Union[str, Path], chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Fingerprint a file on disk. OSError on open is raised as ContentReadError."""
    try:
        with open(path, "rb") as f:
            return compute_fingerprint(f, chunk_size=chunk_size)
    except ContentReadError:
        raise
    except OSError as e:
        raise ContentReadError(f"Cannot open {path}: {e}") from e


def is_fingerprint(value: Optional[str]) -> bool:
    return bool(value) and bool(_FINGERPRINT_RE.match(value))


def verify_fingerprint(
    stream: BinaryIO,
    expected: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> bool:
    """
    Recompute the stream's fingerprint and compare it with `expected`.

    Raises:
        GDTIValidationError if `expected` is not a well-formed fingerprint.
        ContentReadError if the stream cannot be read.
    """
    normalized = (expected or "").strip().lower()
    if not is_fingerprint(normalized):
        raise GDTIValidationError(
            f"Malformed fingerprint: {expected!r}",
            validation_errors=[{"field": "contentHash", "error": "expected 64 hex characters"}],
        )
    actual = compute_fingerprint(stream, chunk_size=chunk_size)
    return hmac.compare_digest(actual, normalized)
