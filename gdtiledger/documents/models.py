"""
GDTI Document Models — content sources, provenance metadata, transition results, views.

ContentSource: the byte stream plus {originalName, size, mimeType} handed over by
    whatever received the upload. The core never looks at where it came from.
DocumentMetadata: provenance blob written once at CREATE.
TransitionResult: tagged Ok/Conflict outcome of a version-chain transition.
DocumentView: caller-facing, consistently typed projection of a DocumentRecord.
"""

from __future__ import annotations

import io
import json
import mimetypes
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from gdtiledger.engine.errors import ContentReadError, GDTIConflictError


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from filename."""
    mime, _ = mimetypes.guess_type(filename)
    return mime or "application/octet-stream"


# ---------------------------------------------------------------------------
# Content source
# ---------------------------------------------------------------------------

@dataclass
class ContentSource:
    """A readable document body and the three attributes the core cares about."""

    stream: BinaryIO
    original_name: str
    size: int
    mime_type: str = ""

    def __post_init__(self):
        if not self.mime_type:
            self.mime_type = detect_mime_type(self.original_name)

    @classmethod
    def from_bytes(cls, data: bytes, original_name: str, mime_type: str = "") -> "ContentSource":
        return cls(
            stream=io.BytesIO(data),
            original_name=original_name,
            size=len(data),
            mime_type=mime_type,
        )

    @classmethod
    def from_path(cls, path: Union[str, Path], mime_type: str = "") -> "ContentSource":
        """Open a file as a content source. Close it (or use `with`) when done."""
        p = Path(path)
        try:
            stream = open(p, "rb")
            size = p.stat().st_size
        except OSError as e:
            raise ContentReadError(f"Cannot open {p}: {e}") from e
        return cls(stream=stream, original_name=p.name, size=size, mime_type=mime_type)

    def close(self) -> None:
        self.stream.close()

    def __enter__(self) -> "ContentSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Provenance metadata
# ---------------------------------------------------------------------------

class DocumentMetadata(BaseModel):
    """Provenance written at CREATE. Updates never rewrite it."""

    model_config = ConfigDict(populate_by_name=True)

    original_file_name: str = Field(alias="originalFileName")
    file_size: int = Field(alias="fileSize", ge=0)
    mime_type: str = Field(alias="mimeType")
    upload_timestamp: int = Field(alias="uploadTimestamp", description="Epoch milliseconds")

    @classmethod
    def from_content(
        cls,
        content: ContentSource,
        clock: Callable[[], float] = time.time,
    ) -> "DocumentMetadata":
        return cls(
            original_file_name=content.original_name,
            file_size=content.size,
            mime_type=content.mime_type,
            upload_timestamp=int(clock() * 1000),
        )

    def to_blob(self, extra: Optional[Mapping[str, Any]] = None) -> str:
        """Serialize to the JSON string stored on the ledger."""
        data: Dict[str, Any] = self.model_dump(by_alias=True)
        if extra:
            data.update(extra)
        return json.dumps(data, separators=(",", ":"), default=str)


# ---------------------------------------------------------------------------
# Transition results
# ---------------------------------------------------------------------------

class Outcome(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"


class TransitionResult(BaseModel):
    """
    Outcome of one CREATE/UPDATE/DELETE.

    Conflicts are expected under concurrent writers, so they are a result,
    not an exception. Call unwrap() to turn a conflict into GDTIConflictError.
    """

    outcome: Outcome
    operation: str
    gdti_number: str
    version: Optional[int] = None
    content_hash: Optional[str] = None
    tx_ref: Optional[str] = None
    reason: Optional[str] = None
    reason_code: Optional[str] = None

    @classmethod
    def ok(cls, operation: str, gdti_number: str, **fields: Any) -> "TransitionResult":
        return cls(outcome=Outcome.OK, operation=operation, gdti_number=gdti_number, **fields)

    @classmethod
    def conflict(
        cls,
        operation: str,
        gdti_number: str,
        reason: str,
        reason_code: Optional[str] = None,
        **fields: Any,
    ) -> "TransitionResult":
        return cls(
            outcome=Outcome.CONFLICT,
            operation=operation,
            gdti_number=gdti_number,
            reason=reason,
            reason_code=reason_code,
            **fields,
        )

    @property
    def is_ok(self) -> bool:
        return self.outcome == Outcome.OK

    @property
    def is_conflict(self) -> bool:
        return self.outcome == Outcome.CONFLICT

    def unwrap(self) -> "TransitionResult":
        """Return self if ok, raise GDTIConflictError otherwise."""
        if self.is_conflict:
            raise GDTIConflictError(
                f"{self.operation} on {self.gdti_number} conflicts with ledger state: {self.reason}",
                gdti_number=self.gdti_number,
                operation=self.operation,
                reason=self.reason,
                reason_code=self.reason_code,
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "outcome": self.outcome.value,
            "operation": self.operation,
            "gdtiNumber": self.gdti_number,
        }
        if self.version is not None:
            data["version"] = self.version
        if self.content_hash:
            data["contentHash"] = self.content_hash
        if self.tx_ref:
            data["transactionHash"] = self.tx_ref
        if self.reason:
            data["reason"] = self.reason
        return data


# ---------------------------------------------------------------------------
# Read-side view
# ---------------------------------------------------------------------------

class DocumentView(BaseModel):
    """Authoritative current state of one GDTI, typed for callers."""

    model_config = ConfigDict(populate_by_name=True)

    gdti_number: str = Field(alias="gdtiNumber")
    document_type: str = Field(alias="documentType")
    content_hash: str = Field(alias="contentHash")
    member_id: str = Field(alias="memberId")
    created_at: int = Field(alias="createdAt", description="Epoch seconds")
    updated_at: int = Field(alias="updatedAt", description="Epoch seconds")
    version: int
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_deleted: bool = Field(alias="isDeleted")
    previous_version_hash: str = Field(default="", alias="previousVersionHash")
    updated_by: str = Field(default="", alias="updatedBy")
    deleted_by: str = Field(default="", alias="deletedBy")
    deletion_reason: str = Field(default="", alias="deletionReason")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
