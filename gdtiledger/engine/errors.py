"""
GDTI Ledger Error Hierarchy — Structured exceptions for every failure surface.

All errors carry the GDTI number and operation they were raised for, plus the
execution_id of the acting identity when one is set. Ledger-originated errors
preserve the ledger's reason text verbatim.

Hierarchy:
    GDTIError
    ├── GDTIValidationError          — Missing/malformed input, raised before any ledger call
    │   └── GDTIMissingContentError  — UPDATE without new content
    ├── GDTIConflictError            — Duplicate create, token mismatch, delete-after-delete
    ├── GDTILedgerError              — Ledger rejected the transaction
    │   ├── GDTICostEstimationError  — Pre-flight rejection
    │   └── GDTISubmissionError      — Rejected/reverted after acceptance
    ├── GDTINotFoundError            — No record for the identifier
    ├── GDTITransportError           — Ledger unreachable (retry is a caller decision)
    │   └── GDTIConfirmationTimeoutError
    ├── GDTIConfigError              — Invalid gdti.yaml or contract descriptor
    └── ContentReadError             — Content stream could not be fully read (also an OSError)
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class GDTIError(Exception):
    """
    Base error for all GDTI ledger failures.
    Structured so the full context serializes to JSON for the audit log.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.execution_id: Optional[str] = context.get("execution_id")
        self.gdti_number: Optional[str] = context.get("gdti_number")
        self.operation: Optional[str] = context.get("operation")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "execution_id": self.execution_id,
            "gdti_number": self.gdti_number,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("execution_id", "gdti_number", "operation")
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.gdti_number:
            parts.append(f"gdti_number={self.gdti_number}")
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.execution_id:
            parts.append(f"execution_id={self.execution_id}")
        return " | ".join(parts)


class GDTIValidationError(GDTIError):
    """
    Input validation failed. Always raised locally, before any ledger cost is incurred.
    Includes field-level error details.
    """

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[list] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d


class GDTIMissingContentError(GDTIValidationError):
    """UPDATE requested without new document content."""
    pass


class GDTIConflictError(GDTIError):
    """
    The requested transition conflicts with current ledger state.

    The version-chain manager reports conflicts as tagged results; this error is
    raised only when a caller asks for it via TransitionResult.unwrap().
    """

    def __init__(self, message: str, **context: Any):
        self.reason: Optional[str] = context.get("reason")
        self.reason_code: Optional[str] = context.get("reason_code")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["reason"] = self.reason
        d["reason_code"] = self.reason_code
        return d


class GDTILedgerError(GDTIError):
    """The ledger rejected a transaction. `reason` is the ledger's own text."""

    def __init__(self, message: str, **context: Any):
        self.reason: str = context.get("reason") or message
        self.reason_code: Optional[str] = context.get("reason_code")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["reason"] = self.reason
        d["reason_code"] = self.reason_code
        return d


class GDTICostEstimationError(GDTILedgerError):
    """Pre-flight cost estimation failed, usually a business-rule violation."""
    pass


class GDTISubmissionError(GDTILedgerError):
    """Transaction was accepted for execution and then failed or reverted."""

    def __init__(self, message: str, **context: Any):
        self.tx_ref: Optional[str] = context.get("tx_ref")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["tx_ref"] = self.tx_ref
        return d


class GDTINotFoundError(GDTIError):
    """The ledger holds no record for the given GDTI number."""
    pass


class GDTITransportError(GDTIError):
    """The ledger could not be reached or answered with a transport-level failure."""

    def __init__(self, message: str, **context: Any):
        self.endpoint: Optional[str] = context.get("endpoint")
        self.status_code: Optional[int] = context.get("status_code")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["endpoint"] = self.endpoint
        d["status_code"] = self.status_code
        return d


class GDTIConfirmationTimeoutError(GDTITransportError):
    """
    A submitted transaction was not confirmed within the configured timeout.
    The outcome is unknown; `tx_ref` lets the caller look it up later.
    """

    def __init__(self, message: str, **context: Any):
        self.tx_ref: Optional[str] = context.get("tx_ref")
        self.timeout_seconds: Optional[float] = context.get("timeout_seconds")
        super().__init__(message, **context)


class GDTIConfigError(GDTIError):
    """Configuration error — invalid gdti.yaml or contract descriptor."""
    pass


class ContentReadError(GDTIError, OSError):
    """The content stream failed or ended before all expected bytes were read."""

    def __init__(self, message: str, **context: Any):
        self.bytes_read: Optional[int] = context.get("bytes_read")
        self.expected_size: Optional[int] = context.get("expected_size")
        super().__init__(message, **context)
