"""
Ledger revert reasons — canonical texts and their classification.

The contract is the authority on uniqueness and linkage rules; the client only
forwards what it says. Reason text arrives in several wrappings depending on the
node ("execution reverted: GDTI already exists", "VM Exception while processing
transaction: revert GDTI already exists", ...), so classification is a
case-insensitive substring match.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ReasonCode(str, Enum):
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    DELETED = "deleted"
    TOKEN_MISMATCH = "token_mismatch"
    OUT_OF_GAS = "out_of_gas"
    UNKNOWN = "unknown"


REASON_TEXT = {
    ReasonCode.DUPLICATE: "GDTI already exists",
    ReasonCode.NOT_FOUND: "Document does not exist",
    ReasonCode.DELETED: "Document is deleted",
    ReasonCode.TOKEN_MISMATCH: "Previous version hash mismatch",
    ReasonCode.OUT_OF_GAS: "Out of gas",
}

# Checked in order; first match wins.
_PATTERNS = (
    (ReasonCode.DUPLICATE, ("already exists", "duplicate gdti")),
    (ReasonCode.DELETED, ("is deleted", "already deleted")),
    (ReasonCode.TOKEN_MISMATCH, ("hash mismatch", "version mismatch", "stale version")),
    (ReasonCode.NOT_FOUND, ("document does not exist", "document not found")),
    (ReasonCode.OUT_OF_GAS, ("out of gas", "gas limit")),
)

CONFLICT_CODES = frozenset({
    ReasonCode.DUPLICATE,
    ReasonCode.DELETED,
    ReasonCode.TOKEN_MISMATCH,
})


def classify_reason(text: Optional[str]) -> ReasonCode:
    """Map ledger reason text to a ReasonCode."""
    if not text:
        return ReasonCode.UNKNOWN
    lowered = text.lower()
    for code, needles in _PATTERNS:
        if any(needle in lowered for needle in needles):
            return code
    return ReasonCode.UNKNOWN


def is_conflict(code: ReasonCode) -> bool:
    return code in CONFLICT_CODES
