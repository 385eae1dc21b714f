"""
Ledger wire models — transition parameters, transactions, confirmations, records.

Payload field order is fixed and mirrors the DocumentRecord shape; pydantic keeps
declaration order in model_dump(), and canonical_json() never sorts keys, so the
same request always serializes to the same bytes.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_int(value: Any) -> int:
    """Coerce ledger numerics (int, decimal string, 0x-hex string) to int."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text) if text else 0
    if value is None:
        return 0
    raise ValueError(f"cannot interpret {value!r} as an integer")


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def method(self) -> str:
        """Contract method name."""
        return f"{self.value}Document"

    @property
    def event(self) -> str:
        """Event the contract emits on success."""
        return f"Document{self.value.capitalize()}d"


# ---------------------------------------------------------------------------
# Transition parameters
# ---------------------------------------------------------------------------

class _Params(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class CreateParams(_Params):
    gdti_number: str = Field(alias="gdtiNumber")
    document_type: str = Field(alias="documentType")
    content_hash: str = Field(alias="contentHash")
    member_id: str = Field(alias="memberId")
    metadata: str = ""


class UpdateParams(_Params):
    gdti_number: str = Field(alias="gdtiNumber")
    document_type: str = Field(alias="documentType")
    content_hash: str = Field(alias="contentHash")
    member_id: str = Field(alias="memberId")
    updated_by: str = Field(alias="updatedBy")
    previous_version_hash: str = Field(alias="previousVersionHash")


class DeleteParams(_Params):
    gdti_number: str = Field(alias="gdtiNumber")
    deleted_by: str = Field(alias="deletedBy")
    deletion_reason: str = Field(alias="deletionReason")
    previous_version_hash: str = Field(alias="previousVersionHash")


PARAMS_BY_OPERATION: Dict[Operation, Type[_Params]] = {
    Operation.CREATE: CreateParams,
    Operation.UPDATE: UpdateParams,
    Operation.DELETE: DeleteParams,
}


# ---------------------------------------------------------------------------
# Transactions and confirmations
# ---------------------------------------------------------------------------

class TransactionRequest(BaseModel):
    """A fully-built, unsigned contract call."""

    model_config = ConfigDict(frozen=True)

    operation: Operation
    to: str
    sender: str
    payload: Dict[str, Any]

    @property
    def gdti_number(self) -> str:
        return self.payload.get("gdtiNumber", "")

    def to_rpc(self) -> Dict[str, Any]:
        return {
            "from": self.sender,
            "to": self.to,
            "method": self.operation.method,
            "params": self.payload,
        }

    def canonical_json(self) -> str:
        return json.dumps(self.to_rpc(), separators=(",", ":"), ensure_ascii=False)


class Confirmation(BaseModel):
    """Decoded transaction receipt."""

    tx_ref: str
    status: bool
    cost_used: int = 0
    block_number: int = 0
    events: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    revert_reason: Optional[str] = None

    @classmethod
    def from_receipt(cls, receipt: Dict[str, Any]) -> "Confirmation":
        """
        Build from a receipt dict. Accepts web3-style events
        ({"DocumentUpdated": {"returnValues": {...}}}) as well as flat ones.
        """
        events: Dict[str, Dict[str, Any]] = {}
        for name, body in (receipt.get("events") or {}).items():
            if isinstance(body, dict) and isinstance(body.get("returnValues"), dict):
                events[name] = dict(body["returnValues"])
            elif isinstance(body, dict):
                events[name] = dict(body)

        status = receipt.get("status", False)
        if not isinstance(status, bool):
            status = to_int(status) == 1

        return cls(
            tx_ref=receipt.get("transactionHash", ""),
            status=status,
            cost_used=to_int(receipt.get("gasUsed")),
            block_number=to_int(receipt.get("blockNumber")),
            events=events,
            revert_reason=receipt.get("revertReason"),
        )

    def event_version(self, event_name: str) -> Optional[int]:
        values = self.events.get(event_name)
        if not values or values.get("version") is None:
            return None
        return to_int(values["version"])


# ---------------------------------------------------------------------------
# Ledger-held record
# ---------------------------------------------------------------------------

class DocumentRecord(BaseModel):
    """One GDTI record as the contract stores it."""

    model_config = ConfigDict(populate_by_name=True)

    gdti_number: str = Field(alias="gdtiNumber")
    document_type: str = Field(default="", alias="documentType")
    content_hash: str = Field(default="", alias="contentHash")
    member_id: str = Field(default="", alias="memberId")
    created_at: int = Field(default=0, alias="createdAt")
    updated_at: int = Field(default=0, alias="updatedAt")
    version: int = 0
    metadata: str = ""
    is_deleted: bool = Field(default=False, alias="isDeleted")
    previous_version_hash: str = Field(default="", alias="previousVersionHash")
    updated_by: str = Field(default="", alias="updatedBy")
    deleted_by: str = Field(default="", alias="deletedBy")
    deletion_reason: str = Field(default="", alias="deletionReason")

    @field_validator("created_at", "updated_at", "version", mode="before")
    @classmethod
    def coerce_numeric(cls, v: Any) -> int:
        return to_int(v)

    @field_validator(
        "document_type", "content_hash", "member_id", "metadata",
        "previous_version_hash", "updated_by", "deleted_by", "deletion_reason",
        mode="before",
    )
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v
