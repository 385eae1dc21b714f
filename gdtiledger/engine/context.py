"""
GDTI Ledger Acting Identity — per-request caller identity (contextvars).

The identity provider (HTTP auth middleware, CLI, job runner) sets the acting
identity once per request; every ledger transaction built during that request is
signed/sent on behalf of `account`. The core treats the account as an opaque
credential and performs no authorization of its own.

Usage:
    from gdtiledger.engine.context import (
        ActingIdentity,
        set_acting_identity,
        get_acting_identity,
    )
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from gdtiledger.engine.errors import GDTIValidationError

current_acting_identity: ContextVar[Optional["ActingIdentity"]] = ContextVar(
    "acting_identity", default=None
)


@dataclass(frozen=True)
class ActingIdentity:
    """Opaque ledger account a transition is sent from."""

    account: str
    display_name: str = ""
    execution_id: str = field(default_factory=lambda: f"exec_{uuid.uuid4().hex[:12]}")

    def __post_init__(self):
        if not self.account or not str(self.account).strip():
            raise GDTIValidationError(
                "Acting identity requires a ledger account",
                validation_errors=[{"field": "account", "error": "required"}],
            )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging."""
        return {
            "account": self.account,
            "display_name": self.display_name,
            "execution_id": self.execution_id,
        }


def set_acting_identity(identity: ActingIdentity) -> None:
    """Set the acting identity for the current thread/task."""
    current_acting_identity.set(identity)


def get_acting_identity() -> Optional[ActingIdentity]:
    """Get the current acting identity. Returns None if not set."""
    return current_acting_identity.get()


def clear_acting_identity() -> None:
    current_acting_identity.set(None)
