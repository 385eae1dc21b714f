"""
InMemoryLedger — a process-local ledger that enforces the DocumentStore rules.

Used for development (`ledger.backend: memory`) and as the ledger in tests. It
behaves like the real contract where the version chain depends on it:

- one record per GDTI; CREATE on any existing GDTI (deleted or not) reverts
- UPDATE/DELETE revert on a missing record, a deleted record, or a
  previousVersionHash that is not the reference of the last accepted transaction
- execution is serialized (asyncio.Lock), so of two racing transitions built
  against the same token exactly one is accepted
- timestamps are assigned by the ledger and never go backwards
- a transaction whose gas limit is below its execution cost reverts with
  "Out of gas" and still produces a receipt
"""

from __future__ import annotations

import asyncio
import copy
import hashlib
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from gdtiledger.ledger.backends import LedgerBackend, LedgerRpcError
from gdtiledger.ledger.models import Operation, TransactionRequest
from gdtiledger.ledger.reasons import REASON_TEXT, ReasonCode

logger = logging.getLogger("gdtiledger.ledger.memory")

DEFAULT_ADDRESS = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
DEFAULT_ACCOUNTS = ["0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"]

BASE_COST = 21000
COST_PER_BYTE = 16
STORAGE_COST = {
    Operation.CREATE: 120000,
    Operation.UPDATE: 60000,
    Operation.DELETE: 30000,
}


class InMemoryLedger(LedgerBackend):
    """Serialized, append-only ledger held in process memory."""

    name = "memory"

    def __init__(
        self,
        address: str = DEFAULT_ADDRESS,
        accounts: Optional[List[str]] = None,
        clock: Callable[[], float] = time.time,
        latency: float = 0.0,
    ):
        self.address = address
        self._accounts = list(accounts or DEFAULT_ACCOUNTS)
        self._clock = clock
        self._latency = latency
        self._lock = asyncio.Lock()
        self._records: Dict[str, Dict[str, Any]] = {}
        self._last_tx: Dict[str, str] = {}
        self._receipts: Dict[str, Dict[str, Any]] = {}
        self._history: Dict[str, List[str]] = {}
        self._nonce = 0
        self._block_number = 0
        self._last_timestamp = 0

    # -------------------------------------------------------------------
    # LedgerBackend
    # -------------------------------------------------------------------

    async def accounts(self) -> List[str]:
        await asyncio.sleep(self._latency)
        return list(self._accounts)

    async def estimate(self, tx: TransactionRequest) -> int:
        await asyncio.sleep(self._latency)
        async with self._lock:
            self._check_target(tx)
            reason = self._violation(tx)
            if reason:
                raise LedgerRpcError(f"execution reverted: {reason}", code=3)
            return self.execution_cost(tx)

    async def send(self, tx: TransactionRequest, gas_limit: int) -> str:
        await asyncio.sleep(self._latency)
        async with self._lock:
            self._check_target(tx)
            if tx.sender not in self._accounts:
                raise LedgerRpcError(f"unknown account {tx.sender}", code=-32000)
            return self._execute(tx, gas_limit)

    async def receipt(self, tx_ref: str) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(self._latency)
        found = self._receipts.get(tx_ref)
        return copy.deepcopy(found) if found else None

    async def get_document(self, contract_address: str, gdti_number: str) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(self._latency)
        if contract_address.lower() != self.address.lower():
            raise LedgerRpcError(f"no contract deployed at {contract_address}", code=-32000)
        record = self._records.get(gdti_number)
        return copy.deepcopy(record) if record else None

    # -------------------------------------------------------------------
    # Inspection helpers
    # -------------------------------------------------------------------

    def last_transition(self, gdti_number: str) -> Optional[str]:
        """Reference of the last accepted transition for a GDTI."""
        return self._last_tx.get(gdti_number)

    def history(self, gdti_number: str) -> List[str]:
        """References of every accepted transition for a GDTI, oldest first."""
        return list(self._history.get(gdti_number, []))

    @staticmethod
    def execution_cost(tx: TransactionRequest) -> int:
        size = len(tx.canonical_json().encode("utf-8"))
        return BASE_COST + COST_PER_BYTE * size + STORAGE_COST[tx.operation]

    # -------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------

    def _check_target(self, tx: TransactionRequest) -> None:
        if tx.to.lower() != self.address.lower():
            raise LedgerRpcError(f"no contract deployed at {tx.to}", code=-32000)

    def _violation(self, tx: TransactionRequest) -> Optional[str]:
        """Revert reason for `tx` against current state, or None."""
        gdti = tx.gdti_number
        if not gdti:
            return "GDTI number required"

        record = self._records.get(gdti)
        if tx.operation == Operation.CREATE:
            if record is not None:
                return REASON_TEXT[ReasonCode.DUPLICATE]
            return None

        if record is None:
            return REASON_TEXT[ReasonCode.NOT_FOUND]
        if record["isDeleted"]:
            return REASON_TEXT[ReasonCode.DELETED]
        if tx.payload.get("previousVersionHash") != self._last_tx.get(gdti):
            return REASON_TEXT[ReasonCode.TOKEN_MISMATCH]
        return None

    def _next_tx_ref(self, tx: TransactionRequest) -> str:
        self._nonce += 1
        digest = hashlib.sha256(f"{self._nonce}:{tx.canonical_json()}".encode("utf-8"))
        return "0x" + digest.hexdigest()

    def _now(self) -> int:
        self._last_timestamp = max(self._last_timestamp, int(self._clock()))
        return self._last_timestamp

    def _execute(self, tx: TransactionRequest, gas_limit: int) -> str:
        tx_ref = self._next_tx_ref(tx)
        self._block_number += 1
        cost = self.execution_cost(tx)

        reason = self._violation(tx)
        if reason is None and gas_limit < cost:
            reason = REASON_TEXT[ReasonCode.OUT_OF_GAS]

        if reason is not None:
            self._receipts[tx_ref] = {
                "transactionHash": tx_ref,
                "status": 0,
                "gasUsed": min(cost, gas_limit),
                "blockNumber": self._block_number,
                "events": {},
                "revertReason": reason,
            }
            logger.info(f"Reverted {tx.operation.method}({tx.gdti_number}): {reason}")
            return tx_ref

        event = self._apply(tx)
        self._last_tx[tx.gdti_number] = tx_ref
        self._history.setdefault(tx.gdti_number, []).append(tx_ref)
        self._receipts[tx_ref] = {
            "transactionHash": tx_ref,
            "status": 1,
            "gasUsed": cost,
            "blockNumber": self._block_number,
            "events": {tx.operation.event: {"returnValues": event}},
        }
        return tx_ref

    def _apply(self, tx: TransactionRequest) -> Dict[str, Any]:
        """Apply an already-validated transition and return its event values."""
        p = tx.payload
        gdti = tx.gdti_number
        now = self._now()

        if tx.operation == Operation.CREATE:
            self._records[gdti] = {
                "gdtiNumber": gdti,
                "documentType": p["documentType"],
                "contentHash": p["contentHash"],
                "memberId": p["memberId"],
                "createdAt": now,
                "updatedAt": now,
                "version": 1,
                "metadata": p.get("metadata", ""),
                "isDeleted": False,
                "previousVersionHash": "",
                "updatedBy": "",
                "deletedBy": "",
                "deletionReason": "",
            }
            return {"gdtiNumber": gdti, "contentHash": p["contentHash"], "memberId": p["memberId"], "version": 1}

        record = self._records[gdti]
        if tx.operation == Operation.UPDATE:
            record.update({
                "documentType": p["documentType"],
                "contentHash": p["contentHash"],
                "memberId": p["memberId"],
                "updatedBy": p["updatedBy"],
                "previousVersionHash": p["previousVersionHash"],
                "updatedAt": now,
                "version": record["version"] + 1,
            })
            return {
                "gdtiNumber": gdti,
                "contentHash": p["contentHash"],
                "updatedBy": p["updatedBy"],
                "version": record["version"],
            }

        record.update({
            "isDeleted": True,
            "deletedBy": p["deletedBy"],
            "deletionReason": p["deletionReason"],
            "previousVersionHash": p["previousVersionHash"],
            "updatedAt": now,
        })
        return {"gdtiNumber": gdti, "deletedBy": p["deletedBy"], "version": record["version"]}
