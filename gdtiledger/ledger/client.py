"""
Ledger Client — transaction construction, cost estimation, submission, reads.

Pipeline (per transition):
    1. Resolve the current contract descriptor (re-read on every call)
    2. Build a deterministic TransactionRequest from validated parameters
    3. Estimate cost → GDTICostEstimationError on pre-flight rejection
    4. Submit with budget = estimate + fixed buffer + optional percentage
    5. Poll for the receipt until confirmed or confirmation_timeout elapses
    6. Decode the receipt → Confirmation, or GDTISubmissionError if reverted

The client never retries. A rule-violating transition fails the same way every
time, and whether a transport failure is worth another attempt is the caller's call.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Dict, List, Optional, Union

from gdtiledger.engine.context import ActingIdentity
from gdtiledger.engine.errors import (
    GDTIConfigError,
    GDTIConfirmationTimeoutError,
    GDTICostEstimationError,
    GDTILedgerError,
    GDTINotFoundError,
    GDTISubmissionError,
    GDTIValidationError,
)
from gdtiledger.engine.logging import AsyncLogQueue, log_ledger_call
from gdtiledger.ledger.backends import LedgerBackend, LedgerRpcError
from gdtiledger.ledger.models import (
    PARAMS_BY_OPERATION,
    Confirmation,
    DocumentRecord,
    Operation,
    TransactionRequest,
)
from gdtiledger.ledger.reasons import ReasonCode, classify_reason

logger = logging.getLogger("gdtiledger.ledger.client")

ParamsLike = Union[Dict[str, Any], Any]


class LedgerClient:
    """
    Async client for the DocumentStore contract.

    Safe for concurrent use across independent transitions: it holds no
    per-record state, and the contract descriptor is looked up per call.
    """

    def __init__(
        self,
        backend: LedgerBackend,
        locator,
        cost_buffer: int = 50000,
        cost_buffer_percent: float = 0.0,
        confirmation_timeout: float = 60.0,
        poll_interval: float = 0.5,
        log_queue: Optional[AsyncLogQueue] = None,
    ):
        self._backend = backend
        self._locator = locator
        self._cost_buffer = cost_buffer
        self._cost_buffer_percent = cost_buffer_percent
        self._confirmation_timeout = confirmation_timeout
        self._poll_interval = poll_interval
        self._log_queue = log_queue

    @property
    def backend(self) -> LedgerBackend:
        return self._backend

    # -----------------------------------------------------------------------
    # Transaction construction
    # -----------------------------------------------------------------------

    def build_transaction(
        self,
        operation: Operation,
        params: ParamsLike,
        identity: ActingIdentity,
    ) -> TransactionRequest:
        """Build the contract call for `operation` against the current deployment."""
        params_cls = PARAMS_BY_OPERATION[operation]
        if not isinstance(params, params_cls):
            try:
                params = params_cls.model_validate(params)
            except ValueError as e:
                raise GDTIValidationError(
                    f"Invalid {operation.value} parameters: {e}",
                    operation=operation.value,
                    execution_id=identity.execution_id,
                ) from e

        descriptor = self._locator.current()
        if not descriptor.has_method(operation.method):
            raise GDTIConfigError(
                f"Contract at {descriptor.address} has no method '{operation.method}'",
                operation=operation.value,
            )

        return TransactionRequest(
            operation=operation,
            to=descriptor.address,
            sender=identity.account,
            payload=params.payload(),
        )

    def budget_for(self, estimate: int) -> int:
        """Cost budget for a transaction estimated at `estimate`."""
        margin = self._cost_buffer
        if self._cost_buffer_percent:
            margin += math.ceil(estimate * self._cost_buffer_percent / 100)
        return estimate + margin

    # -----------------------------------------------------------------------
    # Estimate / submit / execute
    # -----------------------------------------------------------------------

    async def estimate_cost(
        self,
        operation: Operation,
        params: ParamsLike,
        identity: ActingIdentity,
    ) -> int:
        """
        Dry-run the transition and return its estimated cost.

        Raises:
            GDTICostEstimationError with the ledger's reason on rejection.
            GDTITransportError if the ledger is unreachable.
        """
        tx = self.build_transaction(operation, params, identity)
        start = time.monotonic()
        try:
            cost = await self._backend.estimate(tx)
        except LedgerRpcError as e:
            self._log("estimate", tx, identity, start, success=False, error=e.reason)
            raise GDTICostEstimationError(
                f"Cost estimation failed for {operation.method}: {e.reason}",
                reason=e.reason,
                reason_code=classify_reason(e.reason).value,
                rpc_code=e.code,
                operation=operation.value,
                gdti_number=tx.gdti_number,
                execution_id=identity.execution_id,
            ) from e

        self._log("estimate", tx, identity, start, success=True, cost=cost)
        return cost

    async def submit(
        self,
        operation: Operation,
        params: ParamsLike,
        identity: ActingIdentity,
        cost_budget: int,
    ) -> Confirmation:
        """
        Submit the transition with `cost_budget` and wait for confirmation.

        Raises:
            GDTISubmissionError if the ledger rejects or reverts the transaction.
            GDTIConfirmationTimeoutError if no receipt arrives in time.
            GDTITransportError if the ledger is unreachable.
        """
        tx = self.build_transaction(operation, params, identity)
        start = time.monotonic()
        try:
            tx_ref = await self._backend.send(tx, cost_budget)
        except LedgerRpcError as e:
            self._log("submit", tx, identity, start, success=False, error=e.reason)
            raise GDTISubmissionError(
                f"Submission rejected for {operation.method}: {e.reason}",
                reason=e.reason,
                reason_code=classify_reason(e.reason).value,
                rpc_code=e.code,
                operation=operation.value,
                gdti_number=tx.gdti_number,
                execution_id=identity.execution_id,
            ) from e

        receipt = await self._await_receipt(tx, tx_ref, identity)
        confirmation = Confirmation.from_receipt(receipt)
        if not confirmation.tx_ref:
            confirmation.tx_ref = tx_ref

        if not confirmation.status:
            reason = confirmation.revert_reason or "Transaction reverted"
            self._log("submit", tx, identity, start, success=False, tx_ref=tx_ref, error=reason)
            raise GDTISubmissionError(
                f"Transaction {tx_ref} reverted: {reason}",
                reason=reason,
                reason_code=classify_reason(reason).value,
                tx_ref=tx_ref,
                operation=operation.value,
                gdti_number=tx.gdti_number,
                execution_id=identity.execution_id,
            )

        self._log(
            "submit", tx, identity, start, success=True,
            cost=confirmation.cost_used, tx_ref=tx_ref,
        )
        return confirmation

    async def execute(
        self,
        operation: Operation,
        params: ParamsLike,
        identity: ActingIdentity,
    ) -> Confirmation:
        """Estimate, then submit with the buffered budget."""
        estimate = await self.estimate_cost(operation, params, identity)
        budget = self.budget_for(estimate)
        logger.debug(f"{operation.method}: estimate={estimate} budget={budget}")
        return await self.submit(operation, params, identity, budget)

    async def _await_receipt(
        self,
        tx: TransactionRequest,
        tx_ref: str,
        identity: ActingIdentity,
    ) -> Dict[str, Any]:
        deadline = time.monotonic() + self._confirmation_timeout
        while True:
            receipt = await self._backend.receipt(tx_ref)
            if receipt is not None:
                return receipt
            if time.monotonic() >= deadline:
                raise GDTIConfirmationTimeoutError(
                    f"No confirmation for {tx_ref} after {self._confirmation_timeout}s",
                    tx_ref=tx_ref,
                    timeout_seconds=self._confirmation_timeout,
                    operation=tx.operation.value,
                    gdti_number=tx.gdti_number,
                    execution_id=identity.execution_id,
                )
            await asyncio.sleep(self._poll_interval)

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def read(self, gdti_number: str) -> DocumentRecord:
        """
        Current record for `gdti_number`, as of the latest confirmed transition.

        Raises:
            GDTINotFoundError if the ledger holds no such record.
        """
        descriptor = self._locator.current()
        try:
            raw = await self._backend.get_document(descriptor.address, gdti_number)
        except LedgerRpcError as e:
            code = classify_reason(e.reason)
            if code == ReasonCode.NOT_FOUND:
                raise GDTINotFoundError(
                    f"Document {gdti_number} not found",
                    gdti_number=gdti_number,
                    reason=e.reason,
                ) from e
            raise GDTILedgerError(
                f"Reading {gdti_number} failed: {e.reason}",
                reason=e.reason,
                reason_code=code.value,
                gdti_number=gdti_number,
            ) from e

        # Contracts return a zeroed struct for unknown keys
        if not raw or not raw.get("gdtiNumber"):
            raise GDTINotFoundError(f"Document {gdti_number} not found", gdti_number=gdti_number)

        return DocumentRecord.model_validate(raw)

    async def accounts(self) -> List[str]:
        return await self._backend.accounts()

    async def close(self) -> None:
        await self._backend.close()

    # -----------------------------------------------------------------------
    # Logging
    # -----------------------------------------------------------------------

    def _log(
        self,
        call: str,
        tx: TransactionRequest,
        identity: ActingIdentity,
        start: float,
        success: bool,
        cost: Optional[int] = None,
        tx_ref: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        duration_ms = (time.monotonic() - start) * 1000
        if not success:
            logger.warning(f"Ledger {call} failed for {tx.operation.method}({tx.gdti_number}): {error}")
        if self._log_queue is None:
            return
        self._log_queue.push(log_ledger_call(
            call=call,
            operation=tx.operation.value,
            success=success,
            duration_ms=duration_ms,
            gdti_number=tx.gdti_number,
            execution_id=identity.execution_id,
            account=identity.account,
            contract_address=tx.to,
            cost=cost,
            tx_ref=tx_ref,
            error=error,
        ))
