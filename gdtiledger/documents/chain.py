"""
Version-Chain Manager — CREATE / UPDATE / DELETE state machine per GDTI.

States:
    Absent → Active(v=1) → Active(v=2) → … → Deleted (terminal)

The manager validates requests locally, fingerprints content, and hands a
transition to the LedgerClient. It does not check chain rules itself: the
contract enforces uniqueness, existence, the deleted flag and the
previousVersionHash token under serialized execution, and the manager passes
through whatever the ledger decides.

Outcome mapping:
    ledger ok                                     → TransitionResult(outcome=ok)
    duplicate / deleted / token mismatch          → TransitionResult(outcome=conflict)
    record does not exist (UPDATE/DELETE)         → GDTINotFoundError
    anything else                                 → original error, re-raised
Nothing is retried.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping, Optional

from gdtiledger.documents.fingerprint import DEFAULT_CHUNK_SIZE, compute_fingerprint
from gdtiledger.documents.models import ContentSource, DocumentMetadata, TransitionResult
from gdtiledger.engine.context import ActingIdentity
from gdtiledger.engine.errors import (
    GDTILedgerError,
    GDTIMissingContentError,
    GDTINotFoundError,
    GDTIValidationError,
)
from gdtiledger.engine.logging import AsyncLogQueue, log_transition
from gdtiledger.ledger.client import LedgerClient
from gdtiledger.ledger.models import CreateParams, DeleteParams, Operation, UpdateParams
from gdtiledger.ledger.reasons import ReasonCode, classify_reason, is_conflict

logger = logging.getLogger("gdtiledger.documents.chain")


class VersionChainManager:
    """Orchestrates one version-chain transition per call."""

    def __init__(
        self,
        ledger: LedgerClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_upload_size_mb: int = 50,
        log_queue: Optional[AsyncLogQueue] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._ledger = ledger
        self._chunk_size = chunk_size
        self._max_upload_size_mb = max_upload_size_mb
        self._log_queue = log_queue
        self._clock = clock

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------

    async def create(
        self,
        gdti_number: str,
        document_type: str,
        member_id: str,
        content: Optional[ContentSource],
        identity: ActingIdentity,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> TransitionResult:
        """
        Absent → Active(v=1).

        Provenance metadata is generated from the content source; keys in
        `metadata` are merged on top. A GDTI that was ever used, including a
        deleted one, yields a conflict.
        """
        self._require(
            Operation.CREATE,
            identity,
            gdti_number=gdti_number,
            document_type=document_type,
            member_id=member_id,
        )
        content_hash = self._fingerprint(Operation.CREATE, gdti_number, content, identity)
        blob = DocumentMetadata.from_content(content, clock=self._clock).to_blob(metadata)

        params = CreateParams(
            gdti_number=gdti_number,
            document_type=document_type,
            content_hash=content_hash,
            member_id=member_id,
            metadata=blob,
        )
        return await self._run(Operation.CREATE, params, identity, content_hash, default_version=1)

    async def update(
        self,
        gdti_number: str,
        document_type: str,
        member_id: str,
        updated_by: str,
        content: Optional[ContentSource],
        previous_version_hash: str,
        identity: ActingIdentity,
    ) -> TransitionResult:
        """
        Active(v=n) → Active(v=n+1).

        New content is mandatory; there is no metadata-only or type-only update.
        Metadata written at CREATE is left untouched.
        """
        if content is None:
            raise GDTIMissingContentError(
                "New document content is required for update",
                operation=Operation.UPDATE.value,
                gdti_number=gdti_number,
                execution_id=identity.execution_id,
                validation_errors=[{"field": "content", "error": "required"}],
            )
        self._require(
            Operation.UPDATE,
            identity,
            gdti_number=gdti_number,
            document_type=document_type,
            member_id=member_id,
            updated_by=updated_by,
            previous_version_hash=previous_version_hash,
        )
        content_hash = self._fingerprint(Operation.UPDATE, gdti_number, content, identity)

        params = UpdateParams(
            gdti_number=gdti_number,
            document_type=document_type,
            content_hash=content_hash,
            member_id=member_id,
            updated_by=updated_by,
            previous_version_hash=previous_version_hash,
        )
        return await self._run(Operation.UPDATE, params, identity, content_hash)

    async def delete(
        self,
        gdti_number: str,
        deleted_by: str,
        deletion_reason: str,
        previous_version_hash: str,
        identity: ActingIdentity,
    ) -> TransitionResult:
        """Active(v=n) → Deleted. A second delete is a conflict, never a silent success."""
        self._require(
            Operation.DELETE,
            identity,
            gdti_number=gdti_number,
            deleted_by=deleted_by,
            deletion_reason=deletion_reason,
            previous_version_hash=previous_version_hash,
        )
        params = DeleteParams(
            gdti_number=gdti_number,
            deleted_by=deleted_by,
            deletion_reason=deletion_reason,
            previous_version_hash=previous_version_hash,
        )
        return await self._run(Operation.DELETE, params, identity, None)

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------

    async def _run(
        self,
        operation: Operation,
        params,
        identity: ActingIdentity,
        content_hash: Optional[str],
        default_version: Optional[int] = None,
    ) -> TransitionResult:
        gdti_number = params.gdti_number
        start = time.monotonic()

        try:
            confirmation = await self._ledger.execute(operation, params, identity)
        except GDTILedgerError as e:
            code = classify_reason(e.reason)
            if is_conflict(code):
                result = TransitionResult.conflict(
                    operation.value,
                    gdti_number,
                    reason=e.reason,
                    reason_code=code.value,
                    tx_ref=getattr(e, "tx_ref", None),
                )
                logger.info(f"{operation.value} {gdti_number}: conflict ({e.reason})")
                self._log(result, identity, start)
                return result
            self._log_failure(operation, gdti_number, identity, start, e.reason)
            if code == ReasonCode.NOT_FOUND:
                raise GDTINotFoundError(
                    f"Document {gdti_number} not found",
                    gdti_number=gdti_number,
                    operation=operation.value,
                    execution_id=identity.execution_id,
                    reason=e.reason,
                ) from e
            raise

        version = confirmation.event_version(operation.event)
        if version is None:
            version = default_version

        result = TransitionResult.ok(
            operation.value,
            gdti_number,
            version=version,
            content_hash=content_hash,
            tx_ref=confirmation.tx_ref,
        )
        logger.info(f"{operation.value} {gdti_number}: v{version} tx={confirmation.tx_ref}")
        self._log(result, identity, start)
        return result

    def _require(self, operation: Operation, identity: ActingIdentity, **fields: Optional[str]) -> None:
        """Reject missing or blank required fields before any ledger call."""
        missing = [
            name for name, value in fields.items()
            if value is None or not str(value).strip()
        ]
        if missing:
            raise GDTIValidationError(
                f"Missing required fields for {operation.value}: {', '.join(missing)}",
                operation=operation.value,
                gdti_number=fields.get("gdti_number"),
                execution_id=identity.execution_id,
                validation_errors=[{"field": name, "error": "required"} for name in missing],
            )

    def _fingerprint(
        self,
        operation: Operation,
        gdti_number: str,
        content: Optional[ContentSource],
        identity: ActingIdentity,
    ) -> str:
        if content is None:
            raise GDTIMissingContentError(
                f"Document content is required for {operation.value}",
                operation=operation.value,
                gdti_number=gdti_number,
                execution_id=identity.execution_id,
                validation_errors=[{"field": "content", "error": "required"}],
            )

        max_bytes = self._max_upload_size_mb * 1024 * 1024
        if content.size > max_bytes:
            raise GDTIValidationError(
                f"File size ({content.size / 1024 / 1024:.1f} MB) exceeds "
                f"limit ({self._max_upload_size_mb} MB)",
                operation=operation.value,
                gdti_number=gdti_number,
                execution_id=identity.execution_id,
                validation_errors=[{"field": "content", "error": "too_large"}],
            )

        return compute_fingerprint(
            content.stream,
            chunk_size=self._chunk_size,
            expected_size=content.size,
        )

    def _log(self, result: TransitionResult, identity: ActingIdentity, start: float) -> None:
        if self._log_queue is None:
            return
        self._log_queue.push(log_transition(
            operation=result.operation,
            gdti_number=result.gdti_number,
            outcome=result.outcome.value,
            execution_id=identity.execution_id,
            account=identity.account,
            version=result.version,
            tx_ref=result.tx_ref,
            content_hash=result.content_hash,
            duration_ms=(time.monotonic() - start) * 1000,
            reason=result.reason,
        ))

    def _log_failure(
        self,
        operation: Operation,
        gdti_number: str,
        identity: ActingIdentity,
        start: float,
        reason: str,
    ) -> None:
        if self._log_queue is None:
            return
        self._log_queue.push(log_transition(
            operation=operation.value,
            gdti_number=gdti_number,
            outcome="error",
            execution_id=identity.execution_id,
            account=identity.account,
            duration_ms=(time.monotonic() - start) * 1000,
            reason=reason,
        ))
