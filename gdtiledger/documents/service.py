"""
GDTI Document Service — the four operations exposed by the core.

    create(gdti_number, document_type, member_id, content, metadata) → TransitionResult
    update(gdti_number, document_type, member_id, updated_by, content, previous_version_hash) → TransitionResult
    delete(gdti_number, deleted_by, deletion_reason, previous_version_hash) → TransitionResult
    get(gdti_number) → DocumentView

Transport-agnostic: an HTTP layer, the CLI or a job runner constructs a
ContentSource and sets the acting identity, then calls these methods. Requests
are independent; there is no per-GDTI locking here, the ledger serializes.

Acting identity resolution, first match wins:
    1. identity set in the current context (set_acting_identity)
    2. ledger.default_account from gdti.yaml
    3. first account reported by the ledger backend
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from gdtiledger.documents.chain import VersionChainManager
from gdtiledger.documents.fingerprint import DEFAULT_CHUNK_SIZE
from gdtiledger.documents.models import ContentSource, DocumentView, TransitionResult
from gdtiledger.documents.view import DocumentViewBuilder
from gdtiledger.engine.config import PlatformConfig, get_project_root
from gdtiledger.engine.context import ActingIdentity, get_acting_identity
from gdtiledger.engine.errors import GDTIConfigError
from gdtiledger.engine.logging import AsyncLogQueue, log_system_event
from gdtiledger.ledger.backends import JsonRpcLedgerBackend, LedgerBackend
from gdtiledger.ledger.client import LedgerClient
from gdtiledger.ledger.contract import ContractLocator, StaticContractLocator
from gdtiledger.ledger.memory import InMemoryLedger

logger = logging.getLogger("gdtiledger.documents.service")


class DocumentService:
    """Facade over the version-chain manager and the view builder."""

    def __init__(
        self,
        ledger: LedgerClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_upload_size_mb: int = 50,
        default_account: Optional[str] = None,
        log_queue: Optional[AsyncLogQueue] = None,
    ):
        self._ledger = ledger
        self._default_account = default_account
        self._chain = VersionChainManager(
            ledger,
            chunk_size=chunk_size,
            max_upload_size_mb=max_upload_size_mb,
            log_queue=log_queue,
        )
        self._views = DocumentViewBuilder(ledger)

    @classmethod
    def from_config(
        cls,
        config: PlatformConfig,
        backend: Optional[LedgerBackend] = None,
        log_queue: Optional[AsyncLogQueue] = None,
    ) -> "DocumentService":
        """Build the full stack described by gdti.yaml."""
        ledger_cfg = config.ledger

        if backend is None:
            if ledger_cfg.backend == "memory":
                backend = InMemoryLedger()
            else:
                backend = JsonRpcLedgerBackend(
                    ledger_cfg.rpc_url,
                    timeout=ledger_cfg.request_timeout,
                    max_connections=ledger_cfg.max_connections,
                )

        if isinstance(backend, InMemoryLedger):
            locator = StaticContractLocator(backend.address)
        else:
            descriptor_path = Path(ledger_cfg.contract_data_path)
            if not descriptor_path.is_absolute():
                descriptor_path = get_project_root() / descriptor_path
            locator = ContractLocator(str(descriptor_path))

        client = LedgerClient(
            backend,
            locator,
            cost_buffer=ledger_cfg.cost_buffer,
            cost_buffer_percent=ledger_cfg.cost_buffer_percent,
            confirmation_timeout=ledger_cfg.confirmation_timeout,
            poll_interval=ledger_cfg.poll_interval,
            log_queue=log_queue,
        )
        logger.info(f"Document service ready (backend={backend.name}, env={config.environment})")
        if log_queue is not None:
            log_queue.push(log_system_event("document_service_ready", details={
                "environment": config.environment,
                "backend": backend.name,
            }))
        return cls(
            client,
            chunk_size=config.documents.chunk_size,
            max_upload_size_mb=config.documents.max_upload_size_mb,
            default_account=ledger_cfg.default_account,
            log_queue=log_queue,
        )

    @property
    def ledger(self) -> LedgerClient:
        return self._ledger

    async def resolve_identity(self) -> ActingIdentity:
        identity = get_acting_identity()
        if identity is not None:
            return identity
        if self._default_account:
            return ActingIdentity(account=self._default_account)
        accounts = await self._ledger.accounts()
        if not accounts:
            raise GDTIConfigError(
                "No acting account: none set in context, no ledger.default_account, "
                "and the ledger reports no accounts"
            )
        return ActingIdentity(account=accounts[0])

    # -------------------------------------------------------------------
    # Exposed operations
    # -------------------------------------------------------------------

    async def create(
        self,
        gdti_number: str,
        document_type: str,
        member_id: str,
        content: Optional[ContentSource],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> TransitionResult:
        identity = await self.resolve_identity()
        return await self._chain.create(
            gdti_number, document_type, member_id, content, identity, metadata=metadata
        )

    async def update(
        self,
        gdti_number: str,
        document_type: str,
        member_id: str,
        updated_by: str,
        content: Optional[ContentSource],
        previous_version_hash: str,
    ) -> TransitionResult:
        identity = await self.resolve_identity()
        return await self._chain.update(
            gdti_number, document_type, member_id, updated_by, content,
            previous_version_hash, identity,
        )

    async def delete(
        self,
        gdti_number: str,
        deleted_by: str,
        deletion_reason: str,
        previous_version_hash: str,
    ) -> TransitionResult:
        identity = await self.resolve_identity()
        return await self._chain.delete(
            gdti_number, deleted_by, deletion_reason, previous_version_hash, identity
        )

    async def get(self, gdti_number: str) -> DocumentView:
        return await self._views.get(gdti_number)

    async def close(self) -> None:
        await self._ledger.close()

    async def __aenter__(self) -> "DocumentService":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
