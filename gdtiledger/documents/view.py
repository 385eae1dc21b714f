"""
Document View Builder — the read side of the version chain.

Fetches the current record from the ledger and normalizes it: numbers as ints,
timestamps as epoch seconds, flags as bools, metadata parsed from its JSON blob.
A deleted record is still a complete view (is_deleted=True); only a GDTI the
ledger has never seen raises GDTINotFoundError.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from gdtiledger.documents.models import DocumentView
from gdtiledger.engine.errors import GDTIValidationError
from gdtiledger.ledger.client import LedgerClient
from gdtiledger.ledger.models import DocumentRecord

logger = logging.getLogger("gdtiledger.documents.view")


class DocumentViewBuilder:

    def __init__(self, ledger: LedgerClient):
        self._ledger = ledger

    async def get(self, gdti_number: str) -> DocumentView:
        if not gdti_number or not gdti_number.strip():
            raise GDTIValidationError(
                "gdti_number is required",
                operation="get",
                validation_errors=[{"field": "gdti_number", "error": "required"}],
            )
        record = await self._ledger.read(gdti_number)
        return self.build(record)

    @staticmethod
    def build(record: DocumentRecord) -> DocumentView:
        return DocumentView(
            gdti_number=record.gdti_number,
            document_type=record.document_type,
            content_hash=record.content_hash,
            member_id=record.member_id,
            created_at=record.created_at,
            updated_at=record.updated_at,
            version=record.version,
            metadata=_parse_metadata(record.gdti_number, record.metadata),
            is_deleted=record.is_deleted,
            previous_version_hash=record.previous_version_hash,
            updated_by=record.updated_by,
            deleted_by=record.deleted_by,
            deletion_reason=record.deletion_reason,
        )


def _parse_metadata(gdti_number: str, blob: str) -> Dict[str, Any]:
    if not blob:
        return {}
    try:
        parsed = json.loads(blob)
    except json.JSONDecodeError:
        logger.warning(f"Metadata for {gdti_number} is not JSON; keeping raw text")
        return {"raw": blob}
    if not isinstance(parsed, dict):
        return {"raw": blob}
    return parsed
