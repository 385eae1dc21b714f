"""Unit tests for gdtiledger.documents.chain — the version-chain state machine."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from gdtiledger.documents.chain import VersionChainManager
from gdtiledger.documents.fingerprint import fingerprint_bytes
from gdtiledger.documents.models import ContentSource, Outcome
from gdtiledger.engine.errors import (
    ContentReadError,
    GDTIConflictError,
    GDTIMissingContentError,
    GDTINotFoundError,
    GDTISubmissionError,
    GDTITransportError,
    GDTIValidationError,
)
from gdtiledger.engine.logging import AsyncLogQueue, FileLogger
from gdtiledger.ledger.client import LedgerClient
from gdtiledger.ledger.contract import StaticContractLocator
from gdtiledger.ledger.memory import InMemoryLedger


@pytest.fixture
def chain(ledger_client):
    return VersionChainManager(ledger_client, clock=lambda: 1_700_000_000.5)


async def _create(chain, identity, make_content, gdti="GDTI-1", data=b"v1", **kwargs):
    return await chain.create(gdti, "invoice", "M-1", make_content(data), identity, **kwargs)


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_ok(self, chain, identity, make_content, memory_ledger):
        result = await _create(chain, identity, make_content)
        assert result.outcome == Outcome.OK
        assert result.version == 1
        assert result.content_hash == fingerprint_bytes(b"v1")
        assert result.tx_ref == memory_ledger.last_transition("GDTI-1")

    @pytest.mark.asyncio
    async def test_create_writes_provenance(self, chain, identity, make_content, ledger_client):
        await _create(chain, identity, make_content, metadata={"source": "upload-api"})
        record = await ledger_client.read("GDTI-1")
        assert json.loads(record.metadata) == {
            "originalFileName": "doc.pdf",
            "fileSize": 2,
            "mimeType": "application/pdf",
            "uploadTimestamp": 1_700_000_000_500,
            "source": "upload-api",
        }

    @pytest.mark.asyncio
    async def test_duplicate_is_conflict(self, chain, identity, make_content, ledger_client):
        await _create(chain, identity, make_content)
        result = await _create(chain, identity, make_content, data=b"other")
        assert result.is_conflict
        assert result.reason_code == "duplicate"
        assert "GDTI already exists" in result.reason
        assert (await ledger_client.read("GDTI-1")).content_hash == fingerprint_bytes(b"v1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["gdti_number", "document_type", "member_id"])
    async def test_missing_fields(self, chain, identity, make_content, field):
        args = {"gdti_number": "GDTI-1", "document_type": "invoice", "member_id": "M-1"}
        args[field] = "  "
        with pytest.raises(GDTIValidationError) as exc:
            await chain.create(
                args["gdti_number"], args["document_type"], args["member_id"],
                make_content(), identity,
            )
        assert exc.value.validation_errors == [{"field": field, "error": "required"}]

    @pytest.mark.asyncio
    async def test_missing_content(self, chain, identity):
        with pytest.raises(GDTIMissingContentError):
            await chain.create("GDTI-1", "invoice", "M-1", None, identity)

    @pytest.mark.asyncio
    async def test_too_large(self, ledger_client, identity, make_content):
        chain = VersionChainManager(ledger_client, max_upload_size_mb=1)
        with pytest.raises(GDTIValidationError) as exc:
            await chain.create("GDTI-1", "invoice", "M-1", make_content(b"x" * (1024 * 1024 + 1)), identity)
        assert exc.value.validation_errors[0]["error"] == "too_large"

    @pytest.mark.asyncio
    async def test_short_stream(self, chain, identity, memory_ledger):
        content = ContentSource.from_bytes(b"abc", "a.txt")
        content.size = 10
        with pytest.raises(ContentReadError):
            await chain.create("GDTI-1", "invoice", "M-1", content, identity)
        assert memory_ledger.history("GDTI-1") == []


class TestUpdate:

    @pytest.mark.asyncio
    async def test_update_ok(self, chain, identity, make_content, ledger_client):
        created = await _create(chain, identity, make_content)
        result = await chain.update(
            "GDTI-1", "invoice", "M-2", "alice", make_content(b"v2"), created.tx_ref, identity,
        )
        assert result.is_ok
        assert result.version == 2
        assert result.content_hash == fingerprint_bytes(b"v2")

        record = await ledger_client.read("GDTI-1")
        assert record.previous_version_hash == created.tx_ref
        assert record.updated_by == "alice"
        assert record.member_id == "M-2"

    @pytest.mark.asyncio
    async def test_update_keeps_metadata(self, chain, identity, make_content, ledger_client):
        created = await _create(chain, identity, make_content)
        before = (await ledger_client.read("GDTI-1")).metadata
        await chain.update(
            "GDTI-1", "invoice", "M-1", "alice", make_content(b"v2", name="new.docx"),
            created.tx_ref, identity,
        )
        assert (await ledger_client.read("GDTI-1")).metadata == before

    @pytest.mark.asyncio
    async def test_stale_token_is_conflict(self, chain, identity, make_content, ledger_client, memory_ledger):
        created = await _create(chain, identity, make_content)
        updated = await chain.update(
            "GDTI-1", "invoice", "M-1", "alice", make_content(b"v2"), created.tx_ref, identity,
        )
        result = await chain.update(
            "GDTI-1", "invoice", "M-1", "bob", make_content(b"v3"), created.tx_ref, identity,
        )
        assert result.is_conflict
        assert result.reason_code == "token_mismatch"

        record = await ledger_client.read("GDTI-1")
        assert record.version == 2
        assert record.content_hash == fingerprint_bytes(b"v2")
        assert record.updated_by == "alice"
        assert memory_ledger.last_transition("GDTI-1") == updated.tx_ref

    @pytest.mark.asyncio
    async def test_missing_content_checked_first(self, chain, identity):
        with pytest.raises(GDTIMissingContentError):
            await chain.update("", "", "", "", None, "", identity)

    @pytest.mark.asyncio
    async def test_update_absent(self, chain, identity, make_content):
        with pytest.raises(GDTINotFoundError):
            await chain.update("GDTI-404", "invoice", "M-1", "alice", make_content(), "0xnone", identity)

    @pytest.mark.asyncio
    async def test_update_deleted_is_conflict(self, chain, identity, make_content):
        created = await _create(chain, identity, make_content)
        deleted = await chain.delete("GDTI-1", "bob", "expired", created.tx_ref, identity)
        result = await chain.update(
            "GDTI-1", "invoice", "M-1", "alice", make_content(b"v2"), deleted.tx_ref, identity,
        )
        assert result.is_conflict
        assert result.reason_code == "deleted"


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_ok(self, chain, identity, make_content, ledger_client):
        created = await _create(chain, identity, make_content)
        result = await chain.delete("GDTI-1", "bob", "expired", created.tx_ref, identity)
        assert result.is_ok
        assert result.version == 1
        assert result.content_hash is None

        record = await ledger_client.read("GDTI-1")
        assert record.is_deleted
        assert record.deleted_by == "bob"

    @pytest.mark.asyncio
    async def test_delete_twice_is_conflict(self, chain, identity, make_content, ledger_client, memory_ledger):
        created = await _create(chain, identity, make_content)
        deleted = await chain.delete("GDTI-1", "bob", "expired", created.tx_ref, identity)
        result = await chain.delete("GDTI-1", "bob", "again", deleted.tx_ref, identity)
        assert result.is_conflict
        with pytest.raises(GDTIConflictError):
            result.unwrap()

        record = await ledger_client.read("GDTI-1")
        assert record.version == 1
        assert record.content_hash == fingerprint_bytes(b"v1")
        assert record.deletion_reason == "expired"
        assert memory_ledger.last_transition("GDTI-1") == deleted.tx_ref

    @pytest.mark.asyncio
    async def test_recreate_after_delete_is_conflict(self, chain, identity, make_content):
        created = await _create(chain, identity, make_content)
        await chain.delete("GDTI-1", "bob", "expired", created.tx_ref, identity)
        result = await _create(chain, identity, make_content, data=b"reborn")
        assert result.is_conflict
        assert result.reason_code == "duplicate"

    @pytest.mark.asyncio
    async def test_delete_requires_reason(self, chain, identity):
        with pytest.raises(GDTIValidationError):
            await chain.delete("GDTI-1", "bob", "", "0xt", identity)


class TestFailures:

    @pytest.mark.asyncio
    async def test_out_of_gas_propagates(self, memory_ledger, identity, make_content):
        client = LedgerClient(memory_ledger, StaticContractLocator(memory_ledger.address), poll_interval=0.01)
        client.budget_for = lambda estimate: 1
        chain = VersionChainManager(client)
        with pytest.raises(GDTISubmissionError) as exc:
            await chain.create("GDTI-1", "invoice", "M-1", make_content(), identity)
        assert exc.value.reason_code == "out_of_gas"

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, ledger_client, identity, make_content):
        ledger_client.execute = AsyncMock(side_effect=GDTITransportError("down"))
        chain = VersionChainManager(ledger_client)
        with pytest.raises(GDTITransportError):
            await chain.create("GDTI-1", "invoice", "M-1", make_content(), identity)


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_racing_updates_one_wins(self, identity, make_content):
        ledger = InMemoryLedger(latency=0.001)
        client = LedgerClient(ledger, StaticContractLocator(ledger.address), poll_interval=0.001)
        chain = VersionChainManager(client)

        created = await chain.create("GDTI-1", "invoice", "M-1", make_content(b"v1"), identity)
        results = await asyncio.gather(
            chain.update("GDTI-1", "invoice", "M-1", "alice", make_content(b"a"), created.tx_ref, identity),
            chain.update("GDTI-1", "invoice", "M-1", "bob", make_content(b"b"), created.tx_ref, identity),
        )

        assert sorted(r.outcome.value for r in results) == ["conflict", "ok"]
        winner = next(r for r in results if r.is_ok)
        assert winner.version == 2
        assert ledger.last_transition("GDTI-1") == winner.tx_ref
        assert len(ledger.history("GDTI-1")) == 2


class TestTransitionLogging:

    @pytest.mark.asyncio
    async def test_outcomes_logged(self, ledger_client, identity, make_content, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path))
        queue = AsyncLogQueue(file_logger)
        chain = VersionChainManager(ledger_client, log_queue=queue)

        await chain.create("GDTI-1", "invoice", "M-1", make_content(), identity)
        await chain.create("GDTI-1", "invoice", "M-1", make_content(), identity)
        with pytest.raises(GDTINotFoundError):
            await chain.delete("GDTI-404", "bob", "expired", "0xnone", identity)
        queue.stop()

        entries = file_logger.read_today("documents", "execution")
        assert [(e["event"], e["outcome"], e["level"]) for e in entries] == [
            ("document_create", "ok", "INFO"),
            ("document_create", "conflict", "WARNING"),
            ("document_delete", "error", "ERROR"),
        ]
        assert entries[0]["version"] == 1
        assert entries[0]["account"] == identity.account
