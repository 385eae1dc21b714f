"""Unit tests for gdtiledger.ledger.client — estimate, submit, execute, read."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from gdtiledger.engine.errors import (
    GDTIConfigError,
    GDTIConfirmationTimeoutError,
    GDTICostEstimationError,
    GDTILedgerError,
    GDTINotFoundError,
    GDTISubmissionError,
    GDTITransportError,
    GDTIValidationError,
)
from gdtiledger.engine.logging import AsyncLogQueue, FileLogger
from gdtiledger.ledger.backends import JsonRpcLedgerBackend, LedgerRpcError
from gdtiledger.ledger.client import LedgerClient
from gdtiledger.ledger.contract import ContractLocator, StaticContractLocator
from gdtiledger.ledger.memory import InMemoryLedger
from gdtiledger.ledger.models import CreateParams, Operation


def _create_params(gdti="GDTI-1"):
    return {
        "gdtiNumber": gdti,
        "documentType": "invoice",
        "contentHash": "a" * 64,
        "memberId": "M-1",
        "metadata": "",
    }


class TestBuildTransaction:

    def test_builds_against_current_descriptor(self, ledger_client, identity, memory_ledger):
        tx = ledger_client.build_transaction(Operation.CREATE, _create_params(), identity)
        assert tx.to == memory_ledger.address
        assert tx.sender == identity.account
        assert tx.payload["gdtiNumber"] == "GDTI-1"

    def test_accepts_params_model(self, ledger_client, identity):
        params = CreateParams(
            gdti_number="GDTI-1", document_type="invoice", content_hash="a" * 64, member_id="M-1",
        )
        tx = ledger_client.build_transaction(Operation.CREATE, params, identity)
        assert tx.payload == params.payload()

    def test_invalid_params(self, ledger_client, identity):
        with pytest.raises(GDTIValidationError):
            ledger_client.build_transaction(Operation.UPDATE, {"gdtiNumber": "GDTI-1"}, identity)

    def test_method_missing_from_abi(self, memory_ledger, identity):
        locator = StaticContractLocator(
            memory_ledger.address, abi=[{"type": "function", "name": "createDocument"}],
        )
        client = LedgerClient(memory_ledger, locator)
        with pytest.raises(GDTIConfigError, match="updateDocument"):
            client.build_transaction(
                Operation.UPDATE,
                {
                    "gdtiNumber": "GDTI-1", "documentType": "invoice", "contentHash": "a" * 64,
                    "memberId": "M-1", "updatedBy": "alice", "previousVersionHash": "0xt",
                },
                identity,
            )

    def test_redeploy_picks_up_new_address(self, tmp_path, memory_ledger, identity):
        path = tmp_path / "contractData.json"
        path.write_text(json.dumps({"address": "0xold"}), encoding="utf-8")
        client = LedgerClient(memory_ledger, ContractLocator(str(path)))
        assert client.build_transaction(Operation.CREATE, _create_params(), identity).to == "0xold"

        path.write_text(json.dumps({"address": "0xnew"}), encoding="utf-8")
        assert client.build_transaction(Operation.CREATE, _create_params(), identity).to == "0xnew"


class TestBudget:

    def test_fixed_buffer(self, memory_ledger):
        client = LedgerClient(memory_ledger, StaticContractLocator(memory_ledger.address))
        assert client.budget_for(100000) == 150000

    def test_percent_buffer(self, memory_ledger):
        client = LedgerClient(
            memory_ledger, StaticContractLocator(memory_ledger.address),
            cost_buffer=1000, cost_buffer_percent=10,
        )
        assert client.budget_for(100001) == 100001 + 1000 + 10001


class TestEstimateAndExecute:

    @pytest.mark.asyncio
    async def test_estimate(self, ledger_client, identity):
        cost = await ledger_client.estimate_cost(Operation.CREATE, _create_params(), identity)
        tx = ledger_client.build_transaction(Operation.CREATE, _create_params(), identity)
        assert cost == InMemoryLedger.execution_cost(tx)

    @pytest.mark.asyncio
    async def test_execute_create(self, ledger_client, identity, memory_ledger):
        confirmation = await ledger_client.execute(Operation.CREATE, _create_params(), identity)
        assert confirmation.status is True
        assert confirmation.tx_ref == memory_ledger.last_transition("GDTI-1")
        assert confirmation.event_version("DocumentCreated") == 1

    @pytest.mark.asyncio
    async def test_estimate_rejection_carries_reason(self, ledger_client, identity):
        await ledger_client.execute(Operation.CREATE, _create_params(), identity)
        with pytest.raises(GDTICostEstimationError) as exc:
            await ledger_client.estimate_cost(Operation.CREATE, _create_params(), identity)
        assert "GDTI already exists" in exc.value.reason
        assert exc.value.reason_code == "duplicate"
        assert exc.value.gdti_number == "GDTI-1"
        assert exc.value.execution_id == identity.execution_id

    @pytest.mark.asyncio
    async def test_submit_under_budget_reverts(self, ledger_client, identity):
        with pytest.raises(GDTISubmissionError) as exc:
            await ledger_client.submit(Operation.CREATE, _create_params(), identity, cost_budget=1)
        assert exc.value.reason == "Out of gas"
        assert exc.value.reason_code == "out_of_gas"
        assert exc.value.tx_ref.startswith("0x")

    @pytest.mark.asyncio
    async def test_send_rejection(self, memory_ledger, identity):
        memory_ledger.send = AsyncMock(side_effect=LedgerRpcError("nonce too low", code=-32000))
        client = LedgerClient(memory_ledger, StaticContractLocator(memory_ledger.address))
        with pytest.raises(GDTISubmissionError) as exc:
            await client.submit(Operation.CREATE, _create_params(), identity, cost_budget=10**7)
        assert exc.value.reason == "nonce too low"
        assert exc.value.reason_code == "unknown"

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self, memory_ledger, identity):
        memory_ledger.receipt = AsyncMock(return_value=None)
        client = LedgerClient(
            memory_ledger, StaticContractLocator(memory_ledger.address),
            confirmation_timeout=0.05, poll_interval=0.01,
        )
        with pytest.raises(GDTIConfirmationTimeoutError) as exc:
            await client.execute(Operation.CREATE, _create_params(), identity)
        assert exc.value.tx_ref.startswith("0x")
        assert exc.value.timeout_seconds == 0.05

    @pytest.mark.asyncio
    async def test_ledger_calls_logged(self, memory_ledger, identity, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path))
        queue = AsyncLogQueue(file_logger)
        client = LedgerClient(memory_ledger, StaticContractLocator(memory_ledger.address), log_queue=queue)

        await client.execute(Operation.CREATE, _create_params(), identity)
        queue.stop()

        entries = file_logger.read_today("ledger", "execution")
        assert [e["event"] for e in entries] == ["ledger_estimate", "ledger_submit"]
        assert all(e["success"] for e in entries)
        assert entries[1]["tx_ref"] == memory_ledger.last_transition("GDTI-1")


class TestRead:

    @pytest.mark.asyncio
    async def test_read_record(self, ledger_client, identity):
        await ledger_client.execute(Operation.CREATE, _create_params(), identity)
        record = await ledger_client.read("GDTI-1")
        assert record.gdti_number == "GDTI-1"
        assert record.version == 1

    @pytest.mark.asyncio
    async def test_read_missing(self, ledger_client):
        with pytest.raises(GDTINotFoundError):
            await ledger_client.read("GDTI-404")

    @pytest.mark.asyncio
    async def test_read_zeroed_struct(self, memory_ledger, ledger_client):
        memory_ledger.get_document = AsyncMock(return_value={"gdtiNumber": "", "version": 0})
        with pytest.raises(GDTINotFoundError):
            await ledger_client.read("GDTI-404")

    @pytest.mark.asyncio
    async def test_read_not_found_rpc_error(self, memory_ledger, ledger_client):
        memory_ledger.get_document = AsyncMock(
            side_effect=LedgerRpcError("execution reverted: Document does not exist"),
        )
        with pytest.raises(GDTINotFoundError):
            await ledger_client.read("GDTI-404")

    @pytest.mark.asyncio
    async def test_read_other_rpc_error(self, memory_ledger, ledger_client):
        memory_ledger.get_document = AsyncMock(side_effect=LedgerRpcError("missing trie node"))
        with pytest.raises(GDTILedgerError):
            await ledger_client.read("GDTI-1")


class TestGatewayProtocolErrors:
    """A gateway that cannot run a method says nothing about the document."""

    @staticmethod
    def _client():
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "jsonrpc": "2.0", "id": body["id"],
                "error": {"code": -32601, "message": "Method not found"},
            })

        backend = JsonRpcLedgerBackend("http://ledger.test/rpc", transport=httpx.MockTransport(handler))
        return LedgerClient(backend, StaticContractLocator("0xcontract"))

    @pytest.mark.asyncio
    async def test_read_unsupported_method(self):
        client = self._client()
        with pytest.raises(GDTITransportError) as exc:
            await client.read("GDTI-1")
        assert not isinstance(exc.value, GDTINotFoundError)
        await client.close()

    @pytest.mark.asyncio
    async def test_estimate_unsupported_method(self, identity):
        client = self._client()
        with pytest.raises(GDTITransportError):
            await client.estimate_cost(Operation.CREATE, _create_params(), identity)
        await client.close()
