"""
Ledger backends — the transport-level port the LedgerClient talks to.

LedgerBackend is the seam between the version-chain core and whatever actually
executes contract calls. JsonRpcLedgerBackend speaks JSON-RPC 2.0 to a ledger
gateway over a pooled httpx.AsyncClient:

    ledger_accounts                  []                       → [account, ...]
    ledger_estimateCost              [tx]                     → cost
    ledger_sendTransaction           [tx, gasLimit]           → txRef
    ledger_getTransactionReceipt     [txRef]                  → receipt | null
    ledger_getDocument               [contractAddress, gdti]  → record | null

Contract-level rejections come back as JSON-RPC error objects and are raised as
LedgerRpcError with the node's message intact. Anything that prevents talking to
the gateway at all is a GDTITransportError, and so are JSON-RPC protocol errors
(unknown method, bad params) since those say nothing about the document.
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from gdtiledger.engine.errors import GDTITransportError
from gdtiledger.ledger.models import TransactionRequest, to_int

logger = logging.getLogger("gdtiledger.ledger.backends")

# JSON-RPC 2.0 protocol errors: the gateway could not run the call at all
PROTOCOL_ERROR_CODES = frozenset({-32700, -32600, -32601, -32602})


class LedgerRpcError(Exception):
    """The ledger answered, and the answer was a rejection."""

    def __init__(self, reason: str, code: Optional[int] = None, data: Any = None):
        self.reason = reason
        self.code = code
        self.data = data
        super().__init__(reason)


class LedgerBackend(ABC):
    """Async port to the append-only ledger."""

    name: str = "ledger"

    @abstractmethod
    async def accounts(self) -> List[str]:
        ...

    @abstractmethod
    async def estimate(self, tx: TransactionRequest) -> int:
        """Dry-run `tx` against current state and return its cost."""

    @abstractmethod
    async def send(self, tx: TransactionRequest, gas_limit: int) -> str:
        """Submit `tx` for execution and return its transaction reference."""

    @abstractmethod
    async def receipt(self, tx_ref: str) -> Optional[Dict[str, Any]]:
        """Receipt for a confirmed transaction, None while still pending."""

    @abstractmethod
    async def get_document(self, contract_address: str, gdti_number: str) -> Optional[Dict[str, Any]]:
        ...

    async def close(self) -> None:
        return None


class JsonRpcLedgerBackend(LedgerBackend):
    """JSON-RPC 2.0 backend over a single pooled httpx.AsyncClient."""

    name = "jsonrpc"

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        max_connections: int = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._max_connections = max_connections
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            limits = httpx.Limits(
                max_connections=self._max_connections,
                max_keepalive_connections=self._max_connections,
            )
            self._client = httpx.AsyncClient(
                limits=limits,
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                transport=self._transport,
            )
            logger.info(f"Created httpx client for ledger gateway {self._rpc_url}")
        return self._client

    async def _call(self, method: str, params: List[Any]) -> Any:
        request_id = next(self._ids)
        body = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
        client = self._get_client()

        try:
            response = await client.post(self._rpc_url, json=body)
        except httpx.TimeoutException as e:
            raise GDTITransportError(
                f"Ledger gateway timed out on {method}: {e}",
                endpoint=self._rpc_url,
            ) from e
        except httpx.HTTPError as e:
            raise GDTITransportError(
                f"Ledger gateway unreachable on {method}: {e}",
                endpoint=self._rpc_url,
            ) from e

        if response.status_code >= 400:
            raise GDTITransportError(
                f"Ledger gateway returned HTTP {response.status_code} on {method}",
                endpoint=self._rpc_url,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise GDTITransportError(
                f"Ledger gateway returned invalid JSON on {method}",
                endpoint=self._rpc_url,
                status_code=response.status_code,
            ) from e

        error = payload.get("error") if isinstance(payload, dict) else None
        if error:
            if isinstance(error, dict) and error.get("code") in PROTOCOL_ERROR_CODES:
                raise GDTITransportError(
                    f"Ledger gateway cannot serve {method}: {error.get('message')}",
                    endpoint=self._rpc_url,
                    method=method,
                    rpc_code=error["code"],
                )
            if isinstance(error, dict):
                raise LedgerRpcError(
                    str(error.get("message", "unknown ledger error")),
                    code=error.get("code"),
                    data=error.get("data"),
                )
            raise LedgerRpcError(str(error))

        return payload.get("result") if isinstance(payload, dict) else None

    async def accounts(self) -> List[str]:
        result = await self._call("ledger_accounts", [])
        return list(result or [])

    async def estimate(self, tx: TransactionRequest) -> int:
        return to_int(await self._call("ledger_estimateCost", [tx.to_rpc()]))

    async def send(self, tx: TransactionRequest, gas_limit: int) -> str:
        result = await self._call("ledger_sendTransaction", [tx.to_rpc(), gas_limit])
        if not result:
            raise LedgerRpcError("Ledger accepted the transaction but returned no reference")
        return str(result)

    async def receipt(self, tx_ref: str) -> Optional[Dict[str, Any]]:
        return await self._call("ledger_getTransactionReceipt", [tx_ref])

    async def get_document(self, contract_address: str, gdti_number: str) -> Optional[Dict[str, Any]]:
        return await self._call("ledger_getDocument", [contract_address, gdti_number])

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info(f"Closed httpx client for ledger gateway {self._rpc_url}")
