"""
GDTI Ledger — client and backends for the append-only DocumentStore contract.
"""

from gdtiledger.ledger.backends import JsonRpcLedgerBackend, LedgerBackend, LedgerRpcError
from gdtiledger.ledger.client import LedgerClient
from gdtiledger.ledger.contract import ContractDescriptor, ContractLocator, StaticContractLocator
from gdtiledger.ledger.memory import InMemoryLedger
from gdtiledger.ledger.models import (
    Confirmation,
    CreateParams,
    DeleteParams,
    DocumentRecord,
    Operation,
    TransactionRequest,
    UpdateParams,
)

__all__ = [
    "Confirmation",
    "ContractDescriptor",
    "ContractLocator",
    "CreateParams",
    "DeleteParams",
    "DocumentRecord",
    "InMemoryLedger",
    "JsonRpcLedgerBackend",
    "LedgerBackend",
    "LedgerClient",
    "LedgerRpcError",
    "Operation",
    "StaticContractLocator",
    "TransactionRequest",
    "UpdateParams",
]
