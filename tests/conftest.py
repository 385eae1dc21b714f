"""
GDTI Ledger Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v

Unit tests run against InMemoryLedger; nothing here talks to a real ledger node.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gdtiledger.documents.models import ContentSource
from gdtiledger.documents.service import DocumentService
from gdtiledger.engine.context import ActingIdentity, clear_acting_identity
from gdtiledger.ledger.client import LedgerClient
from gdtiledger.ledger.contract import StaticContractLocator
from gdtiledger.ledger.memory import DEFAULT_ACCOUNTS, InMemoryLedger


@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset global singletons between tests."""
    import gdtiledger.engine.config as cfg_mod
    import gdtiledger.engine.logging as log_mod

    cfg_mod._platform_config = None
    clear_acting_identity()
    yield
    if log_mod._global_queue is not None:
        log_mod.shutdown_logging()
    clear_acting_identity()


@pytest.fixture
def memory_ledger():
    """A fresh in-memory ledger with a fixed clock."""
    return InMemoryLedger(clock=lambda: 1_700_000_000.0)


@pytest.fixture
def ledger_client(memory_ledger):
    return LedgerClient(
        memory_ledger,
        StaticContractLocator(memory_ledger.address),
        poll_interval=0.01,
        confirmation_timeout=1.0,
    )


@pytest.fixture
def identity():
    return ActingIdentity(account=DEFAULT_ACCOUNTS[0], display_name="test-runner")


@pytest.fixture
def service(ledger_client):
    return DocumentService(ledger_client)


@pytest.fixture
def make_content():
    """Factory for in-memory content sources."""

    def _make(data: bytes = b"hello", name: str = "doc.pdf", mime_type: str = "") -> ContentSource:
        return ContentSource.from_bytes(data, name, mime_type=mime_type)

    return _make


@pytest.fixture
def project_root(tmp_path):
    """
    Minimal project tree: gdti.yaml plus a contract descriptor.
    Returns the root Path.
    """
    root = tmp_path / "project"
    root.mkdir()

    (root / "gdti.yaml").write_text(
        "platform:\n"
        "  name: TestLedger\n"
        "  environment: dev\n"
        "ledger:\n"
        "  backend: memory\n"
        "  cost_buffer: 50000\n"
        "documents:\n"
        "  chunk_size: 4096\n"
        "  max_upload_size_mb: 5\n"
        "logging:\n"
        "  level: WARNING\n"
        f"  directory: {(root / 'logs').as_posix()}\n",
        encoding="utf-8",
    )

    utils = root / "utils"
    utils.mkdir()
    (utils / "contractData.json").write_text(
        json.dumps({"address": "0x5fbdb2315678afecb367f032d93f642f64180aa3", "abi": []}),
        encoding="utf-8",
    )
    return root


@pytest.fixture
def sample_file(tmp_path) -> Path:
    path = tmp_path / "invoice.pdf"
    path.write_bytes(b"%PDF-1.4 sample invoice body\n")
    return path
