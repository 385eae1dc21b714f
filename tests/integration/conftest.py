"""
Integration test fixtures — full DocumentService stacks built from gdti.yaml.
Mark with @pytest.mark.integration to skip in unit-only runs.

Run: pytest tests/integration/ -v -m integration
"""

from __future__ import annotations

import pytest

from gdtiledger.documents.service import DocumentService
from gdtiledger.engine.config import load_platform_config
from gdtiledger.engine.logging import init_logging
from gdtiledger.ledger.memory import InMemoryLedger


# Custom marker for integration tests
def pytest_configure(config):
    config.addinivalue_line("markers", "integration: exercises the full document stack end to end")


@pytest.fixture
def integration_project(tmp_path):
    """Project tree with a gdti.yaml pointing the audit log into tmp_path."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "gdti.yaml").write_text(
        "platform:\n"
        "  name: IntegrationLedger\n"
        "  environment: staging\n"
        "ledger:\n"
        "  backend: memory\n"
        "  poll_interval: 0.01\n"
        "  confirmation_timeout: 5\n"
        "logging:\n"
        f"  directory: {(root / 'logs').as_posix()}\n"
        "  flush_interval_ms: 10\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def shared_ledger():
    """One ledger shared by several services, with latency so requests interleave."""
    return InMemoryLedger(latency=0.002)


@pytest.fixture
def service_factory(integration_project, shared_ledger):
    config = load_platform_config(str(integration_project / "gdti.yaml"))
    log_queue = init_logging(
        log_dir=config.logging.directory,
        flush_interval_ms=config.logging.flush_interval_ms,
    )

    def _make() -> DocumentService:
        return DocumentService.from_config(config, backend=shared_ledger, log_queue=log_queue)

    return _make
