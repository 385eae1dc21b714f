"""
GDTI Document version chains.

Content fingerprints, the CREATE/UPDATE/DELETE state machine, and the read-side view.
Only fingerprints reach the ledger; document bytes never do.
"""

from gdtiledger.documents.chain import VersionChainManager
from gdtiledger.documents.models import (
    ContentSource,
    DocumentMetadata,
    DocumentView,
    Outcome,
    TransitionResult,
)
from gdtiledger.documents.service import DocumentService
from gdtiledger.documents.view import DocumentViewBuilder

__all__ = [
    "ContentSource",
    "DocumentMetadata",
    "DocumentService",
    "DocumentView",
    "DocumentViewBuilder",
    "Outcome",
    "TransitionResult",
    "VersionChainManager",
]
