"""
GDTI Ledger — versioned documents on an append-only ledger.
Version: 1.0

Each GDTI (Global Trade Item Document Identifier) owns a version chain
CREATE → UPDATE* → DELETE recorded by a smart contract. Only SHA-256
fingerprints of document bytes are written to the ledger.

    from gdtiledger.documents import DocumentService, ContentSource
"""

__version__ = "1.0.0"
__all__ = ["engine", "ledger", "documents", "cli"]
