"""GDTI Ledger engine — errors, configuration, logging, acting identity."""
