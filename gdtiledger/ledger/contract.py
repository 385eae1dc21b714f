"""
Contract descriptor lookup.

The deployment tooling writes `{"address": ..., "abi": [...]}` to a JSON file each
time the DocumentStore contract is (re)deployed. ContractLocator re-reads that
file on every call so a redeployment takes effect without restarting anything.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from gdtiledger.engine.errors import GDTIConfigError


class ContractDescriptor(BaseModel):
    """Address and ABI of the deployed DocumentStore contract."""

    address: str
    abi: List[Dict[str, Any]] = Field(default_factory=list)
    network: Optional[str] = None

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("contract address must not be empty")
        return v.strip()

    def has_method(self, name: str) -> bool:
        """True if the ABI declares `name`. An empty ABI accepts every method."""
        if not self.abi:
            return True
        return any(
            entry.get("name") == name and entry.get("type", "function") == "function"
            for entry in self.abi
        )


class ContractLocator:
    """Resolves the current contract descriptor from its JSON file, on every call."""

    def __init__(self, descriptor_path: str):
        self._path = Path(descriptor_path)

    @property
    def path(self) -> Path:
        return self._path

    def current(self) -> ContractDescriptor:
        """
        Read and validate the descriptor file.

        Raises:
            GDTIConfigError if the file is missing, unreadable or malformed.
        """
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise GDTIConfigError(
                f"Contract descriptor not found: {self._path}. Deploy the contract first.",
                config_path=str(self._path),
            ) from e
        except (OSError, json.JSONDecodeError) as e:
            raise GDTIConfigError(
                f"Cannot read contract descriptor {self._path}: {e}",
                config_path=str(self._path),
            ) from e

        try:
            return ContractDescriptor.model_validate(raw)
        except ValidationError as e:
            raise GDTIConfigError(
                f"Invalid contract descriptor {self._path}: {e}",
                config_path=str(self._path),
            ) from e


class StaticContractLocator:
    """Fixed descriptor, for ledgers whose address never changes (in-memory ledger)."""

    def __init__(self, address: str, abi: Optional[List[Dict[str, Any]]] = None):
        self._descriptor = ContractDescriptor(address=address, abi=abi or [])

    def current(self) -> ContractDescriptor:
        return self._descriptor
