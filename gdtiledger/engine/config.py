"""
GDTI Ledger Configuration — Load and validate gdti.yaml at startup.

Usage:
    from gdtiledger.engine.config import load_platform_config, get_platform_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from gdtiledger.engine.errors import GDTIConfigError

CONFIG_FILENAME = "gdti.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for gdti.yaml
# ---------------------------------------------------------------------------

class LedgerConfig(BaseModel):
    backend: str = "jsonrpc"
    rpc_url: str = "http://127.0.0.1:8545"
    contract_data_path: str = "utils/contractData.json"
    default_account: Optional[str] = None
    cost_buffer: int = Field(default=50000, ge=0)
    cost_buffer_percent: float = Field(default=0.0, ge=0)
    request_timeout: float = Field(default=30.0, gt=0)
    confirmation_timeout: float = Field(default=60.0, gt=0)
    poll_interval: float = Field(default=0.5, gt=0)
    max_connections: int = Field(default=10, ge=1)

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v not in ("jsonrpc", "memory"):
            raise ValueError(f"backend must be jsonrpc/memory, got '{v}'")
        return v


class DocumentsConfig(BaseModel):
    chunk_size: int = Field(default=8192, ge=1)
    max_upload_size_mb: int = Field(default=50, ge=1)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".gdti/logs"
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class PlatformConfig(BaseModel):
    """Root model for gdti.yaml."""
    name: str = "GDTI Ledger"
    environment: str = "dev"

    ledger: LedgerConfig = LedgerConfig()
    documents: DocumentsConfig = DocumentsConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_platform_config: Optional[PlatformConfig] = None


def _find_project_root() -> Path:
    """Find the project root by looking for gdti.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return current


def get_project_root() -> Path:
    """Return the project root directory."""
    return _find_project_root()


def load_platform_config(config_path: Optional[str] = None) -> PlatformConfig:
    """
    Load and validate gdti.yaml.

    Args:
        config_path: Explicit path to gdti.yaml. If None, auto-discovers.

    Returns:
        Validated PlatformConfig instance. Defaults when no file exists.

    Raises:
        GDTIConfigError if the file is not valid YAML.
        ValueError (pydantic) if a value fails validation.
    """
    global _platform_config

    if config_path is None:
        config_path = str(_find_project_root() / CONFIG_FILENAME)

    path = Path(config_path)
    if not path.exists():
        _platform_config = PlatformConfig()
        return _platform_config

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise GDTIConfigError(f"Invalid YAML in {path}: {e}", config_path=str(path)) from e

    if not isinstance(raw, dict):
        raise GDTIConfigError(f"{path} must contain a mapping", config_path=str(path))

    # Flatten the top-level "platform" key if present
    platform_data = raw.get("platform", {}) or {}
    config_data = {
        "name": platform_data.get("name", raw.get("name", "GDTI Ledger")),
        "environment": platform_data.get("environment", raw.get("environment", "dev")),
        "ledger": raw.get("ledger", {}) or {},
        "documents": raw.get("documents", {}) or {},
        "logging": raw.get("logging", {}) or {},
    }

    _platform_config = PlatformConfig(**config_data)
    return _platform_config


def get_platform_config() -> PlatformConfig:
    """Get the currently loaded platform config, loading if necessary."""
    global _platform_config
    if _platform_config is None:
        _platform_config = load_platform_config()
    return _platform_config
