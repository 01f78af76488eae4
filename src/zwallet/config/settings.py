"""Wallet settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``ZWALLET_``, nested via ``__``)
2. YAML config file (``--config path`` or ``ZWALLET_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from zwallet.zcash.network import Network

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class NetworkName(enum.StrEnum):
    """Supported Zcash networks."""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    REGTEST = "regtest"


class ScanFailurePolicy(enum.StrEnum):
    """What the sync engine does when scanning one batch fails."""

    CONTINUE = "continue"
    HALT = "halt"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class DatabaseConfig(BaseSettings):
    """Wallet database settings."""

    model_config = SettingsConfigDict(
        env_prefix="ZWALLET_DB__",
        case_sensitive=False,
    )

    dsn: str = Field(
        default="sqlite+aiosqlite:///./zwallet.db",
        description="Async database connection string",
    )
    max_idle_connections: int = 5
    max_open_connections: int = 10
    debug_sql: bool = False


class LightwalletdConfig(BaseSettings):
    """Compact block service (lightwalletd) settings."""

    model_config = SettingsConfigDict(
        env_prefix="ZWALLET_LIGHTWALLETD__",
        case_sensitive=False,
    )

    url: str = Field(
        default="",
        description="lightwalletd endpoint; empty selects the network default",
    )
    timeout: float = 30.0


class RPCConfig(BaseSettings):
    """zcashd JSON-RPC settings."""

    model_config = SettingsConfigDict(
        env_prefix="ZWALLET_RPC__",
        case_sensitive=False,
    )

    url: str = "http://127.0.0.1:8232"
    user: str = ""
    password: str = ""
    timeout: float = 60.0


class SyncConfig(BaseSettings):
    """Sync engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="ZWALLET_SYNC__",
        case_sensitive=False,
    )

    batch_size: int = Field(default=100, ge=1)
    scan_failure_policy: ScanFailurePolicy = ScanFailurePolicy.CONTINUE


class PollerConfig(BaseSettings):
    """Operation status polling settings."""

    model_config = SettingsConfigDict(
        env_prefix="ZWALLET_POLLER__",
        case_sensitive=False,
    )

    interval_seconds: float = Field(default=2.0, gt=0)
    max_wait_seconds: float = Field(default=300.0, gt=0)


class KeystoreConfig(BaseSettings):
    """Seed keystore settings."""

    model_config = SettingsConfigDict(
        env_prefix="ZWALLET_KEYSTORE__",
        case_sensitive=False,
    )

    wallet_path: str = "~/.zwallet/wallet.json"


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="ZWALLET_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = False


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path).expanduser()
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class WalletConfig(BaseSettings):
    """Top-level wallet configuration.

    Loads settings from environment variables (``ZWALLET_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="ZWALLET_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    network: NetworkName = NetworkName.MAINNET
    config_path: str = ""

    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    lightwalletd: LightwalletdConfig = Field(default_factory=LightwalletdConfig)
    rpc: RPCConfig = Field(default_factory=RPCConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    poller: PollerConfig = Field(default_factory=PollerConfig)
    keystore: KeystoreConfig = Field(default_factory=KeystoreConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @property
    def zcash_network(self) -> Network:
        """The configured network as the value threaded through address and key calls."""
        return Network(self.network.value)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``WalletConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
