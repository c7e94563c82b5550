"""
Environment variable loading for ChainVest.

- BTC_ADDRESS: watched address (required)
- NETWORK: mainnet | testnet (default: testnet)
- ESPLORA_BASE_URL: override for the Blockstream/Esplora API root
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from backend_chainvest.core.exceptions import ConfigError

# Project root: config is backend_chainvest/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

NETWORK_MAINNET = "mainnet"
NETWORK_TESTNET = "testnet"
NETWORKS = (NETWORK_MAINNET, NETWORK_TESTNET)

MAINNET_ESPLORA_URL = "https://blockstream.info/api"
TESTNET_ESPLORA_URL = "https://blockstream.info/testnet/api"


def load_chainvest_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides real env."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def env_int(name: str, default: int, *, minimum: int | None = None) -> int:
    """Parse an integer env var; raise ConfigError naming the variable on bad input."""
    raw = env_str(name)
    if not raw:
        return default
    try:
        value = int(raw, 10)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def env_float(name: str, default: float, *, minimum: float | None = None) -> float:
    raw = env_str(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def get_network() -> str:
    """
    Return NETWORK from env: mainnet | testnet.
    Default: testnet. Anything else is a configuration error.
    """
    raw = env_str("NETWORK", NETWORK_TESTNET).lower()
    if raw not in NETWORKS:
        raise ConfigError(f"NETWORK must be one of {', '.join(NETWORKS)}, got {raw!r}")
    return raw


def get_esplora_base_url(network: str) -> str:
    """
    Resolve the Esplora API root.
    Order: ESPLORA_BASE_URL > Blockstream URL for the network.
    """
    url = env_str("ESPLORA_BASE_URL")
    if url:
        return url.rstrip("/")
    return MAINNET_ESPLORA_URL if network == NETWORK_MAINNET else TESTNET_ESPLORA_URL
