"""
Application settings.

Responsibilities:
- Read configuration from environment variables (and .env via config.env).
- Validate required settings and provide defaults for optional ones.
- Expose a frozen Settings object shared by the API server, the runner,
  the ledger client and the ledger store.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from backend_chainvest.config.env import (
    env_float,
    env_int,
    env_str,
    get_esplora_base_url,
    get_network,
    load_chainvest_env,
)
from backend_chainvest.core.exceptions import ConfigError

DEFAULT_PORT = 3000
DEFAULT_CONFIRMATIONS = 1
DEFAULT_POLL_INTERVAL_SEC = 30.0
DEFAULT_REQUEST_TIMEOUT_SEC = 10.0
DEFAULT_PASS_TIMEOUT_SEC = 120.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_PAGES = 1

LEDGER_BACKEND_SQLITE = "sqlite"
LEDGER_BACKEND_JSON = "json"
LEDGER_BACKENDS = (LEDGER_BACKEND_SQLITE, LEDGER_BACKEND_JSON)
DEFAULT_LEDGER_PATHS = {
    LEDGER_BACKEND_SQLITE: "chainvest.db",
    LEDGER_BACKEND_JSON: "db.json",
}


@dataclass(frozen=True)
class WatchedAddress:
    """The single address this process reconciles. Never mutated after startup."""

    address: str
    network: str
    required_confirmations: int


@dataclass(frozen=True)
class Settings:
    """Typed service configuration."""

    btc_address: str
    network: str
    esplora_base_url: str
    api_host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    required_confirmations: int = DEFAULT_CONFIRMATIONS
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    request_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT_SEC
    pass_timeout_sec: float = DEFAULT_PASS_TIMEOUT_SEC
    max_retries: int = DEFAULT_MAX_RETRIES
    max_pages: int = DEFAULT_MAX_PAGES
    ledger_backend: str = LEDGER_BACKEND_SQLITE
    ledger_path: Path = Path(DEFAULT_LEDGER_PATHS[LEDGER_BACKEND_SQLITE])

    @property
    def watched(self) -> WatchedAddress:
        return WatchedAddress(
            address=self.btc_address,
            network=self.network,
            required_confirmations=self.required_confirmations,
        )


def get_settings() -> Settings:
    """
    Build Settings from the environment.

    Raises:
        ConfigError: BTC_ADDRESS missing, or any option malformed.
    """
    load_chainvest_env()
    address = env_str("BTC_ADDRESS")
    if not address:
        raise ConfigError("BTC_ADDRESS environment variable must be set")
    network = get_network()

    backend = env_str("LEDGER_BACKEND", LEDGER_BACKEND_SQLITE).lower()
    if backend not in LEDGER_BACKENDS:
        raise ConfigError(f"LEDGER_BACKEND must be one of {', '.join(LEDGER_BACKENDS)}, got {backend!r}")
    ledger_path = Path(env_str("LEDGER_PATH") or DEFAULT_LEDGER_PATHS[backend])

    return Settings(
        btc_address=address,
        network=network,
        esplora_base_url=get_esplora_base_url(network),
        api_host=env_str("API_HOST", "0.0.0.0"),
        port=env_int("PORT", DEFAULT_PORT, minimum=1),
        required_confirmations=env_int("CONFIRMATIONS", DEFAULT_CONFIRMATIONS, minimum=0),
        poll_interval_sec=env_float("POLL_INTERVAL_SEC", DEFAULT_POLL_INTERVAL_SEC, minimum=1.0),
        request_timeout_sec=env_float("REQUEST_TIMEOUT_SEC", DEFAULT_REQUEST_TIMEOUT_SEC, minimum=0.1),
        pass_timeout_sec=env_float("PASS_TIMEOUT_SEC", DEFAULT_PASS_TIMEOUT_SEC, minimum=1.0),
        max_retries=env_int("MAX_RETRIES", DEFAULT_MAX_RETRIES, minimum=1),
        max_pages=env_int("ESPLORA_MAX_PAGES", DEFAULT_MAX_PAGES, minimum=1),
        ledger_backend=backend,
        ledger_path=ledger_path,
    )
