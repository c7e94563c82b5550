"""
Main entrypoint: FastAPI server with the deposit polling runner in its lifespan.

Validates configuration first; a missing BTC_ADDRESS (or any malformed option)
exits with code 1 before anything is served.

Env: BTC_ADDRESS (required), NETWORK, PORT, API_HOST, CONFIRMATIONS,
POLL_INTERVAL_SEC, LEDGER_BACKEND, LEDGER_PATH, LOG_LEVEL, LOG_FORMAT.

API only: uvicorn backend_chainvest.api_server.app:app --host 0.0.0.0 --port 3000
"""

import sys

# Configure structured JSON logging before other imports that may log
from backend_chainvest.chainvest_logging import get_logger, level_name
from backend_chainvest.core.exceptions import ConfigError

logger = get_logger("main")


def main() -> int:
    """Load settings, then run the API server (and its runner) in the main thread."""
    from backend_chainvest.config import get_settings

    try:
        settings = get_settings()
    except ConfigError as e:
        logger.error("main_config_error", error=str(e))
        return 1

    from backend_chainvest.api_server.server import create_app
    import uvicorn

    app = create_app(settings)
    logger.info(
        "main_server_starting",
        address=settings.btc_address,
        network=settings.network,
        host=settings.api_host,
        port=settings.port,
        confirmations=settings.required_confirmations,
        ledger_backend=settings.ledger_backend,
        ledger_path=str(settings.ledger_path),
    )
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.port,
        log_level=level_name(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
