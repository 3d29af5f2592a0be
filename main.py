"""
Main entrypoint: periodic indexer in a background thread + FastAPI status API in main thread.

The indexer runs inside the API lifespan so the API stays responsive while a
cycle is in flight. With --no-api the indexer runs in the foreground until
SIGINT/SIGTERM.

Env: RPC_URL, TOKEN_CONTRACT_ADDRESS, CENTRAL_RELAY_ADDRESS, DEPLOYMENT_BLOCK, DB_PATH,
API_HOST, API_PORT, etc. (see backend_indexer.config.env).

API with indexer via uvicorn directly: uvicorn backend_indexer.api_server.app:app --host 0.0.0.0 --port 8000
"""

import argparse
import os
import signal
import sys
import threading

# Configure structured JSON logging before other imports that may log
from backend_indexer.indexer_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Validate configuration, then serve the API (indexer in background) or run the indexer alone."""
    parser = argparse.ArgumentParser(description="Checkpointed mint/burn indexer")
    parser.add_argument("--no-api", action="store_true", help="Run only the indexer loop, no HTTP API")
    args = parser.parse_args()

    from backend_indexer.config import get_settings
    from backend_indexer.config.env import mask_rpc_url
    from backend_indexer.core.exceptions import ConfigurationError

    try:
        settings = get_settings()
    except ConfigurationError as e:
        logger.error("main_config_error", message=str(e))
        sys.exit(1)

    logger.info(
        "main_settings_loaded",
        rpc_url=mask_rpc_url(settings.rpc_url),
        contract=settings.contract_address,
        central_relay=settings.central_relay_address,
        cursor_name=settings.cursor_name,
        db_path=str(settings.db_path),
    )

    if args.no_api:
        from backend_indexer.agent_worker.runner import run_periodic_indexer

        stop_event = threading.Event()

        def _stop(signum, frame):
            logger.info("main_signal_received", signal=signum)
            stop_event.set()

        signal.signal(signal.SIGINT, _stop)
        signal.signal(signal.SIGTERM, _stop)
        run_periodic_indexer(settings, stop_event)
        return

    from backend_indexer.api_server.server import create_app
    import uvicorn

    app = create_app(settings)
    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
