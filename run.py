#!/usr/bin/env python3
"""
Rebase Vault Entry Point

Starts the FastAPI server with the accrual ledger and custody gateway.
"""

import sys

from rebase_vault.api import run_server
from rebase_vault.config import get_config
from rebase_vault.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, "rebase_vault", config.log_format, config.log_file)

    logger.info(f"Starting Rebase Vault on {config.api_host}:{config.api_port} "
                f"(storage: {config.database_url})")

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        logger.info("Shutting down Rebase Vault")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
