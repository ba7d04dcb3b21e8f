#!/usr/bin/env python3
"""Serve the segregation simulation API with uvicorn."""
from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

_LOGGER = logging.getLogger("schelling.backend")

UVICORN_APP = "schelling_api.app:app"
UVICORN_HOST = "127.0.0.1"
UVICORN_PORT = 8001


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s %(name)s - %(message)s",
        stream=sys.stdout,
    )


def _parse_arguments() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the segregation simulation API.")
    parser.add_argument("--host", default=UVICORN_HOST, help="Interface to bind.")
    parser.add_argument("--port", type=int, default=UVICORN_PORT, help="Port to listen on.")
    parser.add_argument("--reload", action="store_true", help="Restart when sources change.")
    return parser.parse_args()


def main() -> None:
    arguments = _parse_arguments()
    _configure_logging()
    _LOGGER.info("Starting Uvicorn on %s:%s", arguments.host, arguments.port)

    try:
        uvicorn.run(
            UVICORN_APP,
            host=arguments.host,
            port=arguments.port,
            reload=arguments.reload,
            log_level="info",
        )
    except KeyboardInterrupt:
        _LOGGER.info("Keyboard interrupt received, shutting down backend server.")


if __name__ == "__main__":
    main()
