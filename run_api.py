#!/usr/bin/env python3
"""
Script to run the Book Review API server.
"""

import sys

import uvicorn
from pydantic import ValidationError

from bookreview_api.config import APIConfig
from bookreview_api.main import create_app


def main():
    """Run the API server."""
    try:
        config = APIConfig()
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    print("Starting Book Review API Server")
    print(f"Host: {config.host}")
    print(f"Port: {config.port}")
    print(f"Debug: {config.debug}")
    print(f"Database: {config.mongodb_database}")
    print("=" * 50)

    # Reload needs an import string, so the reloaded worker builds its own config.
    if config.debug:
        uvicorn.run(
            "bookreview_api.main:create_app",
            factory=True,
            host=config.host,
            port=config.port,
            reload=True,
            log_level=config.log_level.lower(),
            access_log=False
        )
    else:
        uvicorn.run(
            create_app(config),
            host=config.host,
            port=config.port,
            log_level=config.log_level.lower(),
            access_log=False
        )


if __name__ == "__main__":
    main()
