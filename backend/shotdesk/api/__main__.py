"""Entry point for the API server.

Usage:
    python -m shotdesk.api [--host HOST] [--port PORT] [--reload]
"""

import argparse
import sys
from typing import List, Optional

import uvicorn

from shotdesk.config.settings import settings


def main(argv: Optional[List[str]] = None) -> int:
    """Run the API server."""
    parser = argparse.ArgumentParser(
        description="Shotdesk review and generation API",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--host", type=str, default=settings.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to run the server on")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    args = parser.parse_args(argv)

    uvicorn.run(
        "shotdesk.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
