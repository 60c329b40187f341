"""CLI entrypoint for running the tool server."""
from __future__ import annotations

import argparse
import os
import sys

from config import GEMINI_API_KEY

from . import create_app, get_service


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the image generation tool server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind (default: 8000)")
    parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    args = parser.parse_args()

    if not (os.getenv("GEMINI_API_KEY") or GEMINI_API_KEY).strip():
        print("Error: GEMINI_API_KEY environment variable is not set", file=sys.stderr)
        print("Please set it in .env file or as an environment variable", file=sys.stderr)
        sys.exit(1)

    app = create_app()
    print(f"Image job server running on http://{args.host}:{args.port}", file=sys.stderr, flush=True)
    try:
        app.run(host=args.host, port=args.port, debug=args.debug)
    finally:
        get_service(app).shutdown(wait=False)


if __name__ == "__main__":  # pragma: no cover
    main()
