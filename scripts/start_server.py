#!/usr/bin/env python3
"""
Start the read-only report API.
"""

import argparse
import os
import socket
import sys
from pathlib import Path

import uvicorn

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ranked_vote.config import configure_logging  # noqa: E402
from ranked_vote.web.main import REPORT_DIR_ENV  # noqa: E402


def find_available_port(host, start_port, max_attempts=10):
    """Find an available port starting from start_port."""
    for port in range(start_port, start_port + max_attempts):
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.bind((host, port))
                return port
        except OSError:
            continue
    return None


def main():
    parser = argparse.ArgumentParser(description="Start the report API server")
    parser.add_argument(
        "--reports", default=os.environ.get(REPORT_DIR_ENV), help="Report directory"
    )
    parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--auto-port",
        action="store_true",
        help="Automatically find available port if default is taken",
    )
    parser.add_argument("--log-level", help="Logging level (default: INFO)")

    args = parser.parse_args()
    configure_logging(args.log_level)

    if not args.reports:
        parser.error(f"--reports is required (or set {REPORT_DIR_ENV})")
    report_dir = Path(args.reports)
    if not report_dir.is_dir():
        print(f"Error: Report directory not found: {report_dir}")
        print("Run run_reports.py first to generate reports.")
        sys.exit(1)

    # uvicorn may import the app in a fresh process (--reload); pass the directory by environment.
    os.environ[REPORT_DIR_ENV] = str(report_dir.absolute())

    port = args.port
    if args.auto_port:
        available_port = find_available_port(args.host, args.port)
        if available_port is None:
            print(f"Error: No available ports found starting from {args.port}")
            sys.exit(1)
        elif available_port != args.port:
            print(f"Port {args.port} is taken, using port {available_port} instead")
        port = available_port

    print("Starting report API server...")
    print(f"Reports: {report_dir.absolute()}")
    print(f"Server: http://{args.host}:{port}")
    print("Press Ctrl+C to stop")

    uvicorn.run("ranked_vote.web.main:app", host=args.host, port=port, reload=args.reload)


if __name__ == "__main__":
    main()
