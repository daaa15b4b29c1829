#!/usr/bin/env python3
"""
Mission Control Dashboard: Main PySide6 application entry point

Launches the operator dashboard: live readouts from the telemetry stream,
a polled history chart and the command issuer, laid out on a grid canvas.

Usage:
    python -m mission_control.dashboard_app [--backend-url http://localhost:8080]
        [--stream-url ws://localhost:8080/ws/telemetry] [--layout layout.json] [--debug]
"""

import sys
import argparse
import logging

from PySide6.QtWidgets import QApplication

from mission_control.config_store import get_config_store
from mission_control.http_client import DEFAULT_BACKEND_URL, DEFAULT_STREAM_URL, HTTPClient
from mission_control.ui.main_window import DashboardWindow


def main():
    """Main application entry point"""
    parser = argparse.ArgumentParser(description="Mission Control Dashboard")
    parser.add_argument(
        "--backend-url",
        default=DEFAULT_BACKEND_URL,
        help=f"Telemetry backend base URL (default: {DEFAULT_BACKEND_URL})",
    )
    parser.add_argument(
        "--stream-url",
        default=DEFAULT_STREAM_URL,
        help=f"Telemetry WebSocket URL (default: {DEFAULT_STREAM_URL})",
    )
    parser.add_argument(
        "--layout",
        default=None,
        help="Layout file to load at startup (default: ~/.config/mission-control/layout.json if present)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Create Qt application
    app = QApplication(sys.argv)

    client = HTTPClient(args.backend_url)
    if not client.health_check():
        logging.warning("Backend %s is not reachable; telemetry will retry on every poll", args.backend_url)

    # Create config store (singleton)
    store = get_config_store()

    window = DashboardWindow(store, client, args.stream_url, args.layout)
    window.show()

    # Run event loop
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
