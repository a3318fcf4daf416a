#!/usr/bin/env python3
"""
Ruuvi REST Publisher - Main Entry Point

Listens for RuuviTag broadcasts via BLE and forwards the readings to an HTTP
collection endpoint, individually or as per-device averages.

Usage:
    python main.py --help                                   # Show help
    python main.py publish-rest https://example.com/ruuvi    # Publish to an endpoint
    python main.py publish-console --mode time              # Print averaged batches
    python main.py devices list                             # Show known devices

Environment Setup:
    Copy and configure the environment file:
    cp .env.sample .env
    # Edit .env with your settings

Requirements:
    - Python 3.9+
    - Bluetooth adapter available
    - Proper permissions for BLE access
"""

import sys

from ruuvi_rest.cli.commands import cli


def main():
    """Main entry point."""
    if sys.version_info < (3, 9):
        print(f"Python 3.9+ required, found {sys.version_info.major}.{sys.version_info.minor}")
        sys.exit(1)

    try:
        cli()
    except KeyboardInterrupt:
        print("\n\nApplication interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
