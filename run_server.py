#!/usr/bin/env python3
"""Startup script for the DinnerPick MCP Server."""

import sys
import argparse
import logging
from pathlib import Path

from dinnerpick.config import validate_configuration


def setup_logging(debug: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler('dinnerpick_mcp.log')
        ]
    )


def check_environment():
    """Check if environment is properly configured."""
    print("🔍 Checking environment configuration...", file=sys.stderr)

    if not Path('.env').exists():
        print("⚠️  .env file not found, using environment variables and defaults", file=sys.stderr)

    config_status = validate_configuration()

    if not config_status["valid"]:
        print(f"❌ Configuration error: {config_status['message']}", file=sys.stderr)
        return False

    print("✅ Environment configuration valid", file=sys.stderr)

    settings = config_status["settings"]
    if settings["geocoder_configured"]:
        print(f"✅ Geocoder ({settings['geocode_provider']}) configured", file=sys.stderr)
    else:
        print(f"⚠️  Geocoder ({settings['geocode_provider']}) not configured, "
              "restaurants without coordinates will not be ranked", file=sys.stderr)

    if settings["notion_configured"]:
        print("✅ Notion profile store configured", file=sys.stderr)
    else:
        print("⚠️  Notion not configured, profiles are kept in memory", file=sys.stderr)

    return True


def main_cli():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="DinnerPick MCP Server")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--check-env", action="store_true", help="Check environment configuration")

    args = parser.parse_args()

    setup_logging(args.debug)

    if args.check_env:
        if check_environment():
            print("✅ Environment check passed", file=sys.stderr)
            return 0
        else:
            print("❌ Environment check failed", file=sys.stderr)
            return 1

    if not check_environment():
        print("❌ Environment check failed. Please fix configuration before starting server.", file=sys.stderr)
        return 1

    print("🚀 Starting DinnerPick MCP Server...", file=sys.stderr)

    # Imported late so logging is configured before the server wires its components
    from dinnerpick.server import main

    try:
        main()
        return 0
    except KeyboardInterrupt:
        print("\n🛑 Server stopped by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"❌ Server error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main_cli())
