"""Main entry point for the dice lobby server."""

import argparse
import logging
import sys

import uvicorn

from .config import reload_config


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = argparse.ArgumentParser(description="Shared physics dice table server")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    args = parser.parse_args(argv)

    try:
        # Load once here so the app factory sees the same global config
        config = reload_config(args.config)
        logging.basicConfig(level=config.server.log_level.upper())

        uvicorn.run(
            "dicelobby.web.server:create_app",
            factory=True,
            host=args.host or config.server.host,
            port=args.port or config.server.port,
            log_level=config.server.log_level.lower(),
        )
        return 0

    except KeyboardInterrupt:
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
