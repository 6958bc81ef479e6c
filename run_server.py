"""Run the dice lobby web server."""

import sys

from dicelobby.main import main

if __name__ == "__main__":
    print("=" * 50)
    print("  Dice Lobby - Shared Physics Dice Table")
    print("=" * 50)
    print()
    print("WebSocket endpoint: ws://localhost:8000/ws/lobby")
    print("Press Ctrl+C to stop")
    print()

    sys.exit(main())
