"""WebSocket transport for the dice table."""
