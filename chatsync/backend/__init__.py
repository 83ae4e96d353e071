"""Backend endpoint contracts and their HTTP / WebSocket adapters."""
