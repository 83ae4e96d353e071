"""chatsync — dual-channel live-data synchronization client for chat feeds."""

__version__ = "0.1.0"
