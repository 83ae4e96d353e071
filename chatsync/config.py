"""Configuration management for chatsync.

Loads config from ~/.chatsync/config.json, environment variables, or defaults.
Timing values are in seconds.
"""

from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path


def _default_config_dir() -> Path:
    """Return the default chatsync config directory."""
    return Path.home() / ".chatsync"


def _anonymous_sender_id() -> str:
    return f"anon_{uuid.uuid4().hex[:12]}"


@dataclass
class BackendConfig:
    """Where the hosted backend lives."""

    url: str = "http://localhost:3210"
    ws_url: str = ""
    topic: str = "chat"
    request_timeout: float = 10.0

    def __post_init__(self) -> None:
        """Derive the WebSocket URL from the HTTP one when not given."""
        if not self.ws_url:
            self.ws_url = _derive_ws_url(self.url)


@dataclass
class TransportConfig:
    """Detection, polling and probe tuning."""

    detection_timeout: float = 3.0
    poll_interval: float = 5.0
    staleness_threshold: float = 10.0
    probe_timeout: float = 5.0


@dataclass
class IdentityConfig:
    """Who we send as. Generated once and persisted."""

    sender_id: str = field(default_factory=_anonymous_sender_id)
    sender_name: str = "Anonymous"


@dataclass
class ChatSyncConfig:
    """Root configuration for chatsync."""

    backend: BackendConfig = field(default_factory=BackendConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)

    # Config directory
    config_dir: Path = field(default_factory=_default_config_dir)


def _derive_ws_url(url: str) -> str:
    if url.startswith("https://"):
        return "wss://" + url[len("https://"):].rstrip("/") + "/ws"
    if url.startswith("http://"):
        return "ws://" + url[len("http://"):].rstrip("/") + "/ws"
    return url.rstrip("/") + "/ws"


def _load_env_overrides(config: ChatSyncConfig) -> None:
    """Override config values from environment variables."""
    if url := os.getenv("CHATSYNC_URL"):
        config.backend.url = url
        if not os.getenv("CHATSYNC_WS_URL"):
            config.backend.ws_url = _derive_ws_url(url)
    if ws_url := os.getenv("CHATSYNC_WS_URL"):
        config.backend.ws_url = ws_url
    if topic := os.getenv("CHATSYNC_TOPIC"):
        config.backend.topic = topic
    if name := os.getenv("CHATSYNC_SENDER_NAME"):
        config.identity.sender_name = name
    if interval := os.getenv("CHATSYNC_POLL_INTERVAL"):
        config.transport.poll_interval = float(interval)


def _dict_to_config(data: dict) -> ChatSyncConfig:
    """Convert a JSON dict to a ChatSyncConfig."""
    config = ChatSyncConfig()

    # Backend
    if backend := data.get("backend"):
        config.backend.url = backend.get("url", config.backend.url)
        config.backend.ws_url = backend.get("ws_url") or _derive_ws_url(config.backend.url)
        config.backend.topic = backend.get("topic", config.backend.topic)
        config.backend.request_timeout = backend.get(
            "request_timeout", config.backend.request_timeout
        )

    # Transport
    if transport := data.get("transport"):
        t = config.transport
        t.detection_timeout = transport.get("detection_timeout", t.detection_timeout)
        t.poll_interval = transport.get("poll_interval", t.poll_interval)
        t.staleness_threshold = transport.get("staleness_threshold", t.staleness_threshold)
        t.probe_timeout = transport.get("probe_timeout", t.probe_timeout)

    # Identity
    if identity := data.get("identity"):
        config.identity.sender_id = identity.get("sender_id", config.identity.sender_id)
        config.identity.sender_name = identity.get("sender_name", config.identity.sender_name)

    return config


def _config_to_dict(config: ChatSyncConfig) -> dict:
    """Convert a ChatSyncConfig to a JSON-serializable dict."""
    return {
        "backend": {
            "url": config.backend.url,
            "ws_url": config.backend.ws_url,
            "topic": config.backend.topic,
            "request_timeout": config.backend.request_timeout,
        },
        "transport": {
            "detection_timeout": config.transport.detection_timeout,
            "poll_interval": config.transport.poll_interval,
            "staleness_threshold": config.transport.staleness_threshold,
            "probe_timeout": config.transport.probe_timeout,
        },
        "identity": {
            "sender_id": config.identity.sender_id,
            "sender_name": config.identity.sender_name,
        },
    }


def load_config(config_path: Path | None = None) -> ChatSyncConfig:
    """Load chatsync configuration from file, env vars, and defaults.

    Priority: env vars > config file > defaults.
    Creates the default config file (with a fresh anonymous identity) if it
    doesn't exist, so the same sender id is reused on the next run.
    """
    config_dir = _default_config_dir()
    config_file = config_path or (config_dir / "config.json")

    # Load from file if exists
    if config_file.exists():
        with open(config_file) as f:
            data = json.load(f)
        config = _dict_to_config(data)
    else:
        config = ChatSyncConfig()

    config.config_dir = config_dir

    # Save default config before env overrides so they stay transient
    if not config_file.exists():
        save_config(config, config_file)

    # Apply env overrides
    _load_env_overrides(config)

    return config


def save_config(config: ChatSyncConfig, config_path: Path | None = None) -> None:
    """Save configuration to JSON file."""
    config_file = config_path or (config.config_dir / "config.json")
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        json.dump(_config_to_dict(config), f, indent=2)
