"""
Client configuration.

Settings come from an optional YAML file, then environment overrides:

    HANGOUTS_CONFIG        path of the YAML file
    HANGOUTS_CHANNEL_URL   channel endpoint
    HANGOUTS_LOG_LEVEL     log level (read by shared.log as well)

Example hangouts.yaml:

    channel_url: wss://relay.example.com/channel
    api_base_url: https://clients6.google.com/chat/v1
    active_timeout_secs: 120
    set_active_limit_secs: 60
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from shared.log import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".hangouts" / "hangouts.yaml"


@dataclass
class ClientConfig:
    channel_url: str = "ws://localhost:8765/channel"
    api_base_url: str = "https://clients6.google.com/chat/v1"
    # URL for uploading images that can later be attached to messages
    image_upload_url: str = "https://docs.google.com/upload/photos/resumable"
    # Timeout to send with setactiveclient requests
    active_timeout_secs: int = 120
    # Minimum time between subsequent setactiveclient requests
    set_active_limit_secs: int = 60
    max_response_size_bytes: int = 1048576
    language_code: str = "en"
    client_version: str = "hangouts-py"
    request_timeout_secs: float = 30.0
    log_level: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClientConfig':
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name: f for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown config key %r", key)
                continue
            values[key] = value
        config = cls(**values)
        config.validate()
        return config

    def validate(self) -> None:
        if int(self.active_timeout_secs) <= 0:
            raise ValueError("active_timeout_secs must be positive")
        if int(self.set_active_limit_secs) < 0:
            raise ValueError("set_active_limit_secs must not be negative")
        if int(self.set_active_limit_secs) >= int(self.active_timeout_secs):
            raise ValueError("set_active_limit_secs must be shorter than active_timeout_secs")


def load_config(path: Optional[Path] = None) -> ClientConfig:
    """
    Load the client configuration.

    Args:
        path: YAML file; defaults to $HANGOUTS_CONFIG, then ~/.hangouts/hangouts.yaml.
              A missing file yields the defaults.

    Raises:
        ValueError: the file is not a YAML mapping or holds invalid values
    """
    if path is None:
        env_path = os.getenv("HANGOUTS_CONFIG")
        path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    path = Path(path).expanduser()

    data: Dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{path} must contain a mapping")
        data.update(loaded)
        logger.info("Loaded client config from %s", path)
    else:
        logger.debug("No config file at %s; using defaults", path)

    channel_url = os.getenv("HANGOUTS_CHANNEL_URL")
    if channel_url:
        data["channel_url"] = channel_url
    log_level = os.getenv("HANGOUTS_LOG_LEVEL")
    if log_level:
        data["log_level"] = log_level

    return ClientConfig.from_dict(data)
