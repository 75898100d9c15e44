"""Load and validate a bridge configuration file."""

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from topicbridge.config.schema import BridgeConfig
from topicbridge.core.errors import ConfigError, ExitCode

logger = structlog.get_logger()


def parse_config(data: Any, source: str = "<memory>") -> BridgeConfig:
    """
    Validate an already-parsed configuration mapping.

    Raises:
        ConfigError: MISSING_SECTION when the host table is absent,
            INVALID_CONFIG for any other schema violation
    """
    log = logger.bind(component="config", source=source)

    if not isinstance(data, dict):
        raise ConfigError(f"{source}: top level must be a mapping", ExitCode.INVALID_CONFIG)

    if "hosts" not in data and "IP" not in data:
        raise ConfigError(f"{source}: no host table ('hosts') found", ExitCode.MISSING_SECTION)

    try:
        config = BridgeConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"{source}: {exc}", ExitCode.INVALID_CONFIG) from exc

    if config.send_topics is None:
        log.warning("no_send_topics")
    if config.recv_topics is None:
        log.warning("no_recv_topics")

    return config


def load_config(path: str | Path) -> BridgeConfig:
    """Read a YAML configuration file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}", ExitCode.MISSING_SECTION)

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: {exc}", ExitCode.INVALID_CONFIG) from exc

    return parse_config(data, source=str(path))
