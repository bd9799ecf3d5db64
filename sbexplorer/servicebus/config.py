"""
Explorer Configuration Management

Loads configuration from environment variables and YAML files.

The broker credential is deliberately absent: it belongs to a console
session and is passed into every engine call.

Author: Ayodele Oladeji
Date: 2026-10-13
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .broker import BrokerConfig, BrokerType
from .constants import (
    DEFAULT_DRAIN_BATCH_DELAY_SECONDS,
    DEFAULT_DRAIN_BATCH_SIZE,
    DEFAULT_LOCK_DURATION,
    DEFAULT_MAX_DELIVERY_COUNT,
    DEFAULT_PAGE_SIZE,
    DEFAULT_RECEIVE_WAIT_SECONDS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_SELECTIVE_BATCH_SIZE,
    DEFAULT_SELECTIVE_MAX_ATTEMPTS,
)


@dataclass
class EngineSettings:
    """
    Tuning of the message lifecycle engine.

    Attributes:
        page_size: Records per peek page
        selective_batch_size: Messages received per attempt when targeting
            specific sequence numbers
        selective_max_attempts: Receive passes before remaining targets are
            reported as not found
        receive_wait_seconds: Upper bound a receive call waits for messages
        retry_backoff_seconds: Pause between selective attempts
        drain_batch_size: Messages received per batch in delete-all /
            resubmit-all mode
        drain_batch_delay_seconds: Pause between drain batches
    """

    page_size: int = DEFAULT_PAGE_SIZE
    selective_batch_size: int = DEFAULT_SELECTIVE_BATCH_SIZE
    selective_max_attempts: int = DEFAULT_SELECTIVE_MAX_ATTEMPTS
    receive_wait_seconds: float = DEFAULT_RECEIVE_WAIT_SECONDS
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    drain_batch_size: int = DEFAULT_DRAIN_BATCH_SIZE
    drain_batch_delay_seconds: float = DEFAULT_DRAIN_BATCH_DELAY_SECONDS

    def __post_init__(self):
        for name in ("page_size", "selective_batch_size", "selective_max_attempts", "drain_batch_size"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        for name in ("receive_wait_seconds", "retry_backoff_seconds", "drain_batch_delay_seconds"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")


@dataclass
class ExplorerConfig:
    """Process-wide explorer configuration."""

    broker: BrokerConfig = field(default_factory=BrokerConfig)
    engine: EngineSettings = field(default_factory=EngineSettings)
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None
    audit_log_file: Optional[str] = None


def _env(name: str, default: Any) -> Any:
    return os.getenv(f"SBEXPLORER_{name}", default)


def load_explorer_config(config_file: Optional[str] = None) -> ExplorerConfig:
    """
    Load explorer configuration from file or environment variables.

    Priority order:
    1. Environment variables (highest priority)
    2. Config file (if specified)
    3. Default values

    Environment Variables:
    - SBEXPLORER_BROKER_TYPE: "azure" or "in-memory"
    - SBEXPLORER_PAGE_SIZE, SBEXPLORER_SELECTIVE_BATCH_SIZE,
      SBEXPLORER_MAX_ATTEMPTS, SBEXPLORER_DRAIN_BATCH_SIZE
    - SBEXPLORER_RECEIVE_WAIT, SBEXPLORER_RETRY_BACKOFF, SBEXPLORER_DRAIN_DELAY
    - SBEXPLORER_LOG_LEVEL, SBEXPLORER_LOG_FORMAT, SBEXPLORER_LOG_FILE
    - SBEXPLORER_AUDIT_LOG

    Args:
        config_file: Path to YAML configuration file

    Returns:
        ExplorerConfig object

    Example YAML:
        ```yaml
        explorer:
          broker:
            type: azure
          engine:
            page_size: 100
            selective_max_attempts: 3
          logging:
            level: INFO
            format: json
        ```
    """
    config_data: Dict[str, Any] = {}

    if config_file and Path(config_file).exists():
        with open(config_file, 'r') as f:
            file_config = yaml.safe_load(f)
            if file_config and "explorer" in file_config:
                config_data = file_config["explorer"] or {}

    broker_data = config_data.get("broker") or {}
    engine_data = config_data.get("engine") or {}
    logging_data = config_data.get("logging") or {}

    broker_type_map = {
        "azure": BrokerType.AZURE,
        "in-memory": BrokerType.IN_MEMORY,
    }
    broker_type_str = _env("BROKER_TYPE", broker_data.get("type", "azure"))
    if broker_type_str not in broker_type_map:
        raise ValueError(
            f"unknown broker type '{broker_type_str}'; expected one of: {', '.join(broker_type_map)}"
        )

    broker = BrokerConfig(
        broker_type=broker_type_map[broker_type_str],
        lock_duration_seconds=int(broker_data.get("lock_duration_seconds", DEFAULT_LOCK_DURATION)),
        max_delivery_count=int(broker_data.get("max_delivery_count", DEFAULT_MAX_DELIVERY_COUNT)),
        prefetch_count=int(broker_data.get("prefetch_count", 0)),
    )

    engine = EngineSettings(
        page_size=int(_env("PAGE_SIZE", engine_data.get("page_size", DEFAULT_PAGE_SIZE))),
        selective_batch_size=int(_env(
            "SELECTIVE_BATCH_SIZE",
            engine_data.get("selective_batch_size", DEFAULT_SELECTIVE_BATCH_SIZE)
        )),
        selective_max_attempts=int(_env(
            "MAX_ATTEMPTS",
            engine_data.get("selective_max_attempts", DEFAULT_SELECTIVE_MAX_ATTEMPTS)
        )),
        receive_wait_seconds=float(_env(
            "RECEIVE_WAIT",
            engine_data.get("receive_wait_seconds", DEFAULT_RECEIVE_WAIT_SECONDS)
        )),
        retry_backoff_seconds=float(_env(
            "RETRY_BACKOFF",
            engine_data.get("retry_backoff_seconds", DEFAULT_RETRY_BACKOFF_SECONDS)
        )),
        drain_batch_size=int(_env(
            "DRAIN_BATCH_SIZE",
            engine_data.get("drain_batch_size", DEFAULT_DRAIN_BATCH_SIZE)
        )),
        drain_batch_delay_seconds=float(_env(
            "DRAIN_DELAY",
            engine_data.get("drain_batch_delay_seconds", DEFAULT_DRAIN_BATCH_DELAY_SECONDS)
        )),
    )

    return ExplorerConfig(
        broker=broker,
        engine=engine,
        log_level=_env("LOG_LEVEL", logging_data.get("level", "INFO")),
        log_format=_env("LOG_FORMAT", logging_data.get("format", "json")),
        log_file=_env("LOG_FILE", logging_data.get("file")),
        audit_log_file=_env("AUDIT_LOG", logging_data.get("audit_file")),
    )


def create_default_config_file(path: str = "./sbexplorer.yaml") -> Path:
    """
    Create a default configuration file.

    Args:
        path: Path where to create the config file

    Returns:
        Path of the written file
    """
    default_config = {
        "explorer": {
            "broker": {
                "type": "azure",
                "prefetch_count": 0,
                "lock_duration_seconds": DEFAULT_LOCK_DURATION,
                "max_delivery_count": DEFAULT_MAX_DELIVERY_COUNT,
            },
            "engine": {
                "page_size": DEFAULT_PAGE_SIZE,
                "selective_batch_size": DEFAULT_SELECTIVE_BATCH_SIZE,
                "selective_max_attempts": DEFAULT_SELECTIVE_MAX_ATTEMPTS,
                "receive_wait_seconds": DEFAULT_RECEIVE_WAIT_SECONDS,
                "retry_backoff_seconds": DEFAULT_RETRY_BACKOFF_SECONDS,
                "drain_batch_size": DEFAULT_DRAIN_BATCH_SIZE,
                "drain_batch_delay_seconds": DEFAULT_DRAIN_BATCH_DELAY_SECONDS,
            },
            "logging": {
                "level": "INFO",
                "format": "json",
                "file": None,
                "audit_file": None,
            },
        }
    }

    config_path = Path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w') as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)

    return config_path
