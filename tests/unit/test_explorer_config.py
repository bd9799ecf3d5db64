"""
Unit Tests for Explorer Configuration

Author: Ayodele Oladeji
Date: 2026-10-17
"""

from unittest.mock import patch

import pytest
import yaml

from sbexplorer.servicebus.broker import BrokerType, InMemoryBroker, create_broker
from sbexplorer.servicebus.broker.azure_sdk import AzureServiceBusBroker
from sbexplorer.servicebus.config import (
    EngineSettings,
    ExplorerConfig,
    create_default_config_file,
    load_explorer_config,
)
from sbexplorer.servicebus.models import BrokerCredential


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "BROKER_TYPE", "PAGE_SIZE", "SELECTIVE_BATCH_SIZE", "MAX_ATTEMPTS", "DRAIN_BATCH_SIZE",
        "RECEIVE_WAIT", "RETRY_BACKOFF", "DRAIN_DELAY", "LOG_LEVEL", "LOG_FORMAT", "LOG_FILE", "AUDIT_LOG",
    ):
        monkeypatch.delenv(f"SBEXPLORER_{name}", raising=False)


class TestEngineSettings:
    def test_defaults(self):
        settings = EngineSettings()
        assert settings.page_size == 100
        assert settings.selective_batch_size == 32
        assert settings.selective_max_attempts == 3
        assert settings.receive_wait_seconds == 5.0
        assert settings.retry_backoff_seconds == 1.0
        assert settings.drain_batch_size == 20
        assert settings.drain_batch_delay_seconds == 0.1

    @pytest.mark.parametrize("field", ["page_size", "selective_batch_size", "selective_max_attempts", "drain_batch_size"])
    def test_counts_must_be_positive(self, field):
        with pytest.raises(ValueError):
            EngineSettings(**{field: 0})

    def test_waits_cannot_be_negative(self):
        with pytest.raises(ValueError):
            EngineSettings(retry_backoff_seconds=-1)


class TestLoadConfig:
    """Tests for file and environment loading."""

    def test_defaults_without_file(self):
        config = load_explorer_config()
        assert config.broker.broker_type == BrokerType.AZURE
        assert config.engine == EngineSettings()
        assert config.log_level == "INFO"
        assert config.audit_log_file is None

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        config = load_explorer_config(str(tmp_path / "absent.yaml"))
        assert config.engine.page_size == 100

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "sbexplorer.yaml"
        path.write_text(yaml.dump({
            "explorer": {
                "broker": {"type": "in-memory", "max_delivery_count": 4},
                "engine": {"page_size": 50, "drain_batch_size": 10},
                "logging": {"level": "DEBUG", "audit_file": "/var/log/sbexplorer-audit.log"},
            }
        }))

        config = load_explorer_config(str(path))

        assert config.broker.broker_type == BrokerType.IN_MEMORY
        assert config.broker.max_delivery_count == 4
        assert config.engine.page_size == 50
        assert config.engine.drain_batch_size == 10
        assert config.engine.selective_max_attempts == 3
        assert config.log_level == "DEBUG"
        assert config.audit_log_file == "/var/log/sbexplorer-audit.log"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "sbexplorer.yaml"
        path.write_text(yaml.dump({"explorer": {"engine": {"page_size": 50}}}))
        monkeypatch.setenv("SBEXPLORER_PAGE_SIZE", "25")
        monkeypatch.setenv("SBEXPLORER_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("SBEXPLORER_DRAIN_DELAY", "0")
        monkeypatch.setenv("SBEXPLORER_BROKER_TYPE", "in-memory")

        config = load_explorer_config(str(path))

        assert config.engine.page_size == 25
        assert config.engine.selective_max_attempts == 5
        assert config.engine.drain_batch_delay_seconds == 0.0
        assert config.broker.broker_type == BrokerType.IN_MEMORY

    def test_unknown_broker_type_rejected(self, monkeypatch):
        monkeypatch.setenv("SBEXPLORER_BROKER_TYPE", "inmemory")
        with pytest.raises(ValueError, match="expected one of: azure, in-memory"):
            load_explorer_config()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_explorer_config(str(path)).engine.page_size == 100

    def test_default_file_round_trips(self, tmp_path):
        path = create_default_config_file(str(tmp_path / "conf" / "sbexplorer.yaml"))

        assert path.exists()
        config = load_explorer_config(str(path))
        assert config.engine == EngineSettings()
        assert config.broker.broker_type == BrokerType.AZURE


class TestBrokerFactory:
    def test_in_memory(self):
        config = ExplorerConfig()
        config.broker.broker_type = BrokerType.IN_MEMORY
        broker = create_broker(config.broker, BrokerCredential.from_connection_string("unused"))
        assert isinstance(broker, InMemoryBroker)

    @patch("sbexplorer.servicebus.broker.azure_sdk.ServiceBusAdministrationClient")
    @patch("sbexplorer.servicebus.broker.azure_sdk.ServiceBusClient")
    def test_azure(self, client_cls, admin_cls):
        credential = BrokerCredential.from_connection_string(
            "Endpoint=sb://demo.servicebus.windows.net/;SharedAccessKeyName=root;SharedAccessKey=abc"
        )
        broker = create_broker(ExplorerConfig().broker, credential)
        assert isinstance(broker, AzureServiceBusBroker)
