"""Unit tests for environment-driven configuration."""

import pytest

from lifesignal_relay.config import MonitoringConfig, get_config, load_config
from lifesignal_relay.domain.errors import ConfigError

REGISTRY_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
AUTOMATION_ADDRESS = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
TEST_KEY = "0x" + "11" * 32


def web3_env(**overrides):
    env = {
        "RELAY_REGISTRY_RPC_URL": "http://registry.example:8545",
        "RELAY_REGISTRY_CONTRACT_ADDRESS": REGISTRY_ADDRESS,
        "RELAY_REGISTRY_PRIVATE_KEY": TEST_KEY,
        "RELAY_AUTOMATION_RPC_URL": "http://automation.example:8545",
        "RELAY_AUTOMATION_CONTRACT_ADDRESS": AUTOMATION_ADDRESS,
        "RELAY_AUTOMATION_PRIVATE_KEY": TEST_KEY,
    }
    env.update(overrides)
    return env


@pytest.mark.unit
class TestLoadConfig:
    """Test load_config."""

    def test_complete_web3_config(self):
        config = load_config(web3_env(RELAY_REGISTRY_CHAIN_ID="23295"))

        assert config.backend == "web3"
        assert config.registry.rpc_url == "http://registry.example:8545"
        assert config.registry.chain_id == 23295
        assert config.automation.chain_id is None
        assert config.automation.contract_address == AUTOMATION_ADDRESS

    def test_defaults(self):
        config = load_config(web3_env())

        assert config.monitoring == MonitoringConfig()
        assert config.monitoring.health_check_interval == 30.0
        assert config.monitoring.event_polling_interval == 15.0
        assert config.monitoring.max_retries == 3
        assert config.monitoring.retry_delay == 5.0
        assert config.monitoring.cache_ttl == 300.0
        assert config.server.host == "127.0.0.1"
        assert config.server.port == 3000
        assert config.database.url == "sqlite:///./lifesignal_relay.db"

    def test_missing_ledger_settings_are_all_reported(self):
        env = web3_env()
        del env["RELAY_REGISTRY_RPC_URL"]
        del env["RELAY_AUTOMATION_PRIVATE_KEY"]

        with pytest.raises(ConfigError) as exc_info:
            load_config(env)

        message = str(exc_info.value)
        assert "RELAY_REGISTRY_RPC_URL" in message
        assert "RELAY_AUTOMATION_PRIVATE_KEY" in message

    def test_blank_value_counts_as_missing(self):
        with pytest.raises(ConfigError, match="RELAY_REGISTRY_PRIVATE_KEY"):
            load_config(web3_env(RELAY_REGISTRY_PRIVATE_KEY="   "))

    def test_memory_backend_needs_no_ledger_settings(self):
        config = load_config({"RELAY_LEDGER_BACKEND": "memory"})

        assert config.backend == "memory"
        assert config.registry.rpc_url == ""

    def test_unknown_backend(self):
        with pytest.raises(ConfigError, match="RELAY_LEDGER_BACKEND"):
            load_config({"RELAY_LEDGER_BACKEND": "carrier-pigeon"})

    def test_invalid_contract_address(self):
        with pytest.raises(ConfigError, match="RELAY_AUTOMATION_CONTRACT_ADDRESS"):
            load_config(web3_env(RELAY_AUTOMATION_CONTRACT_ADDRESS="0x1234"))

    @pytest.mark.parametrize(
        "name,value",
        [
            ("RELAY_HEALTH_CHECK_INTERVAL", "soon"),
            ("RELAY_RETRY_DELAY", "-1"),
            ("RELAY_MAX_RETRIES", "three"),
            ("RELAY_PORT", "0"),
            ("RELAY_REGISTRY_CHAIN_ID", "sepolia"),
        ],
    )
    def test_malformed_numbers(self, name, value):
        with pytest.raises(ConfigError, match=name):
            load_config(web3_env(**{name: value}))

    def test_overrides(self):
        config = load_config(web3_env(
            RELAY_HEALTH_CHECK_INTERVAL="10",
            RELAY_EVENT_POLLING_INTERVAL="2.5",
            RELAY_MAX_RETRIES="0",
            RELAY_RETRY_DELAY="0.5",
            RELAY_CACHE_TTL="60",
            RELAY_PORT="8080",
            RELAY_LOG_LEVEL="debug",
            RELAY_LOG_TO_FILE="false",
            RELAY_SQL_DEBUG="1",
        ))

        assert config.monitoring.health_check_interval == 10.0
        assert config.monitoring.event_polling_interval == 2.5
        assert config.monitoring.max_retries == 0
        assert config.monitoring.retry_delay == 0.5
        assert config.monitoring.cache_ttl == 60.0
        assert config.server.port == 8080
        assert config.logging.level == "DEBUG"
        assert config.logging.log_to_file is False
        assert config.database.echo is True

    def test_to_dict_masks_private_keys(self):
        data = load_config(web3_env()).to_dict()

        assert data["registry"]["private_key"] == "***"
        assert data["automation"]["private_key"] == "***"
        assert TEST_KEY not in str(data)

    def test_get_config_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("RELAY_LEDGER_BACKEND", "memory")
        monkeypatch.setenv("RELAY_PORT", "3100")

        config = get_config()

        assert config.server.port == 3100
        assert get_config() is config
