"""
Configuration management for the LifeSignal relay.

All settings come from the environment. Missing or malformed required
values raise ConfigError; the launcher treats that as fatal before any
ledger connection is opened.
"""

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .domain.errors import ConfigError
from .domain.models import normalize_address

LEDGER_BACKENDS = ("web3", "memory")


@dataclass
class LedgerConfig:
    """Connection and signing settings for one ledger."""

    name: str
    rpc_url: str = ""
    contract_address: str = ""
    private_key: str = field(default="", repr=False)
    chain_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["private_key"] = "***" if self.private_key else ""
        return data


@dataclass
class MonitoringConfig:
    """Timers, retry policy and subscription tuning."""

    health_check_interval: float = 30.0
    event_polling_interval: float = 15.0
    max_retries: int = 3
    retry_delay: float = 5.0
    cache_ttl: float = 300.0
    cache_eviction_interval: float = 600.0
    tx_timeout: float = 120.0
    max_block_range: int = 1000
    event_queue_size: int = 1000
    stream_backoff_max: float = 300.0


@dataclass
class ServerConfig:
    """Control surface configuration."""

    host: str = "127.0.0.1"
    port: int = 3000


@dataclass
class LoggingConfig:
    level: str = "INFO"
    log_dir: str = "logs"
    log_to_file: bool = True


@dataclass
class DatabaseConfig:
    """Event journal database."""

    url: str = "sqlite:///./lifesignal_relay.db"
    echo: bool = False


@dataclass
class RelayConfig:
    """Complete configuration for the relay."""

    registry: LedgerConfig
    automation: LedgerConfig
    backend: str = "web3"
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with secrets masked."""
        return {
            "backend": self.backend,
            "registry": self.registry.to_dict(),
            "automation": self.automation.to_dict(),
            "monitoring": asdict(self.monitoring),
            "server": asdict(self.server),
            "logging": asdict(self.logging),
            "database": asdict(self.database),
        }


def _get_float(env: Mapping[str, str], name: str, default: float, errors: List[str]) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        errors.append(f"{name} must be a number, got {raw!r}")
        return default
    if value <= 0:
        errors.append(f"{name} must be positive, got {raw!r}")
    return value


def _get_int(env: Mapping[str, str], name: str, default: int, errors: List[str], minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        errors.append(f"{name} must be an integer, got {raw!r}")
        return default
    if value < minimum:
        errors.append(f"{name} must be >= {minimum}, got {raw!r}")
    return value


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _load_ledger(
    env: Mapping[str, str], name: str, required: bool, missing: List[str], errors: List[str]
) -> LedgerConfig:
    prefix = f"RELAY_{name.upper()}_"
    values = {}
    for key in ("RPC_URL", "CONTRACT_ADDRESS", "PRIVATE_KEY"):
        value = (env.get(prefix + key) or "").strip()
        if required and not value:
            missing.append(prefix + key)
        values[key] = value

    contract_address = values["CONTRACT_ADDRESS"]
    if contract_address:
        try:
            normalize_address(contract_address)
        except ValueError:
            errors.append(f"{prefix}CONTRACT_ADDRESS is not a valid address")

    chain_id = None
    raw_chain = (env.get(prefix + "CHAIN_ID") or "").strip()
    if raw_chain:
        try:
            chain_id = int(raw_chain)
        except ValueError:
            errors.append(f"{prefix}CHAIN_ID must be an integer, got {raw_chain!r}")

    return LedgerConfig(
        name=name,
        rpc_url=values["RPC_URL"],
        contract_address=contract_address,
        private_key=values["PRIVATE_KEY"],
        chain_id=chain_id,
    )


def load_config(env: Optional[Mapping[str, str]] = None) -> RelayConfig:
    """Build the relay configuration from environment variables.

    Args:
        env: Mapping to read from, defaults to ``os.environ``

    Raises:
        ConfigError: If required settings are missing or malformed
    """
    if env is None:
        env = os.environ

    missing: List[str] = []
    errors: List[str] = []

    backend = (env.get("RELAY_LEDGER_BACKEND") or "web3").strip().lower()
    if backend not in LEDGER_BACKENDS:
        errors.append(f"RELAY_LEDGER_BACKEND must be one of {LEDGER_BACKENDS}, got {backend!r}")
    ledgers_required = backend == "web3"

    registry = _load_ledger(env, "registry", ledgers_required, missing, errors)
    automation = _load_ledger(env, "automation", ledgers_required, missing, errors)

    defaults = MonitoringConfig()
    monitoring = MonitoringConfig(
        health_check_interval=_get_float(env, "RELAY_HEALTH_CHECK_INTERVAL", defaults.health_check_interval, errors),
        event_polling_interval=_get_float(env, "RELAY_EVENT_POLLING_INTERVAL", defaults.event_polling_interval, errors),
        max_retries=_get_int(env, "RELAY_MAX_RETRIES", defaults.max_retries, errors, minimum=0),
        retry_delay=_get_float(env, "RELAY_RETRY_DELAY", defaults.retry_delay, errors),
        cache_ttl=_get_float(env, "RELAY_CACHE_TTL", defaults.cache_ttl, errors),
        cache_eviction_interval=_get_float(
            env, "RELAY_CACHE_EVICTION_INTERVAL", defaults.cache_eviction_interval, errors
        ),
        tx_timeout=_get_float(env, "RELAY_TX_TIMEOUT", defaults.tx_timeout, errors),
        max_block_range=_get_int(env, "RELAY_MAX_BLOCK_RANGE", defaults.max_block_range, errors),
        event_queue_size=_get_int(env, "RELAY_EVENT_QUEUE_SIZE", defaults.event_queue_size, errors),
        stream_backoff_max=_get_float(env, "RELAY_STREAM_BACKOFF_MAX", defaults.stream_backoff_max, errors),
    )

    server = ServerConfig(
        host=(env.get("RELAY_HOST") or ServerConfig.host).strip(),
        port=_get_int(env, "RELAY_PORT", ServerConfig.port, errors),
    )

    logging_config = LoggingConfig(
        level=(env.get("RELAY_LOG_LEVEL") or LoggingConfig.level).strip().upper(),
        log_dir=(env.get("RELAY_LOG_DIR") or LoggingConfig.log_dir).strip(),
        log_to_file=_get_bool(env, "RELAY_LOG_TO_FILE", LoggingConfig.log_to_file),
    )

    database = DatabaseConfig(
        url=(env.get("RELAY_DATABASE_URL") or DatabaseConfig.url).strip(),
        echo=_get_bool(env, "RELAY_SQL_DEBUG", False),
    )

    if missing:
        errors.insert(0, "Missing required environment variables: " + ", ".join(missing))
    if errors:
        raise ConfigError("; ".join(errors))

    return RelayConfig(
        registry=registry,
        automation=automation,
        backend=backend,
        monitoring=monitoring,
        server=server,
        logging=logging_config,
        database=database,
    )


# Global configuration instance
_config: Optional[RelayConfig] = None


def get_config() -> RelayConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached configuration (used by tests)."""
    global _config
    _config = None
