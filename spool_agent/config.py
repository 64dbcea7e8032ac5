"""Configuration loader for spool-agent."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants


@dataclass(slots=True)
class WatcherConfig:
    root: Path = constants.DEFAULT_WATCH_ROOT
    debounce_seconds: float = 3.0
    cooldown_seconds: float = 6.0
    scan_interval_seconds: float = 5.0
    purge_interval_seconds: float = 3600.0
    max_age_days: float = 1.0


@dataclass(slots=True)
class SpoolerConfig:
    command_timeout_seconds: float = 30.0
    default_driver: str = constants.DEFAULT_DRIVER


@dataclass(slots=True)
class NetworkConfig:
    ping_timeout_seconds: int = 2
    port_timeout_seconds: float = 5.0
    snmp_community: str = "public"
    snmp_timeout_seconds: float = 5.0


@dataclass(slots=True)
class DatabaseConfig:
    url: str = constants.DEFAULT_DATABASE_URL
    schema: Optional[str] = None
    echo: bool = False


@dataclass(slots=True)
class CentralConfig:
    base_url: Optional[str] = None
    api_token: Optional[str] = None
    printer_sync_interval_seconds: float = 300.0
    job_sync_interval_seconds: float = 60.0
    request_timeout_seconds: float = 15.0

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = constants.DEFAULT_LOG_PATH
    verbose_libraries: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class AgentConfig:
    watcher: WatcherConfig
    spooler: SpoolerConfig
    network: NetworkConfig
    database: DatabaseConfig
    central: CentralConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def load_config(path: Optional[Path] = None) -> AgentConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "watcher": {
                "root": str(constants.DEFAULT_WATCH_ROOT),
                "debounce_seconds": "3.0",
                "cooldown_seconds": "6.0",
                "scan_interval_seconds": "5.0",
                "purge_interval_seconds": "3600",
                "max_age_days": "1",
            },
            "spooler": {
                "command_timeout_seconds": "30.0",
                "default_driver": constants.DEFAULT_DRIVER,
            },
            "network": {
                "ping_timeout_seconds": "2",
                "port_timeout_seconds": "5.0",
                "snmp_community": "public",
                "snmp_timeout_seconds": "5.0",
            },
            "database": {
                "url": constants.DEFAULT_DATABASE_URL,
                "schema": "",
                "echo": "false",
            },
            "central": {
                "base_url": "",
                "api_token": "",
                "printer_sync_interval_seconds": "300",
                "job_sync_interval_seconds": "60",
                "request_timeout_seconds": "15",
            },
            "logging": {
                "level": "INFO",
                "path": str(constants.DEFAULT_LOG_PATH),
                "verbose_libraries": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    watcher_defaults = WatcherConfig()
    watcher = WatcherConfig(
        root=Path(parser.get("watcher", "root")).expanduser(),
        debounce_seconds=parser.getfloat(
            "watcher", "debounce_seconds", fallback=watcher_defaults.debounce_seconds
        ),
        cooldown_seconds=parser.getfloat(
            "watcher", "cooldown_seconds", fallback=watcher_defaults.cooldown_seconds
        ),
        scan_interval_seconds=parser.getfloat(
            "watcher",
            "scan_interval_seconds",
            fallback=watcher_defaults.scan_interval_seconds,
        ),
        purge_interval_seconds=parser.getfloat(
            "watcher",
            "purge_interval_seconds",
            fallback=watcher_defaults.purge_interval_seconds,
        ),
        max_age_days=parser.getfloat(
            "watcher", "max_age_days", fallback=watcher_defaults.max_age_days
        ),
    )

    spooler = SpoolerConfig(
        command_timeout_seconds=parser.getfloat(
            "spooler", "command_timeout_seconds", fallback=30.0
        ),
        default_driver=parser.get(
            "spooler", "default_driver", fallback=constants.DEFAULT_DRIVER
        ).strip()
        or constants.DEFAULT_DRIVER,
    )

    network = NetworkConfig(
        ping_timeout_seconds=parser.getint("network", "ping_timeout_seconds", fallback=2),
        port_timeout_seconds=parser.getfloat(
            "network", "port_timeout_seconds", fallback=5.0
        ),
        snmp_community=parser.get("network", "snmp_community", fallback="public"),
        snmp_timeout_seconds=parser.getfloat(
            "network", "snmp_timeout_seconds", fallback=5.0
        ),
    )

    database = DatabaseConfig(
        url=parser.get("database", "url"),
        schema=_optional(parser.get("database", "schema", fallback=None)),
        echo=parser.getboolean("database", "echo", fallback=False),
    )

    central = CentralConfig(
        base_url=_optional(parser.get("central", "base_url", fallback=None)),
        api_token=_optional(parser.get("central", "api_token", fallback=None)),
        printer_sync_interval_seconds=parser.getfloat(
            "central", "printer_sync_interval_seconds", fallback=300.0
        ),
        job_sync_interval_seconds=parser.getfloat(
            "central", "job_sync_interval_seconds", fallback=60.0
        ),
        request_timeout_seconds=parser.getfloat(
            "central", "request_timeout_seconds", fallback=15.0
        ),
    )

    log_path_value = _optional(parser.get("logging", "path", fallback=None))
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        verbose_libraries=parser.getboolean(
            "logging", "verbose_libraries", fallback=False
        ),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=parser.getint("health", "port", fallback=0),
    )

    return AgentConfig(
        watcher=watcher,
        spooler=spooler,
        network=network,
        database=database,
        central=central,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )


def save_config(config: AgentConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
