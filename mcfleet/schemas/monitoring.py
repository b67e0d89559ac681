from pydantic import BaseModel, Field
from typing import List, Optional

from mcfleet.domain.errors import ConfigError

COMMONLY_USED_PORTS = (3000, 8080, 8081, 9090, 9091)
MIN_PORT = 1024
MAX_PORT = 65535


class MonitoringConfig(BaseModel):
    console_enabled: bool = True
    console_port: Optional[int] = Field(None, description="Override for the allocated console port")
    console_password: Optional[str] = Field(None, description="Override for the generated console password")
    exposition_enabled: bool = False
    exposition_port: int = 9225
    scrape_interval: int = Field(15, description="Seconds between scrapes / polls")


class ExporterConfig(BaseModel):
    enable_metrics: bool = True
    metrics_port: int = 9225
    enable_player_metrics: bool = True
    enable_server_metrics: bool = True
    enable_world_metrics: bool = True
    update_interval: int = 15


class MonitoringConfigResponse(BaseModel):
    config: MonitoringConfig
    warnings: List[str] = []


def _check_port(name: str, port: int, errors: List[str], warnings: List[str]) -> None:
    if port < MIN_PORT or port > MAX_PORT:
        errors.append(f"{name} must be between {MIN_PORT} and {MAX_PORT}")
    elif port in COMMONLY_USED_PORTS:
        warnings.append(f"Port {port} is commonly used by other services")


def validate_monitoring_config(config: MonitoringConfig) -> List[str]:
    """
    Reject invalid values with ConfigError; return warnings for borderline ones.
    """
    errors: List[str] = []
    warnings: List[str] = []

    _check_port("Exposition port", config.exposition_port, errors, warnings)
    if config.console_port is not None:
        _check_port("Console port", config.console_port, errors, warnings)

    if config.scrape_interval <= 0:
        errors.append("Scrape interval must be positive")
    elif config.scrape_interval < 5:
        warnings.append("Scrape interval less than 5 seconds may impact server performance")
    elif config.scrape_interval > 300:
        warnings.append("Scrape interval greater than 5 minutes may result in stale metrics")

    if errors:
        raise ConfigError("; ".join(errors))
    return warnings
