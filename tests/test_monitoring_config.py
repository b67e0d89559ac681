import pytest

from mcfleet.domain.errors import ConfigError
from mcfleet.schemas.monitoring import MonitoringConfig, validate_monitoring_config


def test_defaults_are_valid_without_warnings():
    assert validate_monitoring_config(MonitoringConfig()) == []


@pytest.mark.parametrize("port", [80, 1023, 65536])
def test_out_of_range_port_is_rejected(port):
    with pytest.raises(ConfigError):
        validate_monitoring_config(MonitoringConfig(exposition_port=port))


def test_console_port_override_is_checked():
    with pytest.raises(ConfigError):
        validate_monitoring_config(MonitoringConfig(console_port=22))


def test_commonly_used_port_warns():
    warnings = validate_monitoring_config(MonitoringConfig(exposition_port=9090))
    assert warnings == ["Port 9090 is commonly used by other services"]


def test_interval_bounds():
    with pytest.raises(ConfigError):
        validate_monitoring_config(MonitoringConfig(scrape_interval=0))
    assert len(validate_monitoring_config(MonitoringConfig(scrape_interval=2))) == 1
    assert len(validate_monitoring_config(MonitoringConfig(scrape_interval=600))) == 1
