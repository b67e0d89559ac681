import pytest

from mcfleet.core.config import Settings

from fakes import (
    FakeDockerRuntime,
    InMemoryAlertRepository,
    InMemoryFilesystem,
    InMemoryInstanceRepository,
    InMemoryMetricRepository,
    InMemoryMonitoringRepository,
)


@pytest.fixture
def settings():
    # Polling settles immediately against the fake runtime
    return Settings(
        STATUS_POLL_INTERVAL_SECONDS=0.0,
        STATUS_POLL_TIMEOUT_SECONDS=0.05,
        STATS_TIMEOUT_SECONDS=0.2,
        CONSOLE_TIMEOUT_SECONDS=0.5,
        METRICS_INTERVAL_SECONDS=3600,
        ALERT_EVAL_INTERVAL_SECONDS=3600,
        RECONCILE_INTERVAL_SECONDS=3600,
    )


@pytest.fixture
def runtime():
    return FakeDockerRuntime()


@pytest.fixture
def instance_repo():
    return InMemoryInstanceRepository()


@pytest.fixture
def metric_repo():
    return InMemoryMetricRepository()


@pytest.fixture
def alert_repo():
    return InMemoryAlertRepository()


@pytest.fixture
def monitoring_repo():
    return InMemoryMonitoringRepository()


@pytest.fixture
def filesystem():
    return InMemoryFilesystem()
