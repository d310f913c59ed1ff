import pytest
from typer.testing import CliRunner

from graphguard.infrastructure.config.settings import set_config_for_testing, clear_test_config


class FakeClock:
    """Manually advanced monotonic clock for limiter/breaker tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        # Sleeping just moves time forward
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keeps tests away from real credentials, the user's cache dir and real sleeps."""
    for var in ("AZURE_TENANT_ID", "AZURE_CLIENT_ID", "AZURE_CLIENT_SECRET"):
        monkeypatch.delenv(var, raising=False)
    set_config_for_testing({
        'cache.dir': str(tmp_path / "cache"),
        'resilience.retry.initial_delay': 0.0,
        'resilience.retry.max_delay': 0.0,
        'logging.level': 'WARNING',
    })
    yield
    clear_test_config()
