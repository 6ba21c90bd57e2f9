import httpx
import pytest

from screener.config import Settings


class RecordingSleep:
    """Stand-in for asyncio.sleep that records the requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        greenhouse_api_key="gh-key",
        greenhouse_user_id="42",
        anthropic_api_key="sk-ant-test-key",
        greenhouse_base_url="https://harvest.test/v1",
        greenhouse_app_url="https://app.test",
        data_directory=str(tmp_path / "data"),
        embedding_provider="mock",
    )


@pytest.fixture
def sleeps():
    return RecordingSleep()


@pytest.fixture
def http_factory():
    """Build an AsyncClient whose requests are answered by ``handler``."""
    def make(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return make
