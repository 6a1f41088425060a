from fastapi import FastAPI
from fastapi.testclient import TestClient
import pytest

from referral_engine.config import reset_config, set_config
from referral_engine.stats import MemoryClient, NoopStats, Statsd, StatsdMiddleware, get_stats, setup_stats
from tests.test_config import get_test_config


@pytest.fixture
def memory_client() -> MemoryClient:
    return MemoryClient()


def test_memory_client_timing(memory_client: MemoryClient) -> None:
    memory_client.timing("test.timing", 500)
    memory = memory_client.get_memory()
    assert memory["test.timing"] == [500]


def test_memory_client_incr(memory_client: MemoryClient) -> None:
    memory_client.incr("test.counter")
    memory_client.incr("test.counter", 2)
    assert memory_client.get_memory() == {"test.counter": 3}


def test_statsd_prefix(memory_client: MemoryClient) -> None:
    stats = Statsd(memory_client, "referral_engine")
    stats.inc("referral.submitted")
    with stats.timer("referral.dispatch_time"):
        pass

    memory = memory_client.get_memory()
    assert memory["referral_engine.referral.submitted"] == 1
    assert len(memory["referral_engine.referral.dispatch_time"]) == 1


def test_noop_stats() -> None:
    stats = NoopStats()
    stats.inc("x")
    stats.timing("x", 1)
    with stats.timer("x"):
        pass


def test_statsd_middleware() -> None:
    test_conf = get_test_config()
    test_conf.stats.module_name = "test_module"
    set_config(test_conf)

    app = FastAPI()

    @app.get("/test")
    async def test_endpoint() -> dict[str, str]:
        return {"message": "ok"}

    app.add_middleware(StatsdMiddleware)
    setup_stats()
    client = TestClient(app)

    response = client.get("/test")
    assert response.status_code == 200

    stats = get_stats()
    assert isinstance(stats, Statsd)
    assert isinstance(stats.client, MemoryClient)
    memory = stats.client.get_memory()
    assert "test_module.http.request.get./test" in memory
    assert "test_module.http.response_time" in memory
    reset_config()
