"""Shared fixtures for the draftmind suites.

Unit tests run against in-process doubles. Integration tests that need a
memory store backend share one Redis container per session; it starts on
first use and the dependent tests skip when Docker cannot be reached.
"""

from __future__ import annotations

import logging
from pathlib import Path
import time

import pytest
import redis as sync_redis
from dotenv import load_dotenv
from redis.asyncio import Redis
from testcontainers.core.container import DockerContainer

from draftmind.observability import reset_call_metrics

logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[1]
REDIS_IMAGE = "redis:7-alpine"
REDIS_READY_ATTEMPTS = 30

# Opt-in flags such as DRAFTMIND_RUN_REAL_LLM_EVALS may live in .env.
load_dotenv(dotenv_path=REPO_ROOT / ".env", override=False)

_SUITE_MARKERS = {
    "unit": pytest.mark.unit,
    "integration": pytest.mark.integration,
}


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark each test with the suite directory it lives in."""
    for item in items:
        try:
            parts = Path(str(item.fspath)).resolve().relative_to(REPO_ROOT / "tests").parts
        except ValueError:
            continue
        marker = _SUITE_MARKERS.get(parts[0]) if len(parts) > 1 else None
        if marker is not None:
            item.add_marker(marker)


@pytest.fixture(autouse=True)
def clean_call_metrics():
    """Give every test an empty call-metrics registry."""
    reset_call_metrics()
    yield
    reset_call_metrics()


# ---------------------------------------------------------------------------
# Redis memory store backend
# ---------------------------------------------------------------------------


def _wait_for_redis(url: str) -> None:
    """Block until the server at *url* answers PING."""
    client = sync_redis.Redis.from_url(url)
    try:
        for attempt in range(1, REDIS_READY_ATTEMPTS + 1):
            try:
                client.ping()
                return
            except (sync_redis.ConnectionError, sync_redis.TimeoutError) as exc:
                if attempt == REDIS_READY_ATTEMPTS:
                    raise
                logger.debug("waiting for redis at %s (%d/%d): %s", url, attempt, REDIS_READY_ATTEMPTS, exc)
                time.sleep(1)
    finally:
        client.close()


@pytest.fixture(scope="session")
def redis_container():
    """Yield the URL of a session-wide Redis container backing RedisMemoryStore."""
    try:
        container = DockerContainer(REDIS_IMAGE).with_exposed_ports(6379)
        container.start()
    except Exception as exc:
        pytest.skip(f"cannot start {REDIS_IMAGE} (is Docker running?): {exc}")

    try:
        url = f"redis://{container.get_container_host_ip()}:{container.get_exposed_port(6379)}"
        _wait_for_redis(url)
        yield url
    finally:
        container.stop()


@pytest.fixture()
async def redis_client(redis_container):
    """Async client on an empty database; memories from other tests never leak in."""
    client = Redis.from_url(redis_container)
    await client.flushdb()
    try:
        yield client
    finally:
        await client.flushdb()
        await client.aclose()
