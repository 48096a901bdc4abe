"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path
from typing import List
from unittest.mock import AsyncMock
from uuid import uuid4

import fakeredis.aioredis
import pytest
import pytest_asyncio

# Add src directory to Python path for imports
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from common.redis_client import RedisJobClient
from common.schemas import SubtitleIdentity, SubtitleLine


@pytest_asyncio.fixture
async def fake_redis_client():
    """
    Fake Redis client using fakeredis for realistic Redis behavior.

    This provides a real Redis-like interface without requiring a Redis server,
    including WATCH/MULTI transactions.
    """
    fake_redis = fakeredis.aioredis.FakeRedis(decode_responses=True, encoding="utf-8")
    yield fake_redis
    await fake_redis.flushall()
    await fake_redis.aclose()


@pytest_asyncio.fixture
async def fake_redis_job_client(fake_redis_client):
    """
    RedisJobClient instance using fakeredis for testing.

    This provides a fully functional job store with realistic Redis behavior
    for unit testing without external dependencies.
    """
    client = RedisJobClient(key_prefix="test")
    # Replace the client's Redis connection with our fake one
    client.client = fake_redis_client
    client.connected = True
    yield client
    client.connected = False


@pytest.fixture
def mock_translator():
    """Translator stub echoing each text with a Burmese marker."""
    translator = AsyncMock()

    async def translate_batch(texts):
        return [f"MY:{text}" for text in texts]

    translator.translate_batch = AsyncMock(side_effect=translate_batch)
    return translator


def make_lines(count: int) -> List[SubtitleLine]:
    """Build `count` numbered lines one second apart."""
    return [
        SubtitleLine(
            index=position,
            timestamp=f"00:00:{position % 60:02d},000 --> 00:00:{position % 60:02d},900",
            source_text=f"Line {position}",
        )
        for position in range(1, count + 1)
    ]


@pytest.fixture
def line_factory():
    """Factory building numbered subtitle lines."""
    return make_lines


@pytest.fixture
def sample_identity():
    """Identity of a well-known movie."""
    return SubtitleIdentity(movie_title="Inception", imdb_id="tt1375666")


@pytest.fixture
def sample_lines():
    """Sixty subtitle lines (three batches of 25 at most)."""
    return make_lines(60)


@pytest.fixture
def sample_srt_content():
    """Small SRT file with a multi-line cue."""
    return (
        "1\n"
        "00:00:01,000 --> 00:00:03,500\n"
        "We need to go deeper.\n"
        "\n"
        "2\n"
        "00:00:04,000 --> 00:00:06,000\n"
        "Dreams feel real\n"
        "while we're in them.\n"
        "\n"
        "3\n"
        "00:01:10,250 --> 00:01:12,000\n"
        "Wake up.\n"
    )


@pytest.fixture
def sample_job_id():
    """Generate a sample UUID for testing."""
    return uuid4()
