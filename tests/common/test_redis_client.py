"""Unit tests for the Redis job store using fakeredis."""

import json
from uuid import uuid4

import pytest
from redis.exceptions import RedisError

from common.redis_client import RedisJobClient
from common.schemas import (
    BatchRecord,
    BatchStatus,
    SubtitleIdentity,
    TranslationJob,
    TranslationStatus,
)


def _make_job(identity, lines, **overrides) -> TranslationJob:
    fields = {
        "subtitle_identity": identity,
        "lines": lines,
        "total_batches": 1,
        "batches": [
            BatchRecord(index=0, start_line=0, end_line=len(lines), line_count=len(lines))
        ],
    }
    fields.update(overrides)
    return TranslationJob(**fields)


@pytest.mark.unit
@pytest.mark.asyncio
class TestRedisJobClientConnection:
    """Test RedisJobClient connection lifecycle."""

    async def test_fixture_client_is_connected(self, fake_redis_job_client):
        """Test the fake-backed client reports a live connection."""
        assert fake_redis_job_client.connected is True
        assert await fake_redis_job_client.ensure_connected() is True

    async def test_disconnect_closes_connection(self, fake_redis_job_client):
        """Test that disconnect clears the connected flag."""
        await fake_redis_job_client.disconnect()
        assert fake_redis_job_client.connected is False

    async def test_health_check_returns_healthy_when_connected(
        self, fake_redis_job_client
    ):
        """Test health check returns healthy status when Redis is connected."""
        health = await fake_redis_job_client.health_check()

        assert health == {"connected": True, "status": "healthy"}

    async def test_health_check_returns_disconnected_when_no_client(self):
        """Test health check returns disconnected when client is None."""
        health = await RedisJobClient().health_check()

        assert health["connected"] is False
        assert health["status"] == "disconnected"


@pytest.mark.unit
@pytest.mark.asyncio
class TestRedisJobClientCrud:
    """Test creation, lookup and deletion of jobs."""

    async def test_create_job_stores_document_and_identity(
        self, fake_redis_job_client, sample_identity, line_factory
    ):
        """Test the job document and identity pointer are written."""
        job = _make_job(sample_identity, line_factory(3))

        assert await fake_redis_job_client.create_job(job) == job.id

        stored = json.loads(await fake_redis_job_client.client.get(f"test:job:{job.id}"))
        assert stored["status"] == "processing"
        assert len(stored["lines"]) == 3
        pointer = await fake_redis_job_client.client.get(
            "test:identity:inception|tt1375666"
        )
        assert pointer == str(job.id)

    async def test_create_job_refuses_duplicate_id(
        self, fake_redis_job_client, sample_identity, line_factory
    ):
        """Test an existing job is never overwritten by create."""
        job = _make_job(sample_identity, line_factory(2))
        await fake_redis_job_client.create_job(job)

        assert await fake_redis_job_client.create_job(job) is None

    async def test_get_job_round_trips(
        self, fake_redis_job_client, sample_identity, line_factory
    ):
        """Test a stored job reads back equal."""
        job = _make_job(sample_identity, line_factory(2))
        await fake_redis_job_client.create_job(job)

        loaded = await fake_redis_job_client.get_job(job.id)

        assert loaded.id == job.id
        assert loaded.lines == job.lines
        assert loaded.batches == job.batches

    async def test_get_missing_job_returns_none(self, fake_redis_job_client):
        """Test an unknown id yields None."""
        assert await fake_redis_job_client.get_job(uuid4()) is None

    async def test_get_job_upgrades_legacy_document(self, fake_redis_job_client):
        """Test records without status or identity load as complete jobs."""
        job_id = uuid4()
        legacy = {
            "id": str(job_id),
            "movie_title": "Heat",
            "imdb_id": "tt0113277",
            "lines": [
                {
                    "index": 1,
                    "timestamp": "00:00:01,000 --> 00:00:02,000",
                    "source_text": "Hi",
                    "translated_text": "MY:Hi",
                }
            ],
        }
        await fake_redis_job_client.client.set(f"test:job:{job_id}", json.dumps(legacy))

        job = await fake_redis_job_client.get_job(job_id)

        assert job.status == TranslationStatus.COMPLETE
        assert job.subtitle_identity.movie_title == "Heat"
        assert job.total_batches == 0

    async def test_find_by_identity_is_case_insensitive_on_title(
        self, fake_redis_job_client, sample_identity, line_factory
    ):
        """Test lookups normalize the title."""
        job = _make_job(sample_identity, line_factory(1))
        await fake_redis_job_client.create_job(job)

        found = await fake_redis_job_client.find_by_identity(
            SubtitleIdentity(movie_title="  INCEPTION ", imdb_id="tt1375666")
        )

        assert found.id == job.id

    async def test_find_by_identity_without_record(
        self, fake_redis_job_client, sample_identity
    ):
        """Test an unknown identity yields None."""
        assert await fake_redis_job_client.find_by_identity(sample_identity) is None

    async def test_delete_job_removes_identity_pointer(
        self, fake_redis_job_client, sample_identity, line_factory
    ):
        """Test deleting a job also clears the identity pointing at it."""
        job = _make_job(sample_identity, line_factory(1))
        await fake_redis_job_client.create_job(job)

        assert await fake_redis_job_client.delete_job(job.id) is True

        assert await fake_redis_job_client.get_job(job.id) is None
        assert await fake_redis_job_client.find_by_identity(sample_identity) is None

    async def test_delete_keeps_pointer_to_newer_job(
        self, fake_redis_job_client, sample_identity, line_factory
    ):
        """Test deleting an old job leaves the pointer to a newer one."""
        old = _make_job(sample_identity, line_factory(1))
        new = _make_job(sample_identity, line_factory(1))
        await fake_redis_job_client.create_job(old)
        await fake_redis_job_client.create_job(new)

        await fake_redis_job_client.delete_job(old.id)

        found = await fake_redis_job_client.find_by_identity(sample_identity)
        assert found.id == new.id

    async def test_delete_missing_job_returns_false(self, fake_redis_job_client):
        """Test deleting an unknown job reports failure."""
        assert await fake_redis_job_client.delete_job(uuid4()) is False

    async def test_list_jobs_filters_by_status(
        self, fake_redis_job_client, line_factory
    ):
        """Test jobs can be listed by status."""
        running = _make_job(SubtitleIdentity(movie_title="A"), line_factory(1))
        finished = _make_job(
            SubtitleIdentity(movie_title="B"),
            line_factory(1),
            status=TranslationStatus.COMPLETE,
        )
        await fake_redis_job_client.create_job(running)
        await fake_redis_job_client.create_job(finished)

        processing = await fake_redis_job_client.list_jobs(TranslationStatus.PROCESSING)
        everything = await fake_redis_job_client.list_jobs()

        assert [job.id for job in processing] == [running.id]
        assert {job.id for job in everything} == {running.id, finished.id}


@pytest.mark.unit
@pytest.mark.asyncio
class TestRedisJobClientUpdates:
    """Test guarded updates of job documents."""

    async def test_patch_job_updates_progress(
        self, fake_redis_job_client, sample_identity, line_factory
    ):
        """Test progress fields are written while processing."""
        job = _make_job(sample_identity, line_factory(2))
        await fake_redis_job_client.create_job(job)
        batches = [job.batches[0].model_copy(update={"status": BatchStatus.COMPLETE})]

        assert await fake_redis_job_client.patch_job(
            job.id, {"completed_batches": 1, "batches": batches}
        )

        loaded = await fake_redis_job_client.get_job(job.id)
        assert loaded.completed_batches == 1
        assert loaded.batches[0].status == BatchStatus.COMPLETE
        assert loaded.updated_at >= job.updated_at

    @pytest.mark.parametrize(
        "terminal_status",
        [TranslationStatus.COMPLETE, TranslationStatus.CANCELLED, TranslationStatus.FAILED],
    )
    async def test_patch_job_refuses_protected_fields_when_terminal(
        self, fake_redis_job_client, sample_identity, line_factory, terminal_status
    ):
        """Test terminal jobs never change status, lines or batches."""
        job = _make_job(sample_identity, line_factory(2), status=terminal_status)
        await fake_redis_job_client.create_job(job)

        assert not await fake_redis_job_client.patch_job(
            job.id, {"status": TranslationStatus.PROCESSING}
        )
        assert not await fake_redis_job_client.patch_job(job.id, {"completed_batches": 1})

        loaded = await fake_redis_job_client.get_job(job.id)
        assert loaded.status == terminal_status
        assert loaded.completed_batches == 0

    async def test_patch_missing_job_returns_false(self, fake_redis_job_client):
        """Test patching an unknown job fails without creating it."""
        job_id = uuid4()

        assert not await fake_redis_job_client.patch_job(job_id, {"current_batch": 1})
        assert await fake_redis_job_client.get_job(job_id) is None

    async def test_patch_rejects_invalid_document(
        self, fake_redis_job_client, sample_identity, line_factory
    ):
        """Test writes that break the schema are refused."""
        job = _make_job(sample_identity, line_factory(1))
        await fake_redis_job_client.create_job(job)

        assert not await fake_redis_job_client.patch_job(job.id, {"current_batch": -1})

    async def test_replace_lines_refused_while_processing(
        self, fake_redis_job_client, sample_identity, line_factory
    ):
        """Test user edits cannot race the translation task."""
        job = _make_job(sample_identity, line_factory(2))
        await fake_redis_job_client.create_job(job)

        assert not await fake_redis_job_client.replace_lines(job.id, line_factory(2))

    async def test_replace_lines_allowed_when_terminal(
        self, fake_redis_job_client, sample_identity, line_factory
    ):
        """Test edits are saved once translation is over."""
        job = _make_job(
            sample_identity, line_factory(2), status=TranslationStatus.CANCELLED
        )
        await fake_redis_job_client.create_job(job)
        edited = line_factory(2)
        edited[1].translated_text = "edited"

        assert await fake_redis_job_client.replace_lines(job.id, edited)

        loaded = await fake_redis_job_client.get_job(job.id)
        assert loaded.lines[1].translated_text == "edited"
        assert loaded.status == TranslationStatus.CANCELLED


@pytest.mark.unit
@pytest.mark.asyncio
class TestRedisJobClientUnavailable:
    """Test the store degrades instead of raising when Redis fails."""

    async def test_get_job_returns_none_on_redis_error(
        self, fake_redis_job_client, monkeypatch
    ):
        """Test Redis errors surface as a missing job."""

        async def failing_get(*args, **kwargs):
            raise RedisError("connection reset")

        monkeypatch.setattr(fake_redis_job_client.client, "get", failing_get)

        assert await fake_redis_job_client.get_job(uuid4()) is None

    async def test_operations_fail_softly_when_disconnected(
        self, fake_redis_job_client, sample_identity, line_factory, monkeypatch
    ):
        """Test no exception escapes when the store cannot reconnect."""

        async def no_connection():
            return False

        monkeypatch.setattr(fake_redis_job_client, "ensure_connected", no_connection)

        assert await fake_redis_job_client.create_job(
            _make_job(sample_identity, line_factory(1))
        ) is None
        assert await fake_redis_job_client.patch_job(uuid4(), {"current_batch": 1}) is False
        assert await fake_redis_job_client.list_jobs() == []
