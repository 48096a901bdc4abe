"""Tests for manager lifecycle and export helpers."""

import asyncio
from unittest.mock import AsyncMock, patch
from urllib.parse import quote

import pytest

from common.config import settings
from manager.helpers import (
    attempt_redis_connection_on_startup,
    build_content_disposition,
    build_srt_export_response,
    reconcile_interrupted_jobs_on_startup,
    shutdown_all_connections,
)


@pytest.mark.unit
class TestBuildSrtExportResponse:
    """Test SRT download responses."""

    def test_exports_translation_or_source(self, line_factory):
        """Translated lines export their translation, others their source."""
        lines = line_factory(2)
        lines[1] = lines[1].model_copy(update={"translated_text": "ကျေးဇူးပါ"})

        response = build_srt_export_response(lines, "Heat")

        assert response.body.decode("utf-8") == (
            "1\n00:00:01,000 --> 00:00:01,900\nLine 1\n\n"
            "2\n00:00:02,000 --> 00:00:02,900\nကျေးဇူးပါ\n"
        )
        assert response.headers["content-disposition"] == (
            "attachment; filename=\"Heat.srt\"; filename*=UTF-8''Heat.srt"
        )
        assert response.media_type == "text/plain; charset=utf-8"

    @pytest.mark.parametrize(
        "title,ascii_name,encoded_name",
        [
            ("Heat", "Heat.srt", "Heat.srt"),
            ("Amélie", "Amlie.srt", "Am%C3%A9lie.srt"),
            ("千と千尋の神隠し", "subtitle.srt", quote("千と千尋の神隠し.srt", safe="")),
            ('AC/DC: "Live"', "ACDC Live.srt", "ACDC%20Live.srt"),
        ],
    )
    def test_content_disposition_is_latin1_safe(self, title, ascii_name, encoded_name):
        """The header encodes as latin-1 whatever script the title uses."""
        header = build_content_disposition(title)

        assert header == (
            f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{encoded_name}"
        )
        header.encode("latin-1")


@pytest.mark.unit
@pytest.mark.asyncio
class TestStartupHelpers:
    """Test startup connection and reconciliation."""

    async def test_connection_success(self):
        """A successful connect reports True."""
        with patch("manager.helpers.redis_client") as redis:
            redis.connect = AsyncMock()
            redis.connected = True

            assert await attempt_redis_connection_on_startup() is True

    async def test_connection_timeout(self):
        """A hanging connect is abandoned."""
        with patch("manager.helpers.redis_client") as redis, patch(
            "manager.helpers.asyncio.wait_for",
            AsyncMock(side_effect=asyncio.TimeoutError),
        ):
            redis.connect = AsyncMock()

            assert await attempt_redis_connection_on_startup() is False

    async def test_reconciles_when_connected(self):
        """Interrupted jobs are reconciled once Redis is up."""
        with patch("manager.helpers.redis_client") as redis, patch(
            "manager.helpers.job_controller"
        ) as controller:
            redis.connected = True
            controller.reconcile_orphaned_jobs = AsyncMock(return_value=2)

            assert await reconcile_interrupted_jobs_on_startup() == 2

    async def test_skips_reconciliation_without_redis(self):
        """No reconciliation is attempted without a store."""
        with patch("manager.helpers.redis_client") as redis, patch(
            "manager.helpers.job_controller"
        ) as controller:
            redis.connected = False
            controller.reconcile_orphaned_jobs = AsyncMock()

            assert await reconcile_interrupted_jobs_on_startup() == 0
            controller.reconcile_orphaned_jobs.assert_not_awaited()

    async def test_reconciliation_can_be_disabled(self):
        """The setting turns the sweep off."""
        with patch.object(settings, "job_reconcile_on_startup", False), patch(
            "manager.helpers.job_controller"
        ) as controller:
            controller.reconcile_orphaned_jobs = AsyncMock()

            assert await reconcile_interrupted_jobs_on_startup() == 0
            controller.reconcile_orphaned_jobs.assert_not_awaited()

    async def test_shutdown_stops_runner_then_redis(self):
        """Running tasks are stopped before the store is closed."""
        calls = []
        with patch("manager.helpers.redis_client") as redis, patch(
            "manager.helpers.job_controller"
        ) as controller:
            controller.runner.shutdown = AsyncMock(
                side_effect=lambda: calls.append("runner")
            )
            redis.disconnect = AsyncMock(side_effect=lambda: calls.append("redis"))

            await shutdown_all_connections()

        assert calls == ["runner", "redis"]
