"""Helper functions for Manager service endpoints and lifecycle management."""

import asyncio
import logging
from typing import Sequence
from urllib.parse import quote

from fastapi import Response

from common.config import settings
from common.redis_client import redis_client
from common.schemas import SubtitleLine
from common.subtitle_parser import SRTParser, lines_to_segments
from common.utils import StringUtils
from translator.job_controller import job_controller

logger = logging.getLogger(__name__)


def build_content_disposition(movie_title: str) -> str:
    """
    Attachment header naming the download after the movie.

    Header values must be latin-1, so the plain `filename` carries an ASCII
    fallback and `filename*` (RFC 5987) carries the full UTF-8 name.
    """
    filename = f"{StringUtils.sanitize_filename(movie_title)}.srt"
    ascii_title = movie_title.encode("ascii", "ignore").decode("ascii") if movie_title else ""
    ascii_filename = f"{StringUtils.sanitize_filename(ascii_title)}.srt"
    return (
        f'attachment; filename="{ascii_filename}"; '
        f"filename*=UTF-8''{quote(filename, safe='')}"
    )


def build_srt_export_response(lines: Sequence[SubtitleLine], movie_title: str) -> Response:
    """
    Serialize lines to SRT and wrap them as a file download.

    Each line exports its translation, or its source text when it has none.

    Args:
        lines: Lines to export
        movie_title: Title used for the download file name

    Returns:
        Plain-text response with an attachment Content-Disposition
    """
    content = SRTParser.format(lines_to_segments(lines))
    return Response(
        content=content,
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": build_content_disposition(movie_title)},
    )


async def attempt_redis_connection_on_startup() -> bool:
    """
    Attempt to connect to Redis during application startup.

    Uses a bounded wait to avoid blocking startup; later store calls
    reconnect on demand.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        await asyncio.wait_for(redis_client.connect(), timeout=15.0)
    except asyncio.TimeoutError:
        logger.warning("Redis connection timed out during startup")
        return False

    if not redis_client.connected:
        logger.info(
            "Service will start anyway - the job store reconnects on the next request"
        )
    return redis_client.connected


async def reconcile_interrupted_jobs_on_startup() -> int:
    """
    Mark jobs left `processing` by a previous process as failed.

    Returns:
        Number of jobs reconciled
    """
    if not settings.job_reconcile_on_startup:
        logger.info("Job reconciliation disabled")
        return 0

    if not redis_client.connected:
        logger.warning("Skipping job reconciliation - Redis unavailable")
        return 0

    return await job_controller.reconcile_orphaned_jobs()


async def initialize_all_connections_on_startup() -> None:
    """Connect to the job store and recover interrupted jobs."""
    logger.info("Attempting connection to the job store...")
    await attempt_redis_connection_on_startup()
    await reconcile_interrupted_jobs_on_startup()


async def shutdown_all_connections() -> None:
    """Stop running translation tasks and close the job store connection."""
    logger.info("Shutting down subtitle translation API...")
    await job_controller.runner.shutdown()
    await redis_client.disconnect()
    logger.info("API shutdown complete")
