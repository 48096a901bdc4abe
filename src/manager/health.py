"""Health check aggregation for the translation API."""

import logging
from typing import Any, Dict, Tuple

from common.redis_client import redis_client
from translator.job_controller import job_controller

logger = logging.getLogger(__name__)


async def check_redis_connection_health() -> Tuple[bool, Dict[str, Any]]:
    """
    Check Redis connection and ping responsiveness.

    Returns tuple of (is_healthy, details_dict).
    """
    try:
        if not await redis_client.ensure_connected():
            return False, {"status": "not_connected"}

        details = await redis_client.health_check()
        return bool(details.get("connected")), details
    except Exception as e:
        return False, {"status": "error", "error": str(e)}


def check_job_runner_health() -> Dict[str, Any]:
    """Running translation tasks in this process."""
    running = job_controller.runner.running_job_ids()
    return {
        "running_jobs": len(running),
        "job_ids": [str(job_id) for job_id in running],
    }


async def check_health() -> Dict[str, Any]:
    """
    Perform health check of the translation API.

    Returns:
        Dictionary with overall status and individual component details
    """
    try:
        redis_healthy, redis_details = await check_redis_connection_health()

        health_status = {
            "status": "healthy" if redis_healthy else "unhealthy",
            "checks": {"redis_connected": redis_healthy},
            "details": {
                "redis": redis_details,
                "job_runner": check_job_runner_health(),
            },
        }
        return health_status

    except Exception as e:
        logger.error(f"Health check failed: {e}", exc_info=True)
        return {
            "status": "error",
            "error": str(e),
            "checks": {},
            "details": {},
        }
