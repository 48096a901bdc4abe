"""Redis-backed job store for translation jobs."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import UUID

import redis.asyncio as redis
from pydantic import ValidationError
from pydantic_core import to_jsonable_python
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from common.config import settings
from common.schemas import (
    SubtitleIdentity,
    SubtitleLine,
    TranslationJob,
    TranslationStatus,
    upgrade_legacy_document,
)
from common.utils import DateTimeUtils, StringUtils

logger = logging.getLogger(__name__)

# Optimistic transaction attempts before giving up on a contended job key
MAX_TRANSACTION_ATTEMPTS = 10

# Fields a translation run may never change once a job is terminal
PROTECTED_FIELDS = {"status", "lines", "batches", "completed_batches", "current_batch"}


class RedisJobClient:
    """Async Redis client storing one JSON document per translation job."""

    def __init__(self, key_prefix: Optional[str] = None):
        """Initialize the Redis client."""
        self.client: Optional[Redis] = None
        self.connected: bool = False
        self.key_prefix = key_prefix or settings.redis_key_prefix
        self._reconnect_lock: Optional[asyncio.Lock] = None
        self._last_health_check: Optional[datetime] = None

    @property
    def reconnect_lock(self) -> asyncio.Lock:
        """Lazy initialization of reconnect lock (must be created within event loop)."""
        if self._reconnect_lock is None:
            self._reconnect_lock = asyncio.Lock()
        return self._reconnect_lock

    async def connect(self) -> None:
        """Establish connection to Redis with retry logic."""
        for attempt in range(settings.redis_reconnect_max_retries):
            try:
                self.client = redis.from_url(
                    settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    max_connections=10,
                )
                await asyncio.wait_for(self.client.ping(), timeout=5.0)
                self.connected = True
                self._last_health_check = datetime.now(timezone.utc)
                logger.info("✅ Connected to Redis successfully")
                return
            except (RedisError, OSError, asyncio.TimeoutError) as e:
                if attempt < settings.redis_reconnect_max_retries - 1:
                    delay = min(
                        settings.redis_reconnect_initial_delay * (2**attempt),
                        settings.redis_reconnect_max_delay,
                    )
                    logger.warning(
                        f"Failed to connect to Redis (attempt {attempt + 1}/{settings.redis_reconnect_max_retries}): {e}. "
                        f"Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(
                        f"Failed to connect to Redis after {settings.redis_reconnect_max_retries} attempts: {e}"
                    )
                    logger.warning("Jobs will not be persisted - Redis unavailable")
                    self.connected = False

    async def disconnect(self) -> None:
        """Close connection to Redis."""
        if self.client:
            try:
                await self.client.aclose()
            except RedisError as e:
                logger.warning(f"Error closing Redis client: {e}")
            finally:
                self.connected = False
                logger.info("Disconnected from Redis")

    async def ensure_connected(self) -> bool:
        """
        Ensure Redis connection is healthy, reconnect if needed.

        Returns:
            True if connected, False otherwise
        """
        if self.connected and self.client:
            if self._last_health_check:
                seconds_since_check = (
                    datetime.now(timezone.utc) - self._last_health_check
                ).total_seconds()
                if seconds_since_check < 10:
                    return True

            try:
                await asyncio.wait_for(self.client.ping(), timeout=5.0)
                self._last_health_check = datetime.now(timezone.utc)
                return True
            except (RedisError, asyncio.TimeoutError) as e:
                logger.warning(f"⚠️ Redis connection lost: {e}")
                self.connected = False

        async with self.reconnect_lock:
            if self.connected and self.client:
                return True

            logger.info("🔄 Attempting Redis reconnection...")
            await self.connect()

        return self.connected

    def _get_job_key(self, job_id: UUID) -> str:
        """Redis key holding the job document."""
        return StringUtils.generate_job_key(self.key_prefix, str(job_id))

    def _get_identity_key(self, identity: SubtitleIdentity) -> str:
        """Redis key mapping a subtitle identity to its latest job id."""
        return StringUtils.generate_identity_key(self.key_prefix, identity.cache_key)

    async def create_job(self, job: TranslationJob) -> Optional[UUID]:
        """
        Store a new job and point its identity at it.

        Args:
            job: Job to store

        Returns:
            The job id if stored, None otherwise
        """
        if not await self.ensure_connected():
            logger.warning(f"Redis unavailable - cannot create job {job.id}")
            return None

        try:
            job_json = json.dumps(job.model_dump(mode="json"), ensure_ascii=False)
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.set(self._get_job_key(job.id), job_json, nx=True)
                pipe.set(self._get_identity_key(job.subtitle_identity), str(job.id))
                created, _ = await pipe.execute()

            if not created:
                logger.error(f"Job {job.id} already exists - refusing to overwrite")
                return None

            logger.debug(f"Created job {job.id} with status {job.status.value}")
            return job.id

        except RedisError as e:
            logger.error(f"Failed to create job {job.id} in Redis: {e}")
            return None

    async def get_job_document(self, job_id: UUID) -> Optional[Dict[str, Any]]:
        """
        Retrieve the raw stored document of a job.

        Args:
            job_id: UUID of the job

        Returns:
            Decoded JSON document, or None if missing or unreadable
        """
        if not await self.ensure_connected():
            logger.warning(f"Redis unavailable - cannot get job {job_id}")
            return None

        try:
            job_json = await self.client.get(self._get_job_key(job_id))
            if not job_json:
                logger.debug(f"Job {job_id} not found in Redis")
                return None
            return json.loads(job_json)

        except RedisError as e:
            logger.error(f"Failed to get job {job_id} from Redis: {e}")
            return None
        except json.JSONDecodeError as e:
            logger.error(f"Stored job {job_id} is not valid JSON: {e}")
            return None

    async def get_job(self, job_id: UUID) -> Optional[TranslationJob]:
        """
        Retrieve a job from Redis by ID.

        Args:
            job_id: UUID of the job to retrieve

        Returns:
            TranslationJob if found, None otherwise
        """
        document = await self.get_job_document(job_id)
        if document is None:
            return None

        try:
            return TranslationJob.model_validate(upgrade_legacy_document(document))
        except ValidationError as e:
            logger.error(f"Stored job {job_id} does not match the job schema: {e}")
            return None

    async def find_by_identity(
        self, identity: SubtitleIdentity
    ) -> Optional[TranslationJob]:
        """
        Find the latest job recorded for a subtitle identity.

        Args:
            identity: Movie title and catalog id

        Returns:
            The job the identity points at, or None
        """
        if not await self.ensure_connected():
            logger.warning("Redis unavailable - cannot look up identity")
            return None

        try:
            job_id = await self.client.get(self._get_identity_key(identity))
        except RedisError as e:
            logger.error(f"Failed to look up identity {identity.cache_key}: {e}")
            return None

        if not job_id:
            return None

        job = await self.get_job(UUID(job_id))
        if job is None:
            logger.debug(f"Identity {identity.cache_key} points at missing job {job_id}")
        return job

    async def _update_document(
        self,
        job_id: UUID,
        mutate: Callable[[Dict[str, Any]], bool],
        action: str,
    ) -> bool:
        """
        Apply a read-modify-write to a job inside a WATCH/MULTI transaction.

        Args:
            job_id: UUID of the job
            mutate: Changes the document in place; returns False to abort
            action: Short description for log messages

        Returns:
            True if the change was written, False otherwise
        """
        if not await self.ensure_connected():
            logger.warning(f"Redis unavailable - cannot {action} job {job_id}")
            return False

        job_key = self._get_job_key(job_id)

        try:
            async with self.client.pipeline(transaction=True) as pipe:
                for _ in range(MAX_TRANSACTION_ATTEMPTS):
                    try:
                        await pipe.watch(job_key)
                        job_json = await pipe.get(job_key)
                        if not job_json:
                            logger.warning(f"Cannot {action} non-existent job {job_id}")
                            return False

                        document = upgrade_legacy_document(json.loads(job_json))
                        if not mutate(document):
                            return False

                        document["updated_at"] = (
                            DateTimeUtils.get_current_utc_datetime().isoformat()
                        )
                        job = TranslationJob.model_validate(document)

                        pipe.multi()
                        pipe.set(
                            job_key,
                            json.dumps(job.model_dump(mode="json"), ensure_ascii=False),
                        )
                        await pipe.execute()
                        return True
                    except WatchError:
                        logger.debug(f"Job {job_id} changed during {action}, retrying")
                        continue

            logger.error(f"Gave up trying to {action} contended job {job_id}")
            return False

        except RedisError as e:
            logger.error(f"Failed to {action} job {job_id} in Redis: {e}")
            return False
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Refusing to {action} job {job_id}: {e}")
            return False

    async def patch_job(
        self,
        job_id: UUID,
        fields: Dict[str, Any],
        allowed_from: Sequence[TranslationStatus] = (TranslationStatus.PROCESSING,),
    ) -> bool:
        """
        Update selected fields of a job.

        Writes are only applied while the stored status is one of
        `allowed_from`; by default that means terminal jobs are never
        changed again.

        Args:
            job_id: UUID of the job to update
            fields: Field values (models, enums and datetimes are accepted)
            allowed_from: Stored statuses in which the write is allowed

        Returns:
            True if successful, False otherwise
        """
        changes = to_jsonable_python(fields)
        allowed = {TranslationStatus(status).value for status in allowed_from}

        def apply(document: Dict[str, Any]) -> bool:
            current_status = document.get("status")
            if current_status not in allowed and PROTECTED_FIELDS & changes.keys():
                logger.info(
                    f"Skipping update of job {job_id}: status is {current_status}"
                )
                return False
            document.update(changes)
            return True

        success = await self._update_document(job_id, apply, "update")
        if success and "status" in changes:
            logger.info(f"Updated job {job_id} status to {changes['status']}")
        return success

    async def replace_lines(self, job_id: UUID, lines: Sequence[SubtitleLine]) -> bool:
        """
        Replace the line set of a job that is no longer being translated.

        Args:
            job_id: UUID of the job
            lines: New lines

        Returns:
            True if written, False if the job is missing or still processing
        """
        new_lines = to_jsonable_python(list(lines))

        def apply(document: Dict[str, Any]) -> bool:
            if document.get("status") == TranslationStatus.PROCESSING.value:
                logger.warning(f"Cannot edit lines of job {job_id} while processing")
                return False
            document["lines"] = new_lines
            return True

        return await self._update_document(job_id, apply, "edit lines of")

    async def delete_job(self, job_id: UUID) -> bool:
        """
        Delete a job and its identity pointer if it still points at it.

        Args:
            job_id: UUID of the job to delete

        Returns:
            True if the job was deleted, False otherwise
        """
        job = await self.get_job(job_id)
        if not await self.ensure_connected():
            logger.warning(f"Redis unavailable - cannot delete job {job_id}")
            return False

        try:
            deleted = await self.client.delete(self._get_job_key(job_id))

            if job is not None:
                identity_key = self._get_identity_key(job.subtitle_identity)
                if await self.client.get(identity_key) == str(job_id):
                    await self.client.delete(identity_key)

            if deleted:
                logger.info(f"Deleted job {job_id} from Redis")
                return True

            logger.warning(f"Job {job_id} not found for deletion")
            return False

        except RedisError as e:
            logger.error(f"Failed to delete job {job_id} from Redis: {e}")
            return False

    async def list_jobs(
        self, status_filter: Optional[TranslationStatus] = None
    ) -> List[TranslationJob]:
        """
        List all jobs, optionally filtered by status.

        Args:
            status_filter: Optional status to filter by

        Returns:
            List of TranslationJob objects
        """
        if not await self.ensure_connected():
            logger.warning("Redis unavailable - cannot list jobs")
            return []

        try:
            job_keys = [
                key
                async for key in self.client.scan_iter(
                    match=StringUtils.generate_job_key(self.key_prefix, "*")
                )
            ]

            jobs = []
            for key in job_keys:
                job_json = await self.client.get(key)
                if not job_json:
                    continue
                try:
                    job = TranslationJob.model_validate(
                        upgrade_legacy_document(json.loads(job_json))
                    )
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.error(f"Failed to deserialize job from key {key}: {e}")
                    continue

                if status_filter is None or job.status == status_filter:
                    jobs.append(job)

            logger.debug(f"Retrieved {len(jobs)} jobs from Redis")
            return jobs

        except RedisError as e:
            logger.error(f"Failed to list jobs from Redis: {e}")
            return []

    async def health_check(self) -> Dict[str, Any]:
        """
        Check Redis connection health.

        Returns:
            Dictionary with health status information
        """
        if not self.client:
            return {
                "connected": False,
                "status": "disconnected",
                "error": "Client not initialized",
            }

        try:
            await self.client.ping()
            return {"connected": True, "status": "healthy"}
        except RedisError as e:
            return {"connected": False, "status": "unhealthy", "error": str(e)}


# Global Redis client instance
redis_client = RedisJobClient()
