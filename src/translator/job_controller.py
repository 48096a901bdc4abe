"""Translation job lifecycle: caching, batch execution, cancellation and recovery."""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from common.config import settings
from common.redis_client import RedisJobClient, redis_client
from common.schemas import (
    BatchRecord,
    BatchStatus,
    JobStatusSnapshot,
    SubtitleIdentity,
    SubtitleLine,
    TranslationJob,
    TranslationStartResult,
    TranslationStatus,
)
from common.subtitle_parser import (
    extract_text_for_translation,
    merge_batch_translations,
)
from translator.batch_planner import plan_batches
from translator.job_runner import JobRunner
from translator.status_reporter import build_status_snapshot
from translator.translation_service import SubtitleTranslator

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Interrupted before completion"


class InvalidSubtitleIdentityError(ValueError):
    """Raised when a translation request lacks the fields identifying the subtitle."""


class JobNotFoundError(LookupError):
    """Raised when no job exists for the given id."""

    def __init__(self, job_id: UUID):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobInProgressError(RuntimeError):
    """Raised when a job's lines are edited while it is still being translated."""

    def __init__(self, job_id: UUID):
        super().__init__(f"Job {job_id} is still being translated")
        self.job_id = job_id


class JobStoreError(RuntimeError):
    """Raised when the job store refuses or fails a required write."""


def _with_batch_status(
    batches: Sequence[BatchRecord], index: int, status: BatchStatus
) -> List[BatchRecord]:
    return [
        batch.model_copy(update={"status": status}) if batch.index == index else batch
        for batch in batches
    ]


def _fail_in_flight_batches(batches: Sequence[BatchRecord]) -> List[BatchRecord]:
    return [
        batch.model_copy(update={"status": BatchStatus.FAILED})
        if batch.status == BatchStatus.PROCESSING
        else batch
        for batch in batches
    ]


class TranslationJobController:
    """
    Owns the lifecycle of translation jobs.

    A job is created in `processing`, translated batch by batch in a
    detached task and resolved to `complete`, `cancelled` or `failed`.
    The stored record is the only channel between the task and pollers.
    """

    def __init__(
        self,
        store: RedisJobClient,
        translator: SubtitleTranslator,
        runner: Optional[JobRunner] = None,
        batch_size: Optional[int] = None,
        max_auto_lines: Optional[int] = None,
        batch_timeout: Optional[float] = None,
    ):
        """
        Initialize the controller.

        Args:
            store: Job store
            translator: Translation gateway
            runner: Background task registry (a private one when omitted)
            batch_size: Lines per batch, defaults to settings
            max_auto_lines: Ceiling on automatically translated lines, defaults to settings
            batch_timeout: Seconds allowed per batch call, defaults to settings
        """
        self.store = store
        self.translator = translator
        self.runner = runner or JobRunner()
        self.batch_size = batch_size or settings.translation_batch_size
        self.max_auto_lines = max_auto_lines or settings.translation_max_auto_lines
        self.batch_timeout = batch_timeout or settings.translation_batch_timeout

    async def get_cached_job(
        self, identity: SubtitleIdentity
    ) -> Optional[TranslationJob]:
        """
        Return the completed job recorded for an identity, if any.

        Args:
            identity: Movie title and catalog id

        Returns:
            The complete job, or None when there is none
        """
        existing = await self.store.find_by_identity(identity)
        if existing is not None and existing.status == TranslationStatus.COMPLETE:
            return existing
        return None

    async def start_or_resume(
        self, identity: SubtitleIdentity, source_lines: Sequence[SubtitleLine]
    ) -> TranslationStartResult:
        """
        Return a cached translation or start a new job for the identity.

        A complete record is returned as is. Any other record for the same
        identity is discarded and translation restarts from the first batch.
        The new job runs in the background; this returns immediately.

        Args:
            identity: Movie title and catalog id
            source_lines: Parsed subtitle lines, in order

        Returns:
            TranslationStartResult with the job id and plan summary

        Raises:
            InvalidSubtitleIdentityError: If the movie title is missing
            JobStoreError: If the new job could not be stored
        """
        if not identity.movie_title:
            raise InvalidSubtitleIdentityError("movie_title is required")

        existing = await self.store.find_by_identity(identity)
        if existing is not None:
            if existing.status == TranslationStatus.COMPLETE:
                logger.info(
                    f"♻️  Cache hit for '{identity.movie_title}' ({identity.imdb_id}): "
                    f"job {existing.id}"
                )
                return TranslationStartResult.from_cached_job(existing)

            logger.info(
                f"🗑️  Discarding stale job {existing.id} ({existing.status.value}) "
                f"for '{identity.movie_title}'"
            )
            await self.store.delete_job(existing.id)

        plan = plan_batches(len(source_lines), self.batch_size, self.max_auto_lines)
        job = TranslationJob(
            subtitle_identity=identity,
            lines=[
                line.model_copy(update={"translated_text": ""}) for line in source_lines
            ],
            status=TranslationStatus.PROCESSING,
            total_batches=plan.total_batches,
            completed_batches=0,
            current_batch=0,
            batches=plan.batches,
        )

        if await self.store.create_job(job) is None:
            raise JobStoreError(f"Could not store translation job {job.id}")

        self.runner.launch(job.id, lambda: self.run_job(job.id))

        logger.info(
            f"🚀 Started job {job.id} for '{identity.movie_title}': "
            f"{plan.total_to_translate}/{plan.total_lines} lines in "
            f"{plan.total_batches} batches"
        )
        return TranslationStartResult(
            job_id=job.id,
            total_batches=plan.total_batches,
            total_lines=plan.total_lines,
            cache_hit=False,
        )

    async def run_job(self, job_id: UUID) -> None:
        """
        Execution loop of one job; runs as a detached task.

        Args:
            job_id: Job to translate
        """
        try:
            await self._execute_batches(job_id)
        except asyncio.CancelledError:
            logger.warning(f"⏹️  Execution of job {job_id} was interrupted")
            raise
        except Exception as e:
            logger.exception(f"❌ Job {job_id} failed: {e}")
            await self._mark_job_failed(job_id, str(e))

    async def _execute_batches(self, job_id: UUID) -> None:
        job = await self.store.get_job(job_id)
        if job is None:
            logger.warning(f"Job {job_id} disappeared before translation started")
            return

        for batch_index in range(job.total_batches):
            # Cancellation and stale-record deletion are observed here
            job = await self.store.get_job(job_id)
            if job is None or job.status != TranslationStatus.PROCESSING:
                state = job.status.value if job else "deleted"
                logger.info(
                    f"Stopping job {job_id} before batch {batch_index + 1}: {state}"
                )
                return

            batch = job.batches[batch_index]
            batches = _with_batch_status(job.batches, batch_index, BatchStatus.PROCESSING)
            if not await self.store.patch_job(
                job_id, {"current_batch": batch_index, "batches": batches}
            ):
                logger.info(f"Job {job_id} no longer accepts progress, stopping")
                return

            logger.info(
                f"🔄 Job {job_id}: batch {batch_index + 1}/{job.total_batches} "
                f"(lines {batch.start_line + 1}-{batch.end_line})"
            )
            texts = extract_text_for_translation(
                job.lines, batch.start_line, batch.end_line
            )

            try:
                translations = await asyncio.wait_for(
                    self.translator.translate_batch(texts), timeout=self.batch_timeout
                )
            except Exception as e:
                error = str(e) or type(e).__name__
                logger.error(
                    f"❌ Job {job_id}: batch {batch_index + 1} failed, continuing: {error}"
                )
                written = await self.store.patch_job(
                    job_id,
                    {
                        "completed_batches": batch_index + 1,
                        "batches": _with_batch_status(
                            batches, batch_index, BatchStatus.FAILED
                        ),
                    },
                )
            else:
                lines = merge_batch_translations(job.lines, batch.start_line, translations)
                written = await self.store.patch_job(
                    job_id,
                    {
                        "lines": lines,
                        "completed_batches": batch_index + 1,
                        "batches": _with_batch_status(
                            batches, batch_index, BatchStatus.COMPLETE
                        ),
                    },
                )

            if not written:
                logger.info(
                    f"Discarding result of batch {batch_index + 1} for job {job_id}: "
                    f"record no longer accepts progress"
                )
                return

        if await self.store.patch_job(
            job_id,
            {
                "status": TranslationStatus.COMPLETE,
                "completed_batches": job.total_batches,
            },
        ):
            logger.info(f"✅ Job {job_id} complete ({job.total_batches} batches)")

    async def _mark_job_failed(self, job_id: UUID, error_message: str) -> None:
        job = await self.store.get_job(job_id)
        if job is None:
            return

        await self.store.patch_job(
            job_id,
            {
                "status": TranslationStatus.FAILED,
                "batches": _fail_in_flight_batches(job.batches),
                "error_message": error_message,
            },
        )

    async def cancel(self, job_id: UUID) -> TranslationStatus:
        """
        Request cancellation of a job.

        Only flips the stored status; the execution loop notices it at the
        next batch boundary. A job already in a terminal state is left alone.

        Args:
            job_id: Job to cancel

        Returns:
            The job's status after the request

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.status.is_terminal:
            logger.info(f"Job {job_id} already {job.status.value}, nothing to cancel")
            return job.status

        if await self.store.patch_job(job_id, {"status": TranslationStatus.CANCELLED}):
            logger.info(f"⏹️  Job {job_id} cancelled")
            return TranslationStatus.CANCELLED

        # Lost the race against completion or failure
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job.status

    async def get_status(self, job_id: UUID) -> JobStatusSnapshot:
        """
        Progress snapshot of a job.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        document = await self.store.get_job_document(job_id)
        if document is None:
            raise JobNotFoundError(job_id)
        return build_status_snapshot(document)

    async def get_job(self, job_id: UUID) -> TranslationJob:
        """
        Full job record including lines.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def update_lines(
        self, job_id: UUID, edited_lines: Sequence[SubtitleLine]
    ) -> TranslationJob:
        """
        Apply manual translation edits to a job that is no longer running.

        Each edited line replaces the translated text of the stored line with
        the same index; timestamps and source text are kept.

        Args:
            job_id: Job to edit
            edited_lines: Lines carrying the new translated text

        Returns:
            The updated job

        Raises:
            JobNotFoundError: If the job does not exist
            JobInProgressError: If the job is still being translated
            JobStoreError: If the edit could not be written
        """
        job = await self.get_job(job_id)
        if job.status == TranslationStatus.PROCESSING:
            raise JobInProgressError(job_id)

        edits: Dict[int, str] = {line.index: line.translated_text for line in edited_lines}
        unknown = edits.keys() - {line.index for line in job.lines}
        if unknown:
            logger.debug(f"Ignoring edits for unknown line indices {sorted(unknown)}")

        lines = [
            line.model_copy(update={"translated_text": edits[line.index]})
            if line.index in edits
            else line
            for line in job.lines
        ]

        if not await self.store.replace_lines(job_id, lines):
            current = await self.store.get_job(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            if current.status == TranslationStatus.PROCESSING:
                raise JobInProgressError(job_id)
            raise JobStoreError(f"Could not save edited lines of job {job_id}")

        logger.info(f"✏️  Saved {len(edits)} edited line(s) for job {job_id}")
        return await self.get_job(job_id)

    async def reconcile_orphaned_jobs(self) -> int:
        """
        Fail jobs left in `processing` by a process that no longer runs them.

        Meant to run at startup, before any new job is launched.

        Returns:
            Number of jobs marked failed
        """
        reconciled = 0
        for job in await self.store.list_jobs(TranslationStatus.PROCESSING):
            if self.runner.is_running(job.id):
                continue

            if await self.store.patch_job(
                job.id,
                {
                    "status": TranslationStatus.FAILED,
                    "batches": _fail_in_flight_batches(job.batches),
                    "error_message": INTERRUPTED_MESSAGE,
                },
            ):
                logger.warning(
                    f"⚠️  Job {job.id} was interrupted at batch "
                    f"{job.current_batch + 1}/{job.total_batches}, marked failed"
                )
                reconciled += 1

        if reconciled:
            logger.info(f"Reconciled {reconciled} interrupted job(s)")
        return reconciled


# Global controller instance
job_controller = TranslationJobController(redis_client, SubtitleTranslator(), JobRunner())
