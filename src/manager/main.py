"""FastAPI application for the Burmese subtitle translator."""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException, Response, status
from fastapi.middleware.cors import CORSMiddleware

from common.config import settings
from common.logging_config import setup_service_logging
from common.schemas import (
    JobStatusSnapshot,
    SubtitleSearchResult,
    TranslationJob,
    TranslationStartResult,
)
from common.subtitle_parser import SRTParser, segments_to_lines
from downloader.opensubtitles_client import OpenSubtitlesAPIError, opensubtitles_client
from manager.health import check_health
from manager.helpers import (
    build_srt_export_response,
    initialize_all_connections_on_startup,
    shutdown_all_connections,
)
from manager.schemas import (
    ExportRequest,
    JobActionRequest,
    JobActionResponse,
    LinesUpdateRequest,
    TranslateRequest,
)
from translator.job_controller import (
    InvalidSubtitleIdentityError,
    JobInProgressError,
    JobNotFoundError,
    JobStoreError,
    job_controller,
)
from translator.job_runner import JobAlreadyRunningError

# Configure logging
service_logger = setup_service_logging("manager")
logger = service_logger.logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    # Startup
    logger.info("Starting subtitle translation API...")
    await initialize_all_connections_on_startup()
    logger.info("API startup complete")

    yield

    # Shutdown
    await shutdown_all_connections()


# Create FastAPI application
app = FastAPI(
    title="Burmese Subtitle Translator API",
    description="Search English subtitles, translate them to Burmese in the background, edit and export",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],  # Explicit methods only
    allow_headers=["Content-Type", "Authorization"],  # Explicit headers only
)


def _job_not_found(job_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Translation job {job_id} not found",
    )


@app.get("/health", response_model=Dict[str, Any])
async def health_check_endpoint(response: Response):
    """Health check of the job store and background runner."""
    health_status = await check_health()

    if health_status.get("status") == "unhealthy":
        response.status_code = 503  # Service Unavailable
    elif health_status.get("status") == "error":
        response.status_code = 500  # Internal Server Error
    else:
        response.status_code = 200  # OK

    return health_status


@app.get("/", response_model=Dict[str, str])
async def root():
    """Root endpoint with API information."""
    return {
        "message": "Burmese Subtitle Translator API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/search", response_model=List[SubtitleSearchResult])
async def search_subtitles(q: Optional[str] = None):
    """Search English subtitles by movie name."""
    if not q or not q.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing search query"
        )

    try:
        return await opensubtitles_client.search_subtitles(q.strip())
    except OpenSubtitlesAPIError as e:
        logger.error(f"Subtitle search failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to search subtitles",
        )


@app.post("/translate", response_model=TranslationStartResult)
async def start_translation(request: TranslateRequest):
    """
    Start translating a subtitle file, or return the cached translation.

    The file is only downloaded when no complete translation exists for the
    movie. Translation runs in the background; poll
    /translate/status/{job_id} for progress.
    """
    identity = request.to_identity()

    try:
        cached = await job_controller.get_cached_job(identity)
        if cached is not None:
            return TranslationStartResult.from_cached_job(cached)

        try:
            content = await opensubtitles_client.download_subtitle(request.file_id)
        except OpenSubtitlesAPIError as e:
            logger.error(f"Download of subtitle file {request.file_id} failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to download subtitle file",
            )

        lines = segments_to_lines(SRTParser.parse(content))
        if not lines:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Subtitle file contains no subtitle entries",
            )

        return await job_controller.start_or_resume(identity, lines)

    except HTTPException:
        raise
    except InvalidSubtitleIdentityError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except JobAlreadyRunningError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except JobStoreError as e:
        logger.error(f"Error storing translation job: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store translation job",
        )
    except Exception as e:
        logger.error(f"Error processing translation request: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process translation",
        )


@app.get("/translate/status/{job_id}", response_model=JobStatusSnapshot)
async def get_translation_status(job_id: UUID):
    """Progress of a translation job."""
    try:
        return await job_controller.get_status(job_id)
    except JobNotFoundError:
        raise _job_not_found(job_id)


@app.post("/translate/status/{job_id}", response_model=JobActionResponse)
async def act_on_translation(job_id: UUID, request: JobActionRequest):
    """
    Apply an action to a translation job.

    Only `cancel` is supported. Cancellation takes effect at the next batch
    boundary; the batch in flight is not interrupted.
    """
    if request.action != "cancel":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action"
        )

    try:
        job_status = await job_controller.cancel(job_id)
    except JobNotFoundError:
        raise _job_not_found(job_id)

    return JobActionResponse(job_id=job_id, status=job_status)


@app.get("/subtitles/{job_id}", response_model=TranslationJob)
async def get_subtitle_lines(job_id: UUID):
    """Full translation job including every line."""
    try:
        return await job_controller.get_job(job_id)
    except JobNotFoundError:
        raise _job_not_found(job_id)


@app.put("/subtitles/{job_id}", response_model=TranslationJob)
async def update_subtitle_lines(job_id: UUID, request: LinesUpdateRequest):
    """Save manually edited translations of a job that is no longer running."""
    try:
        return await job_controller.update_lines(job_id, request.lines)
    except JobNotFoundError:
        raise _job_not_found(job_id)
    except JobInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except JobStoreError as e:
        logger.error(f"Error saving edited lines: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update subtitle",
        )


@app.get("/subtitles/{job_id}/export")
async def export_stored_subtitle(job_id: UUID):
    """Download a stored job's lines as an SRT file."""
    try:
        job = await job_controller.get_job(job_id)
    except JobNotFoundError:
        raise _job_not_found(job_id)

    return build_srt_export_response(job.lines, job.subtitle_identity.movie_title)


@app.post("/export")
async def export_subtitle(request: ExportRequest):
    """Download the posted lines as an SRT file."""
    return build_srt_export_response(request.lines, request.movie_title)


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("manager.main:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
