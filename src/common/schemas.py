"""Shared Pydantic schemas for the subtitle translation service."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from common.utils import DateTimeUtils, JobIdUtils


class TranslationStatus(str, Enum):
    """Lifecycle status of a translation job."""

    PROCESSING = "processing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition may leave this status."""
        return self != TranslationStatus.PROCESSING


class BatchStatus(str, Enum):
    """Status of one batch inside a translation job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


class SubtitleIdentity(BaseModel):
    """Movie title plus external catalog id; the cache key of a translation."""

    movie_title: str = Field(..., description="Title of the movie")
    imdb_id: str = Field(default="", description="External catalog id (IMDb)")

    @field_validator("movie_title", "imdb_id", mode="before")
    @classmethod
    def strip_whitespace(cls, v):
        """Normalize surrounding whitespace; None becomes an empty string."""
        if v is None:
            return ""
        return str(v).strip()

    @property
    def cache_key(self) -> str:
        """
        Key used to find earlier translations of the same subtitle.

        Example:
            >>> SubtitleIdentity(movie_title="Inception ", imdb_id="tt1375666").cache_key
            'inception|tt1375666'
        """
        return f"{self.movie_title.lower()}|{self.imdb_id.lower()}"


class SubtitleLine(BaseModel):
    """One subtitle cue with its source and translated text."""

    index: int = Field(..., ge=1, description="1-based position in the file")
    timestamp: str = Field(..., description="'HH:MM:SS,mmm --> HH:MM:SS,mmm'")
    source_text: str = Field(default="", description="Original English text")
    translated_text: str = Field(default="", description="Burmese translation")


class BatchRecord(BaseModel):
    """A contiguous slice of lines translated in one model call."""

    index: int = Field(..., ge=0)
    start_line: int = Field(..., ge=0, description="First line offset (inclusive)")
    end_line: int = Field(..., ge=0, description="Last line offset (exclusive)")
    line_count: int = Field(..., ge=0)
    status: BatchStatus = Field(default=BatchStatus.QUEUED)


class TranslationJob(BaseModel):
    """Persisted document for one translation attempt."""

    id: UUID = Field(
        default_factory=JobIdUtils.generate_job_id,
        description="Unique identifier for the job",
    )
    subtitle_identity: SubtitleIdentity
    lines: List[SubtitleLine] = Field(default_factory=list)
    status: TranslationStatus = Field(default=TranslationStatus.PROCESSING)
    total_batches: int = Field(default=0, ge=0)
    completed_batches: int = Field(
        default=0, ge=0, description="Batches attempted, failed ones included"
    )
    current_batch: int = Field(default=0, ge=0)
    batches: List[BatchRecord] = Field(default_factory=list)
    created_at: datetime = Field(
        default_factory=DateTimeUtils.get_current_utc_datetime,
        description="When the job was created",
    )
    updated_at: datetime = Field(
        default_factory=DateTimeUtils.get_current_utc_datetime,
        description="When the job was last updated",
    )
    error_message: Optional[str] = Field(
        None, description="Error message if the job failed"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174000",
                "subtitle_identity": {
                    "movie_title": "Inception",
                    "imdb_id": "tt1375666",
                },
                "lines": [
                    {
                        "index": 1,
                        "timestamp": "00:00:01,000 --> 00:00:03,500",
                        "source_text": "We need to go deeper.",
                        "translated_text": "",
                    }
                ],
                "status": "processing",
                "total_batches": 1,
                "completed_batches": 0,
                "current_batch": 0,
                "batches": [
                    {
                        "index": 0,
                        "start_line": 0,
                        "end_line": 1,
                        "line_count": 1,
                        "status": "queued",
                    }
                ],
            }
        }
    )


class JobStatusSnapshot(BaseModel):
    """Client-facing progress projection of a job."""

    status: TranslationStatus
    total_batches: int = 0
    completed_batches: int = Field(
        default=0,
        description=(
            "Batches attempted so far, failed ones included; "
            "check each batch status for outcomes"
        ),
    )
    current_batch: int = 0
    batches: List[BatchRecord] = Field(default_factory=list)
    subtitle_identity: Optional[SubtitleIdentity] = None


class TranslationStartResult(BaseModel):
    """Answer to a start-or-resume request."""

    job_id: UUID
    total_batches: int
    total_lines: int
    cache_hit: bool

    @classmethod
    def from_cached_job(cls, job: TranslationJob) -> "TranslationStartResult":
        """Result pointing a client at an already complete job."""
        return cls(
            job_id=job.id,
            total_batches=job.total_batches,
            total_lines=len(job.lines),
            cache_hit=True,
        )


class SubtitleFile(BaseModel):
    """A downloadable file attached to a search result."""

    file_id: int
    file_name: str = ""


class SubtitleSearchResult(BaseModel):
    """One subtitle found by the search provider."""

    id: str
    release: str = ""
    language: str = ""
    imdb_id: str = ""
    files: List[SubtitleFile] = Field(default_factory=list)


def upgrade_legacy_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fill the fields that job records written before progress tracking lack.

    Those records were only stored once fully translated, so a missing
    status means complete. They kept the title and catalog id at the top
    level instead of under subtitle_identity.

    Args:
        document: Raw stored job document

    Returns:
        A new document with status and subtitle_identity present
    """
    upgraded = dict(document)
    if not upgraded.get("status"):
        upgraded["status"] = TranslationStatus.COMPLETE.value
    if not upgraded.get("subtitle_identity") and upgraded.get("movie_title"):
        upgraded["subtitle_identity"] = {
            "movie_title": upgraded["movie_title"],
            "imdb_id": upgraded.get("imdb_id") or "",
        }
    return upgraded
