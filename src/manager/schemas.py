"""Manager-specific request and response models."""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from common.schemas import SubtitleIdentity, SubtitleLine, TranslationStatus


def _require_non_empty(v: str, field_name: str) -> str:
    if v is None or not str(v).strip():
        raise ValueError(f"{field_name} must be a non-empty string")
    return str(v).strip()


class TranslateRequest(BaseModel):
    """Request to translate a subtitle file picked from search results."""

    file_id: int = Field(..., gt=0, description="Provider file id to download")
    movie_title: str = Field(..., description="Title of the movie")
    imdb_id: Optional[str] = Field(default="", description="External catalog id")

    @field_validator("movie_title")
    @classmethod
    def validate_movie_title(cls, v: str) -> str:
        """
        Validate the movie title is non-empty.

        Args:
            v: Title to validate

        Returns:
            Stripped title

        Raises:
            ValueError: If the title is empty
        """
        return _require_non_empty(v, "movie_title")

    @field_validator("imdb_id", mode="before")
    @classmethod
    def coerce_imdb_id(cls, v) -> str:
        """Search results report numeric catalog ids; store them as text."""
        return "" if v is None else str(v).strip()

    def to_identity(self) -> SubtitleIdentity:
        """Identity used to cache the translation."""
        return SubtitleIdentity(movie_title=self.movie_title, imdb_id=self.imdb_id)


class JobActionRequest(BaseModel):
    """Action posted against a running job."""

    action: str = Field(..., description="Only 'cancel' is supported")


class JobActionResponse(BaseModel):
    """Outcome of a job action."""

    success: bool = True
    job_id: UUID
    status: TranslationStatus


class LinesUpdateRequest(BaseModel):
    """Edited lines of a job."""

    lines: List[SubtitleLine] = Field(..., description="Lines carrying edited translations")


class ExportRequest(BaseModel):
    """Line set to serialize as an SRT file."""

    lines: List[SubtitleLine] = Field(..., min_length=1)
    movie_title: str = Field(..., description="Used as the download file name")

    @field_validator("movie_title")
    @classmethod
    def validate_movie_title(cls, v: str) -> str:
        """Validate the movie title is non-empty."""
        return _require_non_empty(v, "movie_title")

