"""Utility functions for common operations across the application."""

import logging
import re
from datetime import datetime, timezone
from uuid import UUID, uuid4

logger = logging.getLogger(__name__)


class MathUtils:
    """Mathematical utility functions."""

    @staticmethod
    def ceil_divide(numerator: int, denominator: int) -> int:
        """
        Integer division rounding up.

        Example:
            >>> MathUtils.ceil_divide(237, 25)
            10
        """
        if denominator <= 0:
            raise ValueError("denominator must be positive")
        return -(-numerator // denominator)


class StringUtils:
    """String manipulation utility functions."""

    @staticmethod
    def generate_job_key(prefix: str, job_id: str) -> str:
        """
        Generate a Redis key for a job document.

        Example:
            >>> StringUtils.generate_job_key("translation", "123-456")
            'translation:job:123-456'
        """
        return f"{prefix}:job:{job_id}"

    @staticmethod
    def generate_identity_key(prefix: str, identity_key: str) -> str:
        """
        Generate a Redis key for the identity index.

        Example:
            >>> StringUtils.generate_identity_key("translation", "inception|tt1375666")
            'translation:identity:inception|tt1375666'
        """
        return f"{prefix}:identity:{identity_key}"

    @staticmethod
    def truncate_for_logging(
        text: str, max_length: int = 1000, edge_length: int = 500
    ) -> str:
        """
        Truncate text for logging, showing beginning and end.

        Args:
            text: Text to truncate
            max_length: Maximum length before truncation is applied
            edge_length: Number of characters to show from start and end

        Returns:
            Truncated text with ellipsis if needed, or original text if short enough

        Examples:
            >>> StringUtils.truncate_for_logging("Hello", max_length=100)
            'Hello'
        """
        if len(text) <= max_length:
            return text
        return f"{text[:edge_length]}...\n...{text[-edge_length:]}"

    @staticmethod
    def sanitize_filename(name: str, default: str = "subtitle") -> str:
        """
        Make a movie title safe to use as a download filename.

        Example:
            >>> StringUtils.sanitize_filename('Spider-Man: "Home"')
            'Spider-Man Home'
        """
        cleaned = re.sub(r'[\\/:*?"<>|\r\n]+', "", name or "")
        cleaned = re.sub(r"\s+", " ", cleaned).strip()
        return cleaned or default


class JobIdUtils:
    """Job ID generation utility functions."""

    @staticmethod
    def generate_job_id() -> UUID:
        """
        Generate a new UUID4 job identifier.

        Example:
            >>> isinstance(JobIdUtils.generate_job_id(), UUID)
            True
        """
        return uuid4()


class DateTimeUtils:
    """Date and time utility functions."""

    @staticmethod
    def get_current_utc_datetime() -> datetime:
        """Get the current timezone-aware UTC datetime."""
        return datetime.now(timezone.utc)

    @staticmethod
    def get_date_string_for_log_file() -> str:
        """
        Get today's date formatted for log file names.

        Returns:
            Date string in YYYYMMDD format
        """
        return datetime.now().strftime("%Y%m%d")
