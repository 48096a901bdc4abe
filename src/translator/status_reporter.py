"""Read-only progress projection of a translation job."""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from common.schemas import (
    BatchRecord,
    JobStatusSnapshot,
    SubtitleIdentity,
    TranslationStatus,
    upgrade_legacy_document,
)

logger = logging.getLogger(__name__)


def _read_status(raw_status: Any) -> TranslationStatus:
    """Stored status, with unknown values reported as failed."""
    try:
        return TranslationStatus(raw_status)
    except ValueError:
        logger.warning(f"Unknown job status {raw_status!r}, reporting it as failed")
        return TranslationStatus.FAILED


def _read_identity(raw_identity: Any) -> Optional[SubtitleIdentity]:
    if not raw_identity:
        return None
    try:
        return SubtitleIdentity.model_validate(raw_identity)
    except ValidationError as e:
        logger.warning(f"Skipping malformed subtitle identity {raw_identity}: {e}")
        return None


def build_status_snapshot(document: Dict[str, Any]) -> JobStatusSnapshot:
    """
    Project a stored job document onto the fields a poller needs.

    Documents written before progress tracking existed have no status or
    counters; they are reported as complete with zero batches.
    An unknown status is reported as failed; unreadable batches and
    identities are left out.

    Args:
        document: Raw job document as stored

    Returns:
        JobStatusSnapshot
    """
    document = upgrade_legacy_document(document)

    batches = []
    for raw_batch in document.get("batches") or []:
        try:
            batches.append(BatchRecord.model_validate(raw_batch))
        except ValidationError as e:
            logger.warning(f"Skipping malformed batch record {raw_batch}: {e}")

    return JobStatusSnapshot(
        status=_read_status(document["status"]),
        total_batches=document.get("total_batches") or 0,
        completed_batches=document.get("completed_batches") or 0,
        current_batch=document.get("current_batch") or 0,
        batches=batches,
        subtitle_identity=_read_identity(document.get("subtitle_identity")),
    )
