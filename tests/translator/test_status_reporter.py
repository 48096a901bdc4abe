"""Tests for the status snapshot projection."""

import pytest

from common.schemas import BatchStatus, TranslationStatus
from translator.status_reporter import build_status_snapshot


@pytest.mark.unit
class TestBuildStatusSnapshot:
    """Test projection of stored documents."""

    def test_projects_progress_fields(self):
        """Progress fields are copied from a current document."""
        document = {
            "status": "processing",
            "total_batches": 3,
            "completed_batches": 1,
            "current_batch": 1,
            "batches": [
                {"index": 0, "start_line": 0, "end_line": 25, "line_count": 25, "status": "complete"},
                {"index": 1, "start_line": 25, "end_line": 50, "line_count": 25, "status": "processing"},
                {"index": 2, "start_line": 50, "end_line": 60, "line_count": 10, "status": "queued"},
            ],
            "subtitle_identity": {"movie_title": "Inception", "imdb_id": "tt1375666"},
            "lines": [],
        }

        snapshot = build_status_snapshot(document)

        assert snapshot.status == TranslationStatus.PROCESSING
        assert snapshot.completed_batches == 1
        assert snapshot.current_batch == 1
        assert [batch.status for batch in snapshot.batches] == [
            BatchStatus.COMPLETE,
            BatchStatus.PROCESSING,
            BatchStatus.QUEUED,
        ]
        assert snapshot.subtitle_identity.movie_title == "Inception"

    def test_legacy_document_defaults(self):
        """Records without progress tracking read as complete with zero batches."""
        document = {"movie_title": "Heat", "imdb_id": "tt0113277", "lines": []}

        snapshot = build_status_snapshot(document)

        assert snapshot.status == TranslationStatus.COMPLETE
        assert snapshot.total_batches == 0
        assert snapshot.completed_batches == 0
        assert snapshot.current_batch == 0
        assert snapshot.batches == []
        assert snapshot.subtitle_identity.movie_title == "Heat"
        assert snapshot.subtitle_identity.imdb_id == "tt0113277"

    def test_null_counters_default_to_zero(self):
        """Explicit nulls are treated like missing fields."""
        snapshot = build_status_snapshot(
            {"status": "cancelled", "total_batches": None, "batches": None}
        )

        assert snapshot.status == TranslationStatus.CANCELLED
        assert snapshot.total_batches == 0
        assert snapshot.batches == []
        assert snapshot.subtitle_identity is None

    def test_malformed_batches_are_skipped(self):
        """Unreadable batch records are dropped from the snapshot."""
        snapshot = build_status_snapshot(
            {
                "status": "failed",
                "batches": [
                    {"index": 0, "start_line": 0, "end_line": 5, "line_count": 5, "status": "failed"},
                    {"index": "bogus"},
                ],
            }
        )

        assert len(snapshot.batches) == 1
        assert snapshot.batches[0].status == BatchStatus.FAILED

    def test_unknown_status_reads_as_failed(self):
        """A status value the service does not know is reported as failed."""
        snapshot = build_status_snapshot(
            {"status": "paused", "total_batches": 2, "completed_batches": 1}
        )

        assert snapshot.status == TranslationStatus.FAILED
        assert snapshot.total_batches == 2
        assert snapshot.completed_batches == 1

    def test_malformed_identity_is_dropped(self):
        """An unreadable identity is left out of the snapshot."""
        snapshot = build_status_snapshot(
            {"status": "complete", "subtitle_identity": {"imdb_id": "tt0113277"}}
        )

        assert snapshot.status == TranslationStatus.COMPLETE
        assert snapshot.subtitle_identity is None
