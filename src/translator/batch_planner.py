"""Split a subtitle's lines into translation batches."""

from dataclasses import dataclass
from typing import List

from common.schemas import BatchRecord, BatchStatus
from common.utils import MathUtils


@dataclass(frozen=True)
class BatchPlan:
    """Batch boundaries for one job."""

    total_lines: int
    total_to_translate: int
    batches: List[BatchRecord]

    @property
    def total_batches(self) -> int:
        return len(self.batches)


def plan_batches(
    total_lines: int, batch_size: int = 25, max_auto_lines: int = 1000
) -> BatchPlan:
    """
    Compute the batches covering the first `max_auto_lines` lines.

    Lines past the ceiling belong to the job but are never scheduled.

    Args:
        total_lines: Number of lines in the subtitle
        batch_size: Lines per batch
        max_auto_lines: Ceiling on automatically translated lines

    Returns:
        BatchPlan with queued batches partitioning [0, total_to_translate)

    Raises:
        ValueError: On a negative line count or non-positive limits
    """
    if total_lines < 0:
        raise ValueError("total_lines cannot be negative")
    if batch_size < 1 or max_auto_lines < 1:
        raise ValueError("batch_size and max_auto_lines must be positive")

    total_to_translate = min(total_lines, max_auto_lines)
    total_batches = MathUtils.ceil_divide(total_to_translate, batch_size)

    batches = []
    for index in range(total_batches):
        start_line = index * batch_size
        end_line = min((index + 1) * batch_size, total_to_translate)
        batches.append(
            BatchRecord(
                index=index,
                start_line=start_line,
                end_line=end_line,
                line_count=end_line - start_line,
                status=BatchStatus.QUEUED,
            )
        )

    return BatchPlan(
        total_lines=total_lines,
        total_to_translate=total_to_translate,
        batches=batches,
    )
