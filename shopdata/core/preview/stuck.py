"""
Stuck-execution heuristic.

Advisory only: an execution that has been pending/running for longer than a
threshold is reported as possibly stuck. Nothing here changes the stored
status; recovery is an explicit reset.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Optional

from shopdata.models import ACTIVE_STATUSES, ExecutionStatus, PreviewData


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def is_possibly_stuck(
    status: str | ExecutionStatus,
    started_at: Optional[datetime],
    now: datetime,
    threshold: timedelta,
) -> bool:
    try:
        parsed = ExecutionStatus(str(getattr(status, "value", status)))
    except ValueError:
        return False
    if parsed not in ACTIVE_STATUSES or started_at is None:
        return False
    return _aware(now) - _aware(started_at) > threshold


def should_show_stuck_ui(
    preview: Optional[PreviewData],
    *,
    now: datetime,
    threshold: timedelta,
    fallback_started_at: Optional[datetime] = None,
) -> bool:
    """
    Whether a client should offer the "possibly stuck" affordance.

    `fallback_started_at` (e.g. when polling began) is used when the preview
    carries no start time.
    """
    if preview is None:
        return False
    started = preview.execution.start_time or fallback_started_at
    return is_possibly_stuck(preview.status, started, now, threshold)
