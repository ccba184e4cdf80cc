"""
Interaction Cleanup Task.

Purges tracked interactions older than the retention window (90 days by
default). Scheduled daily by ``automation.scheduler``.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from service.recommender.orchestrator import RecommendationOrchestrator

logger = logging.getLogger(__name__)


def run_interaction_cleanup(
    orchestrator: RecommendationOrchestrator,
    retention_days: Optional[int] = None,
    dry_run: bool = False,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Remove interactions older than ``retention_days``.

    Args:
        orchestrator: Service whose interaction store is swept
        retention_days: Override of ``config.interactions.retention_days``
        dry_run: Only count what would be removed
        now: Reference time (defaults to the orchestrator clock)

    Returns:
        Cleanup statistics
    """
    start_time = time.perf_counter()
    now = now or orchestrator.clock()
    if retention_days is None:
        retention_days = orchestrator.config.interactions.retention_days
    cutoff = now - timedelta(days=retention_days)

    result: Dict[str, Any] = {
        "type": "interactions",
        "cutoff": cutoff.isoformat(),
        "dry_run": dry_run,
        "events_found": 0,
        "events_deleted": 0,
        "events_remaining": 0,
    }

    expired = [e for e in orchestrator.interactions.all_events() if e.timestamp < cutoff]
    result["events_found"] = len(expired)

    if dry_run:
        logger.info(f"Would delete {len(expired)} interactions older than {cutoff:%Y-%m-%d}")
    else:
        result["events_deleted"] = orchestrator.interactions.purge_older_than(cutoff)
        logger.info(f"Deleted {result['events_deleted']} interactions older than {cutoff:%Y-%m-%d}")

    result["events_remaining"] = orchestrator.interactions.total_events()
    result["duration_ms"] = (time.perf_counter() - start_time) * 1000
    return result
