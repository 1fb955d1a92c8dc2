import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from ..engine.runner import ArchiveRunner
from ..errors import DeregisterRule
from ..models import RuleKey, RunStatistics
from ..policy import Clock
from .store import ArchiveStore, JobRecord

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class JobResult:
    key: RuleKey
    stats: Optional[RunStatistics]
    message: str
    deregistered: bool = False


def run_job(
    store: ArchiveStore,
    runner: ArchiveRunner,
    key: RuleKey,
    *,
    now: Optional[datetime] = None,
) -> JobResult:
    try:
        stats = runner.run_rule(key)
    except DeregisterRule as exc:
        store.remove_job(key)
        logger.info("Background job %s was removed: %s", key, exc.reason)
        return JobResult(key=key, stats=None, message=f"removed: {exc.reason}", deregistered=True)
    store.mark_job_run(key, now)
    return JobResult(key=key, stats=stats, message=stats.summary())


def is_due(job: JobRecord, now: datetime, interval_seconds: float) -> bool:
    last_run = job.last_run()
    if last_run is None:
        return True
    return now - last_run >= timedelta(seconds=interval_seconds)


def run_due_jobs(
    store: ArchiveStore,
    runner: ArchiveRunner,
    clock: Clock,
    *,
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    force: bool = False,
) -> List[JobResult]:
    """Run every registered job whose interval has elapsed, one after another."""
    results: List[JobResult] = []
    now = clock.now()
    for job in store.list_jobs():
        if not force and not is_due(job, now, interval_seconds):
            logger.debug("Job %s is not due yet", job.key)
            continue
        results.append(run_job(store, runner, job.key, now=now))
    return results


def sync_jobs(store: ArchiveStore) -> int:
    """Re-register jobs of stored rules that lost theirs.

    ``ArchiveStore.list_rules`` adds any missing job while listing; returns the
    number of live rules.
    """
    rules = store.list_rules()
    logger.debug("%d archive rules have a registered job", len(rules))
    return len(rules)
