"""Reconciliation worker: checks reputation records against their event history.

Every ReputationRecord is a projection of the user's ReputationEvent rows.
This worker replays each user's events and compares the result with the
stored record. Drift is logged and counted; with `reconciliation_repair`
enabled the record is overwritten with the replayed state.

Run with:  python -m tagtrust.worker.reconciliation_worker
"""

import asyncio

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tagtrust.config import settings
from tagtrust.database import async_session_factory
from tagtrust.logging_config import configure_logging
from tagtrust.metrics import reconciliation_drift
from tagtrust.models.reputation import ReputationRecord
from tagtrust.services.reputation import reconcile_user

log = structlog.get_logger(__name__)


async def reconcile_all(db: AsyncSession, *, repair: bool = False) -> dict:
    """Replay every user's history once and report drift.

    Each user is checked independently; the caller commits.

    Returns:
        {"checked": n, "drifted": [user ids], "repaired": n}
    """
    result = await db.execute(select(ReputationRecord.user_id).order_by(ReputationRecord.user_id))
    user_ids = list(result.scalars().all())

    drifted: list[str] = []
    repaired = 0
    for user_id in user_ids:
        try:
            live, replayed = await reconcile_user(db, user_id, repair=repair)
        except ValueError as exc:
            # Inconsistent history; there is no replayed state to repair from
            drifted.append(str(user_id))
            reconciliation_drift.inc()
            log.warning(
                "reputation_drift_detected",
                user_id=str(user_id),
                replay_error=str(exc),
                repaired=False,
            )
            continue
        if live == replayed:
            continue
        drifted.append(str(user_id))
        if repair:
            repaired += 1
        reconciliation_drift.inc()
        log.warning(
            "reputation_drift_detected",
            user_id=str(user_id),
            live_score=live.reputation_score,
            replayed_score=replayed.reputation_score,
            live_trust=live.trust_level.value,
            replayed_trust=replayed.trust_level.value,
            repaired=repair,
        )

    return {
        "checked": len(user_ids),
        "drifted": drifted,
        "repaired": repaired,
    }


async def run_reconciliation_cycle() -> dict:
    async with async_session_factory() as db:
        stats = await reconcile_all(db, repair=settings.reconciliation_repair)
        await db.commit()
    log.info(
        "reconciliation_completed",
        checked=stats["checked"],
        drifted=len(stats["drifted"]),
        repaired=stats["repaired"],
    )
    return stats


async def run_worker() -> None:
    """Background loop that reconciles on a configurable interval."""
    configure_logging()
    interval = settings.reconciliation_interval_minutes * 60
    log.info(
        "reconciliation_worker_started",
        interval_minutes=settings.reconciliation_interval_minutes,
        repair=settings.reconciliation_repair,
    )

    while True:
        try:
            await run_reconciliation_cycle()
        except Exception:
            log.error("reconciliation_worker_error", exc_info=True)
        await asyncio.sleep(interval)


if __name__ == "__main__":
    asyncio.run(run_worker())
