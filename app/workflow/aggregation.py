"""
Aggregation engine.

Rollup statistics for a product are always recomputed from the full set of
its assessments, never incremented. The result is a pure function of the
stored rows, so recomputing twice gives the same counts and an admin delete
or a half-failed write can never leave the counters drifting.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from typing import Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.renewal import RenewalAssessment
from app.schemas.assessment import Recommendation

logger = structlog.get_logger()


@dataclass(frozen=True)
class AggregateStats:
    total_submissions: int = 0
    renew_count: int = 0
    renew_with_changes_count: int = 0
    replace_count: int = 0
    retire_count: int = 0

    def as_columns(self) -> dict[str, int]:
        return asdict(self)

    @property
    def is_consistent(self) -> bool:
        return self.total_submissions == (
            self.renew_count + self.renew_with_changes_count + self.replace_count + self.retire_count
        )


def compute_stats(recommendations: Iterable[str]) -> AggregateStats:
    """
    Count recommendations per enum value.

    Values outside the enum are skipped (and not counted in the total) so
    the total always equals the sum of the four buckets.
    """
    known = {r.value for r in Recommendation}
    counts: Counter[str] = Counter()
    skipped = 0
    for rec in recommendations:
        value = rec.value if isinstance(rec, Recommendation) else rec
        if value in known:
            counts[value] += 1
        else:
            skipped += 1

    if skipped:
        logger.warning("aggregate_skipped_unknown_recommendations", skipped=skipped)

    return AggregateStats(
        total_submissions=sum(counts.values()),
        renew_count=counts[Recommendation.RENEW.value],
        renew_with_changes_count=counts[Recommendation.RENEW_WITH_CHANGES.value],
        replace_count=counts[Recommendation.REPLACE.value],
        retire_count=counts[Recommendation.RETIRE.value],
    )


async def load_stats(db: AsyncSession, product_id: str) -> AggregateStats:
    """Read every assessment recommendation for a product and count them."""
    result = await db.execute(
        select(RenewalAssessment.recommendation).where(RenewalAssessment.product_id == product_id)
    )
    return compute_stats(result.scalars().all())
