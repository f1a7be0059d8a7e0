"""
Lifecycle Sweeper

Keeps the dataset bounded. Runs at the start of every rumor listing, not
on a schedule.

Order matters: identities are pruned before votes, so the orphan check
sees the post-prune identity set.
"""

from dataclasses import dataclass
from typing import Optional

from ..db.store import StoreSession
from ..observability import get_logger
from .policy import Clock, LifecyclePolicy, now_ms

logger = get_logger(__name__)


@dataclass
class SweepReport:
    rumors_archived: int = 0
    identities_pruned: int = 0
    votes_pruned: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.rumors_archived or self.identities_pruned or self.votes_pruned)


class LifecycleSweeper:
    """Archives stale or distrusted rumors and prunes idle identities."""

    def __init__(
        self,
        policy: Optional[LifecyclePolicy] = None,
        clock: Clock = now_ms,
    ):
        self.policy = policy or LifecyclePolicy()
        self._clock = clock

    def sweep(self, session: StoreSession) -> SweepReport:
        now = self._clock()

        report = SweepReport()
        report.rumors_archived = session.archive_stale_rumors(
            now=now,
            max_age_ms=self.policy.inactivity_window_ms,
            low_trust_threshold=self.policy.low_trust_threshold,
        )
        report.identities_pruned = session.delete_inactive_identities(
            cutoff=now - self.policy.identity_retention_ms,
        )
        report.votes_pruned = session.delete_orphaned_votes()

        if report.changed:
            logger.info(
                "Lifecycle sweep",
                rumors_archived=report.rumors_archived,
                identities_pruned=report.identities_pruned,
                votes_pruned=report.votes_pruned,
            )
        return report
