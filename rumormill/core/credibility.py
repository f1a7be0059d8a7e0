"""
Credibility Ledger

Owns per-identity credibility. Every read or write of an identity's
credibility goes through here, inside the caller's store transaction.

Feedback shape:
- aligned with consensus: +0.02 (slow, additive growth)
- confidently wrong (confidence > 0.7): x0.8 (steep, multiplicative)
- hesitantly wrong: -0.01 (light)
Results are clamped to [0.05, 3.0].
"""

from typing import Optional

from ..db.store import StoreSession
from ..observability import get_logger
from ..schemas import IdentityCredibility
from .policy import Clock, CredibilityPolicy, now_ms

logger = get_logger(__name__)


class CredibilityLedger:
    """Lazy creation, alignment feedback and the submitter penalty."""

    def __init__(
        self,
        policy: Optional[CredibilityPolicy] = None,
        clock: Clock = now_ms,
    ):
        self.policy = policy or CredibilityPolicy()
        self._clock = clock

    def get_record(self, session: StoreSession, identity: str) -> IdentityCredibility:
        """Return the identity's record, creating it at the initial credibility."""
        record = session.get_credibility(identity)
        if record is not None:
            return record

        now = self._clock()
        record = IdentityCredibility(
            hashed_token=identity,
            credibility=self.policy.initial,
            total_votes=0,
            aligned_votes=0,
            created_at=now,
            last_updated=now,
        )
        session.insert_credibility(record)
        logger.debug("Identity registered", identity=identity[:12], credibility=record.credibility)
        # A concurrent transaction may have registered it first
        return session.get_credibility(identity) or record

    def get_or_create(self, session: StoreSession, identity: str) -> float:
        return self.get_record(session, identity).credibility

    def next_credibility(self, current: float, aligned: bool, high_confidence: bool) -> float:
        """Apply one alignment outcome to a credibility value, clamped."""
        if aligned:
            updated = current + self.policy.aligned_reward
        elif high_confidence:
            updated = current * self.policy.confident_miss_factor
        else:
            updated = current - self.policy.hesitant_miss_penalty
        return self.policy.clamp(updated)

    def apply_alignment_feedback(
        self,
        session: StoreSession,
        identity: str,
        aligned: bool,
        high_confidence: bool,
    ) -> Optional[IdentityCredibility]:
        """
        Record one alignment evaluation for an identity.

        Unknown identities are left alone (returns None): feedback only
        targets identities that have voted, and those may have been pruned.
        """
        record = session.get_credibility(identity, for_update=True)
        if record is None:
            return None

        updated = record.model_copy(update={
            "credibility": self.next_credibility(record.credibility, aligned, high_confidence),
            "total_votes": record.total_votes + 1,
            "aligned_votes": record.aligned_votes + (1 if aligned else 0),
            "last_updated": self._clock(),
        })
        session.save_credibility(updated)
        return updated

    def apply_submitter_penalty(
        self,
        session: StoreSession,
        identity: str,
    ) -> Optional[IdentityCredibility]:
        """Charge a submitter for deleting their own rumor. Never creates a record."""
        record = session.get_credibility(identity, for_update=True)
        if record is None:
            return None

        penalized = max(self.policy.minimum, record.credibility - self.policy.deletion_penalty)
        updated = record.model_copy(update={
            "credibility": penalized,
            "last_updated": self._clock(),
        })
        session.save_credibility(updated)
        logger.info(
            "Deletion penalty applied",
            identity=identity[:12],
            credibility_before=record.credibility,
            credibility_after=penalized,
        )
        return updated
