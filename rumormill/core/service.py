"""
Rumor Service - The Heart of the System

Every public operation runs in exactly one store transaction:
- submit_rumor: create a rumor scored by the submitter's credibility
- cast_vote: record a vote, move the score, feed consensus back
- list_rumors: run the lifecycle sweep, then list the feed
- get_credibility: an identity's credibility and alignment record
- delete_rumor: submitter-only removal with a credibility penalty

Rules (enforced in code):
- Voters cannot vote on their own rumors
- One vote per identity per rumor
- Archived or deleted rumors accept no votes
- Only the submitter can delete, and only once

The service never reports success before its transaction has committed.
"""

from dataclasses import dataclass
from typing import Optional

from ..db.store import RumorStore, StoreError
from ..observability import get_logger, get_metrics
from ..schemas import (
    IdentityCredibility,
    Rumor,
    RumorDeletion,
    RumorSubmission,
    VoteCast,
)
from .consensus import ConsensusResolver
from .credibility import CredibilityLedger
from .errors import ForbiddenError, NotFoundError, RumorMillError, ValidationError
from .lifecycle import LifecycleSweeper, SweepReport
from .policy import (
    Clock,
    ConsensusPolicy,
    CredibilityPolicy,
    LifecyclePolicy,
    now_ms,
)
from .votes import VoteOutcome, VoteProcessor

logger = get_logger(__name__)


@dataclass
class RumorListing:
    rumors: list[Rumor]
    sweep: SweepReport


class RumorService:
    """
    Orchestrates the credibility ledger, vote processor, consensus resolver
    and lifecycle sweeper over a RumorStore.
    """

    def __init__(
        self,
        store: Optional[RumorStore] = None,
        credibility_policy: Optional[CredibilityPolicy] = None,
        consensus_policy: Optional[ConsensusPolicy] = None,
        lifecycle_policy: Optional[LifecyclePolicy] = None,
        clock: Clock = now_ms,
    ):
        """
        Initialize RumorService.

        Args:
            store: RumorStore implementation for persistence.
                   If None, creates an InMemoryRumorStore.
            clock: Millisecond clock, injectable for tests.
        """
        if store is None:
            from ..db.store import InMemoryRumorStore
            store = InMemoryRumorStore()

        self._store = store
        self._clock = clock
        self.ledger = CredibilityLedger(credibility_policy, clock=clock)
        self.resolver = ConsensusResolver(self.ledger, consensus_policy)
        self.votes = VoteProcessor(self.ledger, self.resolver, clock=clock)
        self.sweeper = LifecycleSweeper(lifecycle_policy, clock=clock)

    @property
    def store(self) -> RumorStore:
        return self._store

    # ================================================================
    # COMMANDS
    # ================================================================

    def submit_rumor(self, command: RumorSubmission) -> Rumor:
        """
        Create a rumor.

        Initial trust score = submitter credibility x submission confidence.
        """
        with self._store.transaction() as session:
            credibility = self.ledger.get_or_create(session, command.identity)
            rumor = session.insert_rumor(
                content=command.content,
                timestamp=self._clock(),
                trust_score=credibility * command.confidence,
                submitter_token=command.identity,
            )

        get_metrics().record_submission()
        logger.info(
            "Rumor submitted",
            rumor_id=rumor.id,
            submitter_credibility=credibility,
            trust_score=rumor.trust_score,
        )
        return rumor

    def cast_vote(self, command: VoteCast) -> VoteOutcome:
        """
        Record a vote on a rumor.

        Raises:
            NotFoundError, ForbiddenError, ConflictError
        """
        metrics = get_metrics()
        try:
            with self._store.transaction() as session:
                outcome = self.votes.cast(session, command)
        except RumorMillError as e:
            metrics.record_vote_rejected(e.kind)
            logger.info(
                "Vote rejected",
                rumor_id=command.rumor_id,
                kind=e.kind,
                reason=e.message,
            )
            raise

        metrics.record_vote(outcome.consensus)
        logger.info(
            "Vote recorded",
            rumor_id=outcome.rumor_id,
            vote_type=command.vote_type.value,
            impact=outcome.impact,
            trust_score=outcome.trust_score,
            consensus=outcome.consensus.direction.value if outcome.consensus else None,
        )
        return outcome

    def delete_rumor(self, command: RumorDeletion) -> Optional[IdentityCredibility]:
        """
        Remove a rumor from the feed on behalf of its submitter.

        The rumor row and its votes are kept. The submitter loses
        credibility if they have a record.

        Returns:
            The submitter's updated credibility record, if any
        """
        with self._store.transaction() as session:
            rumor = session.get_rumor(command.rumor_id, for_update=True)
            if rumor is None:
                raise NotFoundError("Rumor not found")
            if rumor.submitter_token != command.identity:
                raise ForbiddenError("Only the original submitter can delete this rumor")
            if rumor.is_deleted:
                raise ValidationError("Rumor is already deleted")

            session.mark_rumor_deleted(rumor.id)
            penalized = self.ledger.apply_submitter_penalty(session, command.identity)

        logger.info("Rumor deleted", rumor_id=rumor.id, penalty_applied=penalized is not None)
        return penalized

    # ================================================================
    # QUERIES
    # ================================================================

    def list_rumors(self) -> RumorListing:
        """Sweep the lifecycle, then return every non-deleted rumor."""
        with self._store.transaction() as session:
            report = self.sweeper.sweep(session)
            rumors = session.list_visible_rumors()

        get_metrics().record_sweep(report)
        return RumorListing(rumors=rumors, sweep=report)

    def sweep(self) -> SweepReport:
        """Run the lifecycle sweep on its own."""
        with self._store.transaction() as session:
            report = self.sweeper.sweep(session)
        get_metrics().record_sweep(report)
        return report

    def get_credibility(self, identity: str) -> IdentityCredibility:
        """Look up an identity, registering it at the initial credibility if new."""
        with self._store.transaction() as session:
            return self.ledger.get_record(session, identity)

    def get_rumor(self, rumor_id: int) -> Optional[Rumor]:
        with self._store.transaction() as session:
            return session.get_rumor(rumor_id)

    def ping(self) -> int:
        """Round-trip to the store. Returns the rumor count."""
        try:
            with self._store.transaction() as session:
                return session.count_rumors()
        except StoreError:
            logger.exception("Store health check failed")
            raise
