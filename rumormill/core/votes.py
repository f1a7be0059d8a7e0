"""
Vote Processor

Validates and records a single vote, then moves the rumor's counts and
trust score by the vote's impact:

    impact = voter credibility x confidence x direction (+1 verify, -1 dispute)

The rumor row is locked for the whole operation, so the read of the old
score and the write of the new one cannot interleave with another vote.
"""

from dataclasses import dataclass
from typing import Optional

from ..db.store import DuplicateVoteError, StoreSession
from ..observability import get_logger
from ..schemas import VoteCast, VoteType
from .consensus import ConsensusResolver, ConsensusResult
from .credibility import CredibilityLedger
from .errors import ConflictError, ForbiddenError, NotFoundError
from .policy import Clock, now_ms

logger = get_logger(__name__)


@dataclass
class VoteOutcome:
    """What a caller sees after a vote is recorded."""
    rumor_id: int
    verify_count: int
    dispute_count: int
    trust_score: float
    impact: float
    voter_credibility: float  # at cast time
    consensus: Optional[ConsensusResult] = None


class VoteProcessor:
    """Records votes and applies their impact to the target rumor."""

    def __init__(
        self,
        ledger: CredibilityLedger,
        resolver: ConsensusResolver,
        clock: Clock = now_ms,
    ):
        self.ledger = ledger
        self.resolver = resolver
        self._clock = clock

    @staticmethod
    def vote_impact(credibility: float, confidence: float, vote_type: VoteType) -> float:
        return credibility * confidence * vote_type.direction

    def cast(self, session: StoreSession, command: VoteCast) -> VoteOutcome:
        """
        Record a vote.

        Raises:
            NotFoundError: rumor missing, deleted or archived
            ForbiddenError: voter submitted the rumor
            ConflictError: voter already voted on the rumor
        """
        rumor = session.get_rumor(command.rumor_id, for_update=True)
        if rumor is None or not rumor.accepts_votes:
            raise NotFoundError("Rumor not found or archived")

        if rumor.submitter_token == command.identity:
            raise ForbiddenError("You cannot vote on your own rumor")

        if session.find_vote(rumor.id, command.identity) is not None:
            raise ConflictError("You have already voted on this rumor")

        credibility = self.ledger.get_or_create(session, command.identity)
        impact = self.vote_impact(credibility, command.confidence, command.vote_type)

        try:
            session.insert_vote(
                rumor_id=rumor.id,
                hashed_token=command.identity,
                vote_type=command.vote_type,
                timestamp=self._clock(),
                vote_weight=credibility,
                confidence=command.confidence,
            )
        except DuplicateVoteError as e:
            raise ConflictError("You have already voted on this rumor") from e

        is_verify = command.vote_type is VoteType.VERIFY
        updated = rumor.model_copy(update={
            "verify_count": rumor.verify_count + (1 if is_verify else 0),
            "dispute_count": rumor.dispute_count + (0 if is_verify else 1),
            "trust_score": rumor.trust_score + impact,
        })
        session.save_rumor_tally(updated)

        logger.debug(
            "Vote recorded",
            rumor_id=rumor.id,
            vote_type=command.vote_type.value,
            credibility=credibility,
            confidence=command.confidence,
            impact=impact,
            trust_score_before=rumor.trust_score,
            trust_score_after=updated.trust_score,
        )

        consensus = self.resolver.resolve(session, updated)

        return VoteOutcome(
            rumor_id=rumor.id,
            verify_count=updated.verify_count,
            dispute_count=updated.dispute_count,
            trust_score=updated.trust_score,
            impact=impact,
            voter_credibility=credibility,
            consensus=consensus,
        )
