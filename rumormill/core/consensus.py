"""
Consensus Resolver

Once a rumor has enough votes, the sign of its trust score decides the
consensus direction and every voter on that rumor is judged against it.

The resolver runs after every accepted vote. Past the threshold it
re-evaluates the rumor's full voter history each time, so a popular
rumor feeds back into the same voters once per additional vote and their
adjustments compound. This is the established scoring behavior and is
kept as is.
"""

from dataclasses import dataclass
from typing import Optional

from ..db.store import StoreSession
from ..observability import get_logger
from ..schemas import Rumor, VoteType
from .credibility import CredibilityLedger
from .policy import ConsensusPolicy

logger = get_logger(__name__)


@dataclass
class ConsensusResult:
    """Outcome of one consensus evaluation."""
    rumor_id: int
    direction: VoteType
    voters_evaluated: int
    voters_aligned: int


class ConsensusResolver:
    """Feeds consensus alignment back into the credibility ledger."""

    def __init__(
        self,
        ledger: CredibilityLedger,
        policy: Optional[ConsensusPolicy] = None,
    ):
        self.ledger = ledger
        self.policy = policy or ConsensusPolicy()

    def has_quorum(self, rumor: Rumor) -> bool:
        return rumor.total_votes >= self.policy.threshold

    @staticmethod
    def consensus_direction(trust_score: float) -> VoteType:
        """Positive score means verify. Zero resolves to dispute."""
        return VoteType.VERIFY if trust_score > 0 else VoteType.DISPUTE

    def resolve(self, session: StoreSession, rumor: Rumor) -> Optional[ConsensusResult]:
        """
        Judge every vote on the rumor against its current consensus.

        Args:
            session: Open store transaction
            rumor: The rumor with its post-vote counts and score

        Returns:
            ConsensusResult, or None while the rumor is below the threshold
        """
        if not self.has_quorum(rumor):
            return None

        direction = self.consensus_direction(rumor.trust_score)
        high_confidence_threshold = self.ledger.policy.high_confidence_threshold

        # Identity rows are locked in token order, the same order for every
        # rumor, so concurrent resolutions sharing voters cannot deadlock.
        votes = sorted(session.list_votes(rumor.id), key=lambda v: v.hashed_token)
        aligned_count = 0
        for vote in votes:
            aligned = vote.vote_type == direction
            self.ledger.apply_alignment_feedback(
                session,
                vote.hashed_token,
                aligned=aligned,
                high_confidence=vote.confidence > high_confidence_threshold,
            )
            if aligned:
                aligned_count += 1

        logger.info(
            "Consensus evaluated",
            rumor_id=rumor.id,
            direction=direction.value,
            trust_score=rumor.trust_score,
            voters_evaluated=len(votes),
            voters_aligned=aligned_count,
        )
        return ConsensusResult(
            rumor_id=rumor.id,
            direction=direction,
            voters_evaluated=len(votes),
            voters_aligned=aligned_count,
        )
