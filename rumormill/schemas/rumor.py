"""
Canonical Rumor Schema

A rumor is an anonymous, short claim. It is never edited and never
physically removed. Votes move its trust score; time and low trust
move it out of the active feed.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RumorStatus(str, Enum):
    """
    Rumors move through exactly one transition.
    No re-activation path exists.
    """
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class VoteType(str, Enum):
    """Direction of a vote."""
    VERIFY = "verify"
    DISPUTE = "dispute"

    @property
    def direction(self) -> int:
        """+1 for verify, -1 for dispute."""
        return 1 if self is VoteType.VERIFY else -1


class Rumor(BaseModel):
    """
    Stored rumor row.

    Rules:
    - verify_count and dispute_count only increase
    - trust_score is the initial contribution plus every vote impact
    - a deleted rumor keeps its row and its votes
    """
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Store-assigned, monotonically increasing")
    content: str = Field(..., description="Trimmed rumor text")
    timestamp: int = Field(..., description="Creation time, ms since epoch")
    verify_count: int = Field(default=0, ge=0)
    dispute_count: int = Field(default=0, ge=0)

    # Informational accumulators, not used in score math
    weighted_verify: float = 0.0
    weighted_dispute: float = 0.0

    trust_score: float = Field(default=0.0, description="Signed, unbounded")
    is_deleted: bool = False
    is_archived: bool = False
    status: RumorStatus = RumorStatus.ACTIVE
    submitter_token: str = Field(..., description="Hashed identity of the submitter")

    @property
    def total_votes(self) -> int:
        return self.verify_count + self.dispute_count

    @property
    def accepts_votes(self) -> bool:
        return not self.is_deleted and not self.is_archived


class Vote(BaseModel):
    """
    One vote on one rumor by one identity.

    At most one vote exists per (rumor_id, hashed_token).
    """
    model_config = ConfigDict(frozen=True)

    id: int
    rumor_id: int
    hashed_token: str
    vote_type: VoteType
    timestamp: int = Field(..., description="Cast time, ms since epoch")
    vote_weight: float = Field(
        ...,
        description="Voter credibility at cast time"
    )
    confidence: float = Field(..., ge=0.1, le=1.0)


class IdentityCredibility(BaseModel):
    """
    Long-term influence of an anonymous identity.

    total_votes counts alignment evaluations, not raw votes.
    """
    model_config = ConfigDict(frozen=True)

    hashed_token: str
    credibility: float
    total_votes: int = Field(default=0, ge=0)
    aligned_votes: int = Field(default=0, ge=0)
    created_at: int
    last_updated: int

    @property
    def alignment_rate(self) -> float:
        if self.total_votes == 0:
            return 0.0
        return self.aligned_votes / self.total_votes
