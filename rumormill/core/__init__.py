# Core reputation and trust-scoring engine
from .errors import (
    RumorMillError,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    ConflictError,
)
from .policy import (
    CredibilityPolicy,
    ConsensusPolicy,
    LifecyclePolicy,
    DAY_MS,
    now_ms,
)
from .credibility import CredibilityLedger
from .consensus import ConsensusResolver, ConsensusResult
from .votes import VoteProcessor, VoteOutcome
from .lifecycle import LifecycleSweeper, SweepReport
from .service import RumorService, RumorListing

__all__ = [
    "RumorMillError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "ConflictError",
    "CredibilityPolicy",
    "ConsensusPolicy",
    "LifecyclePolicy",
    "DAY_MS",
    "now_ms",
    "CredibilityLedger",
    "ConsensusResolver",
    "ConsensusResult",
    "VoteProcessor",
    "VoteOutcome",
    "LifecycleSweeper",
    "SweepReport",
    "RumorService",
    "RumorListing",
]
