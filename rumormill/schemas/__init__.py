# Canonical Schemas for the rumor board
# Stored rows and the command payloads the service accepts.

from .rumor import (
    IdentityCredibility,
    Rumor,
    RumorStatus,
    Vote,
    VoteType,
)
from .requests import (
    IDENTITY_PATTERN,
    MAX_CONFIDENCE,
    MAX_ROW_ID,
    MAX_CONTENT_LENGTH,
    MIN_CONFIDENCE,
    RumorDeletion,
    RumorSubmission,
    VoteCast,
    is_valid_identity,
)

__all__ = [
    # Rows
    "IdentityCredibility",
    "Rumor",
    "RumorStatus",
    "Vote",
    "VoteType",
    # Commands
    "RumorDeletion",
    "RumorSubmission",
    "VoteCast",
    "IDENTITY_PATTERN",
    "MAX_CONFIDENCE",
    "MAX_CONTENT_LENGTH",
    "MAX_ROW_ID",
    "MIN_CONFIDENCE",
    "is_valid_identity",
]
