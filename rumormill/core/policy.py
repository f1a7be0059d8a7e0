"""
Scoring and Lifecycle Policy

Constants that shape trust scores, credibility feedback and archival.

CONFIGURATION:
- RUMORMILL_CONSENSUS_THRESHOLD: Votes needed before consensus feedback (default: 5)
- RUMORMILL_INACTIVITY_DAYS: Age after which a rumor is archived (default: 213.08, ~7 months)
- RUMORMILL_LOW_TRUST_THRESHOLD: Trust score below which a rumor is archived (default: -0.8)
- RUMORMILL_IDENTITY_RETENTION_DAYS: Idle days before an identity is pruned (default: 365)

Credibility constants are not configurable: changing them silently
rescales every identity's history.
"""

import os
import time
from dataclasses import dataclass
from typing import Callable

DAY_MS = 24 * 60 * 60 * 1000

Clock = Callable[[], int]


def now_ms() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CredibilityPolicy:
    """Bounds and feedback steps for identity credibility."""
    initial: float = 0.1
    minimum: float = 0.05
    maximum: float = 3.0
    aligned_reward: float = 0.02             # additive
    confident_miss_factor: float = 0.8       # multiplicative
    hesitant_miss_penalty: float = 0.01      # additive
    high_confidence_threshold: float = 0.7   # strictly greater than
    deletion_penalty: float = 0.1

    def clamp(self, value: float) -> float:
        return max(self.minimum, min(self.maximum, value))


@dataclass(frozen=True)
class ConsensusPolicy:
    """When a rumor has enough votes to judge its voters."""
    threshold: int = 5

    @classmethod
    def from_env(cls) -> "ConsensusPolicy":
        return cls(
            threshold=int(os.environ.get("RUMORMILL_CONSENSUS_THRESHOLD", "5")),
        )


@dataclass(frozen=True)
class LifecyclePolicy:
    """Archival and pruning windows."""
    inactivity_window_ms: float = 7 * 30.44 * DAY_MS
    low_trust_threshold: float = -0.8
    identity_retention_ms: float = 365 * DAY_MS

    @classmethod
    def from_env(cls) -> "LifecyclePolicy":
        return cls(
            inactivity_window_ms=float(
                os.environ.get("RUMORMILL_INACTIVITY_DAYS", str(7 * 30.44))
            ) * DAY_MS,
            low_trust_threshold=float(
                os.environ.get("RUMORMILL_LOW_TRUST_THRESHOLD", "-0.8")
            ),
            identity_retention_ms=float(
                os.environ.get("RUMORMILL_IDENTITY_RETENTION_DAYS", "365")
            ) * DAY_MS,
        )
