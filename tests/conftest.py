"""Shared fixtures for the rumor board tests."""

import hashlib

import pytest

from rumormill.core import DAY_MS, RumorService
from rumormill.db import InMemoryRumorStore
from rumormill.schemas import RumorDeletion, RumorSubmission, VoteCast, VoteType


START_MS = 1_700_000_000_000


def make_identity(name: str) -> str:
    """Stable 64-hex identity token for a test participant."""
    return hashlib.sha256(name.encode()).hexdigest()


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += int(ms)

    def advance_days(self, days: float) -> None:
        self.advance(days * DAY_MS)


def submission(identity: str, content: str = "The library closes early on Friday", confidence: float = 1.0):
    return RumorSubmission(content=content, identity=identity, confidence=confidence)


def vote(rumor_id: int, identity: str, vote_type: VoteType = VoteType.VERIFY, confidence: float = 1.0):
    return VoteCast(rumor_id=rumor_id, identity=identity, vote_type=vote_type, confidence=confidence)


def deletion(rumor_id: int, identity: str):
    return RumorDeletion(rumor_id=rumor_id, identity=identity)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return RumorService(store=InMemoryRumorStore(), clock=clock)


@pytest.fixture
def submitter():
    return make_identity("submitter")


@pytest.fixture
def voters():
    return [make_identity(f"voter-{i}") for i in range(10)]
