"""
Public API Routes

JSON endpoints for the anonymous rumor board. Every response carries a
`success` flag; rejections are rendered by the exception handlers
registered in rumormill.main.
"""

from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from ..core import RumorService, ValidationError
from ..schemas import Rumor, RumorDeletion, RumorSubmission, VoteCast, is_valid_identity


router = APIRouter(prefix="/api", tags=["Rumors"])


# ============================================================
# Response Models
# ============================================================

class RumorItem(BaseModel):
    """Rumor as shown in the feed."""
    id: int
    content: str
    timestamp: int
    verify_count: int
    dispute_count: int
    trust_score: float
    submitter_token: Optional[str] = None
    status: str


class RumorListResponse(BaseModel):
    success: bool = True
    rumors: list[RumorItem]


class RumorCreatedResponse(BaseModel):
    success: bool = True
    rumor: RumorItem


class VoteResponse(BaseModel):
    """
    Vote result.

    your_credibility is the voter's credibility when the vote was cast,
    before any consensus feedback from the same vote.
    """
    success: bool = True
    message: str = "Vote recorded"
    verify_count: int
    dispute_count: int
    trust_score: float
    your_credibility: float


class CredibilityResponse(BaseModel):
    success: bool = True
    credibility: float
    total_votes: int
    aligned_votes: int
    alignment_rate: float


class DeleteResponse(BaseModel):
    success: bool = True
    message: str = "Rumor deleted and penalty applied"


# ============================================================
# Helper Functions
# ============================================================

def get_service(request: Request) -> RumorService:
    """Get the rumor service from app state."""
    return request.app.state.service


def _to_item(rumor: Rumor) -> RumorItem:
    return RumorItem(
        id=rumor.id,
        content=rumor.content,
        timestamp=rumor.timestamp,
        verify_count=rumor.verify_count,
        dispute_count=rumor.dispute_count,
        trust_score=rumor.trust_score,
        submitter_token=rumor.submitter_token,
        status=rumor.status.value,
    )


# ============================================================
# Endpoints
# ============================================================

@router.get("/rumors", response_model=RumorListResponse)
def list_rumors(request: Request):
    """
    Get the rumor feed.

    Runs the lifecycle sweep first, so stale or distrusted rumors show up
    as ARCHIVED. Active rumors come first, newest first within a status.
    """
    listing = get_service(request).list_rumors()
    return RumorListResponse(rumors=[_to_item(r) for r in listing.rumors])


@router.post("/rumors", response_model=RumorCreatedResponse)
def submit_rumor(command: RumorSubmission, request: Request):
    """Submit a rumor. Its starting trust score is credibility x confidence."""
    rumor = get_service(request).submit_rumor(command)
    return RumorCreatedResponse(rumor=_to_item(rumor))


@router.post("/vote", response_model=VoteResponse)
def cast_vote(command: VoteCast, request: Request):
    outcome = get_service(request).cast_vote(command)
    return VoteResponse(
        verify_count=outcome.verify_count,
        dispute_count=outcome.dispute_count,
        trust_score=outcome.trust_score,
        your_credibility=outcome.voter_credibility,
    )


@router.get("/credibility/{identity}", response_model=CredibilityResponse)
def get_credibility(identity: str, request: Request):
    """
    Get an identity's credibility record.

    Unknown identities are registered at the initial credibility.
    """
    if not is_valid_identity(identity):
        raise ValidationError("Invalid token")

    record = get_service(request).get_credibility(identity)
    return CredibilityResponse(
        credibility=record.credibility,
        total_votes=record.total_votes,
        aligned_votes=record.aligned_votes,
        alignment_rate=record.alignment_rate,
    )


@router.post("/delete", response_model=DeleteResponse)
def delete_rumor(command: RumorDeletion, request: Request):
    get_service(request).delete_rumor(command)
    return DeleteResponse()
