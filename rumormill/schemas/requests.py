"""
Command Payloads

Inputs accepted by the rumor service. Shape, range and token format are
enforced here, so the service only ever sees well-formed commands.

Field names follow the public JSON contract (camelCase aliases); the
legacy `hashedToken` key is accepted wherever `identity` is.
"""

import re

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .rumor import VoteType


MAX_CONTENT_LENGTH = 500
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0

# Callers hash their own secret; the service never sees it.
IDENTITY_PATTERN = r"^[a-fA-F0-9]{64}$"
_IDENTITY_RE = re.compile(IDENTITY_PATTERN)

# Largest id a 64-bit INTEGER column can hold
MAX_ROW_ID = 2**63 - 1


def is_valid_identity(token: str) -> bool:
    """True only for exactly 64 hex characters, with nothing trailing."""
    return _IDENTITY_RE.fullmatch(token) is not None


def _identity_field():
    return Field(
        ...,
        pattern=IDENTITY_PATTERN,
        validation_alias=AliasChoices("identity", "hashedToken"),
        description="64-character hex token identifying an anonymous participant",
    )


def _rumor_id_field():
    return Field(
        ...,
        gt=0,
        le=MAX_ROW_ID,
        strict=True,
        validation_alias=AliasChoices("rumorId", "rumor_id"),
    )


def _confidence_field():
    return Field(
        ...,
        ge=MIN_CONFIDENCE,
        le=MAX_CONFIDENCE,
        strict=True,
        validation_alias=AliasChoices("confidenceWeight", "confidence"),
        description="How sure the caller is, from 0.1 to 1.0",
    )


class RumorSubmission(BaseModel):
    """A new rumor and the submitter's confidence in it."""
    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(..., max_length=MAX_CONTENT_LENGTH)
    identity: str = _identity_field()
    confidence: float = _confidence_field()

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Content is required")
        return stripped


class VoteCast(BaseModel):
    """A verify or dispute vote on an existing rumor."""
    model_config = ConfigDict(populate_by_name=True)

    rumor_id: int = _rumor_id_field()
    identity: str = _identity_field()
    vote_type: VoteType = Field(
        ...,
        validation_alias=AliasChoices("voteType", "vote_type"),
    )
    confidence: float = _confidence_field()


class RumorDeletion(BaseModel):
    """Submitter-initiated removal of a rumor from the feed."""
    model_config = ConfigDict(populate_by_name=True)

    rumor_id: int = _rumor_id_field()
    identity: str = _identity_field()
