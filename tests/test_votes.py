"""
Tests for rumor submission and the vote processor.

Covers:
1. Initial trust score from submitter credibility
2. Exact vote impact arithmetic
3. Self-vote, duplicate vote and archived-rumor rejections
4. Command payload validation
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from rumormill.core import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    VoteProcessor,
)
from rumormill.schemas import (
    MAX_ROW_ID,
    RumorStatus,
    RumorSubmission,
    VoteCast,
    VoteType,
    is_valid_identity,
)

from conftest import make_identity, submission, vote


class TestSubmission:
    """Rumor creation and initial trust."""

    def test_initial_trust_is_credibility_times_confidence(self, service, submitter):
        """A fresh identity (0.1) submitting at 0.5 confidence scores 0.05."""
        rumor = service.submit_rumor(submission(submitter, confidence=0.5))

        assert rumor.trust_score == pytest.approx(0.05)
        assert rumor.status == RumorStatus.ACTIVE
        assert rumor.verify_count == 0
        assert rumor.dispute_count == 0
        assert rumor.submitter_token == submitter

    def test_submission_registers_submitter(self, service, submitter):
        service.submit_rumor(submission(submitter))

        record = service.get_credibility(submitter)
        assert record.credibility == pytest.approx(0.1)
        assert record.total_votes == 0

    def test_content_is_trimmed(self, service, submitter):
        rumor = service.submit_rumor(submission(submitter, content="   exams moved   "))
        assert rumor.content == "exams moved"

    def test_ids_increase(self, service, submitter):
        first = service.submit_rumor(submission(submitter, content="first"))
        second = service.submit_rumor(submission(submitter, content="second"))
        assert second.id > first.id


class TestVoteImpact:
    """Trust score arithmetic."""

    def test_verify_moves_score_up_by_credibility_times_confidence(self, service, submitter, voters):
        """0.05 initial + 0.1 x 1.0 verify = 0.15."""
        rumor = service.submit_rumor(submission(submitter, confidence=0.5))

        outcome = service.cast_vote(vote(rumor.id, voters[0], VoteType.VERIFY, 1.0))

        assert outcome.trust_score == pytest.approx(0.15)
        assert outcome.trust_score == rumor.trust_score + 0.1 * 1.0 * 1
        assert outcome.verify_count == 1
        assert outcome.dispute_count == 0
        assert outcome.voter_credibility == pytest.approx(0.1)

    def test_dispute_moves_score_down(self, service, submitter, voters):
        rumor = service.submit_rumor(submission(submitter, confidence=1.0))

        outcome = service.cast_vote(vote(rumor.id, voters[0], VoteType.DISPUTE, 0.4))

        assert outcome.trust_score == rumor.trust_score + 0.1 * 0.4 * -1
        assert outcome.dispute_count == 1
        assert outcome.impact == pytest.approx(-0.04)

    def test_score_is_sum_of_impacts(self, service, submitter, voters):
        rumor = service.submit_rumor(submission(submitter, confidence=1.0))
        expected = rumor.trust_score
        casts = [
            (VoteType.VERIFY, 0.3),
            (VoteType.DISPUTE, 0.9),
            (VoteType.VERIFY, 0.6),
        ]
        for identity, (vote_type, confidence) in zip(voters, casts):
            service.cast_vote(vote(rumor.id, identity, vote_type, confidence))
            expected = expected + 0.1 * confidence * vote_type.direction

        stored = service.get_rumor(rumor.id)
        assert stored.trust_score == pytest.approx(expected)
        assert stored.verify_count == 2
        assert stored.dispute_count == 1

    def test_vote_impact_helper(self):
        assert VoteProcessor.vote_impact(0.5, 0.8, VoteType.VERIFY) == pytest.approx(0.4)
        assert VoteProcessor.vote_impact(0.5, 0.8, VoteType.DISPUTE) == pytest.approx(-0.4)


class TestVoteRejections:
    """Votes that must not be recorded."""

    @pytest.fixture
    def rumor(self, service, submitter):
        return service.submit_rumor(submission(submitter))

    def test_self_vote_forbidden(self, service, rumor, submitter):
        with pytest.raises(ForbiddenError, match="your own rumor"):
            service.cast_vote(vote(rumor.id, submitter))

        assert service.get_rumor(rumor.id).verify_count == 0

    def test_duplicate_vote_conflict(self, service, rumor, voters):
        service.cast_vote(vote(rumor.id, voters[0], VoteType.VERIFY))

        with pytest.raises(ConflictError, match="already voted"):
            service.cast_vote(vote(rumor.id, voters[0], VoteType.DISPUTE))

        stored = service.get_rumor(rumor.id)
        assert stored.verify_count == 1
        assert stored.dispute_count == 0

    def test_missing_rumor_not_found(self, service, voters):
        with pytest.raises(NotFoundError):
            service.cast_vote(vote(999, voters[0]))

    def test_deleted_rumor_not_found(self, service, rumor, submitter, voters):
        from conftest import deletion

        service.delete_rumor(deletion(rumor.id, submitter))

        with pytest.raises(NotFoundError, match="not found or archived"):
            service.cast_vote(vote(rumor.id, voters[0]))

    def test_rejected_vote_leaves_no_trace(self, service, rumor, submitter):
        """A failed vote rolls back entirely, including lazy registration."""
        outsider = make_identity("outsider")
        with pytest.raises(NotFoundError):
            service.cast_vote(vote(rumor.id + 100, outsider))

        with service.store.transaction() as session:
            assert session.get_credibility(outsider) is None


class TestCommandValidation:
    """Payload shape is enforced before the service runs."""

    def test_identity_must_be_64_hex(self):
        with pytest.raises(PydanticValidationError):
            RumorSubmission(content="x", identity="not-a-token", confidence=0.5)

    def test_identity_with_trailing_newline_rejected(self):
        with pytest.raises(PydanticValidationError):
            RumorSubmission(content="x", identity=make_identity("a") + "\n", confidence=0.5)
        assert not is_valid_identity(make_identity("a") + "\n")
        assert is_valid_identity(make_identity("a").upper())

    def test_rumor_id_fits_in_64_bits(self):
        command = VoteCast(
            rumor_id=MAX_ROW_ID,
            identity=make_identity("a"),
            vote_type=VoteType.VERIFY,
            confidence=0.5,
        )
        assert command.rumor_id == MAX_ROW_ID
        with pytest.raises(PydanticValidationError):
            VoteCast(
                rumor_id=MAX_ROW_ID + 1,
                identity=make_identity("a"),
                vote_type=VoteType.VERIFY,
                confidence=0.5,
            )

    def test_hashed_token_alias_accepted(self):
        token = make_identity("legacy")
        command = RumorSubmission.model_validate(
            {"content": "x", "hashedToken": token, "confidenceWeight": 0.5}
        )
        assert command.identity == token
        assert command.confidence == 0.5

    @pytest.mark.parametrize("confidence", [0.0, 0.09, 1.01])
    def test_confidence_out_of_range(self, confidence):
        with pytest.raises(PydanticValidationError):
            VoteCast(
                rumor_id=1,
                identity=make_identity("a"),
                vote_type=VoteType.VERIFY,
                confidence=confidence,
            )

    def test_blank_content_rejected(self):
        with pytest.raises(PydanticValidationError, match="Content is required"):
            RumorSubmission(content="   ", identity=make_identity("a"), confidence=0.5)

    def test_content_length_limit(self):
        with pytest.raises(PydanticValidationError):
            RumorSubmission(content="x" * 501, identity=make_identity("a"), confidence=0.5)

    def test_unknown_vote_type_rejected(self):
        with pytest.raises(PydanticValidationError):
            VoteCast.model_validate({
                "rumorId": 1,
                "identity": make_identity("a"),
                "voteType": "maybe",
                "confidenceWeight": 0.5,
            })
