"""
Service Errors

Every rejection a caller can recover from carries a stable machine-readable
`kind` and the HTTP status the API layer answers with. Storage failures are
not here: they are StoreError (rumormill.db.store) and surface as 500.
"""


class RumorMillError(Exception):
    """Base exception for expected, caller-recoverable rejections."""
    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "kind": self.kind, "error": self.message}


class ValidationError(RumorMillError):
    """Malformed, missing or out-of-range input, or an invalid state change."""
    kind = "validation_error"
    status_code = 400


class NotFoundError(RumorMillError):
    """Referenced rumor is absent, deleted or archived."""
    kind = "not_found"
    status_code = 404


class ForbiddenError(RumorMillError):
    """Self-vote, or delete attempted by someone other than the submitter."""
    kind = "forbidden"
    status_code = 403


class ConflictError(RumorMillError):
    """Identity already voted on this rumor."""
    kind = "conflict"
    status_code = 409
