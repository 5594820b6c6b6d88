"""
Error taxonomy for the scoring engine.

Every error carries an HTTP status and a stable machine-readable code so the
web layer can render it without inspecting the type.
"""


class ScoringError(Exception):
    """Base class for all errors surfaced to callers."""

    status = 500
    code = "server_error"

    def __init__(
        self,
        message: str = "",
    ) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidRequest(ScoringError):
    status = 400
    code = "invalid_request"


class Unauthorized(ScoringError):
    status = 401
    code = "unauthorized"


class Forbidden(ScoringError):
    status = 403
    code = "forbidden"


class NotStarted(ScoringError):
    status = 403
    code = "not_started"


class ResultsHidden(ScoringError):
    status = 403
    code = "results_hidden"


class NotFound(ScoringError):
    status = 404
    code = "not_found"


class AlreadyCompleted(ScoringError):
    status = 409
    code = "already_completed"


class StorageFailure(ScoringError):
    status = 503
    code = "storage_failure"


class StorageConflict(StorageFailure):
    """The team record changed between read and write."""

    status = 409
    code = "storage_conflict"
