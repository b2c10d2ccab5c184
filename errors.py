"""Domain errors raised by the services and translated to HTTP responses in main."""

from typing import List, Optional


class SkillSnapError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_detail(self) -> dict:
        detail = {"code": self.code, "message": self.message}
        if self.errors:
            detail["errors"] = self.errors
        return detail


class NotFoundError(SkillSnapError):
    status_code = 404
    code = "not_found"


class ConflictError(SkillSnapError):
    status_code = 409
    code = "conflict"


class LinkConflictError(ConflictError):
    """An account or profile is already linked elsewhere."""

    status_code = 400
    code = "link_conflict"


class ValidationFailure(SkillSnapError):
    status_code = 400
    code = "validation_failed"


class UnauthorizedError(SkillSnapError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(SkillSnapError):
    status_code = 403
    code = "forbidden"


class PersistenceFailure(SkillSnapError):
    status_code = 409
    code = "persistence_failure"
