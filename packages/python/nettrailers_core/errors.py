class DomainError(Exception):
    """Base for errors the API maps straight to an HTTP status."""

    code: str = "domain_error"
    status: int = 400

    def __init__(self, message: str = "", *, code: str | None = None, status: int | None = None):
        super().__init__(message or self.__class__.__name__)
        if code:
            self.code = code
        if status:
            self.status = status

    @property
    def detail(self) -> dict[str, str]:
        return {"code": self.code, "message": str(self)}


class NotFound(DomainError):
    code = "not_found"
    status = 404


class Conflict(DomainError):
    # optimistic transaction gave up after repeated contention
    code = "conflict"
    status = 409


class RuleViolation(DomainError):
    # raised before any write
    code = "rule_violation"
    status = 422


class StoreUnavailable(DomainError):
    code = "store_unavailable"
    status = 503
