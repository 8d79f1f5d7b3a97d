from __future__ import annotations


class PortalError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, details: str | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> dict[str, str]:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class AuthenticationRequired(PortalError):
    status_code = 401
    default_message = "Not authenticated"


class AuthorizationDenied(PortalError):
    status_code = 403
    default_message = "Not authorized"


class ValidationFailed(PortalError):
    status_code = 400
    default_message = "Invalid request"


class NotFound(PortalError):
    status_code = 404
    default_message = "Not found"


class Conflict(PortalError):
    status_code = 409
    default_message = "Conflict"


class UpstreamFailure(PortalError):
    status_code = 502
    default_message = "Upstream provider error"


class PersistenceFailure(PortalError):
    status_code = 500
    default_message = "Database error"
