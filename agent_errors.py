class AgentError(Exception):
    """Base class for errors raised while handling an event."""
    http_status = 500

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidSignature(AgentError):
    """Raised when a webhook fails HMAC verification."""
    http_status = 401


class MalformedPayload(AgentError):
    """Raised when a webhook body is not valid JSON or lacks required fields."""
    http_status = 400


class DependencyUnavailable(AgentError):
    """Raised when the backend, GitHub, the AI API or the chain agent fails."""

    def __init__(self, service, message, status_code=None, details=None):
        super().__init__(message, details=details)
        self.service = service
        self.status_code = status_code

    @property
    def auth_refused(self):
        return self.status_code in (401, 403)

    @property
    def retryable(self):
        # No status code means timeout or connection failure
        return self.status_code is None or self.status_code >= 500

    @property
    def http_status(self):
        return 424 if self.auth_refused else 500

    def to_dict(self):
        body = super().to_dict()
        body.setdefault("details", {"service": self.service, "status_code": self.status_code})
        return body


class Unauthorized(AgentError):
    """Raised when no delegated GitHub token is available for a repository."""
    http_status = 424


class MalformedVerdict(AgentError):
    """Raised when the AI reviewer output cannot be parsed into a verdict."""
    http_status = 500


class PayoutFailed(AgentError):
    """Raised when an on-chain release did not confirm."""
    http_status = 500
