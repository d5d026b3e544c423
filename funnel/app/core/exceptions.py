"""
Lead Funnel Error Taxonomy

Every error raised on purpose by the services derives from FunnelError and
carries the HTTP status it is rendered with.
"""

from typing import Optional


class FunnelError(Exception):
    """Base class for domain errors"""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(FunnelError):
    """Malformed or missing input"""

    status_code = 400


class NotFoundError(FunnelError):
    """Entity lookup miss"""

    status_code = 404


class UpstreamError(FunnelError):
    """Third-party API failure"""

    status_code = 500

    @classmethod
    def from_status(cls, upstream_status: int, message: str) -> "UpstreamError":
        """Map an upstream HTTP status onto the status we answer with"""
        if upstream_status in (401, 403):
            return cls(message, status_code=401)
        if upstream_status in (400, 422):
            return cls(message, status_code=422)
        return cls(message, status_code=500)


class InternalError(FunnelError):
    """Unexpected failure"""

    status_code = 500
