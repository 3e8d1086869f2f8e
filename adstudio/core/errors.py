"""Application error taxonomy.

Every error raised by the services carries the HTTP status it maps to, so the
API layer can render all of them as ``{"error": message}`` without knowing the
concrete class.
"""


class AppError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(AppError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(AppError):
    status_code = 403
    default_message = "Access denied"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class ValidationFailed(AppError):
    status_code = 400
    default_message = "Invalid request"


class InsufficientCredits(AppError):
    status_code = 402
    default_message = "Insufficient credits"

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits: {required} required, {available} available")


class RateLimited(AppError):
    status_code = 429
    default_message = "Too many requests"

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"Too many requests, retry in {retry_after}s")


class VendorError(AppError):
    """Upstream AI vendor failure (transport error or error envelope)."""

    status_code = 500
    default_message = "Generation provider failed"

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class InternalError(AppError):
    status_code = 500
