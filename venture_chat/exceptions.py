class ChatError(Exception):
    """Base class for errors the messaging core reports to its callers."""

    code = "chat_error"
    status_code = 400

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class AuthError(ChatError):
    code = "auth_error"
    status_code = 401


class PermissionDeniedError(ChatError):
    code = "permission_denied"
    status_code = 403


class ValidationError(ChatError):
    code = "validation_error"
    status_code = 422


class NotFoundError(ChatError):
    code = "not_found"
    status_code = 404


class TransientStoreError(ChatError):
    """Persistence I/O failed. Not retried here; callers may retry."""

    code = "store_unavailable"
    status_code = 503


class InternalError(ChatError):
    code = "internal"
    status_code = 500
