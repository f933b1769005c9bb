"""
Error kinds

Each failure the API can report is its own exception class. The class name
doubles as the machine-readable `kind` sent to clients; `status_code` is the
HTTP status the handler in main.py answers with.
"""


class ConfigError(RuntimeError):
    """Startup configuration is incomplete or malformed."""


class ApiError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.kind, "message": self.message}


# Auth

class AuthError(ApiError):
    status_code = 401
    default_message = "Not authorized"


class MissingCredential(AuthError):
    status_code = 400
    default_message = "Password required"


class InvalidCredential(AuthError):
    default_message = "Invalid password"


class MalformedHeader(AuthError):
    default_message = "Missing or malformed Authorization header"


class InvalidOrExpiredToken(AuthError):
    default_message = "Token expired or invalid"


# Content and messages

class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class ValidationError(ApiError):
    status_code = 400
    default_message = "Missing required fields"


class StorageUnavailable(ApiError):
    status_code = 503
    default_message = "Storage backend unavailable"


class DeliveryError(ApiError):
    status_code = 502
    default_message = "Failed to send email"
