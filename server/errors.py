"""
Error taxonomy for the auth core.

Every failure the core can report is an ``AuthError`` subclass with a stable
``code`` and the HTTP status the API layer maps it to. Storage and delivery
errors are wrapped before they reach a client.
"""
from typing import Any, Dict, Optional


class AuthError(Exception):
    code = "auth_error"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def extra(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "error": self.code}
        body.update(self.extra())
        return body


class NotFound(AuthError):
    code = "not_found"
    status_code = 404
    default_message = "No active code found. Please request a new one"


class Expired(AuthError):
    code = "expired"
    status_code = 410
    default_message = "Code has expired. Please request a new one"


class Mismatch(AuthError):
    code = "mismatch"
    status_code = 400
    default_message = "Invalid code"


class CooldownActive(AuthError):
    code = "cooldown_active"
    status_code = 429
    default_message = "Please wait before requesting a new code"

    def __init__(self, seconds_remaining: int, message: Optional[str] = None) -> None:
        self.seconds_remaining = max(int(seconds_remaining), 0)
        super().__init__(message or f"Please wait {self.seconds_remaining} seconds before requesting a new code")

    def extra(self) -> Dict[str, Any]:
        return {"seconds_remaining": self.seconds_remaining}


class AlreadyExists(AuthError):
    code = "already_exists"
    status_code = 409
    default_message = "An account with this email already exists"


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid email or password"


class GrantInvalid(AuthError):
    code = "grant_invalid"
    status_code = 400
    default_message = "Reset token is invalid or has expired"


class WeakPassword(AuthError):
    code = "weak_password"
    status_code = 400

    def __init__(self, min_length: int) -> None:
        self.min_length = min_length
        super().__init__(f"Password must be at least {min_length} characters")

    def extra(self) -> Dict[str, Any]:
        return {"min_length": self.min_length}


class DeliveryFailed(AuthError):
    code = "delivery_failed"
    status_code = 502
    default_message = "Could not deliver the message. Please try again"


class PersistenceUnavailable(AuthError):
    code = "persistence_unavailable"
    status_code = 503
    default_message = "Service temporarily unavailable. Please try again"


class InvalidToken(AuthError):
    code = "invalid_token"
    status_code = 401
    default_message = "Invalid token"


class TokenExpired(AuthError):
    code = "token_expired"
    status_code = 401
    default_message = "Token has expired"
