from __future__ import annotations

from typing import Any, Dict, Optional

from .types import ActorResponse


class UserActorError(Exception):
    """
    Base for every rejection a User method can produce.

    `message` is always shown to the caller. `detail` (raw collaborator output) is only
    rendered for 400-class upstream failures; `extra` fields are merged into the body.
    """

    status_code = 500
    code = "INTERNAL"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        detail: Any = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = int(status_code)
        if code is not None:
            self.code = code
        self.detail = detail
        self.extra = dict(extra or {})

    def to_response(self) -> ActorResponse:
        body: Dict[str, Any] = {"message": self.message}
        body.update(self.extra)
        return ActorResponse(status_code=self.status_code, body=body)


class ValidationError(UserActorError):
    status_code = 400
    code = "VALIDATION_FAILED"


class AuthorizationError(UserActorError):
    status_code = 401
    code = "UNAUTHENTICATED"


class ConflictError(UserActorError):
    status_code = 409
    code = "CONFLICT"


class UpstreamError(UserActorError):
    status_code = 500
    code = "UPSTREAM_FAILED"

    def to_response(self) -> ActorResponse:
        resp = super().to_response()
        # Raw collaborator detail is diagnostic only for client-class failures.
        if self.detail is not None and 400 <= self.status_code < 500:
            resp.body["addons"] = self.detail
        return resp


class NotFoundError(UserActorError):
    status_code = 404
    code = "INSTANCE_NOT_FOUND"


# ----------------------------
# Named rejections
# ----------------------------

def invalid_email() -> ValidationError:
    return ValidationError("Invalid email format", code="INVALID_EMAIL")


def invalid_name() -> ValidationError:
    return ValidationError("Invalid name", code="INVALID_NAME")


def weak_password() -> ValidationError:
    return ValidationError("Password must be at least 8 characters long.", code="WEAK_PASSWORD")


def duplicate_email(status_code: int = 400) -> ConflictError:
    return ConflictError("User with this email already exists", status_code=status_code, code="DUPLICATE_EMAIL")


def creation_failed(detail: Any) -> UpstreamError:
    return UpstreamError("Cannot create user", status_code=400, code="CREATION_FAILED", detail=detail)


def invalid_credentials(message: str = "Invalid email or password") -> AuthorizationError:
    return AuthorizationError(message, status_code=401, code="INVALID_CREDENTIALS")


def token_issue_failed(detail: Any = None) -> UpstreamError:
    return UpstreamError("Error generating token", status_code=500, code="TOKEN_ISSUE_FAILED", detail=detail)


def version_conflict(supplied: Any, current: int) -> ConflictError:
    return ConflictError(
        f"Your state version ({supplied}) is behind the current version ({current}).",
        status_code=409,
        code="VERSION_CONFLICT",
        extra={"currentVersion": int(current)},
    )


def forbidden() -> AuthorizationError:
    return AuthorizationError("Forbidden", status_code=403, code="FORBIDDEN")


def unauthenticated() -> AuthorizationError:
    return AuthorizationError("Unauthorized", status_code=401, code="UNAUTHENTICATED")


def storage_unavailable(detail: Any = None) -> UpstreamError:
    return UpstreamError("Storage unavailable", status_code=500, code="STORAGE_UNAVAILABLE", detail=detail)
