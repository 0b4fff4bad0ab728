"""Domain error taxonomy.

Every error carries the HTTP status it maps to, so routers never translate
exceptions by hand; `app.main` renders any `DomainError` as JSON.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    status_code: int = 400

    def __init__(self, detail: str, **context: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"detail": self.detail, "error": type(self).__name__}
        if self.context:
            body["context"] = self.context
        return body


class ValidationError(DomainError):
    status_code = 400


class InvalidTransitionError(ValidationError):
    pass


class AuthenticationError(DomainError):
    status_code = 401


class AuthorizationError(DomainError):
    status_code = 403


class NotFoundError(DomainError):
    status_code = 404


class NoEligibleAssigneeError(DomainError):
    """Resolver found nobody; context names role/vendor/circle/division."""

    status_code = 404

    def __init__(
        self,
        role: str,
        *,
        vendor: str | None = None,
        circle: str | None = None,
        division: str | None = None,
        site_code: str | None = None,
    ) -> None:
        parts = [f"role={role}"]
        if vendor:
            parts.append(f"vendor={vendor}")
        if circle:
            parts.append(f"circle={circle}")
        if division:
            parts.append(f"division={division}")
        super().__init__(
            "No active, approved user found (" + ", ".join(parts) + ")",
            role=role,
            vendor=vendor,
            circle=circle,
            division=division,
            site_code=site_code,
        )
        self.role = role
        self.vendor = vendor
        self.circle = circle
        self.division = division


class ConflictError(DomainError):
    status_code = 409


class SecondaryEffectError(DomainError):
    """A downstream effect failed after the primary mutation was committed."""

    status_code = 502

    def __init__(self, kind: str, cause: BaseException, **context: Any) -> None:
        super().__init__(f"Secondary effect '{kind}' failed: {cause}", kind=kind, **context)
        self.kind = kind
        self.cause = cause


_BY_STATUS: dict[int, type[DomainError]] = {
    400: ValidationError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ConflictError,
}


def error_for_status(status_code: int) -> type[DomainError]:
    return _BY_STATUS.get(status_code, DomainError)
