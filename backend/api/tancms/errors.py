from __future__ import annotations

from typing import Any


class CmsError(Exception):
    """Base typed error: stable `code`, human `message`, HTTP status for the API surface."""

    def __init__(
        self,
        *,
        code: str,
        message: str,
        status_code: int = 500,
        meta: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = int(status_code)
        self.meta = dict(meta or {})

    def to_public_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.meta:
            payload["meta"] = self.meta
        return payload


class NotFoundError(CmsError):
    def __init__(self, *, message: str = "Not found", code: str = "resource.not_found", meta: dict[str, Any] | None = None):
        super().__init__(code=code, message=message, status_code=404, meta=meta)


class ConflictError(CmsError):
    def __init__(self, *, message: str = "Conflict", code: str = "request.conflict", meta: dict[str, Any] | None = None):
        super().__init__(code=code, message=message, status_code=409, meta=meta)


class ValidationError(CmsError):
    def __init__(
        self,
        *,
        message: str = "Validation error",
        code: str = "request.validation_error",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, status_code=422, meta=meta)
