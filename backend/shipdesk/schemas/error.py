from typing import Any

from pydantic import BaseModel

from shipdesk.core.errors import BackendError, NotFoundError, ShipdeskError, ValidationError

_ERROR_CODES: tuple[tuple[type[ShipdeskError], str], ...] = (
    (ValidationError, "validation_error"),
    (NotFoundError, "not_found"),
    (BackendError, "backend_error"),
)


class ErrorResponse(BaseModel):
    detail: Any
    code: str | None = None

    @classmethod
    def from_error(cls, exc: ShipdeskError) -> "ErrorResponse":
        code = exc.code or next((code for error_type, code in _ERROR_CODES if isinstance(exc, error_type)), None)
        return cls(detail=exc.message, code=code)
