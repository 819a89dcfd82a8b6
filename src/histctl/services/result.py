"""ServiceResult and ServiceError: the typed outcome of every engine operation.

INVARIANT: Invoker and service methods return ServiceResult; they never
raise for expected failures. The CLI and any embedding application
consume this type.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from histctl.domain.errors import EngineError


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: EngineError) -> ServiceError:
        return cls(code=str(exc.code), message=exc.message, detail=exc.detail)


class ServiceResult(BaseModel):
    """Universal return type for engine operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (``"execute"``, ``"undo"``, ...).
        data: Operation-specific payload.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (telemetry spans).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def failure(
        cls,
        op: str,
        exc: EngineError,
        *,
        data: dict[str, Any] | None = None,
        warnings: list[str] | None = None,
    ) -> ServiceResult:
        """Build a failed result from a histctl exception."""
        return cls(
            ok=False,
            op=op,
            data=data or {},
            warnings=warnings or [],
            error=ServiceError.from_exception(exc),
        )

    @property
    def code(self) -> str | None:
        """Shortcut for ``error.code`` (None on success)."""
        return self.error.code if self.error else None
