"""
Service Layer Result Envelope.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

__all__ = ["ServiceResult"]


class ServiceResult(BaseModel, Generic[T]):
    """Standard return envelope for administration operations.

    ``status_code`` follows HTTP semantics (403 forbidden, 404 missing,
    409 conflict) so a future API layer can pass it through unchanged.
    ``warnings`` carries non-fatal problems of a successful call that
    the admin UI should surface.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    status_code: int = 200
    warnings: list[str] = Field(default_factory=list)
