"""
Base Service Class.

Services extend this and receive their collaborators through __init__.
"""

from __future__ import annotations

from event_planner.logger import StructuredLogger


class BaseService:
    """Base class for all service classes. Provides a logger."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
