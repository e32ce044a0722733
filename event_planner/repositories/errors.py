"""
Repository Exceptions.

Classifies PostgREST failures into the three outcomes the role resolver
cares about: no matching row (not an error; repositories return
``None``), the relation is missing (provisioning problem), and anything
else.
"""

from __future__ import annotations

from typing import Optional

# Postgres "undefined_table" and PostgREST "table not in schema cache".
TABLE_MISSING_CODES: frozenset[str] = frozenset({"42P01", "PGRST205", "PGRST106"})

# PostgREST: ``.single()`` matched zero rows.
NO_ROWS_CODE: str = "PGRST116"


class RepositoryError(Exception):
    """A repository call failed for a reason other than "no row"."""

    def __init__(
        self,
        message: str,
        *,
        table: str = "",
        code: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.message: str = message
        self.table: str = table
        self.code: Optional[str] = code
        self.original_error: Optional[Exception] = original_error
        super().__init__(message)


class RepositoryUnavailableError(RepositoryError):
    """The backing table does not exist or is not exposed.

    Expected to be fixed by running migrations, not by retrying.
    """
