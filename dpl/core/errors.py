#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Exceptions
==========
DplError                    — base class
QueryBuildError             — the query builder's structural contract was broken
SqlExecutionError           — the database rejected or failed a statement
ParameterPermissionError    — caller lacks the permission a parameter requires

The evaluation pipeline turns every one of these into a critical diagnostic;
none of them is meant to reach an HTTP client as a 500.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Optional


# -----------------------------------------------------------------------------

class DplError(Exception):
    """Base exception for query evaluation failures."""


# -----------------------------------------------------------------------------

class QueryBuildError(DplError):
    """Raised when the SQL statement cannot be assembled."""


# -----------------------------------------------------------------------------

class SqlExecutionError(DplError):
    """Raised when executing a generated statement fails.

    Always carries the low-level driver message so the diagnostic can show it.
    """

    def __init__(self, message: str, driver_message: str = "",
                 sql: Optional[str] = None,
                 original_error: Optional[BaseException] = None):
        self.message        = message
        self.driver_message = driver_message
        self.sql            = sql
        self.original_error = original_error
        super().__init__(f"{message}: {driver_message}" if driver_message else message)

    @classmethod
    def from_driver_error(cls, error: BaseException,
                          sql: Optional[str] = None) -> "SqlExecutionError":
        # SQLAlchemy DBAPIError keeps the driver exception on .orig
        orig = getattr(error, "orig", None)
        driver_message = str(orig) if orig is not None else str(error)
        return cls(
            message="Query execution failed",
            driver_message=driver_message,
            sql=sql,
            original_error=error,
        )


# -----------------------------------------------------------------------------

class ParameterPermissionError(DplError):
    """Raised when a parameter requires a permission the caller does not hold."""

    def __init__(self, parameter: str, permission: str):
        self.parameter  = parameter
        self.permission = permission
        super().__init__(f"Parameter '{parameter}' requires the '{permission}' permission")


# -----------------------------------------------------------------------------
