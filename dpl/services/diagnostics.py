#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Diagnostics channel
===================
Collects the coded messages produced while one query is evaluated.

Severity levels
---------------
1  critical — the evaluation is aborted and no records are returned
2  warning  — recorded, evaluation continues
3  debug    — informational (e.g. the generated SQL)

The ``debug`` parameter (0-5) decides which diagnostics are *reported*;
a critical diagnostic aborts the evaluation whether or not it is shown.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum


log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------

class Severity(IntEnum):
    CRITICAL = 1
    WARNING  = 2
    DEBUG    = 3


# -----------------------------------------------------------------------------

class DiagnosticCode(IntEnum):
    TOO_MANY_CATEGORIES                = 3
    TOO_FEW_CATEGORIES                 = 4
    NO_SELECTION                       = 5
    NO_CATEGORIES_FOR_ORDER_METHOD     = 6
    NO_CATEGORIES_FOR_ADD_DATE         = 7
    MORE_THAN_ONE_TYPE_OF_DATE         = 8
    WRONG_ORDER_METHOD                 = 9
    DOMINANT_SECTION_RANGE             = 10
    NO_CL_VIEW                         = 11
    OPEN_REFERENCES                    = 12
    UNKNOWN_PARAM                      = 13
    WRONG_PARAM                        = 14
    NO_RESULTS                         = 16
    CAT_OUTPUT_BUT_WRONG_PARAMS        = 17
    HEADING_MODE_TOO_FEW_ORDER_METHODS = 18
    PARAM_NO_OPTION                    = 22
    NOT_PROTECTED                      = 23
    SQL_BUILD_ERROR                    = 24
    SQL_EXECUTION_ERROR                = 25
    CONFLICTING_USER_PARAMETERS        = 26
    QUERY_TIMEOUT                      = 27
    PERMISSION_DENIED                  = 28
    QUERY_SQL                          = 30


C = DiagnosticCode

SEVERITIES: dict[DiagnosticCode, Severity] = {
    C.TOO_MANY_CATEGORIES:                Severity.CRITICAL,
    C.TOO_FEW_CATEGORIES:                 Severity.CRITICAL,
    C.NO_SELECTION:                       Severity.CRITICAL,
    C.NO_CATEGORIES_FOR_ORDER_METHOD:     Severity.CRITICAL,
    C.NO_CATEGORIES_FOR_ADD_DATE:         Severity.CRITICAL,
    C.MORE_THAN_ONE_TYPE_OF_DATE:         Severity.CRITICAL,
    C.WRONG_ORDER_METHOD:                 Severity.CRITICAL,
    C.DOMINANT_SECTION_RANGE:             Severity.CRITICAL,
    C.NO_CL_VIEW:                         Severity.CRITICAL,
    C.OPEN_REFERENCES:                    Severity.CRITICAL,
    C.UNKNOWN_PARAM:                      Severity.WARNING,
    C.WRONG_PARAM:                        Severity.WARNING,
    C.NO_RESULTS:                         Severity.WARNING,
    C.CAT_OUTPUT_BUT_WRONG_PARAMS:        Severity.WARNING,
    C.HEADING_MODE_TOO_FEW_ORDER_METHODS: Severity.WARNING,
    C.PARAM_NO_OPTION:                    Severity.WARNING,
    C.NOT_PROTECTED:                      Severity.CRITICAL,
    C.SQL_BUILD_ERROR:                    Severity.CRITICAL,
    C.SQL_EXECUTION_ERROR:                Severity.CRITICAL,
    C.CONFLICTING_USER_PARAMETERS:        Severity.CRITICAL,
    C.QUERY_TIMEOUT:                      Severity.CRITICAL,
    C.PERMISSION_DENIED:                  Severity.CRITICAL,
    C.QUERY_SQL:                          Severity.DEBUG,
}

MESSAGES: dict[DiagnosticCode, str] = {
    C.TOO_MANY_CATEGORIES:                "Too many categories: at most {0} are allowed",
    C.TOO_FEW_CATEGORIES:                 "Too few categories: at least {0} are required",
    C.NO_SELECTION:                       "No selection criteria found",
    C.NO_CATEGORIES_FOR_ORDER_METHOD:     "Order method '{0}' requires at least one category",
    C.NO_CATEGORIES_FOR_ADD_DATE:         "'addfirstcategorydate' requires at least one category",
    C.MORE_THAN_ONE_TYPE_OF_DATE:         "Only one of addpagetoucheddate, addfirstcategorydate and addeditdate may be used",
    C.WRONG_ORDER_METHOD:                 "'{0}' only works with ordermethod={1}",
    C.DOMINANT_SECTION_RANGE:             "dominantsection must be between 1 and {0}",
    C.NO_CL_VIEW:                         "The '{0}' view is missing; uncategorized pages cannot be selected",
    C.OPEN_REFERENCES:                    "openreferences cannot be combined with page based criteria",
    C.UNKNOWN_PARAM:                      "Unknown parameter '{0}'",
    C.WRONG_PARAM:                        "Invalid value '{1}' for parameter '{0}'",
    C.NO_RESULTS:                         "No results",
    C.CAT_OUTPUT_BUT_WRONG_PARAMS:        "mode=category ignores the add* parameters",
    C.HEADING_MODE_TOO_FEW_ORDER_METHODS: "headingmode={0} needs at least two order methods; using headingmode=none",
    C.PARAM_NO_OPTION:                    "Line '{0}' has no '=' and was skipped",
    C.NOT_PROTECTED:                      "Queries may only run from protected pages",
    C.SQL_BUILD_ERROR:                    "The SQL statement could not be built: {0}",
    C.SQL_EXECUTION_ERROR:                "The SQL statement failed: {0}",
    C.CONFLICTING_USER_PARAMETERS:        "addauthor and addlasteditor cannot be used together",
    C.QUERY_TIMEOUT:                      "The query exceeded {0} seconds",
    C.PERMISSION_DENIED:                  "{0}",
    C.QUERY_SQL:                          "SQL: {0}",
}


# -----------------------------------------------------------------------------

@dataclass
class Diagnostic:
    code:     DiagnosticCode
    severity: Severity
    message:  str
    args:     tuple = ()

    def as_dict(self) -> dict:
        return {
            "code":     int(self.code),
            "name":     self.code.name,
            "severity": int(self.severity),
            "message":  self.message,
        }


# -----------------------------------------------------------------------------

@dataclass
class Diagnostics:
    """Ordered diagnostic log for one evaluation."""

    level: int = 2
    items: list[Diagnostic] = field(default_factory=list)

    def add(self, code: DiagnosticCode, *args) -> Diagnostic:
        severity = SEVERITIES[code]
        # unused placeholders render empty
        message  = MESSAGES[code].format(*args, "", "")
        item     = Diagnostic(code=code, severity=severity, message=message, args=args)
        self.items.append(item)

        if severity == Severity.CRITICAL:
            log.error("[%d] %s", code, message)
        elif severity == Severity.WARNING:
            log.warning("[%d] %s", code, message)
        else:
            log.debug("[%d] %s", code, message)
        return item

    @property
    def has_critical(self) -> bool:
        return any(d.severity == Severity.CRITICAL for d in self.items)

    def codes(self) -> list[int]:
        return [int(d.code) for d in self.items]

    def reported(self) -> list[Diagnostic]:
        """Diagnostics visible at the current ``debug`` level."""
        return [d for d in self.items if d.severity <= self.level]


# -----------------------------------------------------------------------------
