#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Query text parsing
==================
A query is a newline separated list of ``name = value`` lines::

    category  = Foo|Bar
    namespace =
    count     = 5

Blank lines and ``#`` lines are ignored, names are case-insensitive and a
name may repeat (every occurrence is kept, in order).  Before parsing, the
markup-safe escapes are expanded: ``«`` ``»`` ``¦`` ``²{`` ``}²`` become
``<`` ``>`` ``|`` ``{{`` ``}}``.  Request arguments may be spliced in with
``{%DPL_arg1%}`` or ``{%DPL_arg1:default%}``.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import re
from typing import Optional

from .diagnostics import DiagnosticCode, Diagnostics
from .parameter_definitions import exists


# -----------------------------------------------------------------------------

ESCAPES = (
    ("«",  "<"),
    ("»",  ">"),
    ("¦",  "|"),
    ("²{", "{{"),
    ("}²", "}}"),
)

URL_ARGUMENTS = (
    "DPL_offset", "DPL_count", "DPL_fromTitle", "DPL_findTitle", "DPL_toTitle",
    "DPL_arg1", "DPL_arg2", "DPL_arg3", "DPL_arg4", "DPL_arg5",
)

# Parameters where an empty value still means something
EMPTY_ALLOWED = {"namespace", "notnamespace", "category"}


# -----------------------------------------------------------------------------

def resolve_url_arguments(text: str, arguments: Optional[dict[str, str]] = None) -> str:
    """Replace ``{%DPL_x%}`` / ``{%DPL_x:default%}`` with request argument values."""
    arguments = arguments or {}
    for name in URL_ARGUMENTS:
        value = str(arguments.get(name, "") or "")
        with_default = re.compile(r"\{%" + name + r":(.*?)%\}")
        if value:
            text = with_default.sub(lambda _m: value, text)
        else:
            text = with_default.sub(lambda m: m.group(1), text)
        text = text.replace("{%" + name + "%}", value)
    return text


# -----------------------------------------------------------------------------

def parse_input(
    text: str,
    diagnostics: Diagnostics,
    arguments: Optional[dict[str, str]] = None,
) -> Optional[dict[str, list[str]]]:
    """
    Parse query text into ``{name: [option, ...]}``.

    Returns None when no usable parameter line was found.
    """
    text = resolve_url_arguments(text or "", arguments)
    for escaped, plain in ESCAPES:
        text = text.replace(escaped, plain)
    text = text.replace("\r\n", "\n").replace("\r", "\n").strip("\n")

    parameters: dict[str, list[str]] = {}

    for line in text.split("\n"):
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        if "=" not in line:
            diagnostics.add(DiagnosticCode.PARAM_NO_OPTION, line.strip())
            continue

        name, option = line.split("=", 1)
        name   = name.strip().replace("<", "lt").replace(">", "gt").lower()
        option = option.strip()

        if not name:
            continue
        if not exists(name):
            diagnostics.add(DiagnosticCode.UNKNOWN_PARAM, name)
            continue
        if not option and name not in EMPTY_ALLOWED:
            continue

        parameters.setdefault(name, []).append(option)

    return parameters or None


# -----------------------------------------------------------------------------
