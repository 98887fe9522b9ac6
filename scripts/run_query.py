#!/usr/bin/env python
"""
Evaluate a query file against the configured database and print the result
as JSON.

Usage:
    .venv/bin/python scripts/run_query.py query.txt [--title PAGE] [--arg DPL_offset=20]

A query file holds one ``name = value`` parameter per line; ``-`` reads it
from stdin.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from dpl.core.database import get_session_factory
from dpl.services.evaluation import evaluate


# ── Evaluation ────────────────────────────────────────────────────────────────

async def run(text: str, title: str | None, arguments: dict[str, str], permissions: list[str]) -> dict:
    async with get_session_factory()() as db:
        result = await evaluate(
            db, text,
            title=title, protected=True,
            arguments=arguments, permissions=permissions,
        )
    return {
        "ok":          not result.aborted,
        "total_pages": result.total_pages,
        "pages":       result.pages,
        "header":      result.header,
        "footer":      result.footer,
        "records":     [r.as_dict() for r in result.records],
        "headings":    [h.as_dict() for h in result.headings],
        "diagnostics": [d.as_dict() for d in result.diagnostics.reported()],
        "sql":         result.sql,
    }


# ── CLI ───────────────────────────────────────────────────────────────────────

def main() -> None:
    parser = argparse.ArgumentParser(description="Evaluate a page list query.")
    parser.add_argument("query_file", help="Query text file, or - for stdin")
    parser.add_argument("--title", default=None, help="Title of the invoking page")
    parser.add_argument("--arg", action="append", default=[], metavar="NAME=VALUE",
                        help="Request argument such as DPL_offset=20 (repeatable)")
    parser.add_argument("--permission", action="append", default=[], metavar="NAME",
                        help="Permission held by the caller (repeatable)")
    args = parser.parse_args()

    if args.query_file == "-":
        text = sys.stdin.read()
    else:
        with open(args.query_file, encoding="utf-8") as fh:
            text = fh.read()

    arguments = {}
    for item in args.arg:
        name, sep, value = item.partition("=")
        if not sep:
            parser.error(f"--arg expects NAME=VALUE, got {item!r}")
        arguments[name.strip()] = value

    output = asyncio.run(run(text, args.title, arguments, args.permission))
    json.dump(output, sys.stdout, indent=2, ensure_ascii=False)
    print()
    if not output["ok"]:
        sys.exit(2)


if __name__ == "__main__":
    main()
