#!/usr/bin/env python
"""
Import pages from a MediaWiki XML export into the PyDPL wiki schema.

Usage:
    .venv/bin/python scripts/import_mediawiki.py <export.xml> [options]

Options:
    --skip-namespaces    Comma-separated MW namespace numbers to skip
    --overwrite          Replace pages that already exist (default: skip them)
    --dry-run            Parse and report without writing to the database
    --limit N            Only import the first N pages (useful for testing)

The full revision history is imported; the link tables are derived from the
latest revision's wikitext.

Example:
    .venv/bin/python scripts/import_mediawiki.py ~/export.xml --dry-run --limit 10
    .venv/bin/python scripts/import_mediawiki.py ~/export.xml --skip-namespaces 1,3
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dpl.core.database import create_all_tables, get_session_factory
from dpl.services.importer import import_export, parse_export
from dpl.services.namespaces import get_resolver, seed_namespaces


# ── Import logic ──────────────────────────────────────────────────────────────

def dry_run(xml_path: Path, skip_ns: frozenset[int], limit: int | None) -> None:
    count = 0
    for page in parse_export(xml_path):
        if page.ns in skip_ns:
            continue
        if limit is not None and count >= limit:
            break
        count += 1
        latest = page.revisions[-1]
        print(f"  [{page.ns:>3}] {page.title!r}  ({len(page.revisions)} revisions, last by {latest.contributor})")
    print(f"\n[DRY RUN] {count} pages — no changes written.")


async def run_import(xml_path: Path, skip_ns: frozenset[int], overwrite: bool, limit: int | None) -> None:
    # Ensure tables exist (safe no-op if already present)
    await create_all_tables()

    async with get_session_factory()() as db:
        async with db.begin():
            await seed_namespaces(db)
            resolver = await get_resolver(db)
            stats = await import_export(
                db, xml_path, resolver,
                skip_namespaces=skip_ns, overwrite=overwrite, limit=limit,
            )

    print(
        f"\nImport complete: "
        f"{stats.created} created, "
        f"{stats.updated} updated, "
        f"{stats.skipped} skipped (already exist), "
        f"{stats.revisions} revisions."
    )


# ── CLI ───────────────────────────────────────────────────────────────────────

def main() -> None:
    parser = argparse.ArgumentParser(
        description="Import pages from a MediaWiki XML export.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("xml_file", help="Path to the MediaWiki XML export file")
    parser.add_argument("--skip-namespaces", default="", metavar="N,N,...",
                        help="Comma-separated MW namespace numbers to skip")
    parser.add_argument("--overwrite", action="store_true",
                        help="Replace existing pages and their history")
    parser.add_argument("--dry-run", action="store_true",
                        help="Parse and report without writing to the database")
    parser.add_argument("--limit", type=int, default=None, metavar="N",
                        help="Only import the first N pages")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    xml_path = Path(args.xml_file).expanduser().resolve()
    if not xml_path.exists():
        print(f"Error: file not found: {xml_path}", file=sys.stderr)
        sys.exit(1)

    skip_ns = frozenset(int(n) for n in args.skip_namespaces.split(",") if n.strip().isdigit())

    if args.dry_run:
        dry_run(xml_path, skip_ns, args.limit)
    else:
        asyncio.run(run_import(xml_path, skip_ns, args.overwrite, args.limit))


if __name__ == "__main__":
    main()
