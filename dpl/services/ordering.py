#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Post-processing of materialized records: display reversal, the bridge
card-suit sort and heading groups.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import re
from dataclasses import dataclass

from .articles import HeadingCounter, Record
from .parameters import ParameterStore


# -----------------------------------------------------------------------------

SUIT_CODES = {
    "♣": "1",
    "♦": "2",
    "♥": "3",
    "♠": "4",
}

_NAMESPACE_PREFIX = re.compile(r".*:")
_BID_SEPARATOR    = re.compile(r" - *")


# -----------------------------------------------------------------------------

def should_reverse(store: ParameterStore) -> bool:
    """An upper title bound alone with descending order is queried ascending, then flipped."""
    return bool(
        store.get("titlelt")
        and not store.get("titlegt")
        and store.get("order") == "descending"
    )


# -----------------------------------------------------------------------------

def suit_sort_key(title: str) -> str:
    """
    Sort key for bidding sequences such as ``1♣ - 1♥ - p - 2NT``: each bid
    becomes level + suit rank (♣ ♦ ♥ ♠ then no-trump), pass sorts first and
    double after every bid.
    """
    key = []
    for token in _BID_SEPARATOR.split(_NAMESPACE_PREFIX.sub("", title)):
        initial = token[:1]
        if "1" <= initial <= "7":
            suit = token[1:]
            if suit in SUIT_CODES:
                key.append(initial + SUIT_CODES[suit])
            elif suit.lower() in ("sa", "nt"):
                key.append(initial + "5 ")
            else:
                key.append(initial + suit)
        elif initial.lower() == "p":
            key.append("0 ")
        elif initial.lower() == "x":
            key.append("8 ")
        else:
            key.append(token)
    return "".join(key)


def card_suit_sort(records: list[Record]) -> list[Record]:
    return sorted(records, key=lambda r: suit_sort_key(r.prefixed_title))


# -----------------------------------------------------------------------------

@dataclass
class HeadingGroup:
    key:   str
    link:  str
    count: int

    def as_dict(self) -> dict:
        return {"key": self.key, "link": self.link, "count": self.count}


def heading_groups(records: list[Record], counter: HeadingCounter) -> list[HeadingGroup]:
    """One group per distinct heading key, in the order the keys first appear."""
    groups: dict[str, HeadingGroup] = {}
    for record in records:
        if record.heading_key is None or record.heading_key in groups:
            continue
        groups[record.heading_key] = HeadingGroup(
            key=record.heading_key,
            link=record.heading_link or "",
            count=counter.count(record.heading_key),
        )
    return list(groups.values())


# -----------------------------------------------------------------------------

def post_process(records: list[Record], store: ParameterStore) -> list[Record]:
    if should_reverse(store):
        records = list(reversed(records))
    if store.get("ordersuitsymbols"):
        records = card_suit_sort(records)
    return records


# -----------------------------------------------------------------------------
