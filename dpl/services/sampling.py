#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Random sampling of result rows.

``randomcount = k`` keeps k of the n matching rows.  With ``randomseed`` the
choice is reproducible: the same seed over the same n always picks the same
positions.  Positions are 1-based and the rows are filtered while they
stream past, so only the chosen position set is held in memory.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import random
from collections.abc import AsyncIterator
from typing import Optional, TypeVar


T = TypeVar("T")


# -----------------------------------------------------------------------------

def pick_positions(total: int, count: int, seed: Optional[int] = None) -> set[int]:
    """Choose ``min(count, total)`` distinct positions from ``1..total``."""
    count = min(count, total)
    if count <= 0:
        return set()

    if seed is None:
        return set(random.sample(range(1, total + 1), count))

    rng = random.Random(seed)
    picked: set[int] = set()
    while len(picked) < count:
        # redraw until an unused position comes up
        picked.add(rng.randint(1, total))
    return picked


# -----------------------------------------------------------------------------

async def sample_rows(rows: AsyncIterator[T], positions: set[int]) -> AsyncIterator[T]:
    """Pass through only the rows whose 1-based position is in *positions*."""
    position = 0
    async for row in rows:
        position += 1
        if position in positions:
            yield row


# -----------------------------------------------------------------------------
