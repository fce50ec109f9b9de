from __future__ import annotations

import random
import secrets
from bisect import bisect_right
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .errors import PoolExhaustion


@dataclass(frozen=True)
class HolderRange:
    address: str
    balance: int
    start_ticket: int
    end_ticket: int  # exclusive


@dataclass(frozen=True)
class HolderPool:
    """Ordered (address, weight) pairs; the order is the draw order of the ranges."""

    entries: Tuple[Tuple[str, int], ...]

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, int]]) -> "HolderPool":
        entries = tuple((addr, int(weight)) for addr, weight in pairs)
        seen = set()
        for addr, weight in entries:
            if addr in seen:
                raise ValueError(f"Duplicate address in pool: {addr}")
            if weight < 0:
                raise ValueError(f"Negative weight for {addr}: {weight}")
            seen.add(addr)
        return cls(entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def total_weight(self) -> int:
        return sum(w for _, w in self.entries)

    def weight_of(self, address: str) -> int:
        for addr, weight in self.entries:
            if addr == address:
                return weight
        raise KeyError(address)


def build_ranges(eligible: List[Tuple[str, int]]) -> Tuple[List[HolderRange], int]:
    ranges: List[HolderRange] = []
    cursor = 0
    for addr, bal in eligible:
        start = cursor
        end = cursor + bal
        ranges.append(HolderRange(addr, bal, start, end))
        cursor = end
    return ranges, cursor


def find_winner(ranges: List[HolderRange], ticket: int) -> int:
    """Index of the first range whose end is above the ticket."""
    ends = [r.end_ticket for r in ranges]
    idx = bisect_right(ends, ticket)
    if idx < 0 or idx >= len(ranges):
        raise RuntimeError("Ticket out of range (unexpected).")
    return idx


def make_rng(seed: int | None = None) -> Tuple[random.Random, int]:
    """One random stream per run. Without a seed, a fresh one is generated so the run can be replayed."""
    if seed is None:
        seed = secrets.randbits(128)
    return random.Random(seed), seed


def draw_winners(pool: HolderPool, num_winners: int, rng: random.Random) -> List[str]:
    """
    Weighted draw of num_winners distinct addresses without replacement.

    Each draw picks a ticket uniformly in [0, remaining_total) and the holder
    whose cumulative range contains it; the winner then leaves the working
    copy, so later draws are weighted over what remains.
    """
    if num_winners < 0:
        raise ValueError(f"num_winners must be >= 0, got {num_winners}")
    if num_winners == 0:
        return []

    remaining = [(addr, w) for addr, w in pool.entries if w > 0]
    total = sum(w for _, w in remaining)
    if total <= 0:
        raise PoolExhaustion("Total eligible weight is zero; nothing to draw.")
    if num_winners > len(remaining):
        raise PoolExhaustion(
            f"Requested {num_winners} winners but only {len(remaining)} eligible holders."
        )

    winners: List[str] = []
    for _ in range(num_winners):
        ranges, total = build_ranges(remaining)
        ticket = rng.randrange(total)
        addr, _weight = remaining.pop(find_winner(ranges, ticket))
        winners.append(addr)
    return winners
