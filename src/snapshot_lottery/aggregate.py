from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .draw import HolderPool
from .errors import EmptyCandidateSet, InvalidSnapshot, LotteryError
from .ledger import Ledger, dedupe_addresses
from .rpc import RpcClient

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceSet:
    address: str
    # (ledger symbol, raw amount) for every configured ledger, in ledger order
    balances: Tuple[Tuple[str, int], ...]

    @property
    def weight(self) -> int:
        return sum(amount for _, amount in self.balances)

    def as_dict(self) -> Dict[str, int]:
        return dict(self.balances)


@dataclass(frozen=True)
class QueryResult:
    """Outcome of one (address, ledger) read. A failure is never a zero balance."""

    address: str
    ledger: str
    value: Optional[int] = None
    error: Optional[LotteryError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def ensure_snapshot_available(rpc: RpcClient, snapshot_block: int) -> int:
    if snapshot_block < 0:
        raise InvalidSnapshot(f"Snapshot block must be >= 0, got {snapshot_block}.")
    finalized = await rpc.get_block_number("finalized")
    if snapshot_block > finalized:
        raise InvalidSnapshot(
            f"Snapshot block {snapshot_block} is not finalized yet (finalized={finalized})."
        )
    return finalized


async def _query(
    rpc: RpcClient,
    sem: asyncio.Semaphore,
    ledger: Ledger,
    address: str,
    snapshot_block: int,
) -> QueryResult:
    async with sem:
        try:
            value = await rpc.balance_of(ledger, address, snapshot_block)
        except LotteryError as e:
            return QueryResult(address, ledger.symbol, error=e)
    return QueryResult(address, ledger.symbol, value=value)


async def aggregate_balances(
    rpc: RpcClient,
    ledgers: Sequence[Ledger],
    addresses: Iterable[str],
    snapshot_block: int,
    max_concurrency: int = 8,
    excluded: Set[str] | None = None,
) -> Dict[str, BalanceSet]:
    """
    Reads every (address, ledger) balance at snapshot_block.

    Returns a BalanceSet per candidate, in candidate order. The first failed
    read cancels all outstanding reads and is raised; nothing partial is
    returned.
    """
    candidates = dedupe_addresses(addresses)
    if not candidates:
        raise EmptyCandidateSet("No candidate addresses supplied.")
    if excluded:
        before = len(candidates)
        candidates = [a for a in candidates if a not in excluded]
        log.info("Excluded wallets   : %d", before - len(candidates))
        if not candidates:
            raise EmptyCandidateSet(f"All {before} candidate addresses are excluded.")
    if not ledgers:
        raise ValueError("At least one ledger is required.")
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be >= 1")

    await ensure_snapshot_available(rpc, snapshot_block)

    log.info(
        "Querying %d candidates x %d ledgers at block %d",
        len(candidates),
        len(ledgers),
        snapshot_block,
    )
    sem = asyncio.Semaphore(max_concurrency)
    tasks = [
        asyncio.create_task(_query(rpc, sem, ledger, addr, snapshot_block))
        for addr in candidates
        for ledger in ledgers
    ]

    values: Dict[Tuple[str, str], int] = {}
    try:
        for fut in asyncio.as_completed(tasks):
            result = await fut
            if not result.ok:
                log.error("Balance query failed for %s on %s", result.address, result.ledger)
                raise result.error
            values[(result.address, result.ledger)] = result.value
    finally:
        pending = [t for t in tasks if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # Every read is in; only now are weights assembled.
    return {
        addr: BalanceSet(
            address=addr,
            balances=tuple((ledger.symbol, values[(addr, ledger.symbol)]) for ledger in ledgers),
        )
        for addr in candidates
    }


def build_holder_pool(balance_sets: Dict[str, BalanceSet]) -> HolderPool:
    eligible: List[Tuple[str, int]] = []
    for addr, bs in balance_sets.items():
        weight = bs.weight
        if weight <= 0:
            log.debug("Dropping zero-weight holder %s", addr)
            continue
        eligible.append((addr, weight))
    return HolderPool.from_pairs(eligible)


async def collect_holder_pool(
    rpc: RpcClient,
    ledgers: Sequence[Ledger],
    addresses: Iterable[str],
    snapshot_block: int,
    max_concurrency: int = 8,
    excluded: Set[str] | None = None,
) -> Tuple[HolderPool, Dict[str, BalanceSet]]:
    balance_sets = await aggregate_balances(
        rpc,
        ledgers,
        addresses,
        snapshot_block,
        max_concurrency=max_concurrency,
        excluded=excluded,
    )
    pool = build_holder_pool(balance_sets)
    log.info("Candidates         : %d", len(balance_sets))
    log.info("Eligible holders   : %d", len(pool))
    log.info("Total weight       : %d", pool.total_weight)
    return pool, balance_sets
