from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

from .aggregate import BalanceSet
from .draw import HolderPool, draw_winners, make_rng
from .errors import AuditMismatch
from .ledger import Ledger

TOOL_NAME = "snapshot-lottery"
TOOL_VERSION = "1.0.0"


@dataclass(frozen=True)
class DrawResult:
    snapshot_block: int
    ledgers: Sequence[Ledger]
    seed: int
    winners: List[str]
    pool: HolderPool
    balance_sets: Dict[str, BalanceSet]


def _balances_json(bs: BalanceSet) -> Dict[str, str]:
    # big ints; store as strings for safety
    return {symbol: str(amount) for symbol, amount in bs.as_dict().items()}


def build_audit(result: DrawResult) -> Dict[str, Any]:
    eligible = {addr for addr, _ in result.pool.entries}
    return {
        "metadata": {
            "tool": TOOL_NAME,
            "version": TOOL_VERSION,
            "generated_at_utc": datetime.now(timezone.utc).isoformat(),
            "snapshot_block": result.snapshot_block,
            "ledgers": [
                {"symbol": ledger.symbol, "contract": ledger.contract, "decimals": ledger.decimals}
                for ledger in result.ledgers
            ],
            "num_winners": len(result.winners),
            "seed": str(result.seed),
            "total_weight": str(result.pool.total_weight),
        },
        "winners": [
            {
                "rank": rank,
                "address": addr,
                "balances": _balances_json(result.balance_sets[addr]),
                "weight": str(result.balance_sets[addr].weight),
            }
            for rank, addr in enumerate(result.winners, start=1)
        ],
        # Pool order matters for replay; keep it exactly.
        "all_entrants": [
            {
                "address": bs.address,
                "balances": _balances_json(bs),
                "weight": str(bs.weight),
            }
            for bs in result.balance_sets.values()
            if bs.address in eligible
        ],
    }


def write_audit(result: DrawResult, path: str) -> Dict[str, Any]:
    audit = build_audit(result)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(audit, f, indent=2)
    return audit


def verify_audit(audit_path: str) -> Dict[str, Any]:
    with open(audit_path, "r", encoding="utf-8") as f:
        audit = json.load(f)

    meta = audit["metadata"]
    seed = int(meta["seed"])
    num_winners = int(meta["num_winners"])
    total_expected = int(meta["total_weight"])

    pairs = []
    entrant_balances: Dict[str, Dict[str, int]] = {}
    for e in audit["all_entrants"]:
        weight = int(e["weight"])
        balances = {symbol: int(v) for symbol, v in e["balances"].items()}
        summed = sum(balances.values())
        if summed != weight:
            raise AuditMismatch(
                f"Weight mismatch for {e['address']}: audit={weight} recomputed={summed}"
            )
        pairs.append((e["address"], weight))
        entrant_balances[e["address"]] = balances

    pool = HolderPool.from_pairs(pairs)
    if pool.total_weight != total_expected:
        raise AuditMismatch(
            f"Total weight mismatch: audit={total_expected} recomputed={pool.total_weight}"
        )

    rng, _ = make_rng(seed)
    winners = draw_winners(pool, num_winners, rng)
    winners_expected = [w["address"] for w in audit["winners"]]
    if winners != winners_expected:
        raise AuditMismatch(
            f"Winner mismatch: audit={winners_expected} recomputed={winners}"
        )

    # Winner records must justify themselves against the entrant they came from.
    for w in audit["winners"]:
        address = w["address"]
        balances = {symbol: int(v) for symbol, v in w["balances"].items()}
        if balances != entrant_balances[address]:
            raise AuditMismatch(f"Winner balances mismatch for {address}")
        weight = int(w["weight"])
        if weight != sum(balances.values()) or weight != pool.weight_of(address):
            raise AuditMismatch(
                f"Winner weight mismatch for {address}: audit={weight} "
                f"recomputed={pool.weight_of(address)}"
            )

    return {
        "ok": True,
        "seed": seed,
        "winners": winners,
        "total_weight": pool.total_weight,
        "snapshot_block": meta["snapshot_block"],
    }
