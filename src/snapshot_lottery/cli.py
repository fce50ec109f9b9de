from __future__ import annotations

import argparse
import asyncio
import logging
import os
from typing import List, Set

from .aggregate import collect_holder_pool
from .config import Settings
from .draw import draw_winners, make_rng
from .errors import LotteryError
from .ledger import dedupe_addresses, load_address_list, to_tokens
from .project_constants import (
    DEFAULT_NUM_WINNERS,
    DEFAULT_SNAPSHOT_BLOCK,
    EXCLUDED_WALLETS_FILE,
)
from .rpc import RpcClient
from .verify import DrawResult, verify_audit, write_audit


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _rpc_from_settings(settings: Settings, timeout: float) -> RpcClient:
    return RpcClient(
        settings.rpc_url,
        timeout_s=timeout,
        max_attempts=settings.max_attempts,
        backoff_s=settings.backoff_s,
    )


def _candidates(args: argparse.Namespace) -> List[str]:
    addresses = load_address_list(args.addresses_file) + list(args.address or [])
    return dedupe_addresses(addresses)


def _excluded(args: argparse.Namespace) -> Set[str]:
    path = args.exclude_file
    if path is None and os.path.exists(EXCLUDED_WALLETS_FILE):
        path = EXCLUDED_WALLETS_FILE
    return set(load_address_list(path))


async def run_draw(args: argparse.Namespace, settings: Settings) -> DrawResult:
    log = logging.getLogger("draw")
    rpc = _rpc_from_settings(settings, args.timeout)
    try:
        pool, balance_sets = await collect_holder_pool(
            rpc,
            settings.ledgers,
            _candidates(args),
            args.block,
            max_concurrency=settings.max_concurrency,
            excluded=_excluded(args),
        )
    finally:
        await rpc.close()

    rng, seed = make_rng(args.seed)
    log.info("Seed              : %d", seed)
    winners = draw_winners(pool, args.winners, rng)

    return DrawResult(
        snapshot_block=args.block,
        ledgers=settings.ledgers,
        seed=seed,
        winners=winners,
        pool=pool,
        balance_sets=balance_sets,
    )


def cmd_draw(args: argparse.Namespace) -> int:
    settings = Settings.from_env(rpc_url_override=args.rpc_url)
    result = asyncio.run(run_draw(args, settings))

    # Only a complete draw reaches this point; failures never leave an audit behind.
    write_audit(result, args.out)

    decimals = {ledger.symbol: ledger.decimals for ledger in settings.ledgers}
    print("========================================")
    print("🔒 TOKEN HOLDER SNAPSHOT LOTTERY")
    print("========================================")
    print(f"Snapshot block : {result.snapshot_block}")
    print(f"Ledgers        : {', '.join(ledger.symbol for ledger in settings.ledgers)}")
    print(f"Seed           : {result.seed}")
    print(f"Eligible       : {len(result.pool)}")
    print("----------------------------------------")
    print(f"🏆 WINNERS ({len(result.winners)})")
    for rank, addr in enumerate(result.winners, start=1):
        bs = result.balance_sets[addr]
        parts = ", ".join(
            f"{symbol}={to_tokens(amount, decimals[symbol])}" for symbol, amount in bs.balances
        )
        print(f"{rank:>4}. {addr}  {parts}  (weight {bs.weight})")
    print("----------------------------------------")
    print(f"🧾 Wrote audit: {args.out}")
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    result = verify_audit(args.audit)
    print("✅ AUDIT VERIFIED")
    print(f"Snapshot block: {result['snapshot_block']}")
    print(f"Seed          : {result['seed']}")
    print(f"Total weight  : {result['total_weight']}")
    print(f"Winners       : {len(result['winners'])}")
    return 0


async def _finalized_block(settings: Settings, timeout: float) -> int:
    rpc = _rpc_from_settings(settings, timeout)
    try:
        return await rpc.get_block_number("finalized")
    finally:
        await rpc.close()


def cmd_head(args: argparse.Namespace) -> int:
    """Prints the newest finalized block, the highest usable snapshot block."""
    settings = Settings.from_env(rpc_url_override=args.rpc_url)
    block = asyncio.run(_finalized_block(settings, args.timeout))
    print(f"Finalized block: {block}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="snapshot-lottery",
        description="Weighted token-holder lottery over a pinned balance snapshot.",
    )
    p.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    p.add_argument("--rpc-url", default=None, help="Override RPC URL (else use env).")
    p.add_argument("--timeout", type=float, default=60.0, help="RPC timeout seconds.")

    sub = p.add_subparsers(dest="cmd", required=True)

    h = sub.add_parser("head", help="Show the newest finalized block.")
    h.set_defaults(func=cmd_head)

    d = sub.add_parser("draw", help="Run the draw and write an audit JSON.")
    d.add_argument(
        "--block",
        type=int,
        default=DEFAULT_SNAPSHOT_BLOCK,
        help="Snapshot block height (must be finalized).",
    )
    d.add_argument(
        "--winners", type=int, default=DEFAULT_NUM_WINNERS, help="Number of distinct winners."
    )
    d.add_argument(
        "--addresses-file",
        default=None,
        help="File with one candidate address per line ('#' comments allowed).",
    )
    d.add_argument(
        "--address", action="append", help="Candidate address (repeatable)."
    )
    d.add_argument(
        "--exclude-file",
        default=None,
        help=f"Addresses excluded from the draw (default: {EXCLUDED_WALLETS_FILE} if present).",
    )
    d.add_argument(
        "--seed", type=int, default=None, help="PRNG seed (random if omitted; recorded in audit)."
    )
    d.add_argument("--out", default="audit.json", help="Audit output JSON path.")
    d.set_defaults(func=cmd_draw)

    v = sub.add_parser(
        "verify", help="Verify an existing audit.json deterministically."
    )
    v.add_argument("--audit", required=True, help="Path to audit.json.")
    v.set_defaults(func=cmd_verify)

    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.verbose)
    try:
        code = args.func(args)
    except LotteryError as e:
        logging.getLogger("snapshot_lottery").error("%s: %s", type(e).__name__, e)
        code = 1
    raise SystemExit(code)
