from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv

from .ledger import Ledger, normalize_address
from .project_constants import LEDGER_SYMBOLS, TOKEN_DECIMALS


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    ledgers: Tuple[Ledger, ...]
    max_concurrency: int = 8
    max_attempts: int = 4
    backoff_s: float = 0.5

    @staticmethod
    def from_env(rpc_url_override: str | None = None) -> "Settings":
        load_dotenv()

        return Settings(
            rpc_url=_rpc_url_from_env(rpc_url_override),
            ledgers=_ledgers_from_env(),
            max_concurrency=int(os.getenv("MAX_CONCURRENCY", "8")),
            max_attempts=int(os.getenv("RPC_MAX_ATTEMPTS", "4")),
            backoff_s=float(os.getenv("RPC_BACKOFF_S", "0.5")),
        )


def _rpc_url_from_env(rpc_url_override: str | None) -> str:
    # If user provides --rpc-url, trust it.
    if rpc_url_override:
        return rpc_url_override

    # Otherwise, use RPC_URL from env if present, else build infura url from project id.
    env_rpc = os.getenv("RPC_URL", "").strip()
    if env_rpc:
        return env_rpc

    infura_id = os.getenv("INFURA_PROJECT_ID", "").strip()
    if not infura_id:
        raise RuntimeError(
            "Missing INFURA_PROJECT_ID (or RPC_URL). Put it in .env or export it."
        )

    return f"https://mainnet.infura.io/v3/{infura_id}"


def _ledgers_from_env() -> Tuple[Ledger, ...]:
    ledgers = []
    for symbol in LEDGER_SYMBOLS:
        var = f"{symbol}_CONTRACT"
        contract = os.getenv(var, "").strip()
        if not contract:
            raise RuntimeError(f"Missing {var} (contract address of the {symbol} token).")
        ledgers.append(
            Ledger(symbol=symbol, contract=normalize_address(contract), decimals=TOKEN_DECIMALS)
        )
    return tuple(ledgers)
