from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Set

log = logging.getLogger(__name__)

# keccak256("balanceOf(address)")[:4]
BALANCE_OF_SELECTOR = "0x70a08231"

_ADDRESS_RE = re.compile(r"^(0x)?[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class Ledger:
    symbol: str
    contract: str
    decimals: int = 18


def normalize_address(value: str) -> str:
    """Canonical form used as a mapping key: 0x + 40 lowercase hex chars."""
    v = value.strip()
    if not _ADDRESS_RE.match(v):
        raise ValueError(f"Not a 20-byte hex address: {value!r}")
    if v[:2] in ("0x", "0X"):
        v = v[2:]
    return "0x" + v.lower()


def encode_balance_of(holder: str) -> str:
    """
    ABI call data for balanceOf(address).
    Selector(4) | address left-padded to 32 bytes
    """
    return BALANCE_OF_SELECTOR + normalize_address(holder)[2:].rjust(64, "0")


def decode_uint256(result: str) -> int:
    """Decodes an eth_call return value. Empty data means nothing answered the call."""
    if not isinstance(result, str):
        raise ValueError(f"eth_call returned no hex string: {result!r}")
    data = result[2:] if result.startswith(("0x", "0X")) else result
    if not data:
        raise ValueError("eth_call returned no data")
    if len(data) > 64:
        # Only the first word belongs to a uint256 return.
        data = data[:64]
    return int(data, 16)


def to_tokens(raw_amount: int, decimals: int = 18) -> float:
    return round(raw_amount / (10**decimals), 1)


def dedupe_addresses(addresses: Iterable[str]) -> List[str]:
    """Normalizes and drops repeats, keeping first-seen order."""
    seen: Set[str] = set()
    out: List[str] = []
    for raw in addresses:
        addr = normalize_address(raw)
        if addr in seen:
            log.warning("Duplicate candidate ignored: %s", addr)
            continue
        seen.add(addr)
        out.append(addr)
    return out


def load_address_list(path: str | None) -> List[str]:
    if not path:
        return []
    out: List[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            w = line.strip()
            if not w or w.startswith("#"):
                continue
            out.append(normalize_address(w))
    return out
