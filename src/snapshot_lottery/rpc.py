from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

import httpx

from .errors import InvalidSnapshot, LedgerQueryError, LotteryError, TransientQueryFailure
from .ledger import Ledger, decode_uint256, encode_balance_of

log = logging.getLogger(__name__)

# Node error messages meaning the requested block state is not there.
_MISSING_STATE_MARKERS = (
    "header not found",
    "missing trie node",
    "unknown block",
    "block not found",
)


class RpcClient:
    def __init__(
        self,
        rpc_url: str,
        timeout_s: float = 60.0,
        max_attempts: int = 4,
        backoff_s: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.rpc_url = rpc_url
        self.max_attempts = max_attempts
        self.backoff_s = backoff_s
        self.client = httpx.AsyncClient(timeout=timeout_s, transport=transport)
        self._next_id = 0

    async def close(self) -> None:
        await self.client.aclose()

    async def get_block_number(self, tag: str = "finalized") -> int:
        """Returns the number of the block behind a tag (finalized, latest, ...)."""
        result = await self._call("eth_getBlockByNumber", [tag, False])
        if not result or "number" not in result:
            raise InvalidSnapshot(f"Node has no {tag!r} block.")
        return int(result["number"], 16)

    async def balance_of(self, ledger: Ledger, holder: str, block: int) -> int:
        """balanceOf(holder) on the ledger contract, evaluated at a pinned block."""
        call = {"to": ledger.contract, "data": encode_balance_of(holder)}
        context = f"{ledger.symbol} balanceOf({holder}) at block {block}"
        try:
            result = await self._call("eth_call", [call, hex(block)])
        except LotteryError as e:
            raise type(e)(f"{context}: {e}") from e

        try:
            return decode_uint256(result)
        except ValueError as e:
            raise LedgerQueryError(f"{context}: {e}") from e

    async def _call(self, method: str, params: list) -> Any:
        self._next_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._next_id,
            "method": method,
            "params": params,
        }

        last_exc: TransientQueryFailure | None = None
        for attempt in range(self.max_attempts):
            try:
                data = await self._post(payload)
                return data.get("result")
            except TransientQueryFailure as e:
                last_exc = e
                if attempt + 1 >= self.max_attempts:
                    break
                delay = self.backoff_s * (2**attempt)
                log.warning(
                    "%s attempt %d/%d failed: %s (retry in %.2fs)",
                    method,
                    attempt + 1,
                    self.max_attempts,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)

        raise TransientQueryFailure(
            f"{method} failed after {self.max_attempts} attempts: {last_exc}"
        ) from last_exc

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        log.debug("RPC %s %s", payload["method"], payload["params"])
        try:
            resp = await self.client.post(self.rpc_url, json=payload)
        except httpx.TransportError as e:
            # Covers timeouts as well as connection errors.
            raise TransientQueryFailure(f"{type(e).__name__}: {e}") from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientQueryFailure(f"HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise LotteryError(f"RPC endpoint rejected request: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise TransientQueryFailure(f"Malformed RPC response: {e}") from e

        if "error" in data:
            raise classify_rpc_error(data["error"])
        return data


def classify_rpc_error(error: Any) -> LotteryError:
    """Maps a JSON-RPC error object to the failure kind that decides retrying."""
    if isinstance(error, dict):
        code = error.get("code")
        message = str(error.get("message", ""))
    else:
        code = None
        message = str(error)

    lowered = message.lower()
    if code == 3 or "revert" in lowered:
        return LedgerQueryError(f"RPC error: {error}")
    if any(marker in lowered for marker in _MISSING_STATE_MARKERS):
        return InvalidSnapshot(f"RPC error: {error}")
    return TransientQueryFailure(f"RPC error: {error}")
