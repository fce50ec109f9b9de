from __future__ import annotations

import asyncio
import json
from typing import Dict, Tuple

import httpx
import pytest

from snapshot_lottery.ledger import Ledger
from snapshot_lottery.rpc import RpcClient

AR = Ledger("AR", "0x" + "a1" * 20)
AISTR = Ledger("AISTR", "0x" + "b2" * 20)
ALCH = Ledger("ALCH", "0x" + "c3" * 20)
LEDGERS = (AR, AISTR, ALCH)

FINALIZED_BLOCK = 20_000_000


def addr(n: int) -> str:
    return "0x" + format(n, "040x")


class FakeNode:
    """In-process JSON-RPC node answering eth_call(balanceOf) and eth_getBlockByNumber."""

    def __init__(self, finalized: int = FINALIZED_BLOCK) -> None:
        self.finalized = finalized
        self.balances: Dict[Tuple[str, str], int] = {}
        self.reverts: set = set()
        # (contract, holder) -> number of 503 responses still to serve
        self.flaky: Dict[Tuple[str, str], int] = {}
        self.calls: list = []

    def set_balances(self, holder: str, ar: int = 0, aistr: int = 0, alch: int = 0) -> None:
        self.balances[(AR.contract, holder)] = ar
        self.balances[(AISTR.contract, holder)] = aistr
        self.balances[(ALCH.contract, holder)] = alch

    def eth_calls(self) -> list:
        return [c for c in self.calls if c["method"] == "eth_call"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.calls.append(body)
        method = body["method"]
        rid = body["id"]

        if method == "eth_getBlockByNumber":
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": rid, "result": {"number": hex(self.finalized)}}
            )

        if method == "eth_call":
            call, block_tag = body["params"]
            key = (call["to"], "0x" + call["data"][-40:])
            if int(block_tag, 16) > self.finalized:
                return _error(rid, -32000, "header not found")
            if self.flaky.get(key, 0) > 0:
                self.flaky[key] -= 1
                return httpx.Response(503, text="upstream unavailable")
            if key in self.reverts:
                return _error(rid, 3, "execution reverted")
            value = self.balances.get(key, 0)
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": rid, "result": "0x" + format(value, "064x")}
            )

        return _error(rid, -32601, "method not found")


def _error(rid: int, code: int, message: str) -> httpx.Response:
    return httpx.Response(
        200, json={"jsonrpc": "2.0", "id": rid, "error": {"code": code, "message": message}}
    )


def make_rpc(handler, max_attempts: int = 3) -> RpcClient:
    return RpcClient(
        "http://node.test",
        max_attempts=max_attempts,
        backoff_s=0.0,
        transport=httpx.MockTransport(handler),
    )


def run_with_rpc(handler, coro_fn, max_attempts: int = 3):
    """Runs coro_fn(rpc) on a fresh event loop and closes the client afterwards."""

    async def _run():
        rpc = make_rpc(handler, max_attempts=max_attempts)
        try:
            return await coro_fn(rpc)
        finally:
            await rpc.close()

    return asyncio.run(_run())


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()
