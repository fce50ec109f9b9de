from __future__ import annotations

import httpx
import pytest

from conftest import AR, addr, run_with_rpc
from snapshot_lottery.errors import (
    InvalidSnapshot,
    LedgerQueryError,
    LotteryError,
    TransientQueryFailure,
)
from snapshot_lottery.rpc import classify_rpc_error


def test_balance_of_reads_pinned_block(node):
    holder = addr(1)
    node.set_balances(holder, ar=2**70)

    value = run_with_rpc(node, lambda rpc: rpc.balance_of(AR, holder, 12_345_678))

    assert value == 2**70
    (call,) = node.eth_calls()
    assert call["params"][0]["to"] == AR.contract
    assert call["params"][1] == hex(12_345_678)


def test_get_block_number(node):
    assert run_with_rpc(node, lambda rpc: rpc.get_block_number("finalized")) == node.finalized


def test_transient_failures_are_retried(node):
    holder = addr(2)
    node.set_balances(holder, ar=9)
    node.flaky[(AR.contract, holder)] = 2

    value = run_with_rpc(node, lambda rpc: rpc.balance_of(AR, holder, 100), max_attempts=3)

    assert value == 9
    assert len(node.eth_calls()) == 3


def test_retries_exhaust_into_transient_failure(node):
    holder = addr(3)
    node.flaky[(AR.contract, holder)] = 10

    with pytest.raises(TransientQueryFailure) as excinfo:
        run_with_rpc(node, lambda rpc: rpc.balance_of(AR, holder, 100), max_attempts=3)

    assert "AR balanceOf" in str(excinfo.value)
    assert len(node.eth_calls()) == 3


def test_revert_is_not_retried(node):
    holder = addr(4)
    node.reverts.add((AR.contract, holder))

    with pytest.raises(LedgerQueryError):
        run_with_rpc(node, lambda rpc: rpc.balance_of(AR, holder, 100), max_attempts=3)

    assert len(node.eth_calls()) == 1


def test_unavailable_block_is_invalid_snapshot(node):
    with pytest.raises(InvalidSnapshot):
        run_with_rpc(node, lambda rpc: rpc.balance_of(AR, addr(5), node.finalized + 10))
    assert len(node.eth_calls()) == 1


def test_empty_return_data_is_ledger_error():
    def handler(request):
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x"})

    with pytest.raises(LedgerQueryError):
        run_with_rpc(handler, lambda rpc: rpc.balance_of(AR, addr(6), 100))


@pytest.mark.parametrize("body", [{"result": None}, {}])
def test_missing_result_is_ledger_error(body):
    def handler(request):
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, **body})

    with pytest.raises(LedgerQueryError):
        run_with_rpc(handler, lambda rpc: rpc.balance_of(AR, addr(6), 100))


def test_timeouts_are_transient():
    attempts = []

    def handler(request):
        attempts.append(request)
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(TransientQueryFailure):
        run_with_rpc(handler, lambda rpc: rpc.balance_of(AR, addr(7), 100), max_attempts=2)
    assert len(attempts) == 2


def test_client_errors_are_not_retried():
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(401, text="invalid project id")

    with pytest.raises(LotteryError) as excinfo:
        run_with_rpc(handler, lambda rpc: rpc.balance_of(AR, addr(8), 100), max_attempts=3)
    assert not isinstance(excinfo.value, TransientQueryFailure)
    assert len(attempts) == 1


@pytest.mark.parametrize(
    "error, kind",
    [
        ({"code": 3, "message": "execution reverted"}, LedgerQueryError),
        ({"code": -32000, "message": "execution reverted: paused"}, LedgerQueryError),
        ({"code": -32000, "message": "header not found"}, InvalidSnapshot),
        ({"code": -32000, "message": "missing trie node abc (path )"}, InvalidSnapshot),
        ({"code": -32005, "message": "limit exceeded"}, TransientQueryFailure),
        ("internal error", TransientQueryFailure),
    ],
)
def test_classify_rpc_error(error, kind):
    assert type(classify_rpc_error(error)) is kind
