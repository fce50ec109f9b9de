from __future__ import annotations


class LotteryError(RuntimeError):
    """Base class for every failure that aborts a lottery run."""


class TransientQueryFailure(LotteryError):
    """A balance query kept failing (timeout, transport, node error) after all retries."""


class LedgerQueryError(LotteryError):
    """The ledger contract itself rejected the query (revert or empty return data)."""


class InvalidSnapshot(LotteryError):
    """The snapshot block is not available or not yet finalized on the node."""


class PoolExhaustion(LotteryError):
    """More winners requested than eligible holders, or no weight to draw from."""


class EmptyCandidateSet(LotteryError):
    """No candidate addresses were supplied."""


class AuditMismatch(LotteryError):
    """An audit file does not replay to the draw it records."""
