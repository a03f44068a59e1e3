"""Reconciliation state: per-item snapshots and per-session turns."""

from .items import ADDITIVE_FIELDS, ApplyOutcome, ItemChange, ItemSnapshot, ItemStore, fingerprint
from .turns import SUPERSEDED_CODE, TurnChange, TurnOutcome, TurnState, TurnStatus, TurnTracker

__all__ = [
    "ADDITIVE_FIELDS",
    "SUPERSEDED_CODE",
    "ApplyOutcome",
    "ItemChange",
    "ItemSnapshot",
    "ItemStore",
    "TurnChange",
    "TurnOutcome",
    "TurnState",
    "TurnStatus",
    "TurnTracker",
    "fingerprint",
]
