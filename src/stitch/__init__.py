"""stitch - reconcile streamed agent upserts into a stable per-item view."""

from .config import Settings, TurnEndPolicy, get_settings
from .diagnostics import Diagnostic, DiagnosticCounter, DiagnosticKind
from .dispatch import SessionDispatcher
from .engine import ApplyOutcome, ItemChange, ItemSnapshot, TurnChange, TurnState, TurnStatus
from .errors import DecodeError, StitchError
from .hookspecs import hookimpl
from .protocol import decode_frame
from .reconciler import IngestReport, StreamReconciler, is_orphaned

__version__ = "0.1.0"

__all__ = [
    "ApplyOutcome",
    "DecodeError",
    "Diagnostic",
    "DiagnosticCounter",
    "DiagnosticKind",
    "IngestReport",
    "ItemChange",
    "ItemSnapshot",
    "SessionDispatcher",
    "Settings",
    "StitchError",
    "StreamReconciler",
    "TurnChange",
    "TurnEndPolicy",
    "TurnState",
    "TurnStatus",
    "decode_frame",
    "get_settings",
    "hookimpl",
    "is_orphaned",
]
