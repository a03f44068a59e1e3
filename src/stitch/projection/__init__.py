"""Render projections driven by reconciler notifications."""

from .console import ConsoleHandle, ConsoleProjection
from .keyed import KeyedProjection
from .text import (
    INTERRUPTED_MARKER,
    RenderState,
    TextHandle,
    TextProjection,
    render_item_text,
    render_state,
)

__all__ = [
    "INTERRUPTED_MARKER",
    "ConsoleHandle",
    "ConsoleProjection",
    "KeyedProjection",
    "RenderState",
    "TextHandle",
    "TextProjection",
    "render_item_text",
    "render_state",
]
