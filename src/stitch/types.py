"""Framework-neutral data aliases."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeAlias

RawFrame: TypeAlias = Mapping[str, Any] | str | bytes
FrameData: TypeAlias = dict[str, Any]
