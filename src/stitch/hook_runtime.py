"""Hook execution runtime with per-observer fault isolation."""

from __future__ import annotations

import inspect
from typing import Any

import pluggy
from loguru import logger


class HookRuntime:
    """Safe wrapper around pluggy hook execution.

    Observers are called the way pluggy would, most recent registration
    first. A failing observer is logged and skipped so it can never break
    the reconciliation loop.
    """

    def __init__(self, plugin_manager: pluggy.PluginManager) -> None:
        self._plugin_manager = plugin_manager

    def notify(self, hook_name: str, **kwargs: Any) -> int:
        """Call every implementation of one hook and return how many succeeded."""

        delivered = 0
        for impl in self._iter_hookimpls(hook_name):
            call_kwargs = self._kwargs_for_impl(impl, kwargs)
            try:
                value = impl.function(**call_kwargs)
            except Exception:
                logger.opt(exception=True).warning(
                    "hook.observer_failed hook={} observer={}",
                    hook_name,
                    impl.plugin_name or "<unknown>",
                )
                continue
            if inspect.isawaitable(value):
                close = getattr(value, "close", None)
                if callable(close):
                    close()
                logger.warning(
                    "hook.async_not_supported hook={} observer={}",
                    hook_name,
                    impl.plugin_name or "<unknown>",
                )
                continue
            delivered += 1
        return delivered

    def hook_report(self) -> dict[str, list[str]]:
        """Build a hook->observers mapping for diagnostics."""

        report: dict[str, list[str]] = {}
        for hook_name, hook_caller in sorted(self._plugin_manager.hook.__dict__.items()):
            if hook_name.startswith("_") or not hasattr(hook_caller, "get_hookimpls"):
                continue
            observer_names = [impl.plugin_name for impl in hook_caller.get_hookimpls()]
            if observer_names:
                report[hook_name] = observer_names
        return report

    def _iter_hookimpls(self, hook_name: str) -> list[Any]:
        hook = getattr(self._plugin_manager.hook, hook_name, None)
        if hook is None or not hasattr(hook, "get_hookimpls"):
            return []
        # get_hookimpls lists registration order; pluggy calls it reversed.
        return list(reversed(hook.get_hookimpls()))

    @staticmethod
    def _kwargs_for_impl(impl: Any, kwargs: dict[str, Any]) -> dict[str, Any]:
        return {name: kwargs[name] for name in impl.argnames if name in kwargs}
