from __future__ import annotations

from collections.abc import Mapping
from typing import Literal, TypedDict

from flask import current_app

FlagMode = Literal["simple"]


class FlagDefinition(TypedDict):
    name: str
    mode: FlagMode


class FlagState(TypedDict):
    name: str
    enabled: bool
    mode: FlagMode


class FeatureRegistry:
    """In-memory flag registry seeded from configuration (FEATURE_<NAME> env vars).

    Unknown flags are always disabled.
    """

    def __init__(self, initial: Mapping[str, bool] | None = None):
        self._defs: dict[str, FlagDefinition] = {}
        self._enabled: set[str] = set()
        for name, on in (initial or {}).items():
            self.add(name, enabled=on)

    def enabled(self, name: str) -> bool:
        return name in self._defs and name in self._enabled

    def has(self, name: str) -> bool:
        return name in self._defs

    def add(self, name: str, *, enabled: bool = False) -> None:
        """Register a flag. Re-adding an existing flag keeps its current state."""
        name = name.strip()
        if not name:
            raise ValueError("flag name empty")
        if name in self._defs:
            return
        self._defs[name] = {"name": name, "mode": "simple"}
        if enabled:
            self._enabled.add(name)

    def set(self, name: str, enabled: bool) -> None:
        if name not in self._defs:
            raise ValueError("unknown flag")
        if enabled:
            self._enabled.add(name)
        else:
            self._enabled.discard(name)

    def list(self) -> list[FlagState]:
        return [
            {"name": name, "enabled": name in self._enabled, "mode": d["mode"]}
            for name, d in sorted(self._defs.items())
        ]


def feature_enabled(name: str) -> bool:
    registry: FeatureRegistry | None = getattr(current_app, "feature_registry", None)
    return bool(registry and registry.enabled(name))
