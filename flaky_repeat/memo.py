"""
Lazily computed, memoized values scoped to a single test.

A value is computed from its factory on first access and cached until
clear() is called. Between failed attempts the repeater clears the store so
the next attempt sees freshly computed values.
"""
from typing import Any, Callable, Dict


class LetStore:
    """Per-test memoized values, resettable between attempts."""

    def __init__(self):
        self._factories: Dict[str, Callable[[], Any]] = {}
        self._values: Dict[str, Any] = {}

    def define(self, name: str, factory: Callable[[], Any]) -> None:
        """Register how to compute ``name``. A cached value is kept."""
        self._factories[name] = factory

    def clear(self) -> None:
        self._values.clear()

    def __getitem__(self, name: str) -> Any:
        if name not in self._values:
            if name not in self._factories:
                raise KeyError(name)
            self._values[name] = self._factories[name]()
        return self._values[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self._values[name] = value

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __getattr__(self, name: str) -> Any:
        if name.startswith('_'):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"No value defined for {name!r}") from None

    def __repr__(self) -> str:
        return f"LetStore(defined={sorted(self._factories)}, cached={sorted(self._values)})"
