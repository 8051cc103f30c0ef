"""Execution context owning the per-process caches and function registry."""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Hashable

from .config import COMPILE_CACHE_SIZE, CONTOUR_CACHE_SIZE
from .engine import SymbolicEngine, SympyEngine
from .function_manager import FunctionRegistry
from .logging_config import get_logger

logger = get_logger("context")

_MISSING = object()


class LRUCache:
    """Bounded least-recently-used map.

    Reads and writes move the touched key to the back; inserting into a full
    cache evicts the key at the front.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._data: OrderedDict[Hashable, Any] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        value = self._data.get(key, _MISSING)
        if value is _MISSING:
            self.misses += 1
            return default
        self._data.move_to_end(key)
        self.hits += 1
        return value

    def put(self, key: Hashable, value: Any) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        elif len(self._data) >= self.capacity:
            evicted, _ = self._data.popitem(last=False)
            logger.debug("Evicted cache entry %r", evicted)
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()
        self.hits = 0
        self.misses = 0

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def keys(self) -> list[Hashable]:
        return list(self._data.keys())

    def stats(self) -> dict[str, int]:
        return {
            "size": len(self._data),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
        }


class EngineContext:
    """Holds everything one execution context needs between calls.

    Each worker process builds its own context; caches are never shared
    across processes.

    Args:
        engine: Symbolic engine used for parsing and differentiation
        compile_cache_size: Capacity of the evaluator cache
        contour_cache_size: Capacity of the marching-squares result cache
    """

    def __init__(
        self,
        engine: SymbolicEngine | None = None,
        compile_cache_size: int = COMPILE_CACHE_SIZE,
        contour_cache_size: int = CONTOUR_CACHE_SIZE,
    ):
        self.engine = engine if engine is not None else SympyEngine()
        self.compile_cache = LRUCache(compile_cache_size)
        self.contour_cache = LRUCache(contour_cache_size)
        self.registry = FunctionRegistry()

    def clear_caches(self) -> None:
        self.compile_cache.clear()
        self.contour_cache.clear()

    def cache_stats(self) -> dict[str, dict[str, int]]:
        return {
            "compile": self.compile_cache.stats(),
            "contour": self.contour_cache.stats(),
        }


_default_context: EngineContext | None = None


def get_default_context() -> EngineContext:
    """Return the lazily created context used when callers pass none."""
    global _default_context
    if _default_context is None:
        _default_context = EngineContext()
    return _default_context


def reset_default_context() -> None:
    global _default_context
    _default_context = None
