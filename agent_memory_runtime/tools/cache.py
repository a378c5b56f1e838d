"""
Optional result cache for tools.

Caching is opt-in per tool (`ToolAction.enable_cache`) and only applies when
the adapter is given a ToolResultCache. Results are keyed by tool name,
thread id and a hash of the arguments, so the same call in another thread
is executed again. Failed calls are never cached.
"""

import functools
import hashlib
import json
import logging
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

_MISSING = object()


def args_digest(args: dict) -> str:
    """Stable hash of tool arguments."""
    encoded = json.dumps(args, sort_keys=True, default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class ToolResultCache:
    """Least-recently-used cache of tool results."""

    def __init__(self, max_size: int = 256):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._entries: OrderedDict[tuple, Any] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(tool_name: str, thread_id: Optional[str], args: dict) -> tuple:
        return (tool_name, thread_id, args_digest(args))

    def get(self, key: tuple, default: Any = None) -> Any:
        if key not in self._entries:
            self.misses += 1
            return default
        self._entries.move_to_end(key)
        self.hits += 1
        return self._entries[key]

    def set(self, key: tuple, value: Any) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def cached_execute(cache: ToolResultCache, tool_name: str):
    """
    Decorate an async `execute(args, context)` so identical calls reuse the
    cached result.

    Example:
        @cached_execute(cache, "lookup_order")
        async def run(args, context):
            ...
    """

    def decorator(func: Callable[[dict, Any], Awaitable[Any]]):
        @functools.wraps(func)
        async def wrapper(args: dict, context: Any) -> Any:
            key = cache.key(tool_name, getattr(context, "thread_id", None), args)
            cached = cache.get(key, _MISSING)
            if cached is not _MISSING:
                logger.debug(f"Tool cache hit for {tool_name}")
                return cached
            result = await func(args, context)
            cache.set(key, result)
            return result

        return wrapper

    return decorator
