"""
Tool declaration, adaptation and caching.
"""

from agent_memory_runtime.tools.adapter import (
    CoreTool,
    ToolAction,
    ToolAdapter,
    ToolExecutionContext,
)
from agent_memory_runtime.tools.cache import ToolResultCache, cached_execute

__all__ = [
    "CoreTool",
    "ToolAction",
    "ToolAdapter",
    "ToolExecutionContext",
    "ToolResultCache",
    "cached_execute",
]
