"""
Tool adaptation and guarded execution.

A ToolAction is what users declare: a name, a description, a JSON schema for
the input and an execute function. The ToolAdapter turns a mapping of
actions into CoreTools bound to a run:

- input is validated against the schema before the body runs
  (ToolInputError, body not invoked)
- body exceptions are logged with tool name and run id and re-raised as
  ToolExecutionError
- toolset tools are merged in and receive a context without thread_id;
  a toolset tool replaces a first-party tool of the same name

Example:
    async def get_weather(args, context):
        return {"city": args["city"], "temp": 21}

    tools = {
        "get_weather": ToolAction(
            id="get_weather",
            description="Current weather for a city",
            input_schema={
                "type": "object",
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
            },
            execute=get_weather,
        ),
    }
    core_tools = ToolAdapter().adapt(tools, ToolExecutionContext(run_id="run-1"))
    await core_tools["get_weather"].execute({"city": "Paris"})
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional

import jsonschema

from agent_memory_runtime.exceptions import (
    ConfigurationError,
    ToolExecutionError,
    ToolInputError,
)
from agent_memory_runtime.tools.cache import ToolResultCache, cached_execute

logger = logging.getLogger(__name__)


@dataclass
class ToolExecutionContext:
    """Run information handed to a tool body."""

    run_id: Optional[str] = None
    thread_id: Optional[str] = None
    resource_id: Optional[str] = None
    agent_name: Optional[str] = None


@dataclass
class ToolAction:
    """
    A user-declared tool.

    `execute(args, context)` may be a plain function or a coroutine
    function. Plain functions run in the default executor.
    """

    id: str
    description: str
    execute: Callable[[dict, ToolExecutionContext], Any]
    input_schema: dict = field(default_factory=lambda: {"type": "object", "properties": {}})
    enable_cache: bool = False


async def _invoke(func: Callable, args: dict, context: ToolExecutionContext) -> Any:
    if inspect.iscoroutinefunction(func):
        return await func(args, context)
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, lambda: func(args, context))
    if inspect.isawaitable(result):
        result = await result
    return result


class CoreTool:
    """A tool bound to one run, ready to be called by the step loop."""

    def __init__(
        self,
        action: ToolAction,
        name: str,
        context: ToolExecutionContext,
        cache: Optional[ToolResultCache] = None,
    ):
        self.action = action
        self.name = name
        self.description = action.description
        self.parameters = action.input_schema
        self.context = context

        async def body(args: dict, ctx: ToolExecutionContext) -> Any:
            return await _invoke(action.execute, args, ctx)

        if action.enable_cache and cache is not None:
            body = cached_execute(cache, name)(body)
        self._body = body

    def validate(self, args: dict) -> None:
        try:
            jsonschema.validate(args, self.parameters)
        except jsonschema.ValidationError as e:
            raise ToolInputError(self.name, [e.message], run_id=self.context.run_id) from e

    async def execute(self, args: Optional[dict] = None) -> Any:
        """
        Validate the input and run the tool body.

        Raises:
            ToolInputError: The arguments do not match the input schema
            ToolExecutionError: The tool body raised
        """
        args = args or {}
        self.validate(args)
        try:
            return await self._body(args, self.context)
        except Exception as e:
            logger.exception(f"Tool {self.name} failed (run_id={self.context.run_id})")
            raise ToolExecutionError(self.name, e, run_id=self.context.run_id) from e

    def to_openai_format(self) -> dict:
        """Function schema in the OpenAI tools format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def __repr__(self) -> str:
        return f"CoreTool({self.name!r})"


class ToolAdapter:
    """Builds run-bound CoreTools from ToolActions and toolsets."""

    def __init__(self, cache: Optional[ToolResultCache] = None):
        self.cache = cache

    def _bind(self, name: str, action: ToolAction, context: ToolExecutionContext) -> CoreTool:
        try:
            jsonschema.validators.validator_for(action.input_schema).check_schema(
                action.input_schema
            )
        except jsonschema.SchemaError as e:
            raise ConfigurationError(f"Tool '{name}' has an invalid input schema: {e.message}") from e
        return CoreTool(action, name, context, cache=self.cache)

    def adapt(
        self,
        tools: Optional[dict[str, ToolAction]],
        context: ToolExecutionContext,
        toolsets: Optional[dict[str, dict[str, ToolAction]]] = None,
    ) -> dict[str, CoreTool]:
        """
        Bind first-party tools and toolset tools to a run.

        Args:
            tools: First-party tools by name
            context: Full run context for first-party tools
            toolsets: Auxiliary toolsets, toolset name -> tools by name

        Returns:
            CoreTools by name
        """
        adapted: dict[str, CoreTool] = {}
        for name, action in (tools or {}).items():
            adapted[name] = self._bind(name, action, context)

        toolset_context = replace(context, thread_id=None)
        for toolset_name, toolset in (toolsets or {}).items():
            for name, action in toolset.items():
                if name in adapted:
                    logger.debug(f"Toolset {toolset_name} overrides tool {name}")
                adapted[name] = self._bind(name, action, toolset_context)

        return adapted
