"""
Exceptions raised by the memory-augmented agent runtime.

Propagation policy:
- ConfigurationError: raised immediately at construction time.
- PersistenceError: absorbed by the agent (logged, run continues with
  degraded context) unless memory is marked as required.
- ToolInputError / ToolExecutionError: turned into failed tool results so
  the model can react to them.
- StepLimitExceeded: surfaced to the caller.
- StreamParseError: surfaced as an error-flagged assistant message by the
  stream decoder, never raised out of it.
"""

from typing import Any, Optional


class AgentMemoryError(Exception):
    """Base class for all runtime errors."""
    pass


class ConfigurationError(AgentMemoryError):
    """Raised when a required collaborator (model, provider, key) is missing."""

    @classmethod
    def missing_api_key(cls, provider: str, env_var: str, example: str) -> "ConfigurationError":
        """Build the error raised by a provider client constructed without a key."""
        option = f"{provider}_api_key"
        return cls(
            f"No API key for provider '{provider}'. Set one of:\n"
            f"  - configure({option}='{example}')\n"
            f"  - the {env_var} environment variable\n"
            f"  - get_llm_client(provider='{provider}', api_key='{example}')"
        )


class PersistenceError(AgentMemoryError):
    """Raised when a storage backend call fails."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class ToolError(AgentMemoryError):
    """Base class for tool failures."""

    def __init__(self, message: str, tool_name: str, run_id: Optional[str] = None):
        super().__init__(message)
        self.tool_name = tool_name
        self.run_id = run_id


class ToolInputError(ToolError):
    """Raised when tool arguments do not match the tool's input schema."""

    def __init__(
        self,
        tool_name: str,
        errors: list[str],
        run_id: Optional[str] = None,
    ):
        super().__init__(
            f"Invalid input for tool '{tool_name}': {'; '.join(errors)}",
            tool_name=tool_name,
            run_id=run_id,
        )
        self.errors = errors


class ToolExecutionError(ToolError):
    """Raised when a tool body fails. The original exception is kept as `cause`."""

    def __init__(
        self,
        tool_name: str,
        cause: BaseException,
        run_id: Optional[str] = None,
    ):
        super().__init__(
            f"Tool '{tool_name}' failed: {cause}",
            tool_name=tool_name,
            run_id=run_id,
        )
        self.cause = cause


class StepLimitExceeded(AgentMemoryError):
    """Raised when the model keeps requesting tools past the step bound."""

    def __init__(self, max_steps: int, messages: Optional[list[dict[str, Any]]] = None):
        super().__init__(
            f"Step limit of {max_steps} reached while the model was still calling tools"
        )
        self.max_steps = max_steps
        self.messages = messages or []


class StreamParseError(AgentMemoryError):
    """Raised by the frame tokenizer for a frame that cannot be decoded."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw
