"""
agent_memory_runtime - memory-augmented agent orchestration.

This package provides:
- An Agent that runs a bounded tool-calling loop, one-shot or streamed
- Conversation memory: thread stores, recency + semantic recall
- A tool adapter binding tools to the run that calls them
- A wire-format stream decoder for incremental UI rendering
- OpenAI and Anthropic model clients behind one interface

Example usage:
    from agent_memory_runtime import (
        Agent,
        InMemoryThreadStore,
        MemoryManager,
        configure,
        get_llm_client,
    )

    configure(model_provider="openai")

    agent = Agent(
        name="assistant",
        instructions="You are a helpful assistant.",
        llm=get_llm_client(),
        memory=MemoryManager(InMemoryThreadStore()),
    )

    result = await agent.generate("Hello!", thread_id="t-1", resource_id="user-1")
    print(result.text)
"""

__version__ = "0.1.0"

# Core interfaces
from agent_memory_runtime.interfaces import (
    EventType,
    LLMClient,
    LLMResponse,
    LLMStreamChunk,
    LLMToolCall,
    Message,
    Provider,
    content_parts,
    message_text,
    text_part,
    tool_call_part,
    tool_result_part,
)

# Errors
from agent_memory_runtime.exceptions import (
    AgentMemoryError,
    ConfigurationError,
    PersistenceError,
    StepLimitExceeded,
    StreamParseError,
    ToolError,
    ToolExecutionError,
    ToolInputError,
)

# Configuration
from agent_memory_runtime.config import (
    RuntimeConfig,
    configure,
    get_config,
    reset_config,
)

# Agent
from agent_memory_runtime.agent import (
    Agent,
    AgentContext,
    AgentResult,
    AgentStream,
    RunPhase,
)
from agent_memory_runtime.contexts import RunContext

# Agentic loop helpers
from agent_memory_runtime.agentic_loop import (
    AgenticLoopResult,
    UsageStats,
    execute_tool_calls,
    run_agentic_loop,
    stream_agentic_loop,
)

# Context assembly and response cleanup
from agent_memory_runtime.context_builder import build as build_context
from agent_memory_runtime.sanitizer import sanitize_response_messages

# Memory
from agent_memory_runtime.memory import (
    MemoryManager,
    MemoryOptions,
    MemoryRecall,
    RecallQuery,
)

# Persistence
from agent_memory_runtime.persistence import (
    FileThreadStore,
    InMemoryThreadStore,
    MemoryMessage,
    Scope,
    Thread,
    ThreadStore,
)

# Vector stores and embeddings
from agent_memory_runtime.vectorstore import (
    EmbeddingClient,
    InMemoryVectorStore,
    VectorSearchResult,
    VectorStore,
    get_embedding_client,
    get_vector_store,
)

# Tools
from agent_memory_runtime.tools import (
    CoreTool,
    ToolAction,
    ToolAdapter,
    ToolExecutionContext,
    ToolResultCache,
)

# Streaming
from agent_memory_runtime.streaming import (
    ChatState,
    FrameTokenizer,
    MessageUpdate,
    StreamDecoder,
    UpdateKind,
    consume_stream,
)

# Metric hooks
from agent_memory_runtime.hooks import (
    GenerationEvent,
    HookRunner,
    Metric,
    MetricResult,
)

# LLM clients
from agent_memory_runtime.llm import get_llm_client

__all__ = [
    "__version__",
    # Interfaces
    "EventType",
    "LLMClient",
    "LLMResponse",
    "LLMStreamChunk",
    "LLMToolCall",
    "Message",
    "Provider",
    "content_parts",
    "message_text",
    "text_part",
    "tool_call_part",
    "tool_result_part",
    # Errors
    "AgentMemoryError",
    "ConfigurationError",
    "PersistenceError",
    "StepLimitExceeded",
    "StreamParseError",
    "ToolError",
    "ToolExecutionError",
    "ToolInputError",
    # Configuration
    "RuntimeConfig",
    "configure",
    "get_config",
    "reset_config",
    # Agent
    "Agent",
    "AgentContext",
    "AgentResult",
    "AgentStream",
    "RunPhase",
    "RunContext",
    # Agentic loop
    "AgenticLoopResult",
    "UsageStats",
    "execute_tool_calls",
    "run_agentic_loop",
    "stream_agentic_loop",
    "build_context",
    "sanitize_response_messages",
    # Memory
    "MemoryManager",
    "MemoryOptions",
    "MemoryRecall",
    "RecallQuery",
    # Persistence
    "FileThreadStore",
    "InMemoryThreadStore",
    "MemoryMessage",
    "Scope",
    "Thread",
    "ThreadStore",
    # Vector stores
    "EmbeddingClient",
    "InMemoryVectorStore",
    "VectorSearchResult",
    "VectorStore",
    "get_embedding_client",
    "get_vector_store",
    # Tools
    "CoreTool",
    "ToolAction",
    "ToolAdapter",
    "ToolExecutionContext",
    "ToolResultCache",
    # Streaming
    "ChatState",
    "FrameTokenizer",
    "MessageUpdate",
    "StreamDecoder",
    "UpdateKind",
    "consume_stream",
    # Hooks
    "GenerationEvent",
    "HookRunner",
    "Metric",
    "MetricResult",
    # LLM
    "get_llm_client",
]
