"""
Conversation memory for agents.

- MemoryRecall: recent + semantically similar messages of a thread
- MemoryManager: storage facade (threads, messages, memory note, indexing)

Example usage:
    from agent_memory_runtime.memory import MemoryManager, MemoryOptions
    from agent_memory_runtime.persistence import InMemoryThreadStore

    memory = MemoryManager(InMemoryThreadStore())
    agent = Agent(name="helper", instructions="Be helpful.", llm=llm, memory=memory)

    result = await agent.generate(
        "What did I say about pricing?",
        thread_id="t-1",
        resource_id="user-1",
        memory_options=MemoryOptions(recency_count=20),
    )
"""

from agent_memory_runtime.memory.manager import MemoryManager, MemoryOptions
from agent_memory_runtime.memory.recall import MemoryRecall, RecallQuery

__all__ = [
    "MemoryManager",
    "MemoryOptions",
    "MemoryRecall",
    "RecallQuery",
]
