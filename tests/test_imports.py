"""Test that all imports work correctly."""


def test_version():
    """Test that version is accessible."""
    import agent_memory_runtime
    assert agent_memory_runtime.__version__ == "0.1.0"


def test_core_imports():
    """Test that the agent surface can be imported from the package root."""
    from agent_memory_runtime import (
        Agent,
        AgentResult,
        AgentStream,
        RunContext,
        EventType,
        Message,
    )

    assert Agent is not None
    assert AgentResult is not None
    assert AgentStream is not None
    assert RunContext is not None


def test_config_imports():
    """Test that config can be imported."""
    from agent_memory_runtime import (
        RuntimeConfig,
        configure,
        get_config,
        reset_config,
    )

    assert RuntimeConfig is not None
    assert configure is not None
    assert get_config is not None


def test_memory_imports():
    """Test that memory, persistence and vector store pieces can be imported."""
    from agent_memory_runtime import (
        MemoryManager,
        MemoryOptions,
        InMemoryThreadStore,
        FileThreadStore,
        InMemoryVectorStore,
        get_vector_store,
        get_embedding_client,
    )

    assert MemoryManager is not None
    assert InMemoryThreadStore is not None
    assert get_vector_store is not None


def test_streaming_imports():
    """Test that the stream decoder can be imported."""
    from agent_memory_runtime import (
        ChatState,
        FrameTokenizer,
        StreamDecoder,
        consume_stream,
    )

    assert StreamDecoder is not None
    assert consume_stream is not None


def test_llm_imports():
    """Test that LLM client factory can be imported."""
    from agent_memory_runtime.llm import get_llm_client, get_provider_for_model

    assert get_llm_client is not None
    assert get_provider_for_model is not None


def test_all_names_resolve():
    import agent_memory_runtime

    for name in agent_memory_runtime.__all__:
        assert hasattr(agent_memory_runtime, name), name
