"""Shared fixtures: a throwaway Kuzu database per test and a scripted LLM."""

import json
from pathlib import Path

import pytest

from context_graph.services.entity_extraction import EXTRACTION_PROMPT
from context_graph.services.memory_management import MemoryOrchestrator
from context_graph.utils.bedrock_llm import BedrockLLMError
from context_graph.utils.config import GraphStoreConfig, RetrievalConfig
from context_graph.utils.graph_client import GraphStore


class FakeLLM:
    """Answers extraction prompts from a script keyed by turn text and records every prompt."""

    def __init__(self, extractions=None, reply='Noted.'):
        self.extractions = extractions or {}
        self.reply = reply
        self.calls = []
        self.fail_extraction = False
        self.fail_generation = False

    def complete(self, system_prompt, user_text):
        self.calls.append((system_prompt, user_text))
        if system_prompt == EXTRACTION_PROMPT:
            if self.fail_extraction:
                raise BedrockLLMError('extraction model unavailable')
            answer = self.extractions.get(user_text, '{}')
            return answer if isinstance(answer, str) else json.dumps(answer)
        if self.fail_generation:
            raise BedrockLLMError('generation model unavailable')
        return self.reply

    @property
    def generation_prompts(self):
        return [prompt for prompt, _ in self.calls if prompt != EXTRACTION_PROMPT]


@pytest.fixture
def store_config(tmp_path: Path) -> GraphStoreConfig:
    return GraphStoreConfig(path=str(tmp_path / 'graph' / 'memory.kuzu'), user='tester', password='secret')


@pytest.fixture
def retrieval_config() -> RetrievalConfig:
    return RetrievalConfig(entity_limit=10, history_limit=10, max_hops=2, co_mention_limit=10)


@pytest.fixture
def graph_store(store_config):
    store = GraphStore(store_config)
    yield store
    store.close()


@pytest.fixture
def session(graph_store):
    with graph_store.session() as session:
        yield session


@pytest.fixture
def conversation_id(graph_store, session) -> str:
    return graph_store.start_conversation(session, 'Fixture chat').id


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def orchestrator(graph_store, llm, retrieval_config):
    orchestrator = MemoryOrchestrator(graph_store, llm, retrieval_config)
    yield orchestrator
    orchestrator.close()
