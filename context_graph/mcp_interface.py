"""
MCP Interface Layer using fastmcp to expose the context graph to agents.
"""
from typing import Dict, List, Optional

from fastmcp import FastMCP

from .models.core import NodeKind, RelKind
from .services.memory_management import MemoryManagementError, MemoryOrchestrator
from .utils.bedrock_llm import BedrockLLM
from .utils.config import config
from .utils.graph_client import GraphStore, PersistenceError, ResultShapeError
from .utils.logging_config import get_logger
from .utils.query_builder import QueryBuildError

logger = get_logger(__name__)

mcp = FastMCP('Context Graph')
_orchestrator: Optional[MemoryOrchestrator] = None


def get_orchestrator() -> MemoryOrchestrator:
    """Build the process-wide orchestrator on first use."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = MemoryOrchestrator(GraphStore(config.graph_store), BedrockLLM(config.bedrock_llm),
                                           config.retrieval)
    return _orchestrator


@mcp.tool()
def start_conversation(title: Optional[str] = None) -> str:
    """Start a conversation and return its id.

    Args:
        title: Optional conversation title
    """
    try:
        return get_orchestrator().start_conversation(title)
    except MemoryManagementError as e:
        logger.error(f'Memory management error in MCP start_conversation: {e}')
        raise RuntimeError(f'Conversation start failed: {e}') from e


@mcp.tool()
def process_turn(conversation_id: str, user_text: str) -> Dict:
    """Store a user turn, answer it from graph memory and store the answer.

    Args:
        conversation_id: Id returned by start_conversation
        user_text: The user's message

    Returns:
        Dict with assistant_text and extracted_entities
    """
    try:
        result = get_orchestrator().process_turn(conversation_id, user_text)
    except MemoryManagementError as e:
        logger.error(f'Memory management error in MCP process_turn: {e}')
        raise RuntimeError(f'Turn processing failed: {e}') from e

    return {'assistant_text': result.assistant_text, 'extracted_entities': result.extracted_entities.to_dict()}


@mcp.tool()
def entity_context(kind: str, name: str, limit: int = 10) -> List[Dict]:
    """Messages mentioning an entity, newest first.

    Args:
        kind: Person, Topic, Task or Document
        name: Entity name, any casing
        limit: Maximum number of messages (default: 10)
    """
    try:
        messages = get_orchestrator().retriever.entity_context(NodeKind(kind), name, limit)
    except (ValueError, PersistenceError, ResultShapeError, QueryBuildError) as e:
        logger.error(f'Error in MCP entity_context: {e}')
        raise RuntimeError(f'Entity context lookup failed: {e}') from e

    return [{'id': m.id, 'role': m.role, 'content': m.content, 'timestamp': m.timestamp} for m in messages]


@mcp.tool()
def related_entities(kind: str, name: str, relationship: str = 'KNOWS', max_hops: int = 2) -> List[Dict]:
    """Entities reachable from an entity through one relationship kind.

    Args:
        kind: Kind of the starting entity
        name: Name of the starting entity
        relationship: Relationship kind to follow (default: KNOWS)
        max_hops: Hop limit (default: 2)
    """
    try:
        records = get_orchestrator().retriever.related(NodeKind(kind), name, RelKind(relationship), max_hops=max_hops)
    except (ValueError, PersistenceError, ResultShapeError, QueryBuildError) as e:
        logger.error(f'Error in MCP related_entities: {e}')
        raise RuntimeError(f'Related entity lookup failed: {e}') from e

    return [{'id': r.id, 'name': r.name, 'hops': r.hops} for r in records]


def main():
    transport = config.mcp.transport
    host = config.mcp.host
    port = config.mcp.port
    try:
        mcp.run(transport=transport, host=host, port=port)
    finally:
        if _orchestrator is not None:
            _orchestrator.close()
            _orchestrator.graph_store.close()


if __name__ == '__main__':
    main()
