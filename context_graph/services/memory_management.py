"""
Memory Orchestrator sequencing extraction, resolution, persistence, retrieval and generation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from ..models.core import ExtractedEntities, NodeKind, RelKind, Resolution, Role, TaskStatus
from ..utils.bedrock_llm import TextCompletion
from ..utils.config import RetrievalConfig, config
from ..utils.graph_client import GraphStore, PersistenceError, ResultShapeError
from ..utils.logging_config import get_logger
from ..utils.query_builder import QueryBuildError
from .context_retrieval import ContextRetriever
from .entity_extraction import EntityExtractionError, EntityExtractionService
from .entity_resolution import EntityResolver, canonical_key
from .response_generation import ResponseGenerationError, ResponseGenerator

logger = get_logger(__name__)


class MemoryManagementError(Exception):
    """Custom exception for memory management errors."""
    pass


class ConversationState(str, Enum):
    UNINITIALIZED = 'uninitialized'
    ACTIVE = 'active'
    CLOSED = 'closed'


@dataclass
class TurnResult:
    """Outcome of one processed user turn."""
    assistant_text: str
    extracted_entities: ExtractedEntities
    user_message_id: str
    assistant_message_id: str
    resolutions: List[Resolution] = field(default_factory=list)


class MemoryOrchestrator:
    """Run conversation turns against the context graph.

    Holds the process's single graph session from construction until close().
    Turns are processed strictly one after another.
    """

    def __init__(self,
                 graph_store: GraphStore,
                 llm: TextCompletion,
                 retrieval_config: Optional[RetrievalConfig] = None):
        """
        Initialize the orchestrator and acquire the graph session.

        Args:
            graph_store: Open graph store
            llm: Completion client used for extraction and generation
            retrieval_config: Retrieval limits (uses global config if None)
        """
        self.graph_store = graph_store
        self.session = graph_store.open_session()
        self.extraction = EntityExtractionService(llm)
        self.generator = ResponseGenerator(llm)
        self.resolver = EntityResolver(graph_store, self.session)
        self.retriever = ContextRetriever(self.session, retrieval_config or config.retrieval)
        self._states: Dict[str, ConversationState] = {}

        logger.info('Initialized MemoryOrchestrator')

    def state(self, conversation_id: str) -> ConversationState:
        return self._states.get(conversation_id, ConversationState.UNINITIALIZED)

    def start_conversation(self, title: Optional[str] = None) -> str:
        """
        Start a conversation.

        Args:
            title: Optional conversation title

        Returns:
            Conversation id

        Raises:
            MemoryManagementError: If the conversation cannot be stored
        """
        try:
            conversation = self.graph_store.start_conversation(self.session, title)
        except (PersistenceError, QueryBuildError) as e:
            logger.error(f'Failed to start conversation: {e}')
            raise MemoryManagementError(f'Conversation start failed: {e}') from e

        self._states[conversation.id] = ConversationState.ACTIVE
        logger.info(f'Started conversation: {conversation.id}')
        return conversation.id

    def process_turn(self, conversation_id: str, user_text: str) -> TurnResult:
        """
        Process one user turn end to end.

        extract -> resolve -> persist -> retrieve -> generate -> persist reply.
        Extraction problems continue with no entities. A persistence failure
        aborts the turn before any reply is generated.

        Args:
            conversation_id: Active conversation
            user_text: The user's message

        Returns:
            TurnResult with the reply and the entities extracted from the user text

        Raises:
            MemoryManagementError: If persistence, retrieval or generation fails
        """
        if self.state(conversation_id) != ConversationState.ACTIVE:
            raise MemoryManagementError(f'Conversation {conversation_id} is not active')
        if not user_text or not user_text.strip():
            raise MemoryManagementError('User text is required')

        entities = self._extract(user_text)

        try:
            resolutions = self.resolver.resolve_entities(entities)
            user_message = self.graph_store.add_message(self.session, conversation_id, Role.USER, user_text,
                                                        resolutions)
            self.resolver.remember(resolutions)

            context = self.retriever.build_context(conversation_id, entities, exclude_message_ids={user_message.id})
        except (PersistenceError, ResultShapeError, QueryBuildError) as e:
            logger.error(f'Failed to store user turn: {e}')
            raise MemoryManagementError(f'Turn processing failed: {e}') from e

        try:
            reply = self.generator.generate(user_text, context)
        except ResponseGenerationError as e:
            raise MemoryManagementError(f'Turn processing failed: {e}') from e

        try:
            assistant_message = self.graph_store.add_message(self.session, conversation_id, Role.ASSISTANT, reply)
        except (PersistenceError, QueryBuildError) as e:
            logger.error(f'Failed to store assistant message: {e}')
            raise MemoryManagementError(f'Assistant message storage failed: {e}') from e

        logger.debug(f'Completed turn {user_message.id} -> {assistant_message.id}')
        return TurnResult(assistant_text=reply,
                          extracted_entities=entities,
                          user_message_id=user_message.id,
                          assistant_message_id=assistant_message.id,
                          resolutions=resolutions)

    def relate(self,
               from_kind: NodeKind,
               from_name: str,
               rel: Union[RelKind, str],
               to_kind: NodeKind,
               to_name: str,
               direction: str = 'out') -> None:
        """
        Connect two entities, creating either of them on first mention.

        Raises:
            MemoryManagementError: If the edge is not allowed or cannot be stored
        """
        try:
            if NodeKind(from_kind) == NodeKind(to_kind):
                both = self.resolver.resolve(from_kind, [from_name, to_name])
                if len(both) != 2 or both[0].node_id == both[1].node_id:
                    raise MemoryManagementError(f"Cannot relate '{from_name}' to itself")
                source, target = both
            else:
                source = self._resolve_one(from_kind, from_name)
                target = self._resolve_one(to_kind, to_name)
            self.graph_store.add_relationship(self.session, rel, source, target, direction)
            self.resolver.remember([source, target])
        except (PersistenceError, ResultShapeError, QueryBuildError, ValueError) as e:
            logger.error(f'Failed to relate {from_name} and {to_name}: {e}')
            raise MemoryManagementError(f'Relationship storage failed: {e}') from e

    def set_task_status(self, description: str, status: Union[TaskStatus, str]) -> None:
        """Update the status of an existing task by its canonical description."""
        try:
            task_id = self.graph_store.find_entity_id(self.session, NodeKind.TASK, canonical_key(description))
            if task_id is None:
                raise MemoryManagementError(f"Unknown task '{description}'")
            self.graph_store.update_task_status(self.session, task_id, status)
        except (PersistenceError, ResultShapeError, QueryBuildError) as e:
            logger.error(f'Failed to update task status: {e}')
            raise MemoryManagementError(f'Task status update failed: {e}') from e

    def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and the messages it owns."""
        try:
            self.graph_store.delete_conversation(self.session, conversation_id)
        except (PersistenceError, QueryBuildError) as e:
            logger.error(f'Failed to delete conversation: {e}')
            raise MemoryManagementError(f'Conversation deletion failed: {e}') from e
        self._states[conversation_id] = ConversationState.CLOSED

    def close(self) -> None:
        """Close every conversation and release the graph session."""
        for conversation_id in self._states:
            self._states[conversation_id] = ConversationState.CLOSED
        self.session.close()

    def __enter__(self) -> 'MemoryOrchestrator':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _extract(self, user_text: str) -> ExtractedEntities:
        try:
            return self.extraction.extract(user_text)
        except EntityExtractionError as e:
            logger.warning(f'Continuing without entities: {e}')
            return ExtractedEntities()

    def _resolve_one(self, kind: NodeKind, name: str) -> Resolution:
        resolutions = self.resolver.resolve(kind, [name])
        if not resolutions:
            raise MemoryManagementError(f'A {NodeKind(kind).value} name is required')
        return resolutions[0]
