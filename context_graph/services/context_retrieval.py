"""
Context Retrieval Service composing graph reads into context for reply generation.
"""

from typing import Collection, List, Optional, Union

from ..models.core import ENTITY_KINDS, EntityRecord, ExtractedEntities, MessageRecord, NodeKind, RelKind
from ..utils import query_builder as qb
from ..utils.config import RetrievalConfig
from ..utils.graph_client import GraphSession
from ..utils.logging_config import get_logger
from .entity_resolution import canonical_key

logger = get_logger(__name__)

NO_CONTEXT = 'No specific context from previous conversations.'

_LABELS = {
    NodeKind.PERSON: 'People mentioned',
    NodeKind.TOPIC: 'Topics discussed',
    NodeKind.TASK: 'Tasks mentioned',
    NodeKind.DOCUMENT: 'Documents referenced',
}


class ContextRetriever:
    """Retrieval strategies over the context graph. Empty results are never errors."""

    def __init__(self, session: GraphSession, config: RetrievalConfig):
        self.session = session
        self.config = config

    def entity_context(self, kind: NodeKind, name: str, limit: Optional[int] = None) -> List[MessageRecord]:
        """
        Messages mentioning an entity, newest first.

        Args:
            kind: Entity kind
            name: Entity name in any casing or spacing
            limit: Maximum messages (default from config)

        Returns:
            List of MessageRecord ordered by timestamp, then id, descending
        """
        limit = limit or self.config.entity_limit
        statement = qb.messages_mentioning(kind, canonical_key(name), limit)
        return self.session.read(statement, row_type=MessageRecord)

    def recent_history(self, conversation_id: str, limit: Optional[int] = None) -> List[MessageRecord]:
        """Last messages of a conversation in chronological order."""
        limit = limit or self.config.history_limit
        newest_first = self.session.read(qb.recent_messages(conversation_id, limit), row_type=MessageRecord)
        return list(reversed(newest_first))

    def co_mentioned(self, kind: NodeKind, name: str, limit: Optional[int] = None) -> List[EntityRecord]:
        """
        Entities appearing in the same messages as the given one.

        Returns:
            EntityRecords of every entity kind ranked by shared messages, then id
        """
        limit = limit or self.config.co_mention_limit
        key = canonical_key(name)
        records = []
        for other_kind in ENTITY_KINDS:
            for row in self.session.read(qb.co_mentioned_entities(kind, key, other_kind, limit)):
                records.append(EntityRecord(id=row['id'], name=row['name'], kind=other_kind, shared=int(row['shared'])))
        records.sort(key=lambda record: (-record.shared, record.id))
        return records[:limit]

    def related(self,
                kind: NodeKind,
                name: str,
                rel: Union[RelKind, str] = RelKind.KNOWS,
                target_kind: Optional[NodeKind] = None,
                max_hops: Optional[int] = None,
                direction: str = 'out') -> List[EntityRecord]:
        """
        Entities reachable through one relationship kind within a bounded number of hops.

        Args:
            kind: Kind of the starting entity
            name: Name of the starting entity
            rel: Relationship kind to follow
            target_kind: Kind of the reached entities (defaults to kind)
            max_hops: Hop limit (default from config)
            direction: 'out', 'in' or 'both'

        Returns:
            EntityRecords ordered by hop distance, then id
        """
        target_kind = target_kind or kind
        max_hops = max_hops or self.config.max_hops
        statement = qb.traverse(kind, canonical_key(name), rel, target_kind, max_hops, direction)
        return [
            EntityRecord(id=row['id'], name=row['name'], kind=NodeKind(target_kind), hops=int(row['hops']))
            for row in self.session.read(statement)
        ]

    def build_context(self,
                      conversation_id: str,
                      entities: ExtractedEntities,
                      exclude_message_ids: Collection[str] = ()) -> str:
        """
        Format the context block handed to reply generation.

        Args:
            conversation_id: Current conversation
            entities: Entities extracted from the current turn
            exclude_message_ids: Messages not to repeat as prior context

        Returns:
            Multi-line context text, or a fixed notice when nothing is known
        """
        parts = []
        for kind in ENTITY_KINDS:
            mentions = entities.mentions(kind)
            if not mentions:
                continue
            parts.append(f'{_LABELS[kind]}: {", ".join(mentions)}')

            for mention in mentions:
                earlier = [m for m in self.entity_context(kind, mention) if m.id not in exclude_message_ids]
                if earlier:
                    lines = '\n'.join(f'  - [{m.timestamp}] {m.role}: {m.content}' for m in earlier)
                    parts.append(f"Earlier messages about '{mention}':\n{lines}")

                connected = self.co_mentioned(kind, mention)
                if connected:
                    parts.append(f"Related to '{mention}': {', '.join(record.name for record in connected)}")

        history = [m for m in self.recent_history(conversation_id) if m.id not in exclude_message_ids]
        if history:
            lines = '\n'.join(f'[{m.timestamp}] {m.role}: {m.content}' for m in history)
            parts.append(f'Recent conversation:\n{lines}')

        if not parts:
            return NO_CONTEXT

        logger.debug(f'Built context with {len(parts)} sections')
        return '\n'.join(parts)
