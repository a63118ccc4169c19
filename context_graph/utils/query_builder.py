"""
Cypher statement builder for the Kuzu graph store.

Every value embedded in a statement goes through escape_literal. Labels,
relationship types and hop limits come from enums and validated integers,
so no caller-provided text ever reaches the statement unescaped.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Tuple

from ..models.core import (ENTITY_KINDS, REL_ENDPOINTS, Conversation, Message, NodeKind, RelKind, TaskStatus,
                           name_field)


class QueryBuildError(Exception):
    """Raised when a statement cannot be built safely from its parameters."""
    pass


@dataclass(frozen=True)
class Statement:
    """Statement text plus the result columns a read expects."""
    text: str
    columns: Tuple[str, ...] = ()


# LF, CR and TAB are legal inside quoted literals; any other control character is not
UNSAFE_CONTROL = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

_DIRECTIONS = ('out', 'in', 'both')

_ENTITY_COLUMNS = {
    NodeKind.PERSON: (('description', 'STRING'),),
    NodeKind.TOPIC: (('category', 'STRING'),),
    NodeKind.TASK: (('status', 'STRING'), ('created_at', 'STRING')),
    NodeKind.DOCUMENT: (('kind', 'STRING'),),
}

MESSAGE_COLUMNS = ('id', 'role', 'content', 'timestamp')


def escape_literal(value) -> str:
    """Quote a value as a Cypher string literal.

    Args:
        value: Value to embed; converted with str()

    Returns:
        Single-quoted literal with backslashes and quotes escaped

    Raises:
        QueryBuildError: If the value holds a control character that cannot be escaped
    """
    if value is None:
        raise QueryBuildError('Cannot embed None as a string literal')
    text = str(value)
    match = UNSAFE_CONTROL.search(text)
    if match:
        raise QueryBuildError(f'Control character {match.group()!r} at offset {match.start()} cannot be escaped')
    escaped = text.replace('\\', '\\\\').replace("'", "\\'")
    return f"'{escaped}'"


def has_unsafe_control(text: str) -> bool:
    """True when text holds a character escape_literal refuses."""
    return UNSAFE_CONTROL.search(text) is not None


def _kind(kind) -> NodeKind:
    try:
        return NodeKind(kind)
    except ValueError:
        raise QueryBuildError(f"Unknown node kind '{kind}'")


def _entity_kind(kind) -> NodeKind:
    kind = _kind(kind)
    if kind not in ENTITY_KINDS:
        raise QueryBuildError(f"'{kind.value}' is not an entity kind")
    return kind


def _rel(rel) -> RelKind:
    try:
        return RelKind(rel)
    except ValueError:
        raise QueryBuildError(f"Unknown relationship kind '{rel}'")


def _positive_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise QueryBuildError(f'{name} must be a positive integer, got {value!r}')
    return value


def _arrow(rel: RelKind, direction: str, hops: str = '', var: str = '') -> str:
    if direction not in _DIRECTIONS:
        raise QueryBuildError(f"Unknown direction '{direction}'")
    body = f'[{var}:{rel.value}{hops}]'
    if direction == 'out':
        return f'-{body}->'
    if direction == 'in':
        return f'<-{body}-'
    return f'-{body}-'


# Schema

def schema_statements() -> Iterable[str]:
    """DDL creating every node and relationship table if missing."""
    yield ('CREATE NODE TABLE IF NOT EXISTS Conversation('
           'id STRING, started_at STRING, title STRING, PRIMARY KEY (id))')
    yield ('CREATE NODE TABLE IF NOT EXISTS Message('
           'id STRING, role STRING, content STRING, timestamp STRING, PRIMARY KEY (id))')
    for kind in ENTITY_KINDS:
        columns = [('id', 'STRING'), (name_field(kind), 'STRING'), ('canonical', 'STRING')]
        columns.extend(_ENTITY_COLUMNS[kind])
        body = ', '.join(f'{name} {type_}' for name, type_ in columns)
        yield f'CREATE NODE TABLE IF NOT EXISTS {kind.value}({body}, PRIMARY KEY (id))'
    for rel, pairs in REL_ENDPOINTS.items():
        body = ', '.join(f'FROM {a.value} TO {b.value}' for a, b in pairs)
        yield f'CREATE REL TABLE IF NOT EXISTS {rel.value}({body})'


# Writes

def create_conversation(conversation: Conversation) -> Statement:
    title = conversation.title or 'New Conversation'
    return Statement(f'CREATE (:Conversation {{id: {escape_literal(conversation.id)}, '
                     f'started_at: {escape_literal(conversation.started_at)}, '
                     f'title: {escape_literal(title)}}})')


def create_message(message: Message) -> Statement:
    return Statement(f'CREATE (:Message {{id: {escape_literal(message.id)}, '
                     f'role: {escape_literal(message.role.value)}, '
                     f'content: {escape_literal(message.content)}, '
                     f'timestamp: {escape_literal(message.timestamp)}}})')


def link_message_to_conversation(message_id: str, conversation_id: str) -> Statement:
    return Statement(f'MATCH (m:Message {{id: {escape_literal(message_id)}}}), '
                     f'(c:Conversation {{id: {escape_literal(conversation_id)}}}) '
                     f'CREATE (m)-[:PART_OF]->(c)')


def create_entity(kind, node_id: str, key: str, entity) -> Statement:
    """Insert an entity node.

    Args:
        kind: Entity kind
        node_id: Identifier allocated by the resolver
        key: Canonical key of the entity
        entity: Person, Topic, Task or Document value
    """
    kind = _entity_kind(kind)
    props = [('id', node_id), (name_field(kind), getattr(entity, name_field(kind))), ('canonical', key)]
    for column, _ in _ENTITY_COLUMNS[kind]:
        value = getattr(entity, column, None)
        if value is not None:
            props.append((column, getattr(value, 'value', value)))
    body = ', '.join(f'{name}: {escape_literal(value)}' for name, value in props)
    return Statement(f'CREATE (:{kind.value} {{{body}}})')


def create_mention_edge(kind, entity_id: str, message_id: str) -> Statement:
    """MERGE keeps a single edge per (entity, message) pair."""
    kind = _entity_kind(kind)
    return Statement(f'MATCH (e:{kind.value} {{id: {escape_literal(entity_id)}}}), '
                     f'(m:Message {{id: {escape_literal(message_id)}}}) '
                     f'MERGE (e)-[:MENTIONED_IN]->(m)')


def create_relationship_edge(rel, from_kind, from_id: str, to_kind, to_id: str, direction: str = 'out') -> Statement:
    """Create a typed edge between two existing nodes.

    Args:
        rel: Relationship kind
        from_kind: Kind of the first node
        from_id: Identifier of the first node
        to_kind: Kind of the second node
        to_id: Identifier of the second node
        direction: 'out' stores first->second, 'in' stores second->first
    """
    rel = _rel(rel)
    a_kind, b_kind = _kind(from_kind), _kind(to_kind)
    if direction not in ('out', 'in'):
        raise QueryBuildError(f"Edges are stored directed, got direction '{direction}'")
    source, target = (a_kind, b_kind) if direction == 'out' else (b_kind, a_kind)
    if (source, target) not in REL_ENDPOINTS[rel]:
        raise QueryBuildError(f'{rel.value} does not connect {source.value} to {target.value}')
    return Statement(f'MATCH (a:{a_kind.value} {{id: {escape_literal(from_id)}}}), '
                     f'(b:{b_kind.value} {{id: {escape_literal(to_id)}}}) '
                     f'MERGE (a){_arrow(rel, direction)}(b)')


def update_task_status(task_id: str, status) -> Statement:
    try:
        status = TaskStatus(status)
    except ValueError:
        raise QueryBuildError(f"Unknown task status '{status}'")
    return Statement(f'MATCH (t:Task {{id: {escape_literal(task_id)}}}) '
                     f'SET t.status = {escape_literal(status.value)}')


def delete_conversation(conversation_id: str) -> Tuple[Statement, Statement]:
    """Messages go first so none outlive their conversation."""
    conv = escape_literal(conversation_id)
    return (Statement(f'MATCH (m:Message)-[:PART_OF]->(c:Conversation {{id: {conv}}}) DETACH DELETE m'),
            Statement(f'MATCH (c:Conversation {{id: {conv}}}) DETACH DELETE c'))


# Reads

def find_entity_by_key(kind, key: str) -> Statement:
    kind = _entity_kind(kind)
    return Statement(f'MATCH (e:{kind.value}) WHERE e.canonical = {escape_literal(key)} '
                     f'RETURN e.id AS id ORDER BY e.id LIMIT 1', ('id',))


def conversation_exists(conversation_id: str) -> Statement:
    return Statement(f'MATCH (c:Conversation {{id: {escape_literal(conversation_id)}}}) '
                     f'RETURN c.id AS id', ('id',))


def last_message_timestamp(conversation_id: str) -> Statement:
    return Statement(f'MATCH (m:Message)-[:PART_OF]->(c:Conversation {{id: {escape_literal(conversation_id)}}}) '
                     f'RETURN m.timestamp AS timestamp ORDER BY m.timestamp DESC, m.id DESC LIMIT 1', ('timestamp',))


def messages_mentioning(kind, key: str, limit: int) -> Statement:
    """Messages mentioning an entity, newest first."""
    kind = _entity_kind(kind)
    limit = _positive_int(limit, 'limit')
    return Statement(f'MATCH (e:{kind.value})-[:MENTIONED_IN]->(m:Message)-[:PART_OF]->(c:Conversation) '
                     f'WHERE e.canonical = {escape_literal(key)} '
                     f'RETURN m.id AS id, m.role AS role, m.content AS content, m.timestamp AS timestamp, '
                     f'c.id AS conversation_id '
                     f'ORDER BY m.timestamp DESC, m.id DESC LIMIT {limit}', MESSAGE_COLUMNS + ('conversation_id',))


def recent_messages(conversation_id: str, limit: int) -> Statement:
    """Last messages of a conversation, newest first."""
    limit = _positive_int(limit, 'limit')
    return Statement(f'MATCH (m:Message)-[:PART_OF]->(c:Conversation {{id: {escape_literal(conversation_id)}}}) '
                     f'RETURN m.id AS id, m.role AS role, m.content AS content, m.timestamp AS timestamp '
                     f'ORDER BY m.timestamp DESC, m.id DESC LIMIT {limit}', MESSAGE_COLUMNS)


def co_mentioned_entities(kind, key: str, other_kind, limit: int) -> Statement:
    """Entities of other_kind sharing at least one message with the given entity."""
    kind = _entity_kind(kind)
    other_kind = _entity_kind(other_kind)
    limit = _positive_int(limit, 'limit')
    other_field = name_field(other_kind)
    return Statement(f'MATCH (e:{kind.value})-[:MENTIONED_IN]->(m:Message)<-[:MENTIONED_IN]-(o:{other_kind.value}) '
                     f'WHERE e.canonical = {escape_literal(key)} AND o.id <> e.id '
                     f'RETURN o.id AS id, o.{other_field} AS name, count(DISTINCT m) AS shared '
                     f'ORDER BY shared DESC, id ASC LIMIT {limit}', ('id', 'name', 'shared'))


def traverse(kind, key: str, rel, target_kind, max_hops: int, direction: str = 'out') -> Statement:
    """Nodes reachable within max_hops edges of one relationship kind."""
    kind = _entity_kind(kind)
    target_kind = _entity_kind(target_kind)
    rel = _rel(rel)
    max_hops = _positive_int(max_hops, 'max_hops')
    target_field = name_field(target_kind)
    pattern = _arrow(rel, direction, hops=f'*1..{max_hops}', var='r')
    return Statement(f'MATCH (s:{kind.value}){pattern}(t:{target_kind.value}) '
                     f'WHERE s.canonical = {escape_literal(key)} AND t.id <> s.id '
                     f'RETURN t.id AS id, t.{target_field} AS name, min(length(r)) AS hops '
                     f'ORDER BY hops ASC, id ASC', ('id', 'name', 'hops'))


def latest_node_id(kind) -> Statement:
    """Highest identifier stored for a node kind."""
    kind = _kind(kind)
    return Statement(f'MATCH (n:{kind.value}) RETURN n.id AS id ORDER BY n.id DESC LIMIT 1', ('id',))


def count_nodes(kind) -> Statement:
    kind = _kind(kind)
    return Statement(f'MATCH (n:{kind.value}) RETURN count(n) AS total', ('total',))


def count_mentions(kind, key: str) -> Statement:
    kind = _entity_kind(kind)
    return Statement(f'MATCH (e:{kind.value})-[r:MENTIONED_IN]->(:Message) WHERE e.canonical = {escape_literal(key)} '
                     f'RETURN count(r) AS total', ('total',))


def health_probe() -> Statement:
    return Statement('RETURN 1 AS ok', ('ok',))

