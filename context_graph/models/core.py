"""
Core data models for the context graph.

Nodes are plain dataclasses validated on construction. Entity nodes (Person,
Topic, Task, Document) are shared across conversations and identified by
their canonical key; Conversation and Message nodes belong to a single
conversation.
"""

import os
import threading
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class ValidationError(ValueError):
    """Raised when a node or relationship value violates its schema."""
    pass


class NodeKind(str, Enum):
    CONVERSATION = 'Conversation'
    MESSAGE = 'Message'
    PERSON = 'Person'
    TOPIC = 'Topic'
    TASK = 'Task'
    DOCUMENT = 'Document'


ENTITY_KINDS = (NodeKind.PERSON, NodeKind.TOPIC, NodeKind.TASK, NodeKind.DOCUMENT)


class RelKind(str, Enum):
    PART_OF = 'PART_OF'
    MENTIONED_IN = 'MENTIONED_IN'
    RELATES_TO = 'RELATES_TO'
    KNOWS = 'KNOWS'
    WORKS_ON = 'WORKS_ON'
    DEPENDS_ON = 'DEPENDS_ON'


# Allowed (from, to) endpoint kinds per relationship
REL_ENDPOINTS: Dict[RelKind, Tuple[Tuple[NodeKind, NodeKind], ...]] = {
    RelKind.PART_OF: ((NodeKind.MESSAGE, NodeKind.CONVERSATION),),
    RelKind.MENTIONED_IN: tuple((kind, NodeKind.MESSAGE) for kind in ENTITY_KINDS),
    RelKind.RELATES_TO: tuple((a, b) for a in ENTITY_KINDS for b in ENTITY_KINDS),
    RelKind.KNOWS: ((NodeKind.PERSON, NodeKind.PERSON),),
    RelKind.WORKS_ON: ((NodeKind.PERSON, NodeKind.TOPIC), (NodeKind.PERSON, NodeKind.TASK)),
    RelKind.DEPENDS_ON: ((NodeKind.TASK, NodeKind.TASK),),
}

# Property holding the display text of each entity kind
_NAME_FIELDS = {
    NodeKind.PERSON: 'name',
    NodeKind.TOPIC: 'name',
    NodeKind.TASK: 'description',
    NodeKind.DOCUMENT: 'reference',
}


class Role(str, Enum):
    USER = 'user'
    ASSISTANT = 'assistant'


class TaskStatus(str, Enum):
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'


_id_lock = threading.Lock()
_last_clock = 0


def new_id() -> str:
    """Allocate a node identifier.

    The leading nanosecond clock is strictly increasing within the process so
    identifiers sort in creation order; the random suffix keeps them unique
    across processes.
    """
    global _last_clock
    with _id_lock:
        _last_clock = max(time.time_ns(), _last_clock + 1)
        clock = _last_clock
    return f'{clock:020d}-{os.urandom(6).hex()}'


def advance_clock(node_id: str) -> None:
    """Keep future identifiers above an identifier already persisted by an earlier process."""
    global _last_clock
    clock = int(node_id.split('-', 1)[0])
    with _id_lock:
        _last_clock = max(_last_clock, clock)


def name_field(kind: NodeKind) -> str:
    """Return the property that holds an entity kind's display text."""
    try:
        return _NAME_FIELDS[NodeKind(kind)]
    except (KeyError, ValueError):
        raise ValidationError(f"'{kind}' is not an entity kind")


def _require(value: Optional[str], field_name: str) -> None:
    if value is None or not str(value).strip():
        raise ValidationError(f'{field_name} must not be empty')


def _enum_value(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ', '.join(member.value for member in enum_cls)
        raise ValidationError(f"{field_name} '{value}' is not one of: {allowed}")


@dataclass
class Conversation:
    """A conversation session with the agent."""
    id: str
    started_at: str
    title: Optional[str] = None

    def __post_init__(self):
        _require(self.id, 'Conversation.id')
        _require(self.started_at, 'Conversation.started_at')


@dataclass(frozen=True)
class Message:
    """A single message in a conversation. Immutable once created."""
    id: str
    role: Role
    content: str
    timestamp: str

    def __post_init__(self):
        _require(self.id, 'Message.id')
        _require(self.content, 'Message.content')
        _require(self.timestamp, 'Message.timestamp')
        object.__setattr__(self, 'role', _enum_value(Role, self.role, 'Message.role'))


@dataclass
class Person:
    """A person mentioned in conversations."""
    name: str
    description: Optional[str] = None

    def __post_init__(self):
        _require(self.name, 'Person.name')


@dataclass
class Topic:
    """A topic, concept or technology discussed."""
    name: str
    category: Optional[str] = None

    def __post_init__(self):
        _require(self.name, 'Topic.name')


@dataclass
class Task:
    """An action item or work task."""
    description: str
    created_at: str
    status: TaskStatus = TaskStatus.PENDING

    def __post_init__(self):
        _require(self.description, 'Task.description')
        _require(self.created_at, 'Task.created_at')
        self.status = _enum_value(TaskStatus, self.status, 'Task.status')


@dataclass
class Document:
    """A file, link or resource referenced in a conversation."""
    reference: str
    kind: Optional[str] = None

    def __post_init__(self):
        _require(self.reference, 'Document.reference')


@dataclass(frozen=True)
class Relationship:
    """A directed, typed edge between two nodes."""
    type: RelKind
    from_kind: NodeKind
    from_id: str
    to_kind: NodeKind
    to_id: str

    def __post_init__(self):
        rel = _enum_value(RelKind, self.type, 'Relationship.type')
        from_kind = _enum_value(NodeKind, self.from_kind, 'Relationship.from_kind')
        to_kind = _enum_value(NodeKind, self.to_kind, 'Relationship.to_kind')
        _require(self.from_id, 'Relationship.from_id')
        _require(self.to_id, 'Relationship.to_id')
        if (from_kind, to_kind) not in REL_ENDPOINTS[rel]:
            raise ValidationError(f'{rel.value} does not connect {from_kind.value} to {to_kind.value}')
        object.__setattr__(self, 'type', rel)
        object.__setattr__(self, 'from_kind', from_kind)
        object.__setattr__(self, 'to_kind', to_kind)


def make_entity(kind: NodeKind, text: str, created_at: Optional[str] = None):
    """Build the typed entity value for a mention of the given kind."""
    kind = _enum_value(NodeKind, kind, 'kind')
    if kind == NodeKind.PERSON:
        return Person(name=text)
    if kind == NodeKind.TOPIC:
        return Topic(name=text)
    if kind == NodeKind.TASK:
        return Task(description=text, created_at=created_at or '')
    if kind == NodeKind.DOCUMENT:
        return Document(reference=text)
    raise ValidationError(f"'{kind.value}' is not an entity kind")


@dataclass
class ExtractedEntities:
    """Entities extracted from one conversation turn."""
    people: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)
    tasks: List[str] = field(default_factory=list)
    documents: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.people or self.topics or self.tasks or self.documents)

    def mentions(self, kind: NodeKind) -> List[str]:
        return {
            NodeKind.PERSON: self.people,
            NodeKind.TOPIC: self.topics,
            NodeKind.TASK: self.tasks,
            NodeKind.DOCUMENT: self.documents,
        }[NodeKind(kind)]

    def to_dict(self) -> Dict[str, List[str]]:
        return asdict(self)


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one mention against the graph."""
    mention: str
    kind: NodeKind
    key: str
    node_id: str
    is_new: bool


@dataclass(frozen=True)
class MessageRecord:
    """A message row read back from the graph."""
    id: str
    role: str
    content: str
    timestamp: str
    conversation_id: Optional[str] = None


@dataclass(frozen=True)
class EntityRecord:
    """An entity row read back from the graph, with a ranking score."""
    id: str
    name: str
    kind: Optional[NodeKind] = None
    shared: Optional[int] = None
    hops: Optional[int] = None
