"""
Kuzu graph store client with explicit sessions and atomic write groups.
"""

import contextlib
from functools import wraps
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Union

import kuzu

from ..models.core import (Conversation, Message, NodeKind, RelKind, Resolution, Role, TaskStatus, ValidationError,
                           advance_clock, make_entity, new_id)
from . import query_builder as qb
from .config import GraphStoreConfig
from .logging_config import get_logger
from .query_builder import QueryBuildError, Statement
from .timestamp_utils import not_before, to_iso_str

logger = get_logger(__name__)


class PersistenceError(Exception):
    """Custom exception for graph store execution errors."""
    pass


class ResultShapeError(Exception):
    """Raised when a result does not carry the columns a read expects."""
    pass


def translate_engine_errors(func):
    """Decorator turning engine failures into PersistenceError."""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except (PersistenceError, ResultShapeError, QueryBuildError):
            raise
        except Exception as e:
            logger.error(f'Error in {func.__name__}: {e}')
            raise PersistenceError(f'Failed to {func.__name__}: {e}') from e

    return wrapper


class GraphSession:
    """A single connection to the graph store.

    Owned by whoever opened it through GraphStore and released exactly once.
    """

    def __init__(self, connection: 'kuzu.Connection', user: str):
        self._connection = connection
        self.user = user
        self._in_transaction = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @translate_engine_errors
    def execute(self, statement: Union[Statement, str]):
        """Send one statement to the engine and return its raw result."""
        if self._closed:
            raise PersistenceError('Session is closed')
        text = statement.text if isinstance(statement, Statement) else statement
        logger.debug(f'Executing: {text}')
        return self._connection.execute(text)

    @translate_engine_errors
    def read(self, statement: Statement, row_type=None) -> List:
        """Run a read and map its rows onto the statement's expected columns.

        Args:
            statement: Read statement from the query builder
            row_type: Optional callable building a typed row from the column values

        Returns:
            Ordered list of dicts, or of row_type instances when given

        Raises:
            ResultShapeError: If an expected column is missing from the result
        """
        result = self.execute(statement)
        names = list(result.get_column_names())
        missing = [column for column in statement.columns if column not in names]
        if missing:
            raise ResultShapeError(f'Result columns {names} lack expected {missing}')

        positions = {column: names.index(column) for column in statement.columns}
        rows = []
        while result.has_next():
            values = result.get_next()
            row = {column: values[index] for column, index in positions.items()}
            rows.append(row_type(**row) if row_type else row)
        return rows

    @contextlib.contextmanager
    def transaction(self) -> Iterator['GraphSession']:
        """Run the enclosed statements as one write group.

        Raises:
            PersistenceError: If any statement fails; nothing from the group is kept
        """
        if self._in_transaction:
            raise PersistenceError('Write groups cannot be nested')
        self.execute('BEGIN TRANSACTION')
        self._in_transaction = True
        try:
            yield self
        except (PersistenceError, QueryBuildError, ResultShapeError, ValidationError):
            self._rollback()
            raise
        except Exception as e:
            self._rollback()
            raise PersistenceError(f'Write group failed: {e}') from e
        except BaseException:
            self._rollback()
            raise
        else:
            try:
                self.execute('COMMIT')
            except PersistenceError:
                self._rollback()
                raise
        finally:
            self._in_transaction = False

    def write_group(self, statements: Sequence[Statement]) -> None:
        with self.transaction():
            for statement in statements:
                self.execute(statement)

    def _rollback(self) -> None:
        try:
            self._connection.execute('ROLLBACK')
            logger.debug('Write group rolled back')
        except Exception as e:
            # The engine may already have aborted the transaction on its own
            logger.debug(f'Rollback after failure reported: {e}')

    def close(self) -> None:
        """Release the connection. Further calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        self._connection.close()
        logger.info(f'Released graph session for {self.user}')

    def __enter__(self) -> 'GraphSession':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class GraphStore:
    """Embedded Kuzu graph store holding the context graph."""

    def __init__(self, config: GraphStoreConfig):
        """
        Open or create the graph database and its schema.

        Args:
            config: GraphStoreConfig instance with path and credentials
        """
        self.config = config
        self._database = None
        self._connect()

        logger.info(f'Opened graph store at {config.path}')

    def _connect(self):
        path = Path(self.config.path)
        if not path.exists():
            logger.info(f'Initializing new graph store at {path}...')
            path.parent.mkdir(parents=True, exist_ok=True)
        self._database = kuzu.Database(str(path))

        with self.session() as session:
            for ddl in qb.schema_statements():
                session.execute(ddl)
            # Identifiers must keep sorting after those written by earlier processes
            for kind in NodeKind:
                rows = session.read(qb.latest_node_id(kind))
                if rows:
                    advance_clock(rows[0]['id'])

    def open_session(self) -> GraphSession:
        """Acquire a session with the configured credentials.

        Kuzu has no user model; credentials are carried on the session as given.
        """
        if self._database is None:
            raise PersistenceError('Graph store is closed')
        connection = kuzu.Connection(self._database)
        logger.debug(f'Opened graph session for {self.config.user}')
        return GraphSession(connection, self.config.user)

    @contextlib.contextmanager
    def session(self) -> Iterator[GraphSession]:
        session = self.open_session()
        try:
            yield session
        finally:
            session.close()

    def close(self) -> None:
        """Close the graph database."""
        if self._database is not None:
            self._database.close()
            self._database = None
            logger.info('Closed graph store')

    def start_conversation(self, session: GraphSession, title: Optional[str] = None) -> Conversation:
        """
        Create a conversation node.

        Args:
            session: Open graph session
            title: Optional conversation title

        Returns:
            The created Conversation
        """
        conversation = Conversation(id=new_id(), started_at=to_iso_str(), title=title or 'New Conversation')
        session.write_group([qb.create_conversation(conversation)])
        logger.debug(f'Created conversation: {conversation.id}')
        return conversation

    def add_message(self, session: GraphSession, conversation_id: str, role: Union[Role, str], content: str,
                    resolutions: Sequence[Resolution] = ()) -> Message:
        """
        Store a message with its PART_OF edge, new entity nodes and mention edges as one write group.

        Args:
            session: Open graph session
            conversation_id: Conversation the message belongs to
            role: 'user' or 'assistant'
            content: Message text
            resolutions: Resolved mentions to link to the message

        Returns:
            The stored Message

        Raises:
            PersistenceError: If the group failed; the graph is left unchanged
            QueryBuildError: If a value cannot be embedded safely; nothing is sent
        """
        if not session.read(qb.conversation_exists(conversation_id)):
            raise PersistenceError(f'Conversation {conversation_id} does not exist')
        last = session.read(qb.last_message_timestamp(conversation_id))
        timestamp = not_before(to_iso_str(), last[0]['timestamp'] if last else None)
        message = Message(id=new_id(), role=role, content=content, timestamp=timestamp)

        # Build the whole group before anything is written
        statements = [qb.create_message(message), qb.link_message_to_conversation(message.id, conversation_id)]
        statements.extend(self._entity_statements(resolutions, timestamp))
        linked = set()
        for resolution in resolutions:
            if resolution.node_id in linked:
                continue
            linked.add(resolution.node_id)
            statements.append(qb.create_mention_edge(resolution.kind, resolution.node_id, message.id))

        session.write_group(statements)

        logger.debug(f'Stored {message.role.value} message {message.id} with {len(linked)} mentions')
        return message

    def add_relationship(self,
                         session: GraphSession,
                         rel: Union[RelKind, str],
                         source: Resolution,
                         target: Resolution,
                         direction: str = 'out') -> None:
        """
        Create a typed edge between two resolved entities, inserting new ones first.

        Args:
            session: Open graph session
            rel: Relationship kind
            source: Resolution of the first entity
            target: Resolution of the second entity
            direction: 'out' stores source->target, 'in' stores target->source
        """
        statements = list(self._entity_statements([source, target], to_iso_str()))
        statements.append(
            qb.create_relationship_edge(rel, source.kind, source.node_id, target.kind, target.node_id, direction))
        session.write_group(statements)
        logger.debug(f'Linked {source.mention} -{RelKind(rel).value}-> {target.mention}')

    def update_task_status(self, session: GraphSession, task_id: str, status: Union[TaskStatus, str]) -> None:
        session.write_group([qb.update_task_status(task_id, status)])

    def delete_conversation(self, session: GraphSession, conversation_id: str) -> None:
        """Delete a conversation together with the messages it owns."""
        session.write_group(qb.delete_conversation(conversation_id))
        logger.info(f'Deleted conversation {conversation_id}')

    def find_entity_id(self, session: GraphSession, kind: NodeKind, key: str) -> Optional[str]:
        rows = session.read(qb.find_entity_by_key(kind, key))
        return rows[0]['id'] if rows else None

    def count_nodes(self, session: GraphSession, kind: NodeKind) -> int:
        return int(session.read(qb.count_nodes(kind))[0]['total'])

    def count_mentions(self, session: GraphSession, kind: NodeKind, key: str) -> int:
        return int(session.read(qb.count_mentions(kind, key))[0]['total'])

    def health_check(self, session: GraphSession) -> bool:
        """
        Perform a health check on the graph store.

        Returns:
            True if the store answers a trivial query
        """
        rows = session.read(qb.health_probe())
        return bool(rows) and rows[0]['ok'] == 1

    @staticmethod
    def _entity_statements(resolutions: Sequence[Resolution], created_at: str) -> List[Statement]:
        statements = []
        created: Dict[str, bool] = {}
        for resolution in resolutions:
            if not resolution.is_new or resolution.node_id in created:
                continue
            created[resolution.node_id] = True
            entity = make_entity(resolution.kind, resolution.mention, created_at=created_at)
            statements.append(qb.create_entity(resolution.kind, resolution.node_id, resolution.key, entity))
        return statements
