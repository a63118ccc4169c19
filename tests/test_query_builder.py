"""Tests for statement building and literal escaping."""

import pytest

from context_graph.models.core import Message, NodeKind, RelKind
from context_graph.utils import query_builder as qb
from context_graph.utils.query_builder import QueryBuildError, Statement, escape_literal


def test_escape_literal_quotes_and_backslashes():
    assert escape_literal("O'Brien") == "'O\\'Brien'"
    assert escape_literal('C:\\temp\\') == "'C:\\\\temp\\\\'"
    assert escape_literal('plain') == "'plain'"


def test_escape_literal_passes_line_breaks_and_tabs():
    assert escape_literal('a\nb\tc\r') == "'a\nb\tc\r'"


@pytest.mark.parametrize('value', ['a\x00b', 'bell\x07', 'esc\x1b[0m', 'del\x7f'])
def test_escape_literal_rejects_control_characters(value):
    with pytest.raises(QueryBuildError):
        escape_literal(value)


def test_escape_literal_rejects_none():
    with pytest.raises(QueryBuildError):
        escape_literal(None)


def test_builders_are_deterministic():
    message = Message(id='m1', role='user', content="it's fine", timestamp='2026-01-01T00:00:00.000000+00:00')
    assert qb.create_message(message) == qb.create_message(message)
    assert qb.traverse(NodeKind.PERSON, 'alice', RelKind.KNOWS, NodeKind.PERSON, 2) == \
        qb.traverse(NodeKind.PERSON, 'alice', RelKind.KNOWS, NodeKind.PERSON, 2)
    assert list(qb.schema_statements()) == list(qb.schema_statements())


def test_read_statements_declare_their_columns():
    statement = qb.messages_mentioning(NodeKind.TOPIC, 'graphql', 5)
    assert statement.columns == ('id', 'role', 'content', 'timestamp', 'conversation_id')
    assert 'LIMIT 5' in statement.text
    assert qb.create_mention_edge(NodeKind.TOPIC, 't1', 'm1').columns == ()


def test_traverse_embeds_validated_hop_limit():
    statement = qb.traverse(NodeKind.PERSON, 'alice', RelKind.KNOWS, NodeKind.PERSON, 3, direction='both')
    assert '-[r:KNOWS*1..3]-' in statement.text
    assert statement.columns == ('id', 'name', 'hops')


@pytest.mark.parametrize('hops', [0, -1, True, '2', 1.5])
def test_traverse_rejects_invalid_hop_limits(hops):
    with pytest.raises(QueryBuildError):
        qb.traverse(NodeKind.PERSON, 'alice', RelKind.KNOWS, NodeKind.PERSON, hops)


def test_unknown_kinds_and_directions_are_rejected():
    with pytest.raises(QueryBuildError):
        qb.find_entity_by_key('Robot', 'r2')
    with pytest.raises(QueryBuildError):
        qb.find_entity_by_key(NodeKind.MESSAGE, 'm1')
    with pytest.raises(QueryBuildError):
        qb.traverse(NodeKind.PERSON, 'alice', 'LIKES', NodeKind.PERSON, 2)
    with pytest.raises(QueryBuildError):
        qb.traverse(NodeKind.PERSON, 'alice', RelKind.KNOWS, NodeKind.PERSON, 2, direction='sideways')


def test_relationship_edge_checks_endpoints_after_direction():
    statement = qb.create_relationship_edge(RelKind.WORKS_ON, NodeKind.TOPIC, 't1', NodeKind.PERSON, 'p1',
                                            direction='in')
    assert '<-[:WORKS_ON]-' in statement.text

    with pytest.raises(QueryBuildError):
        qb.create_relationship_edge(RelKind.WORKS_ON, NodeKind.TOPIC, 't1', NodeKind.PERSON, 'p1')
    with pytest.raises(QueryBuildError):
        qb.create_relationship_edge(RelKind.KNOWS, NodeKind.PERSON, 'p1', NodeKind.PERSON, 'p2', direction='both')


def test_update_task_status_validates_status():
    assert "SET t.status = 'completed'" in qb.update_task_status('t1', 'completed').text
    with pytest.raises(QueryBuildError):
        qb.update_task_status('t1', 'abandoned')


def test_delete_conversation_removes_messages_first():
    messages, conversation = qb.delete_conversation('c1')
    assert isinstance(messages, Statement)
    assert 'DETACH DELETE m' in messages.text
    assert 'DETACH DELETE c' in conversation.text


def test_schema_covers_every_relationship_pair():
    ddl = list(qb.schema_statements())
    works_on = next(text for text in ddl if 'REL TABLE IF NOT EXISTS WORKS_ON' in text)
    assert 'FROM Person TO Topic' in works_on
    assert 'FROM Person TO Task' in works_on
    assert any('CREATE NODE TABLE IF NOT EXISTS Task(' in text and 'canonical STRING' in text for text in ddl)


def test_has_unsafe_control_matches_escape_literal():
    for text in ('a\x00b', 'esc\x1b[0m', 'del\x7f'):
        assert qb.has_unsafe_control(text)
    for text in ('plain', 'two\nlines', "quote's \\ tab\t"):
        assert not qb.has_unsafe_control(text)
        escape_literal(text)


def test_latest_node_id_orders_descending():
    statement = qb.latest_node_id(NodeKind.MESSAGE)
    assert statement.text == 'MATCH (n:Message) RETURN n.id AS id ORDER BY n.id DESC LIMIT 1'
    assert statement.columns == ('id',)
