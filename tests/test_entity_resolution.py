"""Tests for mention canonicalization and resolution."""

import pytest

from context_graph.models.core import ExtractedEntities, NodeKind, Role
from context_graph.services.entity_resolution import EntityResolver, canonical_key
from context_graph.utils.graph_client import PersistenceError
from context_graph.utils.query_builder import Statement


@pytest.mark.parametrize('text, key', [
    ('Alice', 'alice'),
    ('  alice ', 'alice'),
    ('ALICE', 'alice'),
    ('GraphQL   Migration', 'graphql migration'),
    ('tab\tseparated\nname', 'tab separated name'),
])
def test_canonical_key(text, key):
    assert canonical_key(text) == key


def _store_turn(graph_store, session, resolver, conversation_id, text, mentions):
    resolutions = resolver.resolve(NodeKind.PERSON, mentions)
    graph_store.add_message(session, conversation_id, Role.USER, text, resolutions)
    resolver.remember(resolutions)
    return resolutions


def test_spelling_variants_resolve_to_one_node(graph_store, session, conversation_id):
    resolver = EntityResolver(graph_store, session)

    first = _store_turn(graph_store, session, resolver, conversation_id, 'Alice joined', ['Alice'])
    second = _store_turn(graph_store, session, resolver, conversation_id, 'alice again', [' alice '])
    third = _store_turn(graph_store, session, resolver, conversation_id, 'ALICE!', ['ALICE'])

    assert first[0].is_new
    assert not second[0].is_new and not third[0].is_new
    assert first[0].node_id == second[0].node_id == third[0].node_id
    assert graph_store.count_nodes(session, NodeKind.PERSON) == 1
    assert graph_store.count_mentions(session, NodeKind.PERSON, 'alice') == 3


def test_fresh_resolver_finds_committed_nodes(graph_store, session, conversation_id):
    first = _store_turn(graph_store, session, EntityResolver(graph_store, session), conversation_id, 'Bob', ['Bob'])

    again = EntityResolver(graph_store, session).resolve(NodeKind.PERSON, ['bob'])
    assert again[0].node_id == first[0].node_id
    assert not again[0].is_new


def test_equal_keys_in_one_call_share_a_new_node(graph_store, session):
    resolutions = EntityResolver(graph_store, session).resolve(NodeKind.TOPIC, ['GraphQL', 'graphql', '', 'Kuzu'])

    assert [r.mention for r in resolutions] == ['GraphQL', 'graphql', 'Kuzu']
    assert resolutions[0].node_id == resolutions[1].node_id
    assert [r.is_new for r in resolutions] == [True, False, True]


def test_kinds_do_not_share_nodes(graph_store, session):
    resolver = EntityResolver(graph_store, session)
    resolutions = resolver.resolve_entities(ExtractedEntities(people=['Mercury'], topics=['Mercury']))

    assert [r.kind for r in resolutions] == [NodeKind.PERSON, NodeKind.TOPIC]
    assert resolutions[0].node_id != resolutions[1].node_id


def test_rolled_back_group_leaves_no_index_entry(graph_store, session, conversation_id, monkeypatch):
    resolver = EntityResolver(graph_store, session)
    resolutions = resolver.resolve(NodeKind.PERSON, ['Carol'])
    original_execute = session.execute

    def failing_execute(statement):
        text = statement.text if isinstance(statement, Statement) else statement
        if text == 'COMMIT':
            raise PersistenceError('commit refused')
        return original_execute(statement)

    monkeypatch.setattr(session, 'execute', failing_execute)
    with pytest.raises(PersistenceError):
        graph_store.add_message(session, conversation_id, Role.USER, 'Carol says hi', resolutions)
    monkeypatch.undo()

    retry = resolver.resolve(NodeKind.PERSON, ['Carol'])
    assert retry[0].is_new
    assert graph_store.count_nodes(session, NodeKind.PERSON) == 0
