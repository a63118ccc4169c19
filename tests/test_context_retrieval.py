"""Tests for retrieval strategies over a populated graph."""

from context_graph.models.core import ExtractedEntities, NodeKind, RelKind, Role
from context_graph.services.context_retrieval import NO_CONTEXT, ContextRetriever
from context_graph.services.entity_resolution import EntityResolver


def _say(graph_store, session, resolver, conversation_id, text, people=(), topics=()):
    resolutions = resolver.resolve_entities(ExtractedEntities(people=list(people), topics=list(topics)))
    message = graph_store.add_message(session, conversation_id, Role.USER, text, resolutions)
    resolver.remember(resolutions)
    return message


def test_entity_context_newest_first(graph_store, session, conversation_id, retrieval_config):
    resolver = EntityResolver(graph_store, session)
    first = _say(graph_store, session, resolver, conversation_id, 'Alice started', people=['Alice'])
    _say(graph_store, session, resolver, conversation_id, 'Unrelated chatter')
    second = _say(graph_store, session, resolver, conversation_id, 'alice finished', people=['alice'])

    messages = ContextRetriever(session, retrieval_config).entity_context(NodeKind.PERSON, ' ALICE ')

    assert [m.id for m in messages] == [second.id, first.id]
    assert messages[0].role == 'user'
    assert messages[0].conversation_id == conversation_id


def test_entity_context_honours_limit(graph_store, session, conversation_id, retrieval_config):
    resolver = EntityResolver(graph_store, session)
    for n in range(4):
        _say(graph_store, session, resolver, conversation_id, f'GraphQL note {n}', topics=['GraphQL'])

    messages = ContextRetriever(session, retrieval_config).entity_context(NodeKind.TOPIC, 'graphql', limit=2)
    assert [m.content for m in messages] == ['GraphQL note 3', 'GraphQL note 2']


def test_recent_history_is_chronological(graph_store, session, conversation_id, retrieval_config):
    for text in ('one', 'two', 'three'):
        graph_store.add_message(session, conversation_id, Role.USER, text)

    retriever = ContextRetriever(session, retrieval_config)
    assert [m.content for m in retriever.recent_history(conversation_id)] == ['one', 'two', 'three']
    assert [m.content for m in retriever.recent_history(conversation_id, limit=2)] == ['two', 'three']


def test_co_mentioned_ranks_by_shared_messages(graph_store, session, conversation_id, retrieval_config):
    resolver = EntityResolver(graph_store, session)
    _say(graph_store, session, resolver, conversation_id, 'Alice, Bob and GraphQL', people=['Alice', 'Bob'],
         topics=['GraphQL'])
    _say(graph_store, session, resolver, conversation_id, 'Alice on GraphQL again', people=['Alice'],
         topics=['GraphQL'])

    records = ContextRetriever(session, retrieval_config).co_mentioned(NodeKind.PERSON, 'alice')

    assert [(r.name, r.kind, r.shared) for r in records] == [('GraphQL', NodeKind.TOPIC, 2),
                                                             ('Bob', NodeKind.PERSON, 1)]


def test_related_is_bounded_by_hops(orchestrator):
    for source, target in (('A', 'B'), ('B', 'C'), ('C', 'D')):
        orchestrator.relate(NodeKind.PERSON, source, RelKind.KNOWS, NodeKind.PERSON, target)
    retriever = orchestrator.retriever

    within_two = retriever.related(NodeKind.PERSON, 'a', RelKind.KNOWS, max_hops=2)
    assert [(r.name, r.hops) for r in within_two] == [('B', 1), ('C', 2)]

    within_three = retriever.related(NodeKind.PERSON, 'a', RelKind.KNOWS, max_hops=3)
    assert [(r.name, r.hops) for r in within_three] == [('B', 1), ('C', 2), ('D', 3)]

    upstream = retriever.related(NodeKind.PERSON, 'D', RelKind.KNOWS, max_hops=3, direction='in')
    assert [r.name for r in upstream] == ['C', 'B', 'A']


def test_related_across_kinds(orchestrator):
    orchestrator.relate(NodeKind.PERSON, 'Alice', RelKind.WORKS_ON, NodeKind.TOPIC, 'GraphQL')

    records = orchestrator.retriever.related(NodeKind.PERSON, 'alice', RelKind.WORKS_ON, target_kind=NodeKind.TOPIC,
                                             max_hops=1)
    assert [(r.name, r.kind) for r in records] == [('GraphQL', NodeKind.TOPIC)]


def test_unknown_entities_yield_empty_results(session, conversation_id, retrieval_config):
    retriever = ContextRetriever(session, retrieval_config)

    assert retriever.entity_context(NodeKind.PERSON, 'nobody') == []
    assert retriever.co_mentioned(NodeKind.TOPIC, 'nothing') == []
    assert retriever.related(NodeKind.PERSON, 'nobody') == []
    assert retriever.recent_history(conversation_id) == []
    assert retriever.build_context(conversation_id, ExtractedEntities()) == NO_CONTEXT


def test_build_context_sections(graph_store, session, conversation_id, retrieval_config):
    resolver = EntityResolver(graph_store, session)
    earlier = _say(graph_store, session, resolver, conversation_id, 'Alice likes GraphQL', people=['Alice'],
                   topics=['GraphQL'])
    current = _say(graph_store, session, resolver, conversation_id, 'What about Alice?', people=['Alice'])

    context = ContextRetriever(session, retrieval_config).build_context(
        conversation_id, ExtractedEntities(people=['Alice']), exclude_message_ids={current.id})

    assert 'People mentioned: Alice' in context
    assert "Earlier messages about 'Alice':" in context
    assert f'[{earlier.timestamp}] user: Alice likes GraphQL' in context
    assert "Related to 'Alice': GraphQL" in context
    assert 'Recent conversation:' in context
    assert 'What about Alice?' not in context
