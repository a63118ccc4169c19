"""
Entity Resolution Service mapping mentions onto canonical graph nodes.
"""

import re
from typing import Dict, Iterable, List, Tuple

from ..models.core import ENTITY_KINDS, ExtractedEntities, NodeKind, Resolution, new_id
from ..utils.graph_client import GraphSession, GraphStore
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

_WHITESPACE = re.compile(r'\s+')


def canonical_key(text: str) -> str:
    """Normalize a mention: lowercase, trimmed, internal whitespace collapsed to single spaces."""
    return _WHITESPACE.sub(' ', text.strip().lower())


class EntityResolver:
    """Resolve extracted mentions to existing node ids or fresh ones.

    Lookup order is the in-process index, then the graph store, then a new id.
    Only exact canonical keys match; similar-looking keys stay separate nodes.
    """

    def __init__(self, graph_store: GraphStore, session: GraphSession):
        self.graph_store = graph_store
        self.session = session
        self._index: Dict[Tuple[NodeKind, str], str] = {}

    def resolve(self, kind: NodeKind, mentions: Iterable[str]) -> List[Resolution]:
        """
        Resolve the mentions of one entity kind.

        Args:
            kind: Entity kind of every mention
            mentions: Raw mention strings

        Returns:
            One Resolution per non-blank mention, in input order. Mentions sharing a
            canonical key share a node id, and only the first of them is marked new.
        """
        kind = NodeKind(kind)
        pending: Dict[str, str] = {}
        resolutions = []

        for mention in mentions:
            key = canonical_key(mention)
            if not key:
                continue

            node_id = self._index.get((kind, key))
            if node_id is None and key not in pending:
                node_id = self.graph_store.find_entity_id(self.session, kind, key)
                if node_id is not None:
                    self._index[(kind, key)] = node_id

            if node_id is not None:
                resolutions.append(Resolution(mention=mention, kind=kind, key=key, node_id=node_id, is_new=False))
            elif key in pending:
                resolutions.append(Resolution(mention=mention, kind=kind, key=key, node_id=pending[key], is_new=False))
            else:
                pending[key] = new_id()
                resolutions.append(Resolution(mention=mention, kind=kind, key=key, node_id=pending[key], is_new=True))

        logger.debug(f'Resolved {len(resolutions)} {kind.value} mentions, {len(pending)} new')
        return resolutions

    def resolve_entities(self, entities: ExtractedEntities) -> List[Resolution]:
        resolutions = []
        for kind in ENTITY_KINDS:
            resolutions.extend(self.resolve(kind, entities.mentions(kind)))
        return resolutions

    def remember(self, resolutions: Iterable[Resolution]) -> None:
        """Index resolutions whose nodes are now committed to the graph."""
        for resolution in resolutions:
            self._index[(resolution.kind, resolution.key)] = resolution.node_id
