"""Graph operations.

The module-level functions are pure: they take a KnowledgeGraph and a request
and return a new graph (plus a result where there is one), leaving the input
untouched. KnowledgeGraphManager runs them against a project's stored graph:

    manager = KnowledgeGraphManager(GraphStore(base_dir))
    added = manager.create_entities("my-web-app", [Entity("Alice", "person")])
    sub = manager.search_nodes("my-web-app", "alice")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from kgmem.errors import EntityNotFound
from kgmem.models import AddedObservations, KnowledgeGraph

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from kgmem.models import Entity, ObservationAddition, ObservationDeletion, Relation
    from kgmem.store import GraphStore

logger = logging.getLogger("kgmem.operations")

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def create_entities(
    graph: KnowledgeGraph, entities: Iterable[Entity],
) -> tuple[KnowledgeGraph, list[Entity]]:
    """Append entities whose name is not taken yet. Returns (graph, added)."""
    new_graph = graph.copy()
    names = new_graph.entity_names()
    added: list[Entity] = []
    for entity in entities:
        if entity.name in names:
            continue
        # Collapse repeats inside one observations list as well
        entity = entity.copy()
        entity.observations = list(dict.fromkeys(entity.observations))
        names.add(entity.name)
        new_graph.entities.append(entity)
        added.append(entity)
    return new_graph, added


def create_relations(
    graph: KnowledgeGraph, relations: Iterable[Relation],
) -> tuple[KnowledgeGraph, list[Relation]]:
    """Append relations whose (from, to, relationType) triple is new."""
    new_graph = graph.copy()
    keys = {r.key for r in new_graph.relations}
    added: list[Relation] = []
    for relation in relations:
        if relation.key in keys:
            continue
        keys.add(relation.key)
        new_graph.relations.append(relation)
        added.append(relation)
    return new_graph, added


def add_observations(
    graph: KnowledgeGraph, additions: Iterable[ObservationAddition],
) -> tuple[KnowledgeGraph, list[AddedObservations]]:
    """Append unseen observation strings to existing entities.

    Raises EntityNotFound if any entityName is unknown; the input graph is
    never modified, so a failure leaves nothing half-applied.
    """
    new_graph = graph.copy()
    results: list[AddedObservations] = []
    for addition in additions:
        entity = new_graph.find_entity(addition.entity_name)
        if entity is None:
            raise EntityNotFound(addition.entity_name)
        seen = set(entity.observations)
        appended: list[str] = []
        for content in addition.contents:
            if content in seen:
                continue
            seen.add(content)
            entity.observations.append(content)
            appended.append(content)
        results.append(AddedObservations(addition.entity_name, appended))
    return new_graph, results


def delete_entities(graph: KnowledgeGraph, names: Iterable[str]) -> KnowledgeGraph:
    """Drop entities by name and every relation touching them."""
    doomed = set(names)
    return KnowledgeGraph(
        entities=[e.copy() for e in graph.entities if e.name not in doomed],
        relations=[
            r for r in graph.relations
            if r.source not in doomed and r.target not in doomed
        ],
    )


def delete_observations(
    graph: KnowledgeGraph, deletions: Iterable[ObservationDeletion],
) -> KnowledgeGraph:
    """Remove listed observation strings; unknown entities are ignored."""
    new_graph = graph.copy()
    for deletion in deletions:
        entity = new_graph.find_entity(deletion.entity_name)
        if entity is None:
            continue
        drop = set(deletion.observations)
        entity.observations = [o for o in entity.observations if o not in drop]
    return new_graph


def delete_relations(graph: KnowledgeGraph, relations: Iterable[Relation]) -> KnowledgeGraph:
    """Remove relations matching the given triples exactly."""
    doomed = {r.key for r in relations}
    new_graph = graph.copy()
    new_graph.relations = [r for r in new_graph.relations if r.key not in doomed]
    return new_graph


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def _subgraph(graph: KnowledgeGraph, keep: Callable[[Entity], bool]) -> KnowledgeGraph:
    entities = [e.copy() for e in graph.entities if keep(e)]
    names = {e.name for e in entities}
    return KnowledgeGraph(
        entities=entities,
        relations=[r for r in graph.relations if r.source in names and r.target in names],
    )


def search_nodes(graph: KnowledgeGraph, query: str) -> KnowledgeGraph:
    """Entities whose name, type or any observation contains query (case-insensitive).

    Relations are kept only when both endpoints matched. An empty query
    matches every entity.
    """
    needle = query.lower()

    def matches(e: Entity) -> bool:
        return (
            needle in e.name.lower()
            or needle in e.entity_type.lower()
            or any(needle in o.lower() for o in e.observations)
        )

    return _subgraph(graph, matches)


def open_nodes(graph: KnowledgeGraph, names: Iterable[str]) -> KnowledgeGraph:
    """Entities with the given names plus relations among them."""
    wanted = set(names)
    return _subgraph(graph, lambda e: e.name in wanted)


# ---------------------------------------------------------------------------
# Manager: load → compute → save per project
# ---------------------------------------------------------------------------


class KnowledgeGraphManager:
    """Runs graph operations against the stored graph of a project."""

    def __init__(self, store: GraphStore) -> None:
        self.store = store

    def _mutate(
        self,
        project_identifier: str,
        op: Callable[[KnowledgeGraph], tuple[KnowledgeGraph, T]],
    ) -> T:
        location = self.store.resolve_location(project_identifier)
        with self.store.lock(location):
            graph = self.store.load(location)
            new_graph, result = op(graph)
            self.store.save(location, new_graph)
        return result

    def _read(self, project_identifier: str) -> KnowledgeGraph:
        location = self.store.resolve_location(project_identifier)
        return self.store.load(location)

    def create_entities(self, project_identifier: str, entities: list[Entity]) -> list[Entity]:
        added = self._mutate(project_identifier, lambda g: create_entities(g, entities))
        logger.info("%s: created %d of %d entities", project_identifier, len(added), len(entities))
        return added

    def create_relations(self, project_identifier: str, relations: list[Relation]) -> list[Relation]:
        added = self._mutate(project_identifier, lambda g: create_relations(g, relations))
        logger.info("%s: created %d of %d relations", project_identifier, len(added), len(relations))
        return added

    def add_observations(
        self, project_identifier: str, additions: list[ObservationAddition],
    ) -> list[AddedObservations]:
        return self._mutate(project_identifier, lambda g: add_observations(g, additions))

    def delete_entities(self, project_identifier: str, names: list[str]) -> None:
        self._mutate(project_identifier, lambda g: (delete_entities(g, names), None))

    def delete_observations(
        self, project_identifier: str, deletions: list[ObservationDeletion],
    ) -> None:
        self._mutate(project_identifier, lambda g: (delete_observations(g, deletions), None))

    def delete_relations(self, project_identifier: str, relations: list[Relation]) -> None:
        self._mutate(project_identifier, lambda g: (delete_relations(g, relations), None))

    def read_graph(self, project_identifier: str) -> KnowledgeGraph:
        return self._read(project_identifier)

    def search_nodes(self, project_identifier: str, query: str) -> KnowledgeGraph:
        return search_nodes(self._read(project_identifier), query)

    def open_nodes(self, project_identifier: str, names: list[str]) -> KnowledgeGraph:
        return open_nodes(self._read(project_identifier), names)
