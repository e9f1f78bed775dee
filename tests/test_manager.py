"""Tests for KnowledgeGraphManager: operations persisted per project."""

import pytest

from kgmem.errors import CorruptStore, EntityNotFound, InvalidIdentifier
from kgmem.models import Entity, KnowledgeGraph, ObservationAddition, ObservationDeletion, Relation


class TestPersistence:
    def test_create_entities_persists(self, manager, store):
        added = manager.create_entities("proj", [Entity("A", "t", ["x"])])
        assert added == [Entity("A", "t", ["x"])]
        assert store.load(store.resolve_location("proj")).entities == added

    def test_create_entities_twice(self, manager):
        batch = [Entity("A", "t", ["x"]), Entity("B", "t", [])]
        manager.create_entities("proj", batch)
        graph_once = manager.read_graph("proj")
        assert manager.create_entities("proj", batch) == []
        assert manager.read_graph("proj") == graph_once

    def test_create_relations_twice(self, manager):
        batch = [Relation("A", "B", "knows")]
        assert manager.create_relations("proj", batch) == batch
        assert manager.create_relations("proj", batch) == []
        assert manager.read_graph("proj").relations == batch

    def test_observations_flow(self, manager):
        manager.create_entities("proj", [Entity("A", "t", [])])
        first = manager.add_observations("proj", [ObservationAddition("A", ["x"])])
        second = manager.add_observations("proj", [ObservationAddition("A", ["x", "y"])])
        assert first[0].added_observations == ["x"]
        assert second[0].added_observations == ["y"]
        manager.delete_observations("proj", [ObservationDeletion("A", ["x"])])
        assert manager.read_graph("proj").entities[0].observations == ["y"]

    def test_delete_entities_cascades(self, manager):
        manager.create_entities("proj", [Entity(n, "t", []) for n in "ABC"])
        manager.create_relations("proj", [Relation("A", "B", "r"), Relation("B", "C", "r"), Relation("C", "A", "r")])
        manager.delete_entities("proj", ["A"])
        graph = manager.read_graph("proj")
        assert [e.name for e in graph.entities] == ["B", "C"]
        assert graph.relations == [Relation("B", "C", "r")]

    def test_delete_relations(self, manager):
        manager.create_relations("proj", [Relation("A", "B", "r"), Relation("A", "B", "s")])
        manager.delete_relations("proj", [Relation("A", "B", "r"), Relation("X", "Y", "r")])
        assert manager.read_graph("proj").relations == [Relation("A", "B", "s")]

    def test_deletes_on_empty_project(self, manager):
        manager.delete_entities("proj", ["nope"])
        manager.delete_observations("proj", [ObservationDeletion("nope", ["x"])])
        manager.delete_relations("proj", [Relation("A", "B", "r")])
        assert manager.read_graph("proj") == KnowledgeGraph()


class TestQueries:
    @pytest.fixture
    def seeded(self, manager):
        manager.create_entities("proj", [
            Entity("David Barnett", "person", ["Speaks fluent Spanish"]),
            Entity("Acme", "company", []),
        ])
        manager.create_relations("proj", [Relation("David Barnett", "Acme", "works_at")])
        return manager

    def test_search(self, seeded):
        assert [e.name for e in seeded.search_nodes("proj", "spanish").entities] == ["David Barnett"]
        assert seeded.search_nodes("proj", "french").entities == []

    def test_open_nodes(self, seeded):
        result = seeded.open_nodes("proj", ["David Barnett", "Acme", "Ghost"])
        assert [e.name for e in result.entities] == ["David Barnett", "Acme"]
        assert result.relations == [Relation("David Barnett", "Acme", "works_at")]

    def test_reads_do_not_write(self, seeded, store):
        path = store.resolve_location("proj").path
        before = path.stat().st_mtime_ns
        seeded.read_graph("proj")
        seeded.search_nodes("proj", "x")
        seeded.open_nodes("proj", ["Acme"])
        assert path.stat().st_mtime_ns == before

    def test_read_fresh_project_does_not_create_record(self, manager, store):
        assert manager.read_graph("new") == KnowledgeGraph()
        assert not store.resolve_location("new").path.exists()


class TestFailures:
    def test_missing_entity_leaves_store_unchanged(self, manager, store):
        manager.create_entities("proj", [Entity("A", "t", ["x"])])
        path = store.resolve_location("proj").path
        before = path.read_bytes()
        with pytest.raises(EntityNotFound):
            manager.add_observations("proj", [
                ObservationAddition("A", ["y"]),
                ObservationAddition("Missing", ["z"]),
            ])
        assert path.read_bytes() == before

    @pytest.mark.parametrize("ident", ["", "   "])
    def test_empty_identifier_rejected_before_storage(self, manager, base_dir, ident):
        with pytest.raises(InvalidIdentifier):
            manager.create_entities(ident, [Entity("A", "t", [])])
        with pytest.raises(InvalidIdentifier):
            manager.read_graph(ident)
        with pytest.raises(InvalidIdentifier):
            manager.search_nodes(ident, "")
        assert not base_dir.exists()

    def test_corrupt_store_blocks_mutation(self, manager, store):
        loc = store.resolve_location("proj")
        loc.path.write_text("not json", encoding="utf-8")
        with pytest.raises(CorruptStore):
            manager.create_entities("proj", [Entity("A", "t", [])])
        assert loc.path.read_text(encoding="utf-8") == "not json"

    def test_projects_do_not_share_state(self, manager):
        manager.create_entities("one", [Entity("A", "t", [])])
        assert manager.read_graph("two") == KnowledgeGraph()
        assert [e.name for e in manager.read_graph("one").entities] == ["A"]
