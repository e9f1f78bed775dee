"""Shared fixtures: every test gets its own memory root under tmp_path."""

from pathlib import Path

import pytest

from kgmem.models import Entity, KnowledgeGraph, Relation
from kgmem.operations import KnowledgeGraphManager
from kgmem.store import GraphStore


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    return tmp_path / "memory"


@pytest.fixture
def store(base_dir: Path) -> GraphStore:
    return GraphStore(base_dir)


@pytest.fixture
def manager(store: GraphStore) -> KnowledgeGraphManager:
    return KnowledgeGraphManager(store)


@pytest.fixture
def abc_graph() -> KnowledgeGraph:
    """Entities A, B, C with relations A->B and B->C."""
    return KnowledgeGraph(
        entities=[
            Entity("A", "node", ["first"]),
            Entity("B", "node", ["second"]),
            Entity("C", "node", ["third"]),
        ],
        relations=[
            Relation("A", "B", "links_to"),
            Relation("B", "C", "links_to"),
        ],
    )
