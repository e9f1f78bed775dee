"""Per-project knowledge graph memory: JSONL files as the only source of truth.

Layout:
    <base_dir>/                  # ~/.mcp_server_memory or $MCP_BASE_MEMORY_DIR
        <project>/               # sanitized project identifier
            memory.jsonl         # entities, then relations; one object per line
            .lock                # flock target for serialized writes

memory.jsonl line types:
    {"type":"entity", "name":..., "entityType":..., "observations":[...]}
    {"type":"relation", "from":..., "to":..., "relationType":...}

Every mutation is load → pure transform → whole-file save (tmp + rename).
"""

__version__ = "0.1.0"

from kgmem.config import MemoryConfig, load_config
from kgmem.errors import (
    CorruptStore,
    EntityNotFound,
    InvalidIdentifier,
    InvalidPayload,
    KGMemoryError,
    StorageUnavailable,
)
from kgmem.models import Entity, KnowledgeGraph, ObservationAddition, ObservationDeletion, Relation
from kgmem.operations import KnowledgeGraphManager
from kgmem.store import GraphStore, Location

__all__ = [
    "CorruptStore",
    "Entity",
    "EntityNotFound",
    "GraphStore",
    "InvalidIdentifier",
    "InvalidPayload",
    "KGMemoryError",
    "KnowledgeGraph",
    "KnowledgeGraphManager",
    "Location",
    "MemoryConfig",
    "ObservationAddition",
    "ObservationDeletion",
    "Relation",
    "StorageUnavailable",
    "__version__",
    "load_config",
]
