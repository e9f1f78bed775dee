"""Data models for the knowledge graph and the request payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from kgmem.errors import InvalidPayload

# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------


def _require_str(d: Any, key: str, what: str) -> str:
    if not isinstance(d, dict):
        msg = f"{what} must be an object, got {type(d).__name__}"
        raise InvalidPayload(msg)
    if key not in d:
        msg = f"{what} is missing required field '{key}'"
        raise InvalidPayload(msg)
    value = d[key]
    if not isinstance(value, str):
        msg = f"{what} field '{key}' must be a string, got {type(value).__name__}"
        raise InvalidPayload(msg)
    return value


def _require_str_list(d: dict[str, Any], key: str, what: str) -> list[str]:
    if key not in d:
        msg = f"{what} is missing required field '{key}'"
        raise InvalidPayload(msg)
    return require_str_list(d[key], f"{what} field '{key}'")


def require_str_list(value: Any, what: str) -> list[str]:
    """Validate a JSON array of strings and return it as a fresh list."""
    if not isinstance(value, list):
        msg = f"{what} must be an array of strings, got {type(value).__name__}"
        raise InvalidPayload(msg)
    for item in value:
        if not isinstance(item, str):
            msg = f"{what} must only contain strings, got {type(item).__name__}"
            raise InvalidPayload(msg)
    return list(value)


def require_list(value: Any, what: str) -> list[Any]:
    if not isinstance(value, list):
        msg = f"{what} must be an array, got {type(value).__name__}"
        raise InvalidPayload(msg)
    return value


# ---------------------------------------------------------------------------
# Graph records
# ---------------------------------------------------------------------------


@dataclass
class Entity:
    """A named, typed node with its observation strings."""

    name: str
    entity_type: str
    observations: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Entity:
        return cls(
            name=_require_str(d, "name", "entity"),
            entity_type=_require_str(d, "entityType", "entity"),
            observations=_require_str_list(d, "observations", "entity"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "entityType": self.entity_type,
            "observations": list(self.observations),
        }

    def to_record(self) -> dict[str, Any]:
        return {"type": "entity", **self.to_dict()}

    def copy(self) -> Entity:
        return Entity(self.name, self.entity_type, list(self.observations))


@dataclass(frozen=True)
class Relation:
    """A directed, typed edge between two entity names.

    Endpoints are plain names, so a relation may point at an entity that
    does not exist. Equality and hashing use the full triple.
    """

    source: str
    target: str
    relation_type: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Relation:
        return cls(
            source=_require_str(d, "from", "relation"),
            target=_require_str(d, "to", "relation"),
            relation_type=_require_str(d, "relationType", "relation"),
        )

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.source, self.target, self.relation_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.source,
            "to": self.target,
            "relationType": self.relation_type,
        }

    def to_record(self) -> dict[str, Any]:
        return {"type": "relation", **self.to_dict()}


@dataclass
class KnowledgeGraph:
    """Entities and relations for one project, in insertion order."""

    entities: list[Entity] = field(default_factory=list)
    relations: list[Relation] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> KnowledgeGraph:
        if not isinstance(d, dict):
            msg = f"graph must be an object, got {type(d).__name__}"
            raise InvalidPayload(msg)
        return cls(
            entities=[Entity.from_dict(e) for e in require_list(d.get("entities", []), "entities")],
            relations=[Relation.from_dict(r) for r in require_list(d.get("relations", []), "relations")],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "entities": [e.to_dict() for e in self.entities],
            "relations": [r.to_dict() for r in self.relations],
        }

    def copy(self) -> KnowledgeGraph:
        """Deep enough copy for mutation: entities are copied, relations are immutable."""
        return KnowledgeGraph(
            entities=[e.copy() for e in self.entities],
            relations=list(self.relations),
        )

    def entity_names(self) -> set[str]:
        return {e.name for e in self.entities}

    def find_entity(self, name: str) -> Entity | None:
        for e in self.entities:
            if e.name == name:
                return e
        return None


# ---------------------------------------------------------------------------
# Observation payloads
# ---------------------------------------------------------------------------


@dataclass
class ObservationAddition:
    entity_name: str
    contents: list[str]

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ObservationAddition:
        return cls(
            entity_name=_require_str(d, "entityName", "observation"),
            contents=_require_str_list(d, "contents", "observation"),
        )


@dataclass
class ObservationDeletion:
    entity_name: str
    observations: list[str]

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ObservationDeletion:
        return cls(
            entity_name=_require_str(d, "entityName", "deletion"),
            observations=_require_str_list(d, "observations", "deletion"),
        )


@dataclass
class AddedObservations:
    """Result row of add_observations: what was actually appended to one entity."""

    entity_name: str
    added_observations: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "entityName": self.entity_name,
            "addedObservations": list(self.added_observations),
        }
