"""Read and write per-project memory.jsonl files.

GraphStore is the public API:
    store = GraphStore("/path/to/base")
    loc = store.resolve_location("my-web-app")
    graph = store.load(loc)
    store.save(loc, graph)

memory.jsonl line types:
    {"type":"entity", "name":..., "entityType":..., "observations":[...]}
    {"type":"relation", "from":..., "to":..., "relationType":...}

Saves replace the whole file (write tmp, then rename). Loads fail hard on an
undecodable line rather than silently dropping data.
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kgmem.errors import CorruptStore, InvalidIdentifier, InvalidPayload, StorageUnavailable
from kgmem.models import Entity, KnowledgeGraph, Relation

if TYPE_CHECKING:
    from collections.abc import Iterator

    from kgmem.config import MemoryConfig

logger = logging.getLogger("kgmem.store")

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")
_LOCK_NAME = ".lock"


def sanitize_identifier(project_identifier: str) -> str:
    """Map a project identifier to a safe directory name.

    Raises InvalidIdentifier for empty/whitespace input, or when the result
    is empty or starts with '.' (hidden or parent-relative).
    """
    if not isinstance(project_identifier, str) or not project_identifier.strip():
        msg = "Project identifier cannot be empty and must be a valid string."
        raise InvalidIdentifier(msg)
    sane = _UNSAFE_CHARS.sub("_", project_identifier)
    if not sane or sane.startswith("."):
        msg = f"Invalid project identifier after sanitization: {project_identifier}"
        raise InvalidIdentifier(msg)
    return sane


@dataclass(frozen=True)
class Location:
    """Resolved storage handle for one project."""

    project: str          # identifier as given by the caller
    name: str             # sanitized directory name
    directory: Path
    path: Path            # the memory.jsonl record

    @property
    def tmp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    @property
    def lock_path(self) -> Path:
        return self.directory / _LOCK_NAME


class GraphStore:
    """JSONL-backed graph store, one file per project under base_dir."""

    def __init__(self, base_dir: Path | str, record_name: str = "memory.jsonl") -> None:
        self.base_dir = Path(base_dir)
        self.record_name = record_name

    @classmethod
    def from_config(cls, cfg: MemoryConfig) -> GraphStore:
        return cls(cfg.base_dir, record_name=cfg.record_name)

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def resolve_location(self, project_identifier: str) -> Location:
        """Sanitize the identifier and ensure the project directory exists."""
        name = sanitize_identifier(project_identifier)
        directory = self.base_dir / name
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("failed to create directory %s: %s", directory, exc)
            msg = f"Failed to create project memory directory for {name}."
            raise StorageUnavailable(msg) from exc
        return Location(
            project=project_identifier,
            name=name,
            directory=directory,
            path=directory / self.record_name,
        )

    def list_projects(self) -> list[str]:
        """Sanitized names of every project that has a record file."""
        if not self.base_dir.is_dir():
            return []
        return sorted(
            d.name for d in self.base_dir.iterdir()
            if d.is_dir() and (d / self.record_name).exists()
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load(self, location: Location) -> KnowledgeGraph:
        """Decode memory.jsonl. A missing file is an empty graph."""
        path = location.path
        try:
            data = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return KnowledgeGraph()
        except UnicodeDecodeError as exc:
            msg = f"{path}: not valid UTF-8 at byte {exc.start}"
            raise CorruptStore(msg, path=str(path)) from exc
        except OSError as exc:
            msg = f"Failed to read memory file {path}: {exc}"
            raise StorageUnavailable(msg) from exc

        graph = KnowledgeGraph()
        for line_no, line in enumerate(data.split("\n"), start=1):
            line = line.strip()
            if not line:
                continue
            obj = _decode_line(line, path, line_no)
            item_type = obj.get("type")
            try:
                if item_type == "entity":
                    graph.entities.append(Entity.from_dict(obj))
                elif item_type == "relation":
                    graph.relations.append(Relation.from_dict(obj))
            except InvalidPayload as exc:
                msg = f"{path}:{line_no}: {exc}"
                raise CorruptStore(msg, path=str(path), line_no=line_no) from exc

        logger.debug(
            "loaded %s: %d entities, %d relations",
            location.name, len(graph.entities), len(graph.relations),
        )
        return graph

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save(self, location: Location, graph: KnowledgeGraph) -> None:
        """Replace memory.jsonl with the full graph (entities, then relations)."""
        lines = [json.dumps(e.to_record(), ensure_ascii=False) for e in graph.entities]
        lines += [json.dumps(r.to_record(), ensure_ascii=False) for r in graph.relations]

        tmp = location.tmp_path
        try:
            tmp.write_text("\n".join(lines), encoding="utf-8")
            tmp.replace(location.path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp.unlink()
            msg = f"Failed to write memory file {location.path}: {exc}"
            raise StorageUnavailable(msg) from exc

        logger.debug(
            "saved %s: %d entities, %d relations",
            location.name, len(graph.entities), len(graph.relations),
        )

    @contextlib.contextmanager
    def lock(self, location: Location) -> Iterator[None]:
        """Hold an exclusive flock on the project's lock file."""
        try:
            f = location.lock_path.open("a")
        except OSError as exc:
            msg = f"Failed to open lock file {location.lock_path}: {exc}"
            raise StorageUnavailable(msg) from exc
        with f:
            fcntl.flock(f, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(f, fcntl.LOCK_UN)


def _decode_line(line: str, path: Path, line_no: int) -> dict[str, Any]:
    try:
        obj = json.loads(line)
    except json.JSONDecodeError as exc:
        msg = f"{path}:{line_no}: invalid JSON ({exc.msg})"
        raise CorruptStore(msg, path=str(path), line_no=line_no) from exc
    if not isinstance(obj, dict):
        msg = f"{path}:{line_no}: expected a JSON object, got {type(obj).__name__}"
        raise CorruptStore(msg, path=str(path), line_no=line_no)
    return obj
