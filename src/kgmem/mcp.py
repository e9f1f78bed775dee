"""Stdio MCP server for kgmem.

Tools (every call takes projectIdentifier, which selects an isolated store):
    create_entities(entities)           → entities actually created
    create_relations(relations)         → relations actually created
    add_observations(observations)      → per entity, observations actually added
    delete_entities(entityNames)        → acknowledgment
    delete_observations(deletions)      → acknowledgment
    delete_relations(relations)         → acknowledgment
    read_graph()                        → whole graph
    search_nodes(query)                 → matching sub-graph
    open_nodes(names)                   → named sub-graph

Protocol: JSON-RPC 2.0 over stdin/stdout (Model Context Protocol), one message per line.
Logs go to stderr; stdout carries protocol messages only.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import TYPE_CHECKING, Any

from kgmem import __version__
from kgmem.errors import InvalidPayload, KGMemoryError
from kgmem.models import Entity, ObservationAddition, ObservationDeletion, Relation, require_list, require_str_list
from kgmem.operations import KnowledgeGraphManager
from kgmem.store import GraphStore

if TYPE_CHECKING:
    from collections.abc import Callable

    from kgmem.config import MemoryConfig

logger = logging.getLogger("kgmem.mcp")

SERVER_NAME = "memory-server"
PROTOCOL_VERSION = "2024-11-05"
_LINE_LIMIT = 16 * 1024 * 1024

_PROJECT_PROP = {
    "type": "string",
    "description": (
        "The name or unique ID of the project (e.g., 'my-web-app', 'api-service'). "
        "This will be used to create a dedicated memory store for the project."
    ),
}

_RELATION_SCHEMA = {
    "type": "object",
    "properties": {
        "from": {"type": "string", "description": "The name of the entity where the relation starts"},
        "to": {"type": "string", "description": "The name of the entity where the relation ends"},
        "relationType": {"type": "string", "description": "The type of the relation"},
    },
    "required": ["from", "to", "relationType"],
}


def _tool(name: str, description: str, props: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "inputSchema": {
            "type": "object",
            "properties": {"projectIdentifier": _PROJECT_PROP, **props},
            "required": ["projectIdentifier", *required],
        },
    }


def _tool_defs() -> list[dict[str, Any]]:
    return [
        _tool(
            "create_entities",
            "Create multiple new entities in the knowledge graph",
            {
                "entities": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string", "description": "The name of the entity"},
                            "entityType": {"type": "string", "description": "The type of the entity"},
                            "observations": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "An array of observation contents associated with the entity",
                            },
                        },
                        "required": ["name", "entityType", "observations"],
                    },
                },
            },
            ["entities"],
        ),
        _tool(
            "create_relations",
            "Create multiple new relations between entities in the knowledge graph. "
            "Relations should be in active voice",
            {"relations": {"type": "array", "items": _RELATION_SCHEMA}},
            ["relations"],
        ),
        _tool(
            "add_observations",
            "Add new observations to existing entities in the knowledge graph",
            {
                "observations": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "entityName": {
                                "type": "string",
                                "description": "The name of the entity to add the observations to",
                            },
                            "contents": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "An array of observation contents to add",
                            },
                        },
                        "required": ["entityName", "contents"],
                    },
                },
            },
            ["observations"],
        ),
        _tool(
            "delete_entities",
            "Delete multiple entities and their associated relations from the knowledge graph",
            {
                "entityNames": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "An array of entity names to delete",
                },
            },
            ["entityNames"],
        ),
        _tool(
            "delete_observations",
            "Delete specific observations from entities in the knowledge graph",
            {
                "deletions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "entityName": {
                                "type": "string",
                                "description": "The name of the entity containing the observations",
                            },
                            "observations": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "An array of observations to delete",
                            },
                        },
                        "required": ["entityName", "observations"],
                    },
                },
            },
            ["deletions"],
        ),
        _tool(
            "delete_relations",
            "Delete multiple relations from the knowledge graph",
            {
                "relations": {
                    "type": "array",
                    "items": _RELATION_SCHEMA,
                    "description": "An array of relations to delete",
                },
            },
            ["relations"],
        ),
        _tool(
            "read_graph",
            "Read the entire knowledge graph for a specific project",
            {},
            [],
        ),
        _tool(
            "search_nodes",
            "Search for nodes in the knowledge graph based on a query for a specific project",
            {
                "query": {
                    "type": "string",
                    "description": "The search query to match against entity names, types, and observation content",
                },
            },
            ["query"],
        ),
        _tool(
            "open_nodes",
            "Open specific nodes in the knowledge graph by their names for a specific project",
            {
                "names": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "An array of entity names to retrieve",
                },
            },
            ["names"],
        ),
    ]


def _arg(args: dict[str, Any], key: str) -> Any:
    if key not in args:
        msg = f"missing required argument '{key}'"
        raise InvalidPayload(msg)
    return args[key]


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


class MemoryServer:
    def __init__(self, manager: KnowledgeGraphManager) -> None:
        self._manager = manager

    @classmethod
    def from_config(cls, cfg: MemoryConfig) -> MemoryServer:
        return cls(KnowledgeGraphManager(GraphStore.from_config(cfg)))

    def _call_create_entities(self, project: str, args: dict[str, Any]) -> str:
        entities = [Entity.from_dict(e) for e in require_list(_arg(args, "entities"), "entities")]
        added = self._manager.create_entities(project, entities)
        return _dump([e.to_dict() for e in added])

    def _call_create_relations(self, project: str, args: dict[str, Any]) -> str:
        relations = [Relation.from_dict(r) for r in require_list(_arg(args, "relations"), "relations")]
        added = self._manager.create_relations(project, relations)
        return _dump([r.to_dict() for r in added])

    def _call_add_observations(self, project: str, args: dict[str, Any]) -> str:
        additions = [
            ObservationAddition.from_dict(o)
            for o in require_list(_arg(args, "observations"), "observations")
        ]
        results = self._manager.add_observations(project, additions)
        return _dump([r.to_dict() for r in results])

    def _call_delete_entities(self, project: str, args: dict[str, Any]) -> str:
        names = require_str_list(_arg(args, "entityNames"), "entityNames")
        self._manager.delete_entities(project, names)
        return "Entities deleted successfully"

    def _call_delete_observations(self, project: str, args: dict[str, Any]) -> str:
        deletions = [
            ObservationDeletion.from_dict(d)
            for d in require_list(_arg(args, "deletions"), "deletions")
        ]
        self._manager.delete_observations(project, deletions)
        return "Observations deleted successfully"

    def _call_delete_relations(self, project: str, args: dict[str, Any]) -> str:
        relations = [Relation.from_dict(r) for r in require_list(_arg(args, "relations"), "relations")]
        self._manager.delete_relations(project, relations)
        return "Relations deleted successfully"

    def _call_read_graph(self, project: str, args: dict[str, Any]) -> str:  # noqa: ARG002
        return _dump(self._manager.read_graph(project).to_dict())

    def _call_search_nodes(self, project: str, args: dict[str, Any]) -> str:
        query = _arg(args, "query")
        if not isinstance(query, str):
            msg = f"argument 'query' must be a string, got {type(query).__name__}"
            raise InvalidPayload(msg)
        return _dump(self._manager.search_nodes(project, query).to_dict())

    def _call_open_nodes(self, project: str, args: dict[str, Any]) -> str:
        names = require_str_list(_arg(args, "names"), "names")
        return _dump(self._manager.open_nodes(project, names).to_dict())

    def call_tool(self, name: str, arguments: dict[str, Any] | None) -> str:
        dispatch = {
            "create_entities": self._call_create_entities,
            "create_relations": self._call_create_relations,
            "add_observations": self._call_add_observations,
            "delete_entities": self._call_delete_entities,
            "delete_observations": self._call_delete_observations,
            "delete_relations": self._call_delete_relations,
            "read_graph": self._call_read_graph,
            "search_nodes": self._call_search_nodes,
            "open_nodes": self._call_open_nodes,
        }
        if arguments is None:
            msg = f"No arguments provided for tool: {name}"
            raise ValueError(msg)
        if name not in dispatch:
            msg = f"Unknown tool: {name}"
            raise ValueError(msg)
        if not isinstance(arguments, dict):
            msg = f"arguments for tool {name} must be an object"
            raise InvalidPayload(msg)
        # sanitize_identifier rejects a missing or non-string identifier
        project = arguments.get("projectIdentifier")
        return dispatch[name](project, arguments)  # type: ignore[arg-type]


def _error_text(exc: Exception) -> str:
    if isinstance(exc, KGMemoryError):
        return f"{exc.kind}: {exc}"
    return f"Error: {exc}"


def handle_message(server: MemoryServer, msg: Any) -> dict[str, Any] | None:
    """Answer one decoded JSON-RPC message. Returns None for notifications."""
    if not isinstance(msg, dict):
        return {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32600, "message": "Invalid Request"},
        }

    method = str(msg.get("method") or "")
    msg_id = msg.get("id")

    if method == "initialize":
        return {
            "jsonrpc": "2.0",
            "id": msg_id,
            "result": {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": __version__},
            },
        }

    if method.startswith("notifications/"):
        return None  # no response for notifications

    if method == "ping":
        return {"jsonrpc": "2.0", "id": msg_id, "result": {}}

    if method == "tools/list":
        return {"jsonrpc": "2.0", "id": msg_id, "result": {"tools": _tool_defs()}}

    if method == "tools/call":
        params = msg.get("params")
        if not isinstance(params, dict):
            params = {}
        tool_name = params.get("name", "")
        arguments = params.get("arguments")
        try:
            result_text = server.call_tool(tool_name, arguments)
        except Exception as exc:
            logger.warning("tool %s failed: %s", tool_name, _error_text(exc))
            if not isinstance(exc, (KGMemoryError, ValueError)):
                logger.debug("traceback for %s", tool_name, exc_info=exc)
            return {
                "jsonrpc": "2.0",
                "id": msg_id,
                "result": {
                    "content": [{"type": "text", "text": _error_text(exc)}],
                    "isError": True,
                },
            }
        return {
            "jsonrpc": "2.0",
            "id": msg_id,
            "result": {
                "content": [{"type": "text", "text": result_text}],
                "isError": False,
            },
        }

    if msg_id is not None:
        return {
            "jsonrpc": "2.0",
            "id": msg_id,
            "error": {"code": -32601, "message": f"Method not found: {method}"},
        }
    return None


_PARSE_ERROR = {
    "jsonrpc": "2.0",
    "id": None,
    "error": {"code": -32700, "message": "Parse error"},
}


async def serve_stream(
    server: MemoryServer,
    reader: asyncio.StreamReader,
    write_json: Callable[[Any], None],
) -> None:
    """Answer newline-delimited JSON-RPC messages from reader until EOF."""
    while True:
        try:
            line = await reader.readline()
        except (asyncio.IncompleteReadError, EOFError):
            break
        except ValueError:
            # line longer than the reader limit; the reader drops it
            logger.warning("input line exceeds %d bytes", _LINE_LIMIT)
            write_json(_PARSE_ERROR)
            continue
        if not line:
            break
        if not line.strip():
            continue
        # ValueError covers JSONDecodeError and UnicodeDecodeError
        try:
            msg = json.loads(line)
        except (ValueError, RecursionError):
            logger.warning("unparseable input line (%d bytes)", len(line))
            write_json(_PARSE_ERROR)
            continue

        response = handle_message(server, msg)
        if response is not None:
            write_json(response)


async def _run_server(cfg: MemoryConfig) -> None:
    server = MemoryServer.from_config(cfg)
    reader = asyncio.StreamReader(limit=_LINE_LIMIT)
    loop = asyncio.get_running_loop()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)

    writer_transport, _ = await loop.connect_write_pipe(
        asyncio.BaseProtocol, sys.stdout.buffer
    )

    def write_json(obj: Any) -> None:
        line = json.dumps(obj) + "\n"
        writer_transport.write(line.encode())

    logger.info("Knowledge Graph MCP Server running on stdio (base dir %s)", cfg.base_dir)
    await serve_stream(server, reader, write_json)
    logger.info("stdin closed, shutting down")


def run_server(cfg: MemoryConfig) -> None:
    """Entry point for `kgmem serve`."""
    asyncio.run(_run_server(cfg))
