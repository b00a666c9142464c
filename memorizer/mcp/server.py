"""
MCP Server for Memorizer.

Provides MCP-compliant tools for AI assistants to interact with memory:
- store: Store a memory, optionally linking it to another
- search: Semantic search for relevant memories
- get / get_many: Fetch memories by ID
- delete: Remove a memory by ID
- create_relationship: Link two memories
- stats: Memory and relationship counts
"""

import asyncio
import json
import logging
from typing import Any, Optional
from uuid import UUID

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    Tool,
    TextContent,
)

from memorizer.config import Config
from memorizer.models import Memory
from memorizer.core.embedding_factory import EmbeddingError
from memorizer.core.memory_manager import MemoryManager, NotFoundError, create_memory_manager
from memorizer.core.validation import ValidationError
from memorizer.storage.vector_db import DimensionMismatchError, StorageError

logger = logging.getLogger(__name__)

MAX_SEARCH_LIMIT = 50


def create_mcp_server(config: Config, memory_manager: Optional[MemoryManager] = None) -> Server:
    """
    Create and configure the MCP server.

    Args:
        config: Memorizer configuration
        memory_manager: Pre-built manager (built from config when omitted)

    Returns:
        Configured MCP Server instance
    """
    if memory_manager is None:
        memory_manager = create_memory_manager(config)

    server = Server("memorizer")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(
                name="store",
                description=(
                    "Store a new memory in the database, optionally creating a relationship "
                    "to another memory. Use this to save reference material, how-to guides, "
                    "coding standards, or any information you may want to refer to later."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "type": {
                            "type": "string",
                            "description": "The type of memory (e.g., 'conversation', 'document', 'reference', 'how-to')",
                        },
                        "text": {
                            "type": "string",
                            "description": "Plain text (markdown, code, prose) to store and embed",
                        },
                        "content": {
                            "type": "object",
                            "description": (
                                "Structured payload stored verbatim. When text is omitted, "
                                "its \"text\" field (or the whole payload as JSON) is embedded"
                            ),
                        },
                        "source": {
                            "type": "string",
                            "description": "The source of the memory (e.g., 'user', 'system', 'LLM')",
                        },
                        "title": {
                            "type": "string",
                            "description": "Title for the memory. Generated when omitted.",
                        },
                        "tags": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Optional tags (e.g., 'coding-standard', 'how-to')",
                        },
                        "confidence": {
                            "type": "number",
                            "description": "Confidence score for the memory (0.0 to 1.0)",
                            "default": 1.0,
                        },
                        "related_to": {
                            "type": "string",
                            "description": "Optional ID of a related memory",
                        },
                        "relationship_type": {
                            "type": "string",
                            "description": "Type of relationship to create (e.g., 'ExampleOf', 'Related')",
                        },
                    },
                    "required": ["type", "source"],
                },
            ),
            Tool(
                name="search",
                description=(
                    "Search for memories using semantic similarity. "
                    "Returns the most relevant memories for the query text."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "The search query text",
                        },
                        "limit": {
                            "type": "integer",
                            "description": f"Maximum number of results (default: {config.search_limit})",
                            "default": config.search_limit,
                        },
                        "min_similarity": {
                            "type": "number",
                            "description": f"Minimum cosine similarity -1.0 to 1.0 (default: {config.min_similarity})",
                            "default": config.min_similarity,
                        },
                        "filter_tags": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Only return memories carrying any of these tags",
                        },
                    },
                    "required": ["query"],
                },
            ),
            Tool(
                name="get",
                description="Retrieve a specific memory by its ID.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "id": {"type": "string", "description": "The UUID of the memory"},
                    },
                    "required": ["id"],
                },
            ),
            Tool(
                name="get_many",
                description="Retrieve several memories by their IDs.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "ids": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "UUIDs of the memories",
                        },
                    },
                    "required": ["ids"],
                },
            ),
            Tool(
                name="delete",
                description="Delete a memory by its ID. Its relationships are removed too.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "id": {"type": "string", "description": "The UUID of the memory to delete"},
                    },
                    "required": ["id"],
                },
            ),
            Tool(
                name="create_relationship",
                description="Create a typed relationship from one memory to another.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "from_id": {"type": "string", "description": "Source memory UUID"},
                        "to_id": {"type": "string", "description": "Target memory UUID"},
                        "type": {"type": "string", "description": "Relationship type (e.g., 'Related', 'PartOf')"},
                    },
                    "required": ["from_id", "to_id", "type"],
                },
            ),
            Tool(
                name="stats",
                description="Get memory and relationship counts.",
                inputSchema={"type": "object", "properties": {}},
            ),
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle tool calls."""
        return await dispatch_tool(memory_manager, config, name, arguments)

    return server


async def dispatch_tool(
    memory_manager: MemoryManager,
    config: Config,
    name: str,
    arguments: dict[str, Any],
) -> list[TextContent]:
    """Route a tool call to its handler and turn failures into error payloads."""
    handlers = {
        "store": _handle_store,
        "search": _handle_search,
        "get": _handle_get,
        "get_many": _handle_get_many,
        "delete": _handle_delete,
        "create_relationship": _handle_create_relationship,
        "stats": _handle_stats,
    }
    handler = handlers.get(name)
    if handler is None:
        return _error(f"Unknown tool: {name}")

    try:
        result = await handler(memory_manager, config, arguments or {})
    except ValidationError as e:
        return _error(f"Validation error: {e.message}")
    except NotFoundError as e:
        return _error(str(e))
    except DimensionMismatchError:
        raise
    except ValueError as e:
        return _error(f"Invalid argument: {e}")
    except (EmbeddingError, StorageError) as e:
        logger.error(f"Tool {name} failed: {e}")
        return _error(str(e))

    return [TextContent(type="text", text=json.dumps({"success": True, **result}))]


def _error(message: str) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps({"success": False, "error": message}))]


def _memory_to_dict(memory: Memory) -> dict[str, Any]:
    """Serialize a memory for tool output (embeddings left out)."""
    return memory.model_dump(mode="json", exclude={"embedding", "metadata_embedding"})


async def _run(func, *args, **kwargs):
    """Run a blocking manager call in the thread pool."""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


async def _handle_store(
    memory_manager: MemoryManager,
    config: Config,
    arguments: dict[str, Any],
) -> dict[str, Any]:
    """Handle store tool call."""
    related_to = arguments.get("related_to")
    memory = await _run(
        memory_manager.store_text,
        memory_type=arguments.get("type", ""),
        text=arguments.get("text"),
        source=arguments.get("source", ""),
        tags=arguments.get("tags"),
        confidence=float(arguments.get("confidence", 1.0)),
        title=arguments.get("title"),
        related_to=UUID(related_to) if related_to else None,
        relationship_type=arguments.get("relationship_type"),
        content=arguments.get("content"),
    )
    return {
        "id": str(memory.id),
        "title": memory.title,
        "message": "Memory stored successfully",
    }


async def _handle_search(
    memory_manager: MemoryManager,
    config: Config,
    arguments: dict[str, Any],
) -> dict[str, Any]:
    """Handle search tool call."""
    limit = min(int(arguments.get("limit", config.search_limit)), MAX_SEARCH_LIMIT)
    memories = await _run(
        memory_manager.search_memories,
        query=arguments.get("query", ""),
        limit=limit,
        filter_tags=arguments.get("filter_tags"),
        min_similarity=float(arguments.get("min_similarity", config.min_similarity)),
    )
    return {
        "count": len(memories),
        "results": [_memory_to_dict(memory) for memory in memories],
    }


async def _handle_get(
    memory_manager: MemoryManager,
    config: Config,
    arguments: dict[str, Any],
) -> dict[str, Any]:
    """Handle get tool call."""
    memory = await _run(memory_manager.require_memory, UUID(arguments.get("id", "")))
    return {"memory": _memory_to_dict(memory)}


async def _handle_get_many(
    memory_manager: MemoryManager,
    config: Config,
    arguments: dict[str, Any],
) -> dict[str, Any]:
    """Handle get_many tool call."""
    ids = [UUID(memory_id) for memory_id in arguments.get("ids", [])]
    memories = await _run(memory_manager.get_memories, ids)
    return {
        "count": len(memories),
        "results": [_memory_to_dict(memory) for memory in memories],
    }


async def _handle_delete(
    memory_manager: MemoryManager,
    config: Config,
    arguments: dict[str, Any],
) -> dict[str, Any]:
    """Handle delete tool call."""
    memory_id = UUID(arguments.get("id", ""))
    if not await _run(memory_manager.delete_memory, memory_id):
        raise NotFoundError(memory_id)
    return {"message": f"Memory {memory_id} deleted"}


async def _handle_create_relationship(
    memory_manager: MemoryManager,
    config: Config,
    arguments: dict[str, Any],
) -> dict[str, Any]:
    """Handle create_relationship tool call."""
    relationship = await _run(
        memory_manager.create_relationship,
        UUID(arguments.get("from_id", "")),
        UUID(arguments.get("to_id", "")),
        arguments.get("type", ""),
    )
    return {"relationship": relationship.model_dump(mode="json")}


async def _handle_stats(
    memory_manager: MemoryManager,
    config: Config,
    arguments: dict[str, Any],
) -> dict[str, Any]:
    """Handle stats tool call."""
    statistics = await _run(memory_manager.get_statistics)
    return {"statistics": statistics.model_dump()}


async def run_mcp_server(config: Config) -> None:
    """Run the MCP server with stdio transport."""
    memory_manager = create_memory_manager(config)
    server = create_mcp_server(config, memory_manager)

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        memory_manager.close()
