"""MCP tool server for Memorizer."""

__all__ = ["create_mcp_server", "dispatch_tool", "run_mcp_server"]


def __getattr__(name):
    # Deferred so importing memorizer.mcp does not pull in the mcp SDK
    if name in __all__:
        from memorizer.mcp import server

        return getattr(server, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
