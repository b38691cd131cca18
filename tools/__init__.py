# tools package for MCP server tools
# Modules in this package expose `get_tools(client: KlaviyoClient) -> dict[str, dict]` mapping a tool
# name to {"func": coroutine function, "title": str, "description": str}.
# The server imports every non-underscore module here and registers the returned callables.
__all__ = []
