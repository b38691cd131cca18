from core.config import Settings, load_settings
from core.logging_config import setup_logging
from core.cache import ResponseCache
from core.client import KlaviyoClient
from core.errors import ApiError
from core.uri_resources import RESOURCE_TEMPLATES, fetch_resource
from utils import render_error, render_json
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.server.fastmcp.resources import TextResource
from contextlib import asynccontextmanager
from pathlib import Path
from importlib import import_module
import functools
import inspect
import logging
import pkgutil
import sys
from typing import Any, Dict, List, Tuple

logger = logging.getLogger("server")

SERVER_NAME = "klaviyo-mcp"
TOOLS_PACKAGE = "tools"
BASE_DIR = Path(__file__).resolve().parent


###################################################### MCP Resources ######################################################

def load_markdown_resources(resources_dir: Path = BASE_DIR / "resources") -> List[Tuple[Path, str]]:
    """Read every file in the resources folder next to this server.py file."""
    resource_files: List[Tuple[Path, str]] = []
    if resources_dir.is_dir():
        for file_path in sorted(resources_dir.iterdir()):
            if file_path.is_file():
                resource_files.append((file_path, file_path.read_text(encoding="utf-8")))
    logger.info(f"Total resources discovered: {len(resource_files)}, resource names: {[p.stem for p, _ in resource_files]}")
    return resource_files


def register_markdown_resources(mcp: FastMCP, resource_files: List[Tuple[Path, str]]) -> None:
    for file_path, content in resource_files:
        try:
            resource = TextResource(
                uri=f"resource://{file_path.stem.replace(' ', '_')}",
                name=file_path.stem,
                text=content,
                description=f"Contents of {file_path.name}",
                mime_type="text/markdown",
            )
            mcp.add_resource(resource)
        except Exception:
            logger.exception(f"Failed to add resource {file_path}")


def register_uri_resources(mcp: FastMCP, client: KlaviyoClient) -> None:
    """Expose klaviyo://{type}/{id} templates backed by the shared client."""

    def make_reader(kind: str):
        async def read(id: str) -> str:
            try:
                return render_json(await fetch_resource(client, kind, id))
            except ApiError as exc:
                logger.error(f"Failed to fetch resource klaviyo://{kind}/{id}: {exc.message}")
                return f"Error fetching resource: {render_error(exc)}"

        return read

    for template in RESOURCE_TEMPLATES:
        mcp.resource(
            template.uri_template,
            name=template.name,
            description=template.description,
            mime_type="application/json",
        )(make_reader(template.kind))
    logger.info(f"Registered {len(RESOURCE_TEMPLATES)} resource templates")


###################################################### MCP Tools ######################################################

def make_wrapper(_func):
    """Wrap a tool coroutine so ApiError reaches the caller as a rendered tool error."""

    @functools.wraps(_func)
    async def _wrapped(*args, **kwargs):
        try:
            return await _func(*args, **kwargs)
        except ApiError as exc:
            logger.warning(f"Tool {_func.__name__} failed: {exc!r}")
            raise ToolError(render_error(exc)) from exc

    _wrapped.__signature__ = inspect.signature(_func)
    return _wrapped


def discover_tools(client: KlaviyoClient, tools_path: Path = BASE_DIR / TOOLS_PACKAGE) -> Dict[str, Dict[str, Any]]:
    """Import every tools module and collect its `get_tools(client)` mapping."""
    discovered: Dict[str, Dict[str, Any]] = {}
    if not tools_path.is_dir():
        return discovered
    for finder, name, ispkg in pkgutil.iter_modules([str(tools_path)]):
        if name.startswith("_"):
            continue
        module_name = f"{TOOLS_PACKAGE}.{name}"
        try:
            mod = import_module(module_name)
            logger.info(f"Imported tools module: {module_name}")
        except Exception:
            logger.exception(f"Failed to load tools from module {module_name}")
            continue
        if not hasattr(mod, "get_tools"):
            continue
        for tool_name, meta in mod.get_tools(client).items():
            if isinstance(meta, dict):
                func = meta.get("func")
                meta = dict(meta)
            else:
                func = meta
                meta = {"func": func}
            if not func:
                logger.warning(f"Tool {tool_name} in {module_name} did not provide a callable; skipping")
                continue
            discovered[tool_name] = meta
    return discovered


def register_tools(mcp: FastMCP, client: KlaviyoClient) -> List[str]:
    registered_tool_names: List[str] = []
    for tool_name, meta in discover_tools(client).items():
        try:
            mcp.add_tool(
                make_wrapper(meta["func"]),
                name=tool_name,
                title=meta.get("title"),
                description=meta.get("description"),
            )
            registered_tool_names.append(tool_name)
        except Exception:
            logger.exception(f"Failed to register tool {tool_name}")
    logger.info(f"Total tools registered: {len(registered_tool_names)} , tool names: {registered_tool_names}")
    return registered_tool_names


###################################################### Bootstrap ######################################################

def build_server(settings: Settings) -> FastMCP:
    cache = ResponseCache.from_settings(settings.cache)
    client = KlaviyoClient.from_settings(
        settings.api, cache=cache, log_settings=settings.logging, pagination=settings.pagination
    )

    @asynccontextmanager
    async def lifespan(app: FastMCP):
        cache.start()
        try:
            yield
        finally:
            logger.info("Shutting down...")
            await cache.shutdown()
            await client.aclose()

    resource_files = load_markdown_resources()
    instructions = next((content for path, content in resource_files if path.stem.lower() == "assistant_instructions"), None)

    mcp = FastMCP(SERVER_NAME, instructions=instructions, lifespan=lifespan)
    logger.info("MCP server instance created with instructions: %s", bool(instructions))

    register_markdown_resources(mcp, resource_files)
    register_uri_resources(mcp, client)
    register_tools(mcp, client)
    return mcp


def main() -> None:
    settings = load_settings()
    setup_logging(level=settings.logging.level, mask_sensitive_data=settings.logging.mask_sensitive_data)
    logger.info("MCP server bootstrap starting.")

    if not settings.api.api_key:
        logger.error("KLAVIYO_API_KEY is not set")
        print("Error: KLAVIYO_API_KEY environment variable is required", file=sys.stderr)
        print("Set it to your Klaviyo private API key (starts with pk_)", file=sys.stderr)
        sys.exit(1)

    try:
        mcp = build_server(settings)
    except ApiError as exc:
        logger.error(f"Invalid Klaviyo configuration: {exc.message}")
        print(f"Error: {exc.message}", file=sys.stderr)
        sys.exit(1)

    logger.info("Starting MCP server...")
    try:
        mcp.run(transport="stdio")
        logger.info("MCP server shut down.")
    except Exception:
        logger.exception("Unhandled exception running MCP server")
        print("Unhandled exception occurred. See logs/server.log for details.", file=sys.stderr)
        sys.exit(-1)


if __name__ == "__main__":
    main()
