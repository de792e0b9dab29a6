import json
from typing import Any, Dict, List, Optional

from mcp.server import Server
import mcp.types as types

from mcp.server.models import InitializationOptions
from mcp.server import NotificationOptions

from mcp.server.stdio import stdio_server
import anyio

from reinfolib_mcp import __version__
from reinfolib_mcp.client import ReinfolibClient
from reinfolib_mcp.config import Settings, load_settings
from reinfolib_mcp.tools import TOOLS, call_tool
from reinfolib_mcp.utils import clip_utf8, logger, new_request_id, Timer

SERVER_NAME = "reinfolib-mcp"

server = Server(SERVER_NAME)

# set by run_stdio(); handlers fall back to environment settings
_settings: Optional[Settings] = None


def render_result(data: Any, limit_bytes: int) -> str:
    return clip_utf8(json.dumps(data, ensure_ascii=False), limit_bytes)


# ---------- tools catalog ----------
@server.list_tools()
async def handle_list_tools() -> List[types.Tool]:
    return TOOLS


# ---------- tools handler ----------
@server.call_tool()
async def handle_call_tool(name: str, arguments: Dict[str, Any]) -> List[types.TextContent]:
    rid = new_request_id()
    cfg = _settings or load_settings()
    client = ReinfolibClient(cfg)

    # ToolError propagates; the low-level server reports it as an isError result
    try:
        with Timer() as t:
            data = await call_tool(name, arguments, client)
        logger.info("tool_done", extra={"rid": rid, "tool": name, "elapsed_ms": t.elapsed_ms})
        return [types.TextContent(type="text", text=render_result(data, cfg.max_response_bytes))]

    finally:
        await client.close()


async def _main() -> None:
    async with stdio_server() as (read, write):
        caps = server.get_capabilities(
            notification_options=NotificationOptions(),
            experimental_capabilities={}
        )

        init_opts = InitializationOptions(
            server_name=SERVER_NAME,
            server_version=__version__,
            capabilities=caps
        )

        await server.run(read, write, init_opts)


def run_stdio(settings: Optional[Settings] = None) -> None:
    global _settings
    _settings = settings
    anyio.run(_main)


if __name__ == "__main__":
    run_stdio()
