"""
Plain HTTP front end for the tool registry.

    GET  /health               -> {"status": "ok"}
    GET  /.well-known/mcp      -> server metadata + tool catalog
    POST /tools/{tool_name}    -> run one tool with the JSON body as arguments
"""
import json
from typing import Any, Callable, Optional

from aiohttp import web

from .client import ReinfolibClient
from .config import Settings
from .tools import (
    InvalidToolArguments,
    ToolError,
    UnknownToolError,
    call_tool,
    describe_tools,
)
from .utils import logger, new_request_id, Timer

PROTOCOL_VERSION = "0.1.0"
DISPLAY_NAME = "不動産情報ライブラリMCP"
DESCRIPTION = "国土交通省の不動産情報ライブラリAPIを使って不動産情報を検索するMCPサーバー"

CLIENT_KEY = web.AppKey("reinfolib_client", ReinfolibClient)


def _json(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=lambda o: json.dumps(o, ensure_ascii=False))


async def health(request: web.Request) -> web.Response:
    return _json({"status": "ok"})


async def metadata(request: web.Request) -> web.Response:
    return _json({
        "protocol_version": PROTOCOL_VERSION,
        "display_name": DISPLAY_NAME,
        "description": DESCRIPTION,
        "tools": describe_tools(),
    })


async def run_tool(request: web.Request) -> web.Response:
    name = request.match_info["tool_name"]
    rid = new_request_id()

    arguments: Any = {}
    if request.can_read_body:
        try:
            arguments = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _json({"error": "request body must be JSON"}, status=400)
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        return _json({"error": "request body must be a JSON object"}, status=400)

    try:
        with Timer() as t:
            data = await call_tool(name, arguments, request.app[CLIENT_KEY])
    except UnknownToolError as e:
        return _json({"error": str(e)}, status=404)
    except InvalidToolArguments as e:
        return _json({"error": str(e)}, status=400)
    except ToolError as e:
        logger.error("tool_error", extra={"rid": rid, "tool": name, "error": str(e)})
        return _json({"error": str(e)}, status=500)

    logger.info("tool_done", extra={"rid": rid, "tool": name, "elapsed_ms": t.elapsed_ms})
    return _json(data)


def create_app(
    settings: Optional[Settings] = None,
    client_factory: Callable[[Optional[Settings]], Any] = ReinfolibClient,
) -> web.Application:
    app = web.Application()

    async def client_ctx(app: web.Application):
        client = client_factory(settings)
        app[CLIENT_KEY] = client
        yield
        await client.close()

    app.cleanup_ctx.append(client_ctx)
    app.router.add_get("/health", health)
    app.router.add_get("/.well-known/mcp", metadata)
    app.router.add_post("/tools/{tool_name}", run_tool)
    return app


def run_http(settings: Settings, host: str, port: int) -> None:
    logger.info(
        "server_started",
        extra={"url": f"http://{host}:{port}", "metadata": f"http://{host}:{port}/.well-known/mcp"},
    )
    web.run_app(create_app(settings), host=host, port=port, print=None)
