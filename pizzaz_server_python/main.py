"""Pizzaz demo MCP server implemented with the Python MCP SDK.

The server exposes widget-backed tools that render the Pizzaz UI bundle. Each
handler returns the HTML shell via an MCP resource and echoes the selected
topping as structured content so the ChatGPT client can hydrate the widget.
This module wires the handlers into a Starlette app with a single POST-only
``/mcp`` endpoint. Run it with ``pizzaz-server`` or
``uvicorn --factory pizzaz_server_python.main:create_app_from_env`` on ``PORT``
(3000 by default)."""


from __future__ import annotations

from starlette.applications import Starlette
from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .config import Settings, transport_security_settings
from .log_config import configure_logging, get_logger
from .server import create_pizzaz_server
from .transport import MCPEndpoint
from .widgets import WidgetCatalog, build_widgets

logger = get_logger(__name__)

MCP_PATH = "/mcp"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class CORSHeadersMiddleware:
    """Attach fixed CORS headers to every response and answer any OPTIONS with 200."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            response = Response(status_code=200, headers=CORS_HEADERS)
            await response(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for key, value in CORS_HEADERS.items():
                    headers[key] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)


async def method_not_allowed(request: Request) -> Response:
    return JSONResponse({"error": "Method Not Allowed"}, status_code=405)


def create_app(settings: Settings | None = None) -> Starlette:
    settings = settings or Settings.from_env()

    catalog = WidgetCatalog(build_widgets(settings.assets_dir, settings.assets_base_url))
    mcp = create_pizzaz_server(catalog)

    endpoint = MCPEndpoint(
        mcp._mcp_server,
        json_response=settings.json_response,
        security_settings=transport_security_settings(settings),
    )

    app = Starlette(
        routes=[
            Route(MCP_PATH, endpoint=endpoint, methods=["POST"]),
            Route(MCP_PATH, endpoint=method_not_allowed, methods=["GET", "DELETE"]),
        ],
    )
    app.add_middleware(CORSHeadersMiddleware)
    return app


def create_app_from_env(settings: Settings | None = None) -> Starlette:
    """App factory for ``uvicorn --factory``: configure logging, then build the app."""
    settings = settings or Settings.from_env()
    configure_logging(settings)
    return create_app(settings)


def main() -> None:
    import uvicorn

    settings = Settings.from_env()
    app = create_app_from_env(settings)
    logger.info(
        "server_starting",
        host=settings.host,
        port=settings.port,
        endpoint=f"http://localhost:{settings.port}{MCP_PATH}",
    )
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
