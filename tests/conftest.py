"""
Pytest configuration and shared fixtures.

Fixtures defined here are available to all tests.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import pytest
from starlette.testclient import TestClient

from pizzaz_server_python.config import Settings
from pizzaz_server_python.main import create_app
from pizzaz_server_python.server import create_pizzaz_server
from pizzaz_server_python.widgets import WidgetCatalog, build_widgets

MCP_HEADERS = {
    "Accept": "application/json, text/event-stream",
    "Content-Type": "application/json",
}


def rpc(method: str, params: Optional[Dict[str, Any]] = None, id: Any = 1) -> Dict[str, Any]:
    """Build a JSON-RPC 2.0 request envelope."""
    message: Dict[str, Any] = {"jsonrpc": "2.0", "id": id, "method": method}
    if params is not None:
        message["params"] = params
    return message


# =============================================================================
# Catalog Fixtures
# =============================================================================


@pytest.fixture
def assets_dir(tmp_path: Path) -> Path:
    """Empty assets directory, so widgets fall back to the inline HTML shell."""
    path = tmp_path / "assets"
    path.mkdir()
    return path


@pytest.fixture
def settings(assets_dir: Path) -> Settings:
    return Settings(assets_dir=assets_dir, assets_base_url="http://assets.test")


@pytest.fixture
def widgets(settings: Settings):
    return build_widgets(settings.assets_dir, settings.assets_base_url)


@pytest.fixture
def catalog(widgets) -> WidgetCatalog:
    return WidgetCatalog(widgets)


@pytest.fixture
def mcp_server(catalog: WidgetCatalog):
    """FastMCP server bound to the test catalog."""
    return create_pizzaz_server(catalog)


# =============================================================================
# App Fixtures
# =============================================================================


@pytest.fixture
def app(settings: Settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """Sync test client for HTTP tests."""
    return TestClient(app)


@pytest.fixture
def mcp_headers() -> Dict[str, str]:
    return dict(MCP_HEADERS)


@pytest.fixture
def make_rpc():
    """Factory for JSON-RPC request envelopes."""
    return rpc


@pytest.fixture
def post_mcp(client):
    """POST a JSON-RPC payload (message or batch) to /mcp."""

    def post(payload: Any, headers: Optional[Dict[str, str]] = None):
        return client.post("/mcp", json=payload, headers={**MCP_HEADERS, **(headers or {})})

    return post


@pytest.fixture
async def async_client(app):
    """Async test client for concurrent HTTP tests."""
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
