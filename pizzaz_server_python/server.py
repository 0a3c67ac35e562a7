"""MCP request handlers that expose the Pizzaz widget catalog.

Each widget becomes one tool, one resource and one resource template. Calling a
widget's tool validates the ``pizzaTopping`` argument, echoes it back as
structured content and points the client at the widget's HTML resource through
the shared ``_meta`` block, so ChatGPT can hydrate the widget.
"""

from __future__ import annotations

from typing import Any, Dict, List

import mcp.types as types
from mcp.server.fastmcp import FastMCP
from mcp.shared.exceptions import McpError
from pydantic import BaseModel, ConfigDict, ValidationError

from .widgets import PizzazWidget, WidgetCatalog, widget_meta

MIME_TYPE = "text/html+skybridge"

# MCP convention for resources/read misses.
RESOURCE_NOT_FOUND = -32002

TOOL_INPUT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "pizzaTopping": {
            "type": "string",
            "description": "Topping to mention when rendering the widget.",
        },
    },
    "required": ["pizzaTopping"],
    "additionalProperties": False,
}

# To disable the approval prompt for the widgets
TOOL_ANNOTATIONS: Dict[str, Any] = {
    "destructiveHint": False,
    "openWorldHint": False,
    "readOnlyHint": True,
}


class ToolInput(BaseModel):
    """Arguments accepted by every widget tool."""

    model_config = ConfigDict(extra="forbid", strict=True)

    pizzaTopping: str


def _resource_description(widget: PizzazWidget) -> str:
    return f"{widget.title} widget markup"


def _tool(widget: PizzazWidget) -> types.Tool:
    return types.Tool(
        name=widget.identifier,
        title=widget.title,
        description=widget.title,
        inputSchema=TOOL_INPUT_SCHEMA,
        _meta=widget_meta(widget),
        annotations=TOOL_ANNOTATIONS,
    )


def _resource(widget: PizzazWidget) -> types.Resource:
    return types.Resource(
        name=widget.title,
        title=widget.title,
        uri=widget.template_uri,
        description=_resource_description(widget),
        mimeType=MIME_TYPE,
        _meta=widget_meta(widget),
    )


def _resource_template(widget: PizzazWidget) -> types.ResourceTemplate:
    return types.ResourceTemplate(
        name=widget.title,
        title=widget.title,
        uriTemplate=widget.template_uri,
        description=_resource_description(widget),
        mimeType=MIME_TYPE,
        _meta=widget_meta(widget),
    )


def _validation_error(tool_name: str, exc: ValidationError) -> McpError:
    violations = [
        {
            "loc": [str(part) for part in error["loc"]],
            "msg": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors(include_url=False)
    ]
    summary = "; ".join(
        f"{'.'.join(violation['loc']) or 'arguments'}: {violation['msg']}"
        for violation in violations
    )
    return McpError(
        types.ErrorData(
            code=types.INVALID_PARAMS,
            message=f"Invalid arguments for tool {tool_name}: {summary}",
            data={"name": tool_name, "errors": violations},
        )
    )


def create_pizzaz_server(catalog: WidgetCatalog, name: str = "pizzaz-python") -> FastMCP:
    """Build a FastMCP server whose handlers answer from ``catalog``.

    Descriptor lists are derived once here; the catalog never changes after
    startup, so repeated list calls return identical payloads.
    """
    mcp = FastMCP(name=name)

    tools = [_tool(widget) for widget in catalog]
    resources = [_resource(widget) for widget in catalog]
    resource_templates = [_resource_template(widget) for widget in catalog]

    @mcp._mcp_server.list_tools()
    async def _list_tools() -> List[types.Tool]:
        return list(tools)

    @mcp._mcp_server.list_resources()
    async def _list_resources() -> List[types.Resource]:
        return list(resources)

    @mcp._mcp_server.list_resource_templates()
    async def _list_resource_templates() -> List[types.ResourceTemplate]:
        return list(resource_templates)

    async def _handle_read_resource(req: types.ReadResourceRequest) -> types.ServerResult:
        requested_uri = str(req.params.uri)
        widget = catalog.get_by_uri(requested_uri)
        if widget is None:
            raise McpError(
                types.ErrorData(
                    code=RESOURCE_NOT_FOUND,
                    message=f"Unknown resource: {requested_uri}",
                    data={"uri": requested_uri},
                )
            )

        contents = [
            types.TextResourceContents(
                uri=widget.template_uri,
                mimeType=MIME_TYPE,
                text=widget.html,
                _meta=widget_meta(widget),
            )
        ]

        return types.ServerResult(types.ReadResourceResult(contents=contents))

    async def _call_tool_request(req: types.CallToolRequest) -> types.ServerResult:
        tool_name = req.params.name
        widget = catalog.get_by_id(tool_name)
        if widget is None:
            raise McpError(
                types.ErrorData(
                    code=types.INVALID_PARAMS,
                    message=f"Unknown tool: {tool_name}",
                    data={"name": tool_name},
                )
            )

        try:
            arguments = ToolInput.model_validate(req.params.arguments or {})
        except ValidationError as exc:
            raise _validation_error(tool_name, exc) from exc

        return types.ServerResult(
            types.CallToolResult(
                content=[
                    types.TextContent(
                        type="text",
                        text=widget.response_text,
                    )
                ],
                structuredContent={"pizzaTopping": arguments.pizzaTopping},
                _meta=widget_meta(widget),
            )
        )

    mcp._mcp_server.request_handlers[types.CallToolRequest] = _call_tool_request
    mcp._mcp_server.request_handlers[types.ReadResourceRequest] = _handle_read_resource

    return mcp
