"""Streamable HTTP binding for the Pizzaz MCP server.

``MCPEndpoint`` is the ASGI app behind ``POST /mcp``. For every request it
decodes the JSON-RPC payload, settles the session id and hands the message(s)
to a fresh :class:`PizzazTransportAdapter`, which drives the MCP SDK's
``StreamableHTTPServerTransport`` in stateless mode. Nothing is shared between
requests except the immutable server handlers.
"""

from __future__ import annotations

import json
import re
import uuid
from typing import Any, Dict, List, Optional, Sequence

import anyio
from mcp.server.lowlevel import Server
from mcp.server.streamable_http import (
    MCP_SESSION_ID_HEADER,
    StreamableHTTPServerTransport,
)
from mcp.server.transport_security import TransportSecuritySettings
import mcp.types as types
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import Message, Receive, Scope, Send

from .log_config import get_logger

logger = get_logger(__name__)

INTERNAL_ERROR_RESPONSE: Dict[str, Any] = {
    "jsonrpc": "2.0",
    "error": {
        "code": types.INTERNAL_ERROR,
        "message": "Internal server error",
    },
    "id": None,
}

INVALID_BATCH_RESPONSE: Dict[str, Any] = {
    "jsonrpc": "2.0",
    "error": {
        "code": types.INVALID_REQUEST,
        "message": "Invalid Request: empty batch",
    },
    "id": None,
}

INVALID_SESSION_RESPONSE: Dict[str, Any] = {
    "jsonrpc": "2.0",
    "error": {
        "code": types.INVALID_REQUEST,
        "message": "Bad Request: session ID must only contain visible ASCII characters",
    },
    "id": None,
}

# Same range the SDK transport enforces on mcp_session_id.
SESSION_ID_PATTERN = re.compile(r"[\x21-\x7E]+")


class InvalidSessionIdError(ValueError):
    """Raised when a client-supplied session id cannot be carried by the transport."""


def as_batch(payload: Any) -> List[Any]:
    """Treat a single JSON-RPC message as a one-element batch."""
    return payload if isinstance(payload, list) else [payload]


def is_initialization_batch(messages: Sequence[Any]) -> bool:
    return any(
        isinstance(message, dict) and message.get("method") == "initialize"
        for message in messages
    )


def resolve_session_id(header_value: Optional[str], messages: Sequence[Any]) -> Optional[str]:
    """Pick the session id for a request.

    A client-supplied id is reused as-is (stateless mode keeps no record of
    issued ids) as long as it is visible ASCII; anything else raises
    :class:`InvalidSessionIdError`. Otherwise a new id is minted only for
    initialization batches.
    """
    if header_value:
        if not SESSION_ID_PATTERN.fullmatch(header_value):
            raise InvalidSessionIdError(f"Invalid session ID: {header_value!r}")
        logger.debug("session_id_reused", session_id=header_value)
        return header_value
    if is_initialization_batch(messages):
        session_id = str(uuid.uuid4())
        logger.info("session_id_generated", session_id=session_id)
        return session_id
    return None


class _BufferedResponse:
    """ASGI ``send`` that keeps the response in memory."""

    def __init__(self) -> None:
        self.status_code: Optional[int] = None
        self.body = b""

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status_code = message["status"]
        elif message["type"] == "http.response.body":
            self.body += message.get("body", b"")


class PizzazTransportAdapter:
    """Per-request binding between one HTTP exchange and the MCP server.

    ``session_id`` is fixed at construction and handed to every SDK transport
    this adapter opens. Single messages stream straight through to the client;
    batches are fanned out one transport per element and their JSON-RPC
    responses are collected into an array.
    """

    def __init__(
        self,
        server: Server,
        session_id: Optional[str] = None,
        *,
        json_response: bool = True,
        security_settings: Optional[TransportSecuritySettings] = None,
    ) -> None:
        self.session_id = session_id
        self._server = server
        self._json_response = json_response
        self._security_settings = security_settings
        self._transports: List[StreamableHTTPServerTransport] = []
        self._disconnected = anyio.Event()
        self._closed = False
        self.response_started = False

    @property
    def disconnected(self) -> bool:
        return self._disconnected.is_set()

    async def handle(self, scope: Scope, receive: Receive, send: Send, body: bytes, payload: Any) -> None:
        """Dispatch an already-read request body and write the response to ``send``.

        ``receive`` must be the connection's receive channel with the body
        already consumed; it is only watched for ``http.disconnect``.
        """

        async def guarded_send(message: Message) -> None:
            if self.disconnected:
                return
            if message["type"] == "http.response.start":
                self.response_started = True
            await send(message)

        async with anyio.create_task_group() as tg:
            tg.start_soon(self._watch_disconnect, receive, tg.cancel_scope)
            try:
                if isinstance(payload, list):
                    await self._dispatch_batch(scope, payload, guarded_send)
                else:
                    await self._dispatch(scope, body, guarded_send, self._json_response)
            finally:
                await self.close()
                tg.cancel_scope.cancel()

    async def close(self) -> None:
        """Terminate every transport opened for this request. Idempotent."""
        if self._closed:
            return
        self._closed = True
        with anyio.CancelScope(shield=True):
            for transport in self._transports:
                await transport.terminate()

    async def _watch_disconnect(self, receive: Receive, cancel_scope: anyio.CancelScope) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                break
        logger.debug("mcp_request_closed", session_id=self.session_id)
        self._disconnected.set()
        cancel_scope.cancel()
        await self.close()

    def _replay_receive(self, body: bytes) -> Receive:
        delivered = False

        async def receive() -> Message:
            nonlocal delivered
            if not delivered:
                delivered = True
                return {"type": "http.request", "body": body, "more_body": False}
            await self._disconnected.wait()
            return {"type": "http.disconnect"}

        return receive

    async def _dispatch(self, scope: Scope, body: bytes, send: Send, json_response: bool) -> None:
        if self._closed:
            return
        transport = StreamableHTTPServerTransport(
            mcp_session_id=self.session_id,
            is_json_response_enabled=json_response,
            event_store=None,
            security_settings=self._security_settings,
        )
        self._transports.append(transport)

        async def run_server(*, task_status=anyio.TASK_STATUS_IGNORED) -> None:
            async with transport.connect() as streams:
                read_stream, write_stream = streams
                task_status.started()
                await self._server.run(
                    read_stream,
                    write_stream,
                    self._server.create_initialization_options(),
                    stateless=True,
                )

        async with anyio.create_task_group() as tg:
            await tg.start(run_server)
            await transport.handle_request(scope, self._replay_receive(body), send)
            await transport.terminate()
            tg.cancel_scope.cancel()

    def _message_scope(self, scope: Scope) -> Scope:
        skipped = {b"content-length", MCP_SESSION_ID_HEADER.encode("latin-1")}
        headers = [(key, value) for key, value in scope["headers"] if key.lower() not in skipped]
        if self.session_id:
            headers.append(
                (MCP_SESSION_ID_HEADER.encode("latin-1"), self.session_id.encode("latin-1"))
            )
        return {**scope, "headers": headers}

    async def _dispatch_batch(self, scope: Scope, messages: List[Any], send: Send) -> None:
        headers = {MCP_SESSION_ID_HEADER: self.session_id} if self.session_id else None

        if not messages:
            response: Response = JSONResponse(INVALID_BATCH_RESPONSE, status_code=400, headers=headers)
            await response(scope, self._replay_receive(b""), send)
            return

        results: List[Any] = []
        for message in messages:
            buffered = _BufferedResponse()
            await self._dispatch(
                self._message_scope(scope),
                json.dumps(message).encode("utf-8"),
                buffered,
                json_response=True,
            )
            if not buffered.body:
                continue
            try:
                results.append(json.loads(buffered.body))
            except ValueError:
                logger.warning(
                    "batch_response_skipped",
                    status_code=buffered.status_code,
                    session_id=self.session_id,
                )

        if results:
            response = JSONResponse(results, headers=headers)
        else:
            response = Response(status_code=202, headers=headers)
        await response(scope, self._replay_receive(b""), send)


class MCPEndpoint:
    """ASGI app for ``POST /mcp``."""

    def __init__(
        self,
        server: Server,
        *,
        json_response: bool = True,
        security_settings: Optional[TransportSecuritySettings] = None,
    ) -> None:
        self.server = server
        self.json_response = json_response
        self.security_settings = security_settings

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        logger.info("mcp_request_received", method=request.method, path=request.url.path)

        adapter: Optional[PizzazTransportAdapter] = None
        try:
            body = await request.body()
            payload = json.loads(body)
            messages = as_batch(payload)
            try:
                session_id = resolve_session_id(
                    request.headers.get(MCP_SESSION_ID_HEADER), messages
                )
            except InvalidSessionIdError:
                logger.warning("session_id_rejected")
                response = JSONResponse(INVALID_SESSION_RESPONSE, status_code=400)
                await response(scope, receive, send)
                return

            adapter = PizzazTransportAdapter(
                self.server,
                session_id,
                json_response=self.json_response,
                security_settings=self.security_settings,
            )
            await adapter.handle(scope, receive, send, body, payload)
        except Exception:
            logger.exception("mcp_request_failed")
            if adapter is not None and (adapter.response_started or adapter.disconnected):
                return
            response = JSONResponse(INTERNAL_ERROR_RESPONSE, status_code=500)
            await response(scope, receive, send)
