"""
Model Context Protocol client.

JSON-RPC 2.0 requests travel over an explicit transport:

- StdioTransport: a subprocess speaking newline-delimited JSON on
  stdin/stdout. Responses are correlated to requests by id.
- HttpTransport: streamable HTTP. Each request is a POST; the response is
  either a JSON body or an SSE stream carrying the JSON-RPC response.

Closing a transport fails every pending request with McpError.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

from specgen import __version__
from specgen.errors import McpError

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-03-26"


class Transport(ABC):
    """Carries JSON-RPC messages to one MCP server."""

    async def connect(self) -> None:
        pass

    @abstractmethod
    async def exchange(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Send a message; return the response for requests, None for notifications."""

    @abstractmethod
    async def close(self) -> None:
        ...


class StdioTransport(Transport):
    """
    MCP server launched as a subprocess.

    Usage:
        transport = StdioTransport("npx", ["-y", "@modelcontextprotocol/server-github"])
        async with McpClient(transport) as client:
            tools = await client.list_tools()
    """

    def __init__(self, command: str, args: Sequence[str] = (), env: Optional[Dict[str, str]] = None):
        self.command = command
        self.args = list(args)
        self.env = env
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Any = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: Dict[Any, asyncio.Future] = {}
        self._closed = False

    async def connect(self) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                env=self.env,
            )
        except OSError as e:
            raise McpError(f"Failed to spawn MCP server {self.command}: {e}") from e
        self.attach(self._process.stdout, self._process.stdin)

    def attach(self, reader: asyncio.StreamReader, writer: Any) -> None:
        """Start reading responses from already-open streams."""
        self._reader = reader
        self._writer = writer
        self._reader_task = asyncio.ensure_future(self._read_loop())

    async def _read_loop(self) -> None:
        try:
            while True:
                line = await self._reader.readline()
                if not line:
                    break

                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                try:
                    message = json.loads(text)
                except ValueError:
                    logger.debug(f"Ignoring non-JSON output from MCP server: {text[:200]}")
                    continue

                if not isinstance(message, dict):
                    continue
                future = self._pending.pop(message.get("id"), None)
                if future is not None and not future.done():
                    future.set_result(message)
                else:
                    logger.debug(f"Unsolicited MCP message: {message.get('method') or message.get('id')}")
        finally:
            self._closed = True
            self._fail_pending(McpError("MCP transport closed"))

    def _fail_pending(self, error: McpError) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    async def exchange(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self._closed:
            raise McpError("MCP transport closed")
        if self._writer is None:
            raise McpError("MCP transport is not connected")

        future: Optional[asyncio.Future] = None
        if "id" in message:
            future = asyncio.get_running_loop().create_future()
            self._pending[message["id"]] = future

        self._writer.write((json.dumps(message) + "\n").encode("utf-8"))
        await self._writer.drain()

        if future is None:
            return None
        return await future

    async def close(self) -> None:
        self._closed = True

        # The read loop may already have ended on EOF; the process still needs reaping.
        writer, self._writer = self._writer, None
        if writer is not None:
            writer.close()
        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
        if self._process is not None and self._process.returncode is None:
            self._process.terminate()
            await self._process.wait()

        self._fail_pending(McpError("MCP transport closed"))


class HttpTransport(Transport):
    """MCP server reached over streamable HTTP."""

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.session_id: Optional[str] = None
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._closed = False

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def exchange(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self._closed:
            raise McpError("MCP transport closed")

        headers = {
            **self.headers,
            "Accept": "application/json, text/event-stream",
            "Content-Type": "application/json",
        }
        if self.session_id:
            headers["Mcp-Session-Id"] = self.session_id

        client = await self._get_client()
        try:
            response = await client.post(self.url, json=message, headers=headers)
        except httpx.HTTPError as e:
            raise McpError(f"MCP request {message.get('method')} failed: {e}") from e

        session_id = response.headers.get("mcp-session-id")
        if session_id:
            self.session_id = session_id

        if not response.is_success:
            raise McpError(f"MCP server returned {response.status_code}: {response.text[:200]}")
        if "id" not in message or response.status_code == 202:
            return None

        content_type = response.headers.get("content-type", "")
        if content_type.startswith("text/event-stream"):
            return parse_sse_response(response.text, message["id"])
        try:
            return response.json()
        except ValueError as e:
            raise McpError("MCP server returned invalid JSON") from e

    async def close(self) -> None:
        self._closed = True
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


def parse_sse_response(text: str, request_id: Any) -> Dict[str, Any]:
    """Find the JSON-RPC response for ``request_id`` in an SSE body."""
    for event in text.replace("\r\n", "\n").split("\n\n"):
        data_lines = [line[5:].lstrip() for line in event.splitlines() if line.startswith("data:")]
        if not data_lines:
            continue
        try:
            payload = json.loads("\n".join(data_lines))
        except ValueError:
            continue
        if isinstance(payload, dict) and payload.get("id") == request_id:
            return payload
    raise McpError(f"No response for request {request_id} in event stream")


@dataclass
class McpTool:
    name: str
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=dict)


@dataclass
class McpToolResult:
    content: List[Dict[str, Any]] = field(default_factory=list)
    is_error: bool = False

    @property
    def text(self) -> str:
        return "\n".join(item.get("text", "") for item in self.content if item.get("type") == "text")


class McpClient:
    """
    JSON-RPC client for one MCP server.

    Usage:
        async with McpClient(HttpTransport(url, headers=auth)) as client:
            result = await client.call_tool("get_me")
            print(result.text)
    """

    def __init__(self, transport: Transport, client_name: str = "specgen"):
        self.transport = transport
        self.client_name = client_name
        self.server_info: Dict[str, Any] = {}
        self._next_id = 0

    async def __aenter__(self) -> "McpClient":
        await self.transport.connect()
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self._next_id += 1
        message: Dict[str, Any] = {"jsonrpc": "2.0", "id": self._next_id, "method": method}
        if params is not None:
            message["params"] = params

        response = await self.transport.exchange(message)
        if response is None:
            raise McpError(f"No response to {method}")
        if "error" in response:
            error = response["error"] or {}
            raise McpError(f"{method} failed: {error.get('message', 'unknown error')}", code=error.get("code"))
        return response.get("result") or {}

    async def _notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        await self.transport.exchange(message)

    async def initialize(self) -> Dict[str, Any]:
        result = await self._request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": self.client_name, "version": __version__},
            },
        )
        self.server_info = result.get("serverInfo") or {}
        await self._notify("notifications/initialized")
        logger.info(f"Connected to MCP server {self.server_info.get('name', 'unknown')}")
        return result

    async def list_tools(self) -> List[McpTool]:
        tools: List[McpTool] = []
        cursor: Optional[str] = None
        while True:
            result = await self._request("tools/list", {"cursor": cursor} if cursor else None)
            for item in result.get("tools", []):
                tools.append(
                    McpTool(
                        name=item["name"],
                        description=item.get("description", ""),
                        input_schema=item.get("inputSchema", {}),
                    )
                )
            cursor = result.get("nextCursor")
            if not cursor:
                return tools

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> McpToolResult:
        result = await self._request("tools/call", {"name": name, "arguments": arguments or {}})
        return McpToolResult(content=result.get("content", []), is_error=bool(result.get("isError")))

    async def close(self) -> None:
        await self.transport.close()
