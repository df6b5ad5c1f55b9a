"""
Tests for the MCP client and transports

Covers:
- Request/response correlation over stdio streams
- Closing the transport fails pending requests
- Streamable HTTP with JSON and SSE responses
"""

import asyncio
import json

import httpx
import pytest

from specgen.errors import McpError
from specgen.integrations.mcp import HttpTransport, McpClient, StdioTransport, parse_sse_response
from tests.conftest import RecordingTransport


class FakeServerWriter:
    """Stands in for a subprocess stdin; answers requests via the paired reader."""

    def __init__(self, reader: asyncio.StreamReader, respond=True, reverse=False):
        self.reader = reader
        self.respond = respond
        self.reverse = reverse
        self.sent = []
        self._held = []

    def write(self, data: bytes) -> None:
        message = json.loads(data.decode())
        self.sent.append(message)
        if not self.respond or "id" not in message:
            return
        response = self.answer(message)
        if self.reverse:
            self._held.append(response)
            if len(self._held) == 2:
                for held in reversed(self._held):
                    self.reader.feed_data((json.dumps(held) + "\n").encode())
        else:
            self.reader.feed_data(b"server log line\n")
            self.reader.feed_data((json.dumps(response) + "\n").encode())

    def answer(self, message):
        method = message["method"]
        if method == "initialize":
            result = {"protocolVersion": "2025-03-26", "serverInfo": {"name": "fake", "version": "1"}}
        elif method == "tools/list":
            result = {"tools": [{"name": "echo", "description": "Echo", "inputSchema": {"type": "object"}}]}
        elif method == "tools/call":
            if message["params"]["name"] == "fail":
                return {"jsonrpc": "2.0", "id": message["id"], "error": {"code": -32602, "message": "bad params"}}
            text = message["params"]["arguments"].get("text", "")
            result = {"content": [{"type": "text", "text": text}], "isError": False}
        else:
            result = {}
        return {"jsonrpc": "2.0", "id": message["id"], "result": result}

    async def drain(self) -> None:
        await asyncio.sleep(0)

    def close(self) -> None:
        self.reader.feed_eof()


def stdio_pair(**kwargs):
    reader = asyncio.StreamReader()
    writer = FakeServerWriter(reader, **kwargs)
    transport = StdioTransport("fake-server")
    transport.attach(reader, writer)
    return transport, writer


# =============================================================================
# Stdio
# =============================================================================


class TestStdioTransport:
    """Tests for newline-delimited JSON-RPC over streams."""

    @pytest.mark.asyncio
    async def test_initialize_list_and_call(self):
        transport, writer = stdio_pair()
        client = McpClient(transport)

        await client.initialize()
        tools = await client.list_tools()
        result = await client.call_tool("echo", {"text": "hello"})
        await client.close()

        assert client.server_info["name"] == "fake"
        assert [t.name for t in tools] == ["echo"]
        assert result.text == "hello"
        assert not result.is_error
        methods = [m["method"] for m in writer.sent]
        assert methods == ["initialize", "notifications/initialized", "tools/list", "tools/call"]
        assert "id" not in writer.sent[1]

    @pytest.mark.asyncio
    async def test_responses_matched_by_id(self):
        """Out-of-order responses reach the request that sent them."""
        transport, _ = stdio_pair(reverse=True)
        client = McpClient(transport)

        first, second = await asyncio.gather(
            client.call_tool("echo", {"text": "one"}),
            client.call_tool("echo", {"text": "two"}),
        )

        assert (first.text, second.text) == ("one", "two")
        await client.close()

    @pytest.mark.asyncio
    async def test_json_rpc_error(self):
        transport, _ = stdio_pair()
        client = McpClient(transport)

        with pytest.raises(McpError) as exc_info:
            await client.call_tool("fail")

        assert exc_info.value.code == -32602
        assert "bad params" in str(exc_info.value)
        await client.close()

    @pytest.mark.asyncio
    async def test_close_fails_pending_requests(self):
        transport, _ = stdio_pair(respond=False)
        client = McpClient(transport)

        pending = asyncio.ensure_future(client.list_tools())
        await asyncio.sleep(0.01)
        await client.close()

        with pytest.raises(McpError):
            await pending

    @pytest.mark.asyncio
    async def test_send_after_close(self):
        transport, _ = stdio_pair()
        await transport.close()

        with pytest.raises(McpError):
            await transport.exchange({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

    @pytest.mark.asyncio
    async def test_server_exit_closes_transport(self):
        """Once the server's stdout ends, new requests fail instead of waiting forever."""
        transport, writer = stdio_pair()
        writer.reader.feed_eof()
        await asyncio.sleep(0.01)

        with pytest.raises(McpError):
            await asyncio.wait_for(
                transport.exchange({"jsonrpc": "2.0", "id": 1, "method": "tools/list"}), timeout=1.0
            )
        assert writer.sent == []

        await transport.close()

    @pytest.mark.asyncio
    async def test_server_exit_fails_inflight_request(self):
        transport, writer = stdio_pair(respond=False)
        pending = asyncio.ensure_future(
            transport.exchange({"jsonrpc": "2.0", "id": 7, "method": "tools/list"})
        )
        await asyncio.sleep(0.01)

        writer.reader.feed_eof()

        with pytest.raises(McpError):
            await asyncio.wait_for(pending, timeout=1.0)

    @pytest.mark.asyncio
    async def test_spawn_failure(self):
        transport = StdioTransport("/nonexistent/mcp-server-binary")

        with pytest.raises(McpError):
            await transport.connect()


# =============================================================================
# Streamable HTTP
# =============================================================================


class TestHttpTransport:
    """Tests for the streamable HTTP transport."""

    @pytest.mark.asyncio
    async def test_json_response_and_session_header(self):
        def handler(request):
            message = json.loads(request.content)
            if "id" not in message:
                return httpx.Response(202)
            if message["method"] == "initialize":
                return httpx.Response(
                    200,
                    json={"jsonrpc": "2.0", "id": message["id"], "result": {"serverInfo": {"name": "gh"}}},
                    headers={"Mcp-Session-Id": "session-1"},
                )
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": message["id"], "result": {"tools": []}})

        mock = RecordingTransport(handler)
        client = McpClient(HttpTransport("https://mcp.example.com/mcp", {"Authorization": "Bearer t"}, transport=mock))

        await client.initialize()
        tools = await client.list_tools()
        await client.close()

        assert tools == []
        assert client.server_info == {"name": "gh"}
        assert "Mcp-Session-Id" not in mock.requests[0].headers
        assert mock.requests[2].headers["Mcp-Session-Id"] == "session-1"
        assert mock.requests[0].headers["Authorization"] == "Bearer t"
        assert "text/event-stream" in mock.requests[0].headers["Accept"]

    @pytest.mark.asyncio
    async def test_sse_response(self):
        def handler(request):
            message = json.loads(request.content)
            body = (
                "event: message\n"
                'data: {"jsonrpc": "2.0", "method": "notifications/progress"}\n\n'
                "event: message\n"
                f'data: {{"jsonrpc": "2.0", "id": {message["id"]}, "result": {{"content": [{{"type": "text", "text": "ok"}}]}}}}\n\n'
            )
            return httpx.Response(200, text=body, headers={"Content-Type": "text/event-stream"})

        client = McpClient(HttpTransport("https://mcp.example.com/mcp", transport=httpx.MockTransport(handler)))

        result = await client.call_tool("get_me")

        assert result.text == "ok"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        transport = HttpTransport(
            "https://mcp.example.com/mcp",
            transport=httpx.MockTransport(lambda r: httpx.Response(401, text="unauthorized")),
        )

        with pytest.raises(McpError):
            await McpClient(transport).list_tools()

    @pytest.mark.asyncio
    async def test_closed_transport(self):
        transport = HttpTransport("https://mcp.example.com/mcp", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        await transport.close()

        with pytest.raises(McpError):
            await transport.exchange({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

    def test_sse_without_matching_response(self):
        with pytest.raises(McpError):
            parse_sse_response('data: {"jsonrpc": "2.0", "id": 7, "result": {}}\n\n', 8)
