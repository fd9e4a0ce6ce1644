import logging
import time
from contextlib import AsyncExitStack
from typing import Any, Dict, Optional

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from .models import MCPServerConfig, MCPSession, MCPTool, MCPToolResult

logger = logging.getLogger(__name__)


class MCPClient:
    """Stdio client for an MCP tool server"""

    def __init__(self, client_name: str = "mcp-e2e-agent"):
        self.client_name = client_name
        self.session: Optional[MCPSession] = None
        self._client: Optional[ClientSession] = None
        self._exit_stack: Optional[AsyncExitStack] = None

    async def connect(self, config: MCPServerConfig) -> MCPSession:
        """Spawn the server process and list its tools"""
        logger.info("Connecting to MCP server: %s %s", config.command, " ".join(config.args))

        params = StdioServerParameters(command=config.command, args=config.args, env=config.env)
        exit_stack = AsyncExitStack()

        try:
            read_stream, write_stream = await exit_stack.enter_async_context(stdio_client(params))
            client = await exit_stack.enter_async_context(ClientSession(read_stream, write_stream))
            await client.initialize()
            tools_response = await client.list_tools()
        except Exception:
            await exit_stack.aclose()
            logger.exception("MCP server connection failed")
            raise

        tools = [
            MCPTool(
                name=tool.name,
                description=tool.description or "",
                input_schema=tool.inputSchema or {},
            )
            for tool in tools_response.tools
        ]

        self._client = client
        self._exit_stack = exit_stack
        self.session = MCPSession(
            session_id=str(int(time.time() * 1000)),
            is_connected=True,
            available_tools=tools,
        )

        logger.info("MCP server connected, %d tools available", len(tools))
        for tool in tools:
            logger.debug("  - %s", tool.name)

        return self.session

    async def call_tool(self, tool_name: str, params: Dict[str, Any]) -> MCPToolResult:
        """Call a tool; transport failures come back as error results"""
        if self._client is None or self.session is None or not self.session.is_connected:
            raise RuntimeError("MCP server is not connected")

        try:
            response = await self._client.call_tool(tool_name, arguments=params)
        except Exception as e:
            logger.error("MCP tool %s failed: %s", tool_name, e)
            return MCPToolResult(content=None, is_error=True, error=str(e))

        content = [item.model_dump() for item in response.content]
        error = None
        if response.isError:
            error = " ".join(item.get("text", "") for item in content if item.get("type") == "text").strip()

        return MCPToolResult(content=content, is_error=bool(response.isError), error=error or None)

    async def disconnect(self):
        """Close the session and stop the server process"""
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            self._exit_stack = None
        self._client = None

        if self.session is not None:
            self.session = None
            logger.info("MCP server disconnected")

    def get_session(self) -> Optional[MCPSession]:
        return self.session
