import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

from .mcp_client import MCPClient
from .models import MCPServerConfig, MCPSession, MCPTool, MCPToolResult

logger = logging.getLogger(__name__)

# browser_evaluate answers with markdown sections; the value sits under "### Result"
RESULT_SECTION_PATTERN = re.compile(r"###\s*Result\s*\n(.*?)(?:\n###|\Z)", re.DOTALL)


class AutomationError(Exception):
    """Browser automation call failed (navigation, tool call, evaluation)"""


def join_url(base_url: str, path: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{base_url.rstrip('/')}{path}"


class PlaywrightMCPService:
    """Drive a browser through the Playwright MCP server.

    Elements are addressed by the ``ref`` identifiers of the most recent
    accessibility snapshot, never by DOM handles.
    """

    def __init__(
        self,
        base_url: str,
        command: str = "npx",
        args: Optional[List[str]] = None,
        client: Optional[MCPClient] = None,
    ):
        self.base_url = base_url
        self.server_config = MCPServerConfig(
            command=command,
            args=args if args is not None else ["@playwright/mcp@latest"],
            env=dict(os.environ),
        )
        self.mcp_client = client or MCPClient()
        self.session: Optional[MCPSession] = None

    async def start_session(self) -> MCPSession:
        self.session = await self.mcp_client.connect(self.server_config)
        return self.session

    async def _call(self, tool_name: str, params: Dict[str, Any], failure: str) -> MCPToolResult:
        result = await self.mcp_client.call_tool(tool_name, params)
        if result.is_error:
            raise AutomationError(f"{failure}: {result.error or 'unknown error'}")
        return result

    @staticmethod
    def _first_text(result: MCPToolResult) -> str:
        for item in result.content or []:
            if item.get("type") == "text":
                return item.get("text") or ""
        return ""

    async def navigate(self, path: str):
        """Open a path relative to the base URL, or an absolute URL"""
        url = join_url(self.base_url, path)
        logger.info("Navigating to %s", url)
        await self._call("browser_navigate", {"url": url}, f"Navigation to {url} failed")

    async def snapshot(self) -> str:
        """Accessibility snapshot of the current page"""
        result = await self._call("browser_snapshot", {}, "Snapshot capture failed")
        text = "\n".join(
            item.get("text") or "" for item in result.content or [] if item.get("type") == "text"
        )
        logger.info("Captured snapshot (%d lines)", text.count("\n") + 1 if text else 0)
        return text

    async def click(self, element: str, ref: str):
        logger.info("Clicking %s [%s]", element, ref)
        await self._call("browser_click", {"element": element, "ref": ref}, f"Click on {element} failed")

    async def type(self, element: str, ref: str, text: str):
        logger.info("Typing into %s [%s]", element, ref)
        await self._call(
            "browser_type",
            {"element": element, "ref": ref, "text": text},
            f"Typing into {element} failed",
        )

    async def evaluate_page(self, script: str) -> Any:
        """Run a function in the page and return its JSON value"""
        result = await self._call("browser_evaluate", {"function": script}, "Page evaluation failed")
        return self.parse_evaluation(self._first_text(result))

    async def evaluate_element(self, element: str, ref: str, script: str) -> Any:
        """Run ``element => ...`` against the node behind ``ref``"""
        result = await self._call(
            "browser_evaluate",
            {"function": script, "element": element, "ref": ref},
            f"Evaluation on {element} failed",
        )
        return self.parse_evaluation(self._first_text(result))

    async def take_screenshot(self, element: Optional[str] = None, ref: Optional[str] = None) -> Optional[str]:
        """Base64 PNG of the page or of one element"""
        params = {}
        if element and ref:
            params = {"element": element, "ref": ref}

        result = await self._call("browser_take_screenshot", params, "Screenshot failed")
        for item in result.content or []:
            if item.get("type") == "image":
                return item.get("data")
        return None

    @staticmethod
    def parse_evaluation(text: str) -> Any:
        """Decode an evaluation result, None when it is not JSON"""
        if not text:
            return None

        section = RESULT_SECTION_PATTERN.search(text)
        candidate = section.group(1).strip() if section else text.strip()

        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            logger.debug("Evaluation result is not JSON: %.200s", candidate)
            return None

    async def close(self):
        await self.mcp_client.disconnect()
        self.session = None

    def get_session(self) -> Optional[MCPSession]:
        return self.session

    def get_available_tools(self) -> List[MCPTool]:
        return self.session.available_tools if self.session else []

    def has_tool_available(self, tool_name: str) -> bool:
        return any(tool.name == tool_name for tool in self.get_available_tools())
