import asyncio
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from pydantic import TypeAdapter

from .config import DEFAULT_CONFIG_FILE, AgentConfig, load_config
from .context_manager import SessionContextManager
from .models import PageObjectSpec, ScenarioDocument
from .pipeline import GenerationPipeline
from .planner import Planner

logger = logging.getLogger(__name__)

PAGE_SPECS_ADAPTER = TypeAdapter(List[PageObjectSpec])

SCENARIO_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "scenario_path": {
            "type": "string",
            "description": "Path to a scenario markdown file"
        },
        "content": {
            "type": "string",
            "description": "Scenario markdown, used when no path is given"
        },
        "session_id": {"type": "string", "default": "default"}
    }
}


class E2EAgentServer:
    """MCP server exposing scenario parsing, planning and test generation"""

    def __init__(self, config: AgentConfig, pipeline: Optional[GenerationPipeline] = None):
        self.config = config
        self.server = Server("e2e-agent")
        self.pipeline = pipeline or GenerationPipeline(config)
        self.planner = Planner(self.pipeline.llm)
        self.context_manager = SessionContextManager()
        self.setup_tools()

    def setup_tools(self):
        """Register available tools with MCP protocol"""

        @self.server.list_tools()
        async def list_tools() -> List[Tool]:
            return self.tool_definitions()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: Dict) -> List[TextContent]:
            result = await self.handle_tool(name, arguments or {})
            return [TextContent(
                type="text",
                text=json.dumps(result, indent=2, ensure_ascii=False)
            )]

    def tool_definitions(self) -> List[Tool]:
        return [
            Tool(
                name="parse_scenario",
                description="Parse a scenario markdown document into pages and test flows",
                inputSchema=SCENARIO_INPUT_SCHEMA
            ),
            Tool(
                name="validate_scenario",
                description="Report what a scenario document is missing",
                inputSchema=SCENARIO_INPUT_SCHEMA
            ),
            Tool(
                name="plan_generation",
                description="Build a generation plan (one task per page) for a scenario",
                inputSchema=SCENARIO_INPUT_SCHEMA
            ),
            Tool(
                name="fill_selectors",
                description="Resolve selectors for page object element specs on the live site",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "pages": {
                            "type": "array",
                            "description": "Page object specs: name, path, required_elements",
                            "items": {"type": "object"}
                        },
                        "session_id": {"type": "string", "default": "default"}
                    },
                    "required": ["pages"]
                }
            ),
            Tool(
                name="generate_tests",
                description="Generate Page Objects and a test file from a scenario file",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "scenario_path": {"type": "string"},
                        "synthesize_methods": {"type": "boolean", "default": True},
                        "write_files": {"type": "boolean", "default": True},
                        "session_id": {"type": "string", "default": "default"}
                    },
                    "required": ["scenario_path"]
                }
            ),
            Tool(
                name="get_session_context",
                description="Show, list or clear the sessions recorded by this server",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "action": {
                            "type": "string",
                            "enum": ["show", "list", "clear"],
                            "default": "show",
                            "description": "show one session, list all sessions, or clear one session"
                        },
                        "session_id": {"type": "string", "default": "default"}
                    }
                }
            )
        ]

    async def handle_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch a tool call; failures become an error payload"""
        session_id = arguments.get("session_id", "default")

        try:
            if name == "parse_scenario":
                result = self.parse_scenario(arguments, session_id)

            elif name == "validate_scenario":
                result = self.parser_validate(arguments)

            elif name == "plan_generation":
                result = await self.plan_generation(arguments, session_id)

            elif name == "fill_selectors":
                result = await self.fill_selectors(arguments.get("pages", []), session_id)

            elif name == "generate_tests":
                result = await self.generate_tests(arguments, session_id)

            elif name == "get_session_context":
                result = self.session_context(arguments.get("action", "show"), session_id)

            else:
                return {"error": f"Unknown tool: {name}"}

        except Exception as e:
            logger.exception("Tool %s failed", name)
            self.context_manager.record_invocation(session_id, name, arguments, "error", str(e))
            return {
                "error": str(e),
                "tool": name,
                "arguments": arguments
            }

        if name != "get_session_context":
            self.context_manager.record_invocation(session_id, name, arguments, "success")
        return result

    def session_context(self, action: str, session_id: str) -> Dict[str, Any]:
        if action == "show":
            return self.context_manager.get_session(session_id)

        if action == "list":
            return {"sessions": self.context_manager.list_sessions()}

        if action == "clear":
            self.context_manager.clear_session(session_id)
            return {"cleared": session_id}

        raise ValueError(f"Unknown session action: {action}")

    def _load_document(self, arguments: Dict[str, Any]) -> ScenarioDocument:
        if arguments.get("scenario_path"):
            return self.pipeline.parser.parse_file(arguments["scenario_path"])
        if arguments.get("content"):
            return self.pipeline.parser.parse(arguments["content"])
        raise ValueError("scenario_path or content is required")

    def parse_scenario(self, arguments: Dict[str, Any], session_id: str) -> Dict[str, Any]:
        document = self._load_document(arguments)
        self.context_manager.set_scenario(session_id, document, arguments.get("scenario_path"))
        return document.model_dump(mode="json")

    def parser_validate(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        document = self._load_document(arguments)
        return self.pipeline.parser.validate(document).model_dump()

    async def plan_generation(self, arguments: Dict[str, Any], session_id: str) -> Dict[str, Any]:
        document = self._load_document(arguments)
        self.context_manager.set_scenario(session_id, document, arguments.get("scenario_path"))
        plan = await self.planner.plan(document, arguments.get("scenario_path", ""))
        return plan.model_dump(mode="json")

    async def fill_selectors(self, pages: List[Dict[str, Any]], session_id: str) -> Dict[str, Any]:
        specs = PAGE_SPECS_ADAPTER.validate_python(pages)
        execution = await self.pipeline.execute_specs(specs)

        for page in execution.pages:
            self.context_manager.record_selectors(session_id, page.page_name, page.selectors)

        return execution.model_dump(mode="json")

    async def generate_tests(self, arguments: Dict[str, Any], session_id: str) -> Dict[str, Any]:
        result = await self.pipeline.run(
            arguments["scenario_path"],
            synthesize_methods=arguments.get("synthesize_methods", True),
            write_files=arguments.get("write_files", True),
        )

        self.context_manager.set_scenario(session_id, result.document, arguments["scenario_path"])
        for page in result.execution.pages:
            self.context_manager.record_selectors(session_id, page.page_name, page.selectors)

        return {
            "has_failures": result.execution.has_failures,
            "pages": [
                {
                    "page": page.page_name,
                    "success": page.success,
                    "missing_elements": page.missing_elements,
                    "error": page.error,
                }
                for page in result.execution.pages
            ],
            "unresolved": result.unresolved,
            "written_files": result.written_files,
        }

    async def run(self):
        """Start the MCP server"""
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options()
            )


def main():
    """Entry point for the MCP server"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config_path = os.getenv("E2E_AGENT_CONFIG", DEFAULT_CONFIG_FILE)

    try:
        config = load_config(config_path)
        server = E2EAgentServer(config)
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logging.info("Server stopped by user")
    except Exception as e:
        logging.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
