import pytest
from unittest.mock import AsyncMock, Mock

from mcp.types import CallToolRequest, ListToolsRequest

from e2e_agent.config import AgentConfig
from e2e_agent.models import FlowExecutionResult, PageFillResult, ScenarioDocument
from e2e_agent.pipeline import GenerationPipeline, GenerationResult
from e2e_agent.server import E2EAgentServer

from example_scenarios import EMAIL_METADATA, LOGIN_SCENARIO, LOGIN_SNAPSHOT, PARTIAL_SCENARIO


class TestE2EAgentServer:
    """Test suite for the E2E agent MCP server"""

    @pytest.fixture
    def llm(self):
        llm = Mock()
        llm.complete = AsyncMock(return_value="I cannot plan this.")
        return llm

    @pytest.fixture
    def automation(self):
        automation = Mock()
        automation.start_session = AsyncMock()
        automation.close = AsyncMock()
        automation.navigate = AsyncMock()
        automation.snapshot = AsyncMock(return_value=LOGIN_SNAPSHOT)
        automation.evaluate_element = AsyncMock(return_value=EMAIL_METADATA)
        return automation

    @pytest.fixture
    def server(self, tmp_path, llm, automation):
        """Create server instance with mocked collaborators"""
        config = AgentConfig(
            base_url="http://localhost:3000",
            pages_directory=str(tmp_path / "pages"),
            tests_directory=str(tmp_path),
        )
        pipeline = GenerationPipeline(config, llm=llm, automation=automation)
        return E2EAgentServer(config, pipeline=pipeline)

    @pytest.fixture
    def scenario_file(self, tmp_path):
        path = tmp_path / "login.md"
        path.write_text(LOGIN_SCENARIO, encoding="utf-8")
        return str(path)

    def test_handlers_registered(self, server):
        assert ListToolsRequest in server.server.request_handlers
        assert CallToolRequest in server.server.request_handlers

    def test_tool_definitions(self, server):
        tools = server.tool_definitions()

        assert [tool.name for tool in tools] == [
            "parse_scenario",
            "validate_scenario",
            "plan_generation",
            "fill_selectors",
            "generate_tests",
            "get_session_context",
        ]
        fill_selectors = tools[3]
        assert fill_selectors.inputSchema["required"] == ["pages"]

    @pytest.mark.asyncio
    async def test_parse_scenario_from_file(self, server, scenario_file):
        result = await server.handle_tool("parse_scenario", {"scenario_path": scenario_file})

        assert [page["name"] for page in result["pages"]] == ["LoginPage", "DashboardPage"]
        session = server.context_manager.get_session("default")
        assert session["scenario_path"] == scenario_file
        assert session["invocations"][0]["status"] == "success"

    @pytest.mark.asyncio
    async def test_parse_scenario_from_content(self, server):
        result = await server.handle_tool("parse_scenario", {"content": LOGIN_SCENARIO, "session_id": "s1"})

        assert len(result["flows"]) == 2
        assert server.context_manager.get_session("s1")["scenario"]["flows"][1]["name"] == "로그아웃"

    @pytest.mark.asyncio
    async def test_validate_scenario(self, server):
        result = await server.handle_tool("validate_scenario", {"content": PARTIAL_SCENARIO})

        assert result == {"valid": False, "errors": ["Page SettingsPage: missing path."]}

    @pytest.mark.asyncio
    async def test_plan_generation_falls_back(self, server):
        result = await server.handle_tool("plan_generation", {"content": LOGIN_SCENARIO})

        assert result["raw_response"] == "fallback-plan"
        assert [task["target_page"] for task in result["tasks"]] == ["LoginPage", "DashboardPage"]

    @pytest.mark.asyncio
    async def test_fill_selectors(self, server, automation):
        pages = [
            {"name": "AboutPage", "path": "/about"},
            {
                "name": "LoginPage",
                "path": "/login",
                "required_elements": [{"name": "emailInput", "type": "input"}],
            },
        ]

        result = await server.handle_tool("fill_selectors", {"pages": pages, "session_id": "s2"})

        assert result["has_failures"] is False
        assert result["pages"][1]["selectors"][0]["selector"] == "this.page.getByTestId('email-input')"
        automation.navigate.assert_awaited_once_with("/login")
        automation.close.assert_awaited_once()
        stored = server.context_manager.get_session("s2")["selectors_by_page"]
        assert stored["LoginPage"][0]["strategy"] == "testId"

    @pytest.mark.asyncio
    async def test_generate_tests(self, server, scenario_file):
        server.pipeline.run = AsyncMock(return_value=GenerationResult(
            document=ScenarioDocument(),
            execution=FlowExecutionResult(
                pages=[PageFillResult(page_name="LoginPage", path="/login", success=False,
                                      missing_elements=["emailInput"])],
                has_failures=True,
            ),
            unresolved={"LoginPage": ["emailInput"]},
            written_files=["tests/pages/LoginPage.ts"],
        ))

        result = await server.handle_tool("generate_tests", {"scenario_path": scenario_file, "write_files": False})

        assert result["has_failures"] is True
        assert result["pages"][0] == {
            "page": "LoginPage",
            "success": False,
            "missing_elements": ["emailInput"],
            "error": None,
        }
        assert result["unresolved"] == {"LoginPage": ["emailInput"]}
        server.pipeline.run.assert_awaited_once_with(scenario_file, synthesize_methods=True, write_files=False)

    @pytest.mark.asyncio
    async def test_tool_failure_returns_error_payload(self, server):
        result = await server.handle_tool("parse_scenario", {"session_id": "s3"})

        assert result["error"] == "scenario_path or content is required"
        assert result["tool"] == "parse_scenario"
        invocations = server.context_manager.get_invocations("s3")
        assert invocations[0]["status"] == "error"

    @pytest.mark.asyncio
    async def test_missing_file_returns_error_payload(self, server, tmp_path):
        result = await server.handle_tool("parse_scenario", {"scenario_path": str(tmp_path / "nope.md")})

        assert "nope.md" in result["error"]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, server):
        result = await server.handle_tool("delete_everything", {})

        assert result == {"error": "Unknown tool: delete_everything"}

    @pytest.mark.asyncio
    async def test_get_session_context(self, server):
        await server.handle_tool("validate_scenario", {"content": LOGIN_SCENARIO, "session_id": "s4"})

        context = await server.handle_tool("get_session_context", {"session_id": "s4"})

        assert [entry["tool"] for entry in context["invocations"]] == ["validate_scenario"]

    @pytest.mark.asyncio
    async def test_list_and_clear_sessions(self, server):
        await server.handle_tool("validate_scenario", {"content": LOGIN_SCENARIO, "session_id": "s5"})
        await server.handle_tool("parse_scenario", {"content": LOGIN_SCENARIO, "session_id": "s6"})

        listed = await server.handle_tool("get_session_context", {"action": "list"})
        assert sorted(listed["sessions"]) == ["s5", "s6"]
        assert listed["sessions"]["s6"]["invocation_count"] == 1

        cleared = await server.handle_tool("get_session_context", {"action": "clear", "session_id": "s5"})
        assert cleared == {"cleared": "s5"}

        listed = await server.handle_tool("get_session_context", {"action": "list"})
        assert list(listed["sessions"]) == ["s6"]

    @pytest.mark.asyncio
    async def test_unknown_session_action(self, server):
        result = await server.handle_tool("get_session_context", {"action": "export"})

        assert result["error"] == "Unknown session action: export"
