"""
MCP E2E Agent

Turns scenario markdown into Playwright Page Objects and tests, resolving
element selectors against the live site through Playwright MCP.
"""

__version__ = "0.1.0"

from .scenario_parser import ScenarioParser
from .selector_filler import SelectorFiller, parse_snapshot
from .flow_executor import FlowExecutor
from .mcp_client import MCPClient
from .playwright_mcp import PlaywrightMCPService, AutomationError
from .browser_engine import BrowserEngine
from .config import AgentConfig, ConfigError, load_config
from .llm import LLMService, LLMError
from .pipeline import GenerationPipeline, ScenarioValidationError
from .server import E2EAgentServer

__all__ = [
    "ScenarioParser",
    "SelectorFiller",
    "parse_snapshot",
    "FlowExecutor",
    "MCPClient",
    "PlaywrightMCPService",
    "AutomationError",
    "BrowserEngine",
    "AgentConfig",
    "ConfigError",
    "load_config",
    "LLMService",
    "LLMError",
    "GenerationPipeline",
    "ScenarioValidationError",
    "E2EAgentServer"
]
