import json
import os
from pathlib import Path
from typing import List, Literal, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_FILE = ".e2e-agent.config.json"


class ConfigError(Exception):
    """Configuration file missing or invalid"""


class AgentConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    base_url: str = Field(alias="baseUrl")
    pages_directory: str = Field(default="tests/pages", alias="pagesDirectory")
    tests_directory: str = Field(default="tests", alias="testsDirectory")
    llm_model: str = Field(default="llama3.2", alias="llmModel")
    automation_backend: Literal["mcp", "local"] = Field(default="mcp", alias="automationBackend")
    mcp_command: str = Field(default="npx", alias="mcpCommand")
    mcp_args: List[str] = Field(default_factory=lambda: ["@playwright/mcp@latest"], alias="mcpArgs")
    headless: bool = True

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("baseUrl must be an http(s) URL")
        return value.rstrip("/")


def load_config(config_path: Union[str, Path] = DEFAULT_CONFIG_FILE) -> AgentConfig:
    """Load the JSON config file, applying environment overrides"""
    load_dotenv()
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(
            f"Configuration file not found: {path}. "
            f"Create one with create_default_config() or copy the example."
        )

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to load configuration {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid configuration {path}: expected a JSON object")

    if os.getenv("E2E_AGENT_BASE_URL"):
        raw["baseUrl"] = os.environ["E2E_AGENT_BASE_URL"]
    if os.getenv("E2E_AGENT_LLM_MODEL"):
        raw["llmModel"] = os.environ["E2E_AGENT_LLM_MODEL"]

    try:
        return AgentConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration {path}: {e}") from e


def create_default_config(project_path: Union[str, Path] = ".") -> Path:
    """Write a starter config file and return its path"""
    config_path = Path(project_path) / DEFAULT_CONFIG_FILE
    default = AgentConfig(base_url="http://localhost:3000")
    config_path.write_text(
        json.dumps(default.model_dump(by_alias=True), indent=2),
        encoding="utf-8",
    )
    return config_path
