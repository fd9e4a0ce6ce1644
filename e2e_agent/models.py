"""Data model shared by the scenario parser, selector filler and generators."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StepAction(str, Enum):
    NAVIGATE = "navigate"
    INPUT = "input"
    CLICK = "click"
    VERIFY_URL = "verify_url"
    VERIFY_TEXT = "verify_text"
    VERIFY_VISIBLE = "verify_visible"
    WAIT = "wait"
    SELECT = "select"


class ElementType(str, Enum):
    INPUT = "input"
    BUTTON = "button"
    LINK = "link"
    TEXT = "text"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"


class SelectorStrategy(str, Enum):
    TEST_ID = "testId"
    ROLE = "role"
    PLACEHOLDER = "placeholder"
    LABEL = "label"
    TEXT = "text"
    CSS = "css"


# Scenario document

class PageDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    path: str = ""
    description: Optional[str] = None


class TestStep(BaseModel):
    model_config = ConfigDict(frozen=True)
    __test__ = False

    order: int
    raw: str
    action: StepAction
    target: Optional[str] = None
    value: Optional[str] = None
    page: Optional[str] = None
    assertion: Optional[str] = None


class TestFlow(BaseModel):
    model_config = ConfigDict(frozen=True)
    __test__ = False

    name: str
    purpose: Optional[str] = None
    steps: List[TestStep] = Field(default_factory=list)


class ScenarioDocument(BaseModel):
    """Parsed scenario markdown: page definitions plus ordered test flows."""

    model_config = ConfigDict(frozen=True)

    pages: List[PageDefinition] = Field(default_factory=list)
    flows: List[TestFlow] = Field(default_factory=list)


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


# Page object specs

class ElementSpec(BaseModel):
    name: str
    purpose: str = ""
    type: ElementType
    used_in_steps: List[int] = Field(default_factory=list)


class ParameterSpec(BaseModel):
    name: str
    type: Literal["string", "number", "boolean"] = "string"
    description: Optional[str] = None


class MethodSpec(BaseModel):
    name: str
    purpose: str = ""
    parameters: List[ParameterSpec] = Field(default_factory=list)
    steps: List[str] = Field(default_factory=list)


class PageObjectSpec(BaseModel):
    name: str
    path: str
    description: Optional[str] = None
    required_elements: List[ElementSpec] = Field(default_factory=list)
    required_methods: List[MethodSpec] = Field(default_factory=list)


# Selector discovery

class SnapshotElement(BaseModel):
    role: str
    name: Optional[str] = None
    ref: str
    raw: str


class ElementMetadata(BaseModel):
    """Attributes read from the live DOM node behind a snapshot ref."""

    model_config = ConfigDict(populate_by_name=True)

    tag: Optional[str] = None
    type: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    placeholder: Optional[str] = None
    data_test: Optional[str] = Field(default=None, alias="dataTest")
    text: Optional[str] = None
    label: Optional[str] = None
    aria_label: Optional[str] = Field(default=None, alias="ariaLabel")
    class_name: Optional[str] = Field(default=None, alias="className")
    role: Optional[str] = None


class SelectorMatch(BaseModel):
    element_name: str
    selector: Optional[str] = None
    strategy: Optional[SelectorStrategy] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    ref: Optional[str] = None
    snapshot: Optional[SnapshotElement] = None
    metadata: Optional[ElementMetadata] = None
    reason: str = ""

    @model_validator(mode="after")
    def _selector_and_strategy_agree(self) -> "SelectorMatch":
        if (self.selector is None) != (self.strategy is None):
            raise ValueError("selector and strategy must both be set or both be None")
        return self


class PageFillResult(BaseModel):
    page_name: str
    path: str
    selectors: List[SelectorMatch] = Field(default_factory=list)
    success: bool
    missing_elements: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class FlowExecutionResult(BaseModel):
    pages: List[PageFillResult] = Field(default_factory=list)
    has_failures: bool = False


# MCP

class MCPServerConfig(BaseModel):
    command: str
    args: List[str] = Field(default_factory=list)
    env: Optional[Dict[str, str]] = None


class MCPTool(BaseModel):
    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict)


class MCPToolResult(BaseModel):
    content: Any = None
    is_error: bool = False
    error: Optional[str] = None


class MCPSession(BaseModel):
    session_id: str
    is_connected: bool
    available_tools: List[MCPTool] = Field(default_factory=list)


# Generated code

class PageObjectSkeleton(BaseModel):
    page_name: str
    code: str


class TestFileSkeleton(BaseModel):
    __test__ = False

    test_name: str
    code: str


class SkeletonGenerationResult(BaseModel):
    page_objects: List[PageObjectSkeleton] = Field(default_factory=list)
    test_file: TestFileSkeleton
