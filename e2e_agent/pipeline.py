import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .browser_engine import BrowserEngine
from .config import AgentConfig
from .flow_executor import FlowExecutor
from .llm import LLMService
from .method_synthesizer import MethodSynthesizer
from .models import FlowExecutionResult, PageObjectSkeleton, PageObjectSpec, ScenarioDocument, TestFlow
from .page_objects import BASE_PAGE_TEMPLATE, apply_selectors, build_page_object_specs, find_placeholders
from .playwright_mcp import PlaywrightMCPService
from .scenario_parser import ScenarioParser
from .selector_filler import SelectorFiller
from .skeleton_generator import SkeletonGenerator

logger = logging.getLogger(__name__)


class ScenarioValidationError(Exception):
    """The scenario document is missing pages, paths, flows or steps"""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("Invalid scenario: " + "; ".join(errors))


class GenerationResult(BaseModel):
    document: ScenarioDocument
    execution: FlowExecutionResult
    page_objects: List[PageObjectSkeleton] = Field(default_factory=list)
    test_code: str = ""
    unresolved: Dict[str, List[str]] = Field(default_factory=dict)
    written_files: List[str] = Field(default_factory=list)


def create_automation(config: AgentConfig):
    """Automation backend selected by ``automationBackend``"""
    if config.automation_backend == "local":
        return BrowserEngine(config.base_url, headless=config.headless)
    return PlaywrightMCPService(config.base_url, command=config.mcp_command, args=config.mcp_args)


def flows_context(flows: List[TestFlow], page_name: str) -> str:
    """Step lines of the flows that mention a page"""
    lines = []
    for flow in flows:
        if any(page_name in step.raw for step in flow.steps):
            lines.append(f"{flow.name}:")
            lines.extend(f"  {step.order}. {step.raw}" for step in flow.steps)
    return "\n".join(lines)


class GenerationPipeline:
    """Scenario file in, Page Objects and a test file out.

    parse -> validate -> skeletons (LLM) -> selector discovery (browser)
    -> placeholder substitution -> method synthesis (LLM) -> files
    """

    def __init__(
        self,
        config: AgentConfig,
        llm: Optional[LLMService] = None,
        automation=None,
        parser: Optional[ScenarioParser] = None,
    ):
        self.config = config
        self.parser = parser or ScenarioParser()
        self.llm = llm or LLMService(model=config.llm_model)
        self.automation = automation or create_automation(config)
        self.skeleton_generator = SkeletonGenerator(self.llm)
        self.method_synthesizer = MethodSynthesizer(self.llm)
        self.flow_executor = FlowExecutor(SelectorFiller(self.automation))

    def load_scenario(self, scenario_path: Union[str, Path]) -> ScenarioDocument:
        document = self.parser.parse_file(scenario_path)
        validation = self.parser.validate(document)
        if not validation.valid:
            raise ScenarioValidationError(validation.errors)

        logger.info(
            "Parsed %s: %d pages, %d flows",
            scenario_path, len(document.pages), len(document.flows),
        )
        return document

    async def discover_selectors(self, document: ScenarioDocument, page_objects: List[PageObjectSkeleton]) -> FlowExecutionResult:
        return await self.execute_specs(build_page_object_specs(document, page_objects))

    async def execute_specs(self, specs: List[PageObjectSpec]) -> FlowExecutionResult:
        """Run selector discovery inside one browser session"""
        await self.automation.start_session()
        try:
            return await self.flow_executor.execute(specs)
        finally:
            await self.automation.close()

    async def run(
        self,
        scenario_path: Union[str, Path],
        synthesize_methods: bool = True,
        write_files: bool = True,
    ) -> GenerationResult:
        document = self.load_scenario(scenario_path)
        skeletons = await self.skeleton_generator.generate_skeletons(document)
        execution = await self.discover_selectors(document, skeletons.page_objects)

        selectors_by_page = {page.page_name: page.selectors for page in execution.pages}
        page_objects = []
        unresolved = {}

        for skeleton in skeletons.page_objects:
            matches = selectors_by_page.get(skeleton.page_name, [])
            code = apply_selectors(skeleton.code, matches)

            if synthesize_methods and matches:
                code = await self.method_synthesizer.synthesize(
                    skeleton.page_name,
                    code,
                    matches,
                    flows_context(document.flows, skeleton.page_name),
                )

            remaining = find_placeholders(code)
            if remaining:
                unresolved[skeleton.page_name] = remaining
                logger.warning("%s keeps placeholders: %s", skeleton.page_name, ", ".join(remaining))

            page_objects.append(PageObjectSkeleton(page_name=skeleton.page_name, code=code))

        result = GenerationResult(
            document=document,
            execution=execution,
            page_objects=page_objects,
            test_code=skeletons.test_file.code,
            unresolved=unresolved,
        )

        if write_files:
            result.written_files = self.write_outputs(page_objects, skeletons.test_file.test_name, result.test_code)

        return result

    def write_outputs(self, page_objects: List[PageObjectSkeleton], test_name: str, test_code: str) -> List[str]:
        pages_dir = Path(self.config.pages_directory)
        tests_dir = Path(self.config.tests_directory)
        pages_dir.mkdir(parents=True, exist_ok=True)
        tests_dir.mkdir(parents=True, exist_ok=True)

        outputs = {pages_dir / "BasePage.ts": BASE_PAGE_TEMPLATE}
        for page_object in page_objects:
            outputs[pages_dir / f"{page_object.page_name}.ts"] = page_object.code
        outputs[tests_dir / f"{test_name}.spec.ts"] = test_code

        written = []
        for path, content in outputs.items():
            path.write_text(content, encoding="utf-8")
            logger.info("Wrote %s", path)
            written.append(str(path))

        return written
