import json
import logging
import re
import uuid
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from .llm import LLMError, LLMService
from .models import ScenarioDocument

logger = logging.getLogger(__name__)

JSON_FENCE_PATTERN = re.compile(r"```(?:json)?\n([\s\S]*?)```")
JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


class PlanPhase(BaseModel):
    id: str
    title: str
    focus: str
    entry_criteria: str
    exit_criteria: str


class PlanTask(BaseModel):
    id: str
    description: str
    success_criteria: str
    target_page: Optional[str] = None
    related_flows: List[str] = Field(default_factory=list)


class GenerationPlan(BaseModel):
    goal: str
    phases: List[PlanPhase] = Field(default_factory=list)
    tasks: List[PlanTask] = Field(default_factory=list)
    review_checkpoints: List[str] = Field(default_factory=list)
    raw_response: str = ""


def extract_json(text: str) -> Optional[str]:
    fenced = JSON_FENCE_PATTERN.search(text)
    if fenced:
        return fenced.group(1).strip()
    match = JSON_OBJECT_PATTERN.search(text)
    return match.group(0) if match else None


def build_fallback_plan(document: ScenarioDocument) -> GenerationPlan:
    """Deterministic plan: one selector task per page"""
    phases = [
        PlanPhase(
            id="doc-analysis",
            title="Scenario analysis",
            focus="turn the document into pages and flows",
            entry_criteria="scenario_loaded",
            exit_criteria="pages_and_flows_enumerated",
        ),
        PlanPhase(
            id="selector-harvest",
            title="Selector discovery",
            focus="resolve placeholders with Playwright MCP",
            entry_criteria="page_object_ready",
            exit_criteria="selectors_verified",
        ),
        PlanPhase(
            id="method-review",
            title="Method review",
            focus="complete and review action methods",
            entry_criteria="selectors_ready",
            exit_criteria="review_signoff",
        ),
    ]

    tasks = []
    for index, page in enumerate(document.pages, start=1):
        related = [
            flow.name for flow in document.flows
            if any(step.page == page.name for step in flow.steps)
        ]
        tasks.append(PlanTask(
            id=f"page-{index}",
            description=f"Discover elements and implement methods for {page.name}",
            success_criteria="every required element resolved through MCP",
            target_page=page.name,
            related_flows=related,
        ))

    return GenerationPlan(
        goal="Generate Page Objects and tests from the scenario and verify selectors with MCP.",
        phases=phases,
        tasks=tasks,
        review_checkpoints=[f"{flow.name} approved" for flow in document.flows],
        raw_response="fallback-plan",
    )


class Planner:
    """Ask the LLM for a generation plan, falling back to a fixed one"""

    def __init__(self, llm: LLMService):
        self.llm = llm

    async def plan(self, document: ScenarioDocument, scenario_path: str = "") -> GenerationPlan:
        fallback = build_fallback_plan(document)

        try:
            response = await self.llm.complete(self.build_prompt(document, scenario_path))
        except LLMError as e:
            logger.warning("Plan generation failed, using the fallback plan: %s", e)
            return fallback

        return self.parse_plan_response(response, fallback)

    def build_prompt(self, document: ScenarioDocument, scenario_path: str) -> str:
        scenario_json = json.dumps(document.model_dump(mode="json"), ensure_ascii=False, indent=2)
        return f"""You are the planning agent of a Playwright E2E test generator.
Scenario file: {scenario_path or '(inline)'}
Scenario JSON:
{scenario_json}

Return a strict JSON object with this shape:
{{
  "goal": string,
  "phases": [{{"id": string, "title": string, "focus": string, "entryCriteria": string, "exitCriteria": string}}],
  "tasks": [{{"id": string, "description": string, "successCriteria": string, "targetPage": string, "relatedFlows": string[]}}],
  "reviewCheckpoints": string[]
}}

Each task maps to a single Page Object and says where MCP tools must be used. Respond with JSON only."""

    def parse_plan_response(self, response: str, fallback: GenerationPlan) -> GenerationPlan:
        block = extract_json(response)
        if not block:
            logger.warning("Plan response has no JSON, using the fallback plan")
            return fallback

        try:
            parsed = json.loads(block)
        except json.JSONDecodeError as e:
            logger.warning("Plan JSON is invalid, using the fallback plan: %s", e)
            return fallback

        if not isinstance(parsed, dict):
            return fallback

        return GenerationPlan(
            goal=parsed.get("goal") or fallback.goal,
            phases=self._normalize_phases(parsed.get("phases"), fallback.phases),
            tasks=self._normalize_tasks(parsed.get("tasks"), fallback.tasks),
            review_checkpoints=parsed.get("reviewCheckpoints") or fallback.review_checkpoints,
            raw_response=response.strip(),
        )

    def _normalize_phases(self, items: Any, fallback: List[PlanPhase]) -> List[PlanPhase]:
        if not isinstance(items, list):
            return fallback
        return [
            PlanPhase(
                id=item.get("id") or str(uuid.uuid4()),
                title=item.get("title") or "Unnamed phase",
                focus=item.get("focus") or "exploration",
                entry_criteria=item.get("entryCriteria") or "scenario_ready",
                exit_criteria=item.get("exitCriteria") or "approval_recorded",
            )
            for item in items if isinstance(item, dict)
        ]

    def _normalize_tasks(self, items: Any, fallback: List[PlanTask]) -> List[PlanTask]:
        if not isinstance(items, list):
            return fallback
        return [
            PlanTask(
                id=item.get("id") or str(uuid.uuid4()),
                description=item.get("description") or "Fill selectors via MCP",
                success_criteria=item.get("successCriteria") or "Selectors verified using MCP tools",
                target_page=item.get("targetPage"),
                related_flows=item.get("relatedFlows") or [],
            )
            for item in items if isinstance(item, dict)
        ]
