import logging
import re
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from .models import (
    PageDefinition,
    ScenarioDocument,
    StepAction,
    TestFlow,
    TestStep,
    ValidationResult,
)

logger = logging.getLogger(__name__)

# Section headings, with or without the leading emoji
PAGES_SECTION = "페이지 정의"
FLOWS_SECTION = "테스트 플로우"

PAGE_PATH_LABEL = "- **경로**:"
PAGE_DESCRIPTION_LABEL = "- **설명**:"
FLOW_PURPOSE_LABEL = "**목적**:"

# "## 페이지 정의", "## 📄 페이지 정의"; a "###" heading never matches
SECTION_PATTERN = re.compile(
    r"^##\s+(?:\S+\s+)?(" + re.escape(PAGES_SECTION) + "|" + re.escape(FLOWS_SECTION) + ")"
)

# "3. 로그인 버튼 클릭" -> order, raw
STEP_PATTERN = re.compile(r"^(\d+)\.\s+(.+)$")
# "- **경로**: `/login`" -> /login
LABEL_VALUE_PATTERN = re.compile(r":\s*`([^`]+)`")
# first `...` anywhere in a step
BACKTICK_PATTERN = re.compile(r"`([^`]+)`")
# "DashboardPage로 이동" -> DashboardPage
PAGE_NAME_PATTERN = re.compile(r"(\w+Page)", re.ASCII)
INPUT_TARGET_PATTERN = re.compile(r"(.+?)\s+입력")
CLICK_TARGET_PATTERN = re.compile(r"(.+?)\s+(버튼\s+)?클릭")
DISPLAY_TARGET_PATTERN = re.compile(r"(.+?)\s+표시\s+확인")
VISIBLE_TARGET_PATTERN = re.compile(r"(.+?)\s+확인")


def _capture(pattern: "re.Pattern[str]", raw: str, strip: bool = True) -> Optional[str]:
    match = pattern.search(raw)
    if not match:
        return None
    return match.group(1).strip() if strip else match.group(1)


def _classify_navigation(raw: str, value: Optional[str]) -> Dict:
    if "확인" in raw:
        return {"action": StepAction.VERIFY_URL}
    return {"action": StepAction.NAVIGATE}


def _classify_input(raw: str, value: Optional[str]) -> Dict:
    return {"action": StepAction.INPUT, "target": _capture(INPUT_TARGET_PATTERN, raw)}


def _classify_click(raw: str, value: Optional[str]) -> Dict:
    return {"action": StepAction.CLICK, "target": _capture(CLICK_TARGET_PATTERN, raw)}


def _classify_verification(raw: str, value: Optional[str]) -> Dict:
    if "표시" in raw:
        return {
            "action": StepAction.VERIFY_TEXT,
            "target": _capture(DISPLAY_TARGET_PATTERN, raw),
            "assertion": value,
        }
    if "리다이렉트" in raw or "이동" in raw:
        return {"action": StepAction.VERIFY_URL}
    return {"action": StepAction.VERIFY_VISIBLE, "target": _capture(VISIBLE_TARGET_PATTERN, raw)}


def _keyword(word: str) -> Callable[[str], bool]:
    return lambda raw: word in raw


# Evaluated top to bottom, first match wins. Keywords overlap ("확인"
# appears in several branches) so the order is significant.
STEP_RULES: List[Tuple[Callable[[str], bool], Callable[[str, Optional[str]], Dict]]] = [
    (_keyword("이동"), _classify_navigation),
    (_keyword("입력"), _classify_input),
    (_keyword("클릭"), _classify_click),
    (_keyword("확인"), _classify_verification),
    (_keyword("대기"), lambda raw, value: {"action": StepAction.WAIT}),
    (_keyword("선택"), lambda raw, value: {"action": StepAction.SELECT}),
]


class ScenarioParser:
    """Parse scenario markdown into pages and ordered test flows.

    The parser is total: malformed input yields a smaller document, never an
    exception. Use ``validate`` to find out what is missing.
    """

    def parse_file(self, path: Union[str, Path]) -> ScenarioDocument:
        """Read a scenario file and parse it"""
        content = Path(path).read_text(encoding="utf-8")
        return self.parse(content)

    def parse(self, content: str) -> ScenarioDocument:
        """Parse scenario markdown content"""
        pages: List[PageDefinition] = []
        flows: List[TestFlow] = []

        section = "none"
        current_page: Optional[Dict] = None
        current_flow: Optional[Dict] = None
        current_steps: List[TestStep] = []

        for raw_line in content.split("\n"):
            line = raw_line.strip()
            if not line:
                continue

            section_match = SECTION_PATTERN.match(line)
            if section_match:
                section = "pages" if section_match.group(1) == PAGES_SECTION else "flows"
                continue

            if section == "pages":
                if line.startswith("### "):
                    if current_page and current_page.get("name"):
                        pages.append(PageDefinition(**current_page))
                    current_page = {"name": line[4:].strip()}
                    continue

                if current_page is not None and line.startswith(PAGE_PATH_LABEL):
                    current_page["path"] = self.extract_value(line)
                    continue

                if current_page is not None and line.startswith(PAGE_DESCRIPTION_LABEL):
                    current_page["description"] = self.extract_value(line)
                    continue

            elif section == "flows":
                if line.startswith("### "):
                    if current_flow and current_flow.get("name"):
                        flows.append(TestFlow(steps=current_steps, **current_flow))
                    current_flow = {"name": line[4:].strip()}
                    current_steps = []
                    continue

                if current_flow is not None and line.startswith(FLOW_PURPOSE_LABEL):
                    current_flow["purpose"] = line[len(FLOW_PURPOSE_LABEL):].strip()
                    continue

                step_match = STEP_PATTERN.match(line)
                if step_match and current_flow is not None:
                    order = int(step_match.group(1))
                    current_steps.append(self.parse_step(order, step_match.group(2).strip()))
                    continue

        if current_page and current_page.get("name"):
            pages.append(PageDefinition(**current_page))

        if current_flow and current_flow.get("name"):
            flows.append(TestFlow(steps=current_steps, **current_flow))

        return ScenarioDocument(pages=pages, flows=flows)

    @staticmethod
    def extract_value(line: str) -> str:
        """Value of a ``- **label**: value`` line, backticks stripped"""
        match = LABEL_VALUE_PATTERN.search(line)
        if match:
            return match.group(1)

        colon_index = line.find(":")
        if colon_index != -1:
            return line[colon_index + 1:].strip()
        return ""

    def parse_step(self, order: int, raw: str) -> TestStep:
        """Classify a single step line by its action keywords"""
        value = _capture(BACKTICK_PATTERN, raw, strip=False)
        page = _capture(PAGE_NAME_PATTERN, raw)

        fields: Dict = {"action": StepAction.CLICK}
        for matches, classify in STEP_RULES:
            if matches(raw):
                fields = classify(raw, value)
                break
        else:
            logger.warning("Step %d has no action keyword, treating it as a click: %s", order, raw)

        return TestStep(order=order, raw=raw, value=value, page=page, **fields)

    def validate(self, document: ScenarioDocument) -> ValidationResult:
        """Check that the document has usable pages and flows"""
        errors: List[str] = []

        if not document.pages:
            errors.append("No pages defined.")

        for index, page in enumerate(document.pages, start=1):
            if not page.name:
                errors.append(f"Page {index}: missing name.")
            if not page.path:
                errors.append(f"Page {page.name or index}: missing path.")

        if not document.flows:
            errors.append("No test flows defined.")

        for index, flow in enumerate(document.flows, start=1):
            if not flow.name:
                errors.append(f"Flow {index}: missing name.")
            if not flow.steps:
                errors.append(f"Flow {flow.name or index}: no steps.")

        return ValidationResult(valid=not errors, errors=errors)
