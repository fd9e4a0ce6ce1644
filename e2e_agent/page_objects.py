"""Bridge between generated page-object code and selector discovery.

Skeleton code marks every locator as ``PLACEHOLDER_<elementName>``. This
module turns those markers into ElementSpecs for the selector filler and
writes resolved selectors back into the code afterwards.
"""

import logging
import re
from typing import Dict, FrozenSet, List, Tuple

from .models import (
    ElementSpec,
    ElementType,
    PageObjectSkeleton,
    PageObjectSpec,
    ScenarioDocument,
    SelectorMatch,
    StepAction,
    TestFlow,
    TestStep,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"PLACEHOLDER_(\w+)")
CAMEL_WORD_PATTERN = re.compile(r"[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])")

# Checked in order against the lowercased element name
TYPE_SUFFIXES: List[Tuple[Tuple[str, ...], ElementType]] = [
    (("checkbox",), ElementType.CHECKBOX),
    (("radio",), ElementType.RADIO),
    (("select", "dropdown", "combobox"), ElementType.SELECT),
    (("input", "field", "textarea", "textbox"), ElementType.INPUT),
    (("button", "btn"), ElementType.BUTTON),
    (("link",), ElementType.LINK),
]

STEP_ACTIONS: Dict[ElementType, FrozenSet[StepAction]] = {
    ElementType.INPUT: frozenset({StepAction.INPUT}),
    ElementType.BUTTON: frozenset({StepAction.CLICK}),
    ElementType.LINK: frozenset({StepAction.CLICK}),
    ElementType.SELECT: frozenset({StepAction.SELECT}),
    ElementType.CHECKBOX: frozenset({StepAction.SELECT, StepAction.CLICK}),
    ElementType.RADIO: frozenset({StepAction.SELECT, StepAction.CLICK}),
    ElementType.TEXT: frozenset({StepAction.VERIFY_TEXT, StepAction.VERIFY_VISIBLE}),
}

BASE_PAGE_TEMPLATE = """import { Page } from '@playwright/test';

/**
 * Base class for every generated Page Object.
 */
export abstract class BasePage {
  constructor(protected page: Page) {}

  abstract goto(): Promise<void>;

  abstract isOnPage(): Promise<boolean>;

  async waitForPageLoad() {
    await this.page.waitForLoadState('networkidle');
  }

  async waitForElement(selector: string) {
    await this.page.waitForSelector(selector);
  }

  async getTitle(): Promise<string> {
    return await this.page.title();
  }

  async getUrl(): Promise<string> {
    return this.page.url();
  }
}
"""


def infer_element_type(name: str) -> ElementType:
    lowered = name.lower()
    for suffixes, element_type in TYPE_SUFFIXES:
        if lowered.endswith(suffixes):
            return element_type
    return ElementType.TEXT


def humanize(name: str) -> str:
    """emailInput -> 'email input'"""
    return " ".join(word.lower() for word in CAMEL_WORD_PATTERN.findall(name))


def find_placeholders(code: str) -> List[str]:
    """Element names still marked as placeholders, in order of appearance"""
    return list(dict.fromkeys(PLACEHOLDER_PATTERN.findall(code)))


def assign_steps_to_pages(flows: List[TestFlow]) -> Dict[str, List[TestStep]]:
    """Attribute each step to the page the flow is on at that point.

    A step naming a page (``LoginPage로 이동``) moves the flow to that page;
    the steps that follow belong to it until another page is named.
    """
    steps_by_page: Dict[str, List[TestStep]] = {}

    for flow in flows:
        current_page = None
        for step in flow.steps:
            if step.page:
                current_page = step.page
            if current_page:
                steps_by_page.setdefault(current_page, []).append(step)

    return steps_by_page


def extract_element_specs(code: str, steps: List[TestStep]) -> List[ElementSpec]:
    """ElementSpecs for the placeholders of one page object.

    Elements of the same kind are paired positionally with the distinct step
    targets of the matching actions, so ``emailInput`` and ``passwordInput``
    pick up the first and second input targets as extra matching words.
    """
    elements = []
    kind_counters: Dict[FrozenSet[StepAction], int] = {}

    for name in find_placeholders(code):
        element_type = infer_element_type(name)
        actions = STEP_ACTIONS[element_type]
        matching_steps = [step for step in steps if step.action in actions]
        targets = list(dict.fromkeys(step.target for step in matching_steps if step.target))

        position = kind_counters.get(actions, 0)
        kind_counters[actions] = position + 1

        purpose = humanize(name)
        if position < len(targets):
            purpose = f"{purpose} {targets[position]}"

        elements.append(ElementSpec(
            name=name,
            purpose=purpose,
            type=element_type,
            used_in_steps=[step.order for step in matching_steps],
        ))

    return elements


def build_page_object_specs(
    document: ScenarioDocument,
    skeletons: List[PageObjectSkeleton],
) -> List[PageObjectSpec]:
    """One PageObjectSpec per page definition, elements taken from its skeleton"""
    code_by_page = {skeleton.page_name: skeleton.code for skeleton in skeletons}
    steps_by_page = assign_steps_to_pages(document.flows)

    specs = []
    for page in document.pages:
        code = code_by_page.get(page.name, "")
        elements = extract_element_specs(code, steps_by_page.get(page.name, []))
        logger.info("%s: %d placeholder elements", page.name, len(elements))
        specs.append(PageObjectSpec(
            name=page.name,
            path=page.path,
            description=page.description,
            required_elements=elements,
        ))

    return specs


def apply_selectors(code: str, matches: List[SelectorMatch]) -> str:
    """Replace placeholder locators with resolved selectors.

    Unresolved elements keep their placeholder for manual completion.
    """
    for match in matches:
        if match.selector is None:
            continue

        pattern = re.compile(
            r"this\.page\.locator\(\s*(['\"])PLACEHOLDER_" + re.escape(match.element_name) + r"\1\s*\)"
        )
        code = pattern.sub(lambda _: match.selector, code)

    return code
