import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .models import (
    ElementMetadata,
    ElementSpec,
    ElementType,
    SelectorMatch,
    SelectorStrategy,
    SnapshotElement,
)

logger = logging.getLogger(__name__)

# `- textbox "Email" [ref=e5]`, `- heading "Welcome" [level=1] [ref=e7]`
SNAPSHOT_LINE_PATTERN = re.compile(
    r'-\s+([a-zA-Z]+(?: [a-zA-Z]+)*)(?:\s+"([^"]+)")?.*?\[ref=(e\d+)\]'
)
CAMEL_BOUNDARY_PATTERN = re.compile(r"([a-z])([A-Z])")
NAME_SEPARATOR_PATTERN = re.compile(r"[\s_-]+")
PURPOSE_SEPARATOR_PATTERN = re.compile(r"[\s,]+")
CLASS_SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9_-]")

ROLE_MAP: Dict[ElementType, List[str]] = {
    ElementType.INPUT: ["textbox", "combobox", "searchbox"],
    ElementType.BUTTON: ["button"],
    ElementType.LINK: ["link"],
    ElementType.TEXT: ["generic", "text"],
    ElementType.SELECT: ["combobox"],
    ElementType.CHECKBOX: ["checkbox"],
    ElementType.RADIO: ["radio"],
}

TAG_MAP: Dict[ElementType, List[str]] = {
    ElementType.INPUT: ["input", "textarea"],
    ElementType.BUTTON: ["button"],
    ElementType.LINK: ["a", "button"],
    ElementType.TEXT: ["p", "span", "div"],
    ElementType.SELECT: ["select"],
    ElementType.CHECKBOX: ["input"],
    ElementType.RADIO: ["input"],
}

METADATA_SCRIPT = """element => ({
  tag: element.tagName ? element.tagName.toLowerCase() : null,
  type: element.getAttribute('type'),
  id: element.id || null,
  name: element.getAttribute('name'),
  placeholder: element.getAttribute('placeholder'),
  dataTest: element.getAttribute('data-test'),
  text: element.textContent ? element.textContent.trim() : null,
  label: element.labels && element.labels[0] ? element.labels[0].textContent.trim() : null,
  ariaLabel: element.getAttribute('aria-label'),
  className: typeof element.className === 'string' ? element.className : element.getAttribute('class'),
  role: element.getAttribute('role')
})"""


def escape_quotes(value: str) -> str:
    """Escape for a single-quoted string literal"""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def escape_attribute(value: str) -> str:
    """Escape for a double-quoted attribute value"""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def parse_snapshot(snapshot: str) -> List[SnapshotElement]:
    """Turn accessibility snapshot text into addressable nodes.

    Lines without a ``[ref=eN]`` marker are not addressable and are skipped.
    """
    entries: List[SnapshotElement] = []

    for line in snapshot.split("\n"):
        match = SNAPSHOT_LINE_PATTERN.search(line)
        if not match:
            continue

        name = match.group(2)
        entries.append(SnapshotElement(
            role=match.group(1).strip().lower(),
            name=name.strip() if name else None,
            ref=match.group(3),
            raw=line.strip(),
        ))

    return entries


def build_tokens(element: ElementSpec) -> List[str]:
    """Lowercase search tokens from the element name and purpose"""
    tokens: Dict[str, None] = {}

    spaced = CAMEL_BOUNDARY_PATTERN.sub(r"\1 \2", element.name)
    for token in NAME_SEPARATOR_PATTERN.split(spaced):
        tokens[token.lower()] = None

    if element.purpose:
        for token in PURPOSE_SEPARATOR_PATTERN.split(element.purpose):
            tokens[token.lower()] = None

    return [token for token in tokens if token]


def score_candidate(candidate: SnapshotElement, tokens: List[str]) -> int:
    if not tokens:
        return 1

    accessible_name = (candidate.name or "").lower()
    score = sum(3 for token in tokens if token in accessible_name)

    # baseline for any node that exposes a role
    if candidate.role:
        score += 1

    return score


class SelectorFiller:
    """Resolve page-object element specs to locator expressions.

    Candidates come from the accessibility snapshot of the current page; the
    best candidate is then inspected through the automation backend to pick
    the most stable locator strategy available.
    """

    def __init__(self, automation):
        self.automation = automation

    async def fill_page_selectors(self, page_path: str, elements: List[ElementSpec]) -> List[SelectorMatch]:
        """Navigate to a page and resolve selectors for its elements"""
        await self.automation.navigate(page_path)
        snapshot = await self.automation.snapshot()
        return await self.fill_selectors_from_snapshot(elements, snapshot)

    async def fill_selectors_from_snapshot(self, elements: List[ElementSpec], snapshot: str) -> List[SelectorMatch]:
        """Resolve selectors against an already captured snapshot"""
        snapshot_elements = parse_snapshot(snapshot)
        logger.info("Snapshot contains %d addressable nodes", len(snapshot_elements))

        matches = []
        for element in elements:
            match = await self.match_element(element, snapshot_elements)
            logger.info(
                "%s -> %s (%s, confidence %.1f)",
                element.name, match.selector or "unresolved", match.reason, match.confidence,
            )
            matches.append(match)

        return matches

    async def match_element(self, element: ElementSpec, snapshot_elements: List[SnapshotElement]) -> SelectorMatch:
        tokens = build_tokens(element)
        candidates = self._filter_candidates(element, snapshot_elements)

        if not candidates:
            return SelectorMatch(
                element_name=element.name,
                confidence=0.0,
                reason="no candidates in snapshot",
            )

        # sorted() is stable, so ties keep snapshot order
        scored = sorted(
            ((score_candidate(candidate, tokens), candidate) for candidate in candidates),
            key=lambda item: item[0],
            reverse=True,
        )
        best_score, best = scored[0]

        if best_score == 0:
            return SelectorMatch(
                element_name=element.name,
                confidence=0.0,
                ref=best.ref,
                snapshot=best,
                reason="no candidate resembles the element",
            )

        metadata = await self._fetch_metadata(element, best)
        selector, strategy, reason = self.build_selector(metadata, best, element.type)

        return SelectorMatch(
            element_name=element.name,
            selector=selector,
            strategy=strategy,
            confidence=min(1.0, best_score / 10),
            ref=best.ref,
            snapshot=best,
            metadata=metadata,
            reason=reason,
        )

    def _filter_candidates(self, element: ElementSpec, snapshot_elements: List[SnapshotElement]) -> List[SnapshotElement]:
        roles = ROLE_MAP.get(element.type, [])
        if not roles:
            return list(snapshot_elements)
        return [item for item in snapshot_elements if item.role in roles]

    async def _fetch_metadata(self, element: ElementSpec, candidate: SnapshotElement) -> Optional[ElementMetadata]:
        raw: Any = await self.automation.evaluate_element(
            f"{element.name} candidate", candidate.ref, METADATA_SCRIPT
        )
        if not isinstance(raw, dict):
            return None

        try:
            return ElementMetadata.model_validate(raw)
        except ValidationError as e:
            logger.warning("Ignoring malformed metadata for %s: %s", element.name, e)
            return None

    def build_selector(
        self,
        metadata: Optional[ElementMetadata],
        candidate: SnapshotElement,
        element_type: ElementType,
    ) -> Tuple[Optional[str], Optional[SelectorStrategy], str]:
        """Pick a locator expression; the first applicable strategy wins"""
        if metadata is None:
            if candidate.name:
                return self._role_selector(candidate), SelectorStrategy.ROLE, "accessible name"
            return None, None, "no metadata"

        if metadata.data_test:
            return (
                f"this.page.getByTestId('{escape_quotes(metadata.data_test)}')",
                SelectorStrategy.TEST_ID,
                "data-test attribute",
            )

        if metadata.placeholder:
            return (
                f"this.page.getByPlaceholder('{escape_quotes(metadata.placeholder)}')",
                SelectorStrategy.PLACEHOLDER,
                "placeholder",
            )

        if metadata.name:
            return (
                f"this.page.locator('[name=\"{escape_attribute(metadata.name)}\"]')",
                SelectorStrategy.CSS,
                "name attribute",
            )

        if metadata.id:
            return (
                f"this.page.locator('#{escape_attribute(metadata.id)}')",
                SelectorStrategy.CSS,
                "id attribute",
            )

        if candidate.name:
            return self._role_selector(candidate), SelectorStrategy.ROLE, "accessible name"

        tag_selector = self._tag_selector(metadata, element_type)
        if tag_selector is None:
            return None, None, "no tag for fallback"
        return tag_selector, SelectorStrategy.CSS, "tag fallback"

    def _role_selector(self, candidate: SnapshotElement) -> str:
        return f"this.page.getByRole('{candidate.role}', {{ name: '{escape_quotes(candidate.name or '')}' }})"

    def _tag_selector(self, metadata: ElementMetadata, element_type: ElementType) -> Optional[str]:
        tags = TAG_MAP.get(element_type, [])
        tag = metadata.tag or (tags[0] if tags else None)
        if not tag:
            return None

        selector = tag
        if metadata.class_name:
            classes = metadata.class_name.split()
            first_class = CLASS_SANITIZE_PATTERN.sub("", classes[0]) if classes else ""
            if first_class:
                selector += f".{first_class}"

        return f"this.page.locator('{selector}')"
