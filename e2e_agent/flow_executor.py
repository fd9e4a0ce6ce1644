import logging
from typing import List

from .models import FlowExecutionResult, PageFillResult, PageObjectSpec
from .selector_filler import SelectorFiller

logger = logging.getLogger(__name__)


class FlowExecutor:
    """Fill selectors page by page and aggregate the outcome.

    Pages are processed one at a time against the single browser session; a
    failure on one page is recorded and the next page is still processed.
    """

    def __init__(self, selector_filler: SelectorFiller):
        self.selector_filler = selector_filler

    async def execute(self, pages: List[PageObjectSpec]) -> FlowExecutionResult:
        results: List[PageFillResult] = []

        for page in pages:
            if not page.required_elements:
                logger.info("%s has no required elements, skipping navigation", page.name)
                results.append(PageFillResult(
                    page_name=page.name,
                    path=page.path,
                    success=True,
                ))
                continue

            logger.info("Filling %d selectors for %s (%s)", len(page.required_elements), page.name, page.path)

            try:
                matches = await self.selector_filler.fill_page_selectors(page.path, page.required_elements)
            except Exception as e:
                logger.error("Selector discovery failed for %s: %s", page.name, e)
                results.append(PageFillResult(
                    page_name=page.name,
                    path=page.path,
                    success=False,
                    missing_elements=[element.name for element in page.required_elements],
                    error=str(e),
                ))
                continue

            missing = [match.element_name for match in matches if match.selector is None]
            if missing:
                logger.warning("%s: unresolved elements %s", page.name, ", ".join(missing))

            results.append(PageFillResult(
                page_name=page.name,
                path=page.path,
                selectors=matches,
                success=not missing,
                missing_elements=missing,
            ))

        return FlowExecutionResult(
            pages=results,
            has_failures=any(not result.success for result in results),
        )
