import logging
from typing import List, Optional

from .llm import LLMService, strip_code_fence
from .models import SelectorMatch

logger = logging.getLogger(__name__)


def build_selector_summary(selectors: List[SelectorMatch]) -> str:
    if not selectors:
        return "- (no selector information)"

    lines = []
    for match in selectors:
        selector = match.selector or "PLACEHOLDER"
        reason = f" ({match.reason})" if match.reason else ""
        lines.append(f"- {match.element_name}: {selector}{reason}")
    return "\n".join(lines)


class MethodSynthesizer:
    """Complete the TODO action methods of a page object with real calls"""

    def __init__(self, llm: LLMService):
        self.llm = llm

    async def synthesize(
        self,
        page_name: str,
        code: str,
        selectors: List[SelectorMatch],
        scenario_context: Optional[str] = None,
    ) -> str:
        scenario_snippet = ""
        if scenario_context and scenario_context.strip():
            scenario_snippet = f"\nTest context:\n{scenario_context.strip()}\n"

        prompt = f"""You are an expert in the Playwright Page Object Model.
Complete the TODO methods of the {page_name} class below with real Playwright code.

Rules:
1. Only change methods marked with `// TODO: verify with MCP`; keep everything else as is.
2. Use the selectors from the summary; never invent new selectors.
3. Action methods call the Playwright API directly or use the existing getters.
4. Keep async/await; no error handling is needed.
5. Do not change imports, the class declaration, getters, goto or isOnPage.
6. Output TypeScript only, without markdown fences.{scenario_snippet}
Element summary:
{build_selector_summary(selectors)}

Current code:
```typescript
{code}
```

Rewrite the whole class with the TODO methods completed."""

        logger.info("Synthesizing action methods for %s", page_name)
        completed = strip_code_fence(await self.llm.complete(prompt))
        if not completed:
            logger.warning("Empty synthesis for %s, keeping the skeleton", page_name)
            return code
        return completed
