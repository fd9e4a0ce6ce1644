import logging
from typing import Any, Dict, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from .playwright_mcp import AutomationError, join_url

logger = logging.getLogger(__name__)

REF_ATTRIBUTE = "data-e2e-ref"

# Tags every visible interactive or text node with a ref and renders one
# `- role "name" [ref=eN]` line per node.
SNAPSHOT_SCRIPT = """(refAttribute) => {
  const implicitRole = (el) => {
    const tag = el.tagName.toLowerCase();
    const type = (el.getAttribute('type') || '').toLowerCase();
    if (tag === 'a' && el.hasAttribute('href')) return 'link';
    if (tag === 'button') return 'button';
    if (tag === 'select') return 'combobox';
    if (tag === 'textarea') return 'textbox';
    if (tag === 'input') {
      if (type === 'checkbox') return 'checkbox';
      if (type === 'radio') return 'radio';
      if (type === 'search') return 'searchbox';
      if (['submit', 'button', 'reset'].includes(type)) return 'button';
      if (type === 'hidden') return null;
      return 'textbox';
    }
    if (/^h[1-6]$/.test(tag)) return 'heading';
    if (['p', 'span', 'div', 'label', 'strong', 'em'].includes(tag)) {
      const ownText = Array.from(el.childNodes)
        .filter((node) => node.nodeType === Node.TEXT_NODE)
        .map((node) => node.textContent.trim())
        .join(' ')
        .trim();
      return ownText ? (tag === 'p' ? 'paragraph' : 'generic') : null;
    }
    return null;
  };
  const accessibleName = (el) => {
    const label = el.getAttribute('aria-label')
      || (el.labels && el.labels[0] && el.labels[0].textContent)
      || el.getAttribute('placeholder')
      || el.getAttribute('alt')
      || el.getAttribute('title')
      || (['INPUT', 'SELECT', 'TEXTAREA'].includes(el.tagName) ? '' : el.textContent);
    return (label || '').replace(/\\s+/g, ' ').trim().replace(/"/g, "'").slice(0, 100);
  };
  const lines = [];
  let counter = 0;
  for (const el of document.body.querySelectorAll('*')) {
    if (el.closest('[aria-hidden="true"]') || el.hidden) continue;
    const role = el.getAttribute('role') || implicitRole(el);
    if (!role) continue;
    counter += 1;
    const ref = `e${counter}`;
    el.setAttribute(refAttribute, ref);
    const name = accessibleName(el);
    lines.push(name ? `- ${role} "${name}" [ref=${ref}]` : `- ${role} [ref=${ref}]`);
  }
  return lines.join('\\n');
}"""


class BrowserEngine:
    """Local Playwright browser with the same contract as PlaywrightMCPService.

    Useful when no MCP server is available: the snapshot is produced in-page
    and refs are stored as a data attribute on the tagged nodes.
    """

    def __init__(self, base_url: str, headless: bool = True):
        self.base_url = base_url
        self.headless = headless
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.contexts: Dict[str, BrowserContext] = {}
        self.pages: Dict[str, Page] = {}

    async def start_session(self):
        """Start Playwright and launch Chromium"""
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(
            headless=self.headless,
            args=['--no-sandbox', '--disable-setuid-sandbox']
        )
        logger.info("Local Chromium started (headless=%s)", self.headless)

    async def get_or_create_page(self, context_id: str = "default") -> Page:
        """Get existing page or create new one for context"""
        if self.browser is None:
            raise AutomationError("Browser is not started")

        if context_id not in self.pages:
            if context_id not in self.contexts:
                self.contexts[context_id] = await self.browser.new_context()

            page = await self.contexts[context_id].new_page()
            page.on("console", lambda msg: logger.debug("Console: %s", msg.text))
            page.on("pageerror", lambda err: logger.warning("Page error: %s", err))
            self.pages[context_id] = page

        return self.pages[context_id]

    async def navigate(self, path: str):
        url = join_url(self.base_url, path)
        page = await self.get_or_create_page()
        logger.info("Navigating to %s", url)

        try:
            response = await page.goto(url, wait_until='networkidle')
        except PlaywrightError as e:
            raise AutomationError(f"Navigation to {url} failed: {e}") from e

        if response is not None and not response.ok:
            raise AutomationError(f"Navigation to {url} failed: HTTP {response.status}")

    async def snapshot(self) -> str:
        page = await self.get_or_create_page()
        try:
            return await page.evaluate(SNAPSHOT_SCRIPT, REF_ATTRIBUTE)
        except PlaywrightError as e:
            raise AutomationError(f"Snapshot capture failed: {e}") from e

    async def evaluate_element(self, element: str, ref: str, script: str) -> Any:
        """Run ``element => ...`` on the node tagged by the last snapshot"""
        page = await self.get_or_create_page()
        locator = page.locator(f'[{REF_ATTRIBUTE}="{ref}"]')

        if await locator.count() == 0:
            logger.warning("%s: ref %s is no longer on the page", element, ref)
            return None

        try:
            return await locator.first.evaluate(script)
        except PlaywrightError as e:
            raise AutomationError(f"Evaluation on {element} failed: {e}") from e

    async def close(self):
        """Clean up browser resources"""
        for context in self.contexts.values():
            await context.close()
        self.contexts.clear()
        self.pages.clear()

        if self.browser:
            await self.browser.close()
            self.browser = None
        if self.playwright:
            await self.playwright.stop()
            self.playwright = None
