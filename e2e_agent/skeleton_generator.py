import logging
from typing import List

from .llm import LLMService, strip_code_fence
from .models import (
    PageDefinition,
    PageObjectSkeleton,
    ScenarioDocument,
    SkeletonGenerationResult,
    TestFileSkeleton,
    TestFlow,
)

logger = logging.getLogger(__name__)

PAGE_OBJECT_EXAMPLE = """import { Page, Locator } from '@playwright/test';
import { BasePage } from './BasePage';

export class LoginPage extends BasePage {
  constructor(page: Page) {
    super(page);
  }

  get emailInput(): Locator {
    return this.page.locator('PLACEHOLDER_emailInput');
  }

  get loginButton(): Locator {
    return this.page.locator('PLACEHOLDER_loginButton');
  }

  async goto() {
    await this.page.goto('/login');
  }

  async isOnPage(): Promise<boolean> {
    return this.page.url().includes('/login');
  }

  async fillEmail(email: string) {
    // TODO: verify with MCP
    await this.emailInput.fill(email);
  }

  async clickLoginButton() {
    // TODO: verify with MCP
    await this.loginButton.click();
  }
}"""

TEST_FILE_EXAMPLE = """import { test, expect } from '@playwright/test';
import { LoginPage } from './pages/LoginPage';
import { DashboardPage } from './pages/DashboardPage';

test.describe('Login', () => {
  test('successful login', async ({ page }) => {
    const loginPage = new LoginPage(page);
    const dashboardPage = new DashboardPage(page);

    await test.step('log in from the login page', async () => {
      await loginPage.goto();
      await loginPage.fillEmail('test@example.com');
      await loginPage.clickLoginButton();
    });

    await test.step('land on the dashboard', async () => {
      expect(await dashboardPage.isOnPage()).toBeTruthy();
    });
  });
});"""


def format_flow(flow: TestFlow, index: int) -> str:
    lines = [f"## {index}. {flow.name}"]
    if flow.purpose:
        lines.append(f"Purpose: {flow.purpose}")
    lines.extend(f"{step.order}) {step.raw}" for step in flow.steps)
    return "\n".join(lines)


class SkeletonGenerator:
    """Ask the LLM for Page Object and test file skeletons.

    Locators in the generated page objects are left as
    ``this.page.locator('PLACEHOLDER_<elementName>')`` so they can be filled in
    once the real page has been inspected.
    """

    def __init__(self, llm: LLMService):
        self.llm = llm

    async def generate_skeletons(self, scenario: ScenarioDocument) -> SkeletonGenerationResult:
        page_objects = []
        for page in scenario.pages:
            logger.info("Generating %s skeleton", page.name)
            code = await self.generate_page_object_skeleton(scenario, page)
            page_objects.append(PageObjectSkeleton(page_name=page.name, code=code))

        logger.info("Generating test file skeleton")
        test_file = await self.generate_test_file_skeleton(scenario, page_objects)

        return SkeletonGenerationResult(page_objects=page_objects, test_file=test_file)

    async def generate_page_object_skeleton(self, scenario: ScenarioDocument, page: PageDefinition) -> str:
        relevant_flows = self.extract_relevant_flows(scenario.flows, page.name)
        flows_text = "\n\n".join(
            format_flow(flow, index) for index, flow in enumerate(relevant_flows, start=1)
        ) or "(no flow mentions this page directly)"
        description = f"\n- Description: {page.description}" if page.description else ""

        prompt = f"""You are an expert in the Playwright Page Object Model.
Analyse the scenario below and write the {page.name} Page Object class.

# Page
- Name: {page.name}
- Path: {page.path}{description}

# Related test flows
{flows_text}

# Requirements
1. The class extends BasePage; the constructor only calls super(page).
2. Required methods: `async goto()` navigating to '{page.path}', and
   `async isOnPage(): Promise<boolean>` checking the current path.
3. Define every element the flows need as a getter returning a Locator.
   Getter names are camelCase and end with the element kind
   (Input, Button, Link, Text, Select, Checkbox, Radio).
4. Every locator MUST be a placeholder: this.page.locator('PLACEHOLDER_<getterName>').
5. Add one action method per step the flows need (fill*, click*, is*Displayed),
   each starting with the comment `// TODO: verify with MCP`.
6. Output TypeScript only, including imports, without markdown fences.

# Example
{PAGE_OBJECT_EXAMPLE}
"""
        return strip_code_fence(await self.llm.complete(prompt))

    async def generate_test_file_skeleton(
        self,
        scenario: ScenarioDocument,
        page_objects: List[PageObjectSkeleton],
    ) -> TestFileSkeleton:
        pages_text = "\n".join(f"- {page.name}: {page.path}" for page in scenario.pages)
        flows_text = "\n\n".join(
            format_flow(flow, index) for index, flow in enumerate(scenario.flows, start=1)
        )
        page_names = ", ".join(po.page_name for po in page_objects)

        prompt = f"""You are an expert in Playwright tests.
Write a Playwright test file for the scenario below.

# Pages
{pages_text}

# Test flows
{flows_text}

# Available Page Objects
{page_names}

# Requirements
1. Group the scenario with test.describe and write one test() per flow.
2. Split each test into test.step() blocks for the main stages.
3. Instantiate the Page Objects and call their goto(), fill*, click* and is* methods.
4. Use expect() for assertions.
5. Output TypeScript only, including imports, without markdown fences.

# Example
{TEST_FILE_EXAMPLE}
"""
        code = strip_code_fence(await self.llm.complete(prompt))
        return TestFileSkeleton(test_name="scenario", code=code)

    @staticmethod
    def extract_relevant_flows(flows: List[TestFlow], page_name: str) -> List[TestFlow]:
        """Flows with at least one step mentioning the page"""
        return [flow for flow in flows if any(page_name in step.raw for step in flow.steps)]
