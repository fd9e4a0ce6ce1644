import pytest
from unittest.mock import AsyncMock, Mock

from e2e_agent.models import ElementSpec, ElementType, SelectorStrategy, SnapshotElement
from e2e_agent.selector_filler import (
    METADATA_SCRIPT,
    SelectorFiller,
    build_tokens,
    escape_attribute,
    escape_quotes,
    parse_snapshot,
    score_candidate,
)

from example_scenarios import DASHBOARD_SNAPSHOT, EMAIL_METADATA, LOGIN_SNAPSHOT


@pytest.fixture
def automation():
    """Automation backend double"""
    automation = Mock()
    automation.navigate = AsyncMock()
    automation.snapshot = AsyncMock(return_value=LOGIN_SNAPSHOT)
    automation.evaluate_element = AsyncMock(return_value=None)
    return automation


@pytest.fixture
def filler(automation):
    return SelectorFiller(automation)


def email_input():
    return ElementSpec(name="emailInput", type=ElementType.INPUT)


class TestParseSnapshot:
    """Test suite for accessibility snapshot parsing"""

    def test_only_lines_with_refs(self):
        entries = parse_snapshot(LOGIN_SNAPSHOT)

        assert [entry.ref for entry in entries] == ["e1", "e2", "e3", "e4", "e5", "e6"]

    def test_roles_and_names(self):
        entries = parse_snapshot(LOGIN_SNAPSHOT)

        assert (entries[0].role, entries[0].name) == ("generic", None)
        assert (entries[1].role, entries[1].name) == ("heading", "Sign in")
        assert (entries[4].role, entries[4].name) == ("button", "Log in")
        assert entries[5].name == "Forgot password?"

    def test_raw_line_is_stripped(self):
        entries = parse_snapshot('    - textbox "Email" [ref=e3]')

        assert entries[0].raw == '- textbox "Email" [ref=e3]'

    def test_empty_snapshot(self):
        assert parse_snapshot("") == []


class TestTokens:
    """Test suite for token extraction and scoring"""

    def test_tokens_from_name_and_purpose(self):
        element = ElementSpec(name="loginButton", purpose="login button, 로그인", type=ElementType.BUTTON)

        assert build_tokens(element) == ["login", "button", "로그인"]

    def test_tokens_split_on_separators(self):
        element = ElementSpec(name="user_name-field", type=ElementType.INPUT)

        assert build_tokens(element) == ["user", "name", "field"]

    def test_score_counts_tokens_in_name(self):
        candidate = SnapshotElement(role="textbox", name="Email address", ref="e1", raw="")

        assert score_candidate(candidate, ["email", "address", "phone"]) == 7

    def test_empty_tokens_score_flat(self):
        candidate = SnapshotElement(role="textbox", name="Email", ref="e1", raw="")

        assert score_candidate(candidate, []) == 1


class TestEscaping:

    def test_single_quotes(self):
        assert escape_quotes("it's") == "it\\'s"
        assert escape_quotes("a\\b") == "a\\\\b"

    def test_double_quotes(self):
        assert escape_attribute('say "hi"') == 'say \\"hi\\"'


class TestSelectorFiller:
    """Test suite for selector resolution"""

    @pytest.mark.asyncio
    async def test_test_id_wins(self, filler, automation):
        """data-test beats every other attribute and the accessible name"""
        automation.evaluate_element.return_value = EMAIL_METADATA

        [match] = await filler.fill_selectors_from_snapshot([email_input()], LOGIN_SNAPSHOT)

        assert match.selector == "this.page.getByTestId('email-input')"
        assert match.strategy == SelectorStrategy.TEST_ID
        assert match.ref == "e3"
        assert match.confidence == pytest.approx(0.4)
        assert match.metadata.class_name == "form-control input-lg"
        assert match.reason == "data-test attribute"
        automation.evaluate_element.assert_awaited_once_with("emailInput candidate", "e3", METADATA_SCRIPT)

    @pytest.mark.asyncio
    async def test_placeholder(self, filler, automation):
        automation.evaluate_element.return_value = {"tag": "input", "placeholder": "Email address", "name": "email"}

        [match] = await filler.fill_selectors_from_snapshot([email_input()], LOGIN_SNAPSHOT)

        assert match.selector == "this.page.getByPlaceholder('Email address')"
        assert match.strategy == SelectorStrategy.PLACEHOLDER

    @pytest.mark.asyncio
    async def test_name_attribute(self, filler, automation):
        automation.evaluate_element.return_value = {"tag": "input", "name": "email", "id": "email-field"}

        [match] = await filler.fill_selectors_from_snapshot([email_input()], LOGIN_SNAPSHOT)

        assert match.selector == "this.page.locator('[name=\"email\"]')"
        assert match.strategy == SelectorStrategy.CSS
        assert match.reason == "name attribute"

    @pytest.mark.asyncio
    async def test_id_attribute(self, filler, automation):
        automation.evaluate_element.return_value = {"tag": "input", "id": "email-field"}

        [match] = await filler.fill_selectors_from_snapshot([email_input()], LOGIN_SNAPSHOT)

        assert match.selector == "this.page.locator('#email-field')"
        assert match.reason == "id attribute"

    @pytest.mark.asyncio
    async def test_role_and_name(self, filler, automation):
        automation.evaluate_element.return_value = {"tag": "button", "text": "Log in"}
        element = ElementSpec(name="loginButton", purpose="login button", type=ElementType.BUTTON)

        [match] = await filler.fill_selectors_from_snapshot([element], LOGIN_SNAPSHOT)

        assert match.selector == "this.page.getByRole('button', { name: 'Log in' })"
        assert match.strategy == SelectorStrategy.ROLE
        assert match.ref == "e5"

    @pytest.mark.asyncio
    async def test_tag_fallback_keeps_snapshot_order_on_ties(self, filler, automation):
        """Both generic nodes score 1; the first one seen is chosen"""
        automation.evaluate_element.return_value = {"tag": "div", "className": "layout  main"}
        element = ElementSpec(name="welcomeText", type=ElementType.TEXT)

        [match] = await filler.fill_selectors_from_snapshot([element], DASHBOARD_SNAPSHOT)

        assert match.ref == "e1"
        assert match.selector == "this.page.locator('div.layout')"
        assert match.strategy == SelectorStrategy.CSS
        assert match.reason == "tag fallback"

    @pytest.mark.asyncio
    async def test_tag_fallback_uses_default_tag(self, filler, automation):
        automation.evaluate_element.return_value = {"className": "card:hover"}
        element = ElementSpec(name="welcomeText", type=ElementType.TEXT)

        [match] = await filler.fill_selectors_from_snapshot([element], DASHBOARD_SNAPSHOT)

        assert match.selector == "this.page.locator('p.cardhover')"

    @pytest.mark.asyncio
    async def test_missing_metadata_falls_back_to_role(self, filler, automation):
        automation.evaluate_element.return_value = None

        [match] = await filler.fill_selectors_from_snapshot([email_input()], LOGIN_SNAPSHOT)

        assert match.selector == "this.page.getByRole('textbox', { name: 'Email' })"
        assert match.strategy == SelectorStrategy.ROLE
        assert match.metadata is None

    @pytest.mark.asyncio
    async def test_missing_metadata_without_name(self, filler, automation):
        automation.evaluate_element.return_value = "not an object"
        element = ElementSpec(name="welcomeText", type=ElementType.TEXT)

        [match] = await filler.fill_selectors_from_snapshot([element], DASHBOARD_SNAPSHOT)

        assert match.selector is None
        assert match.strategy is None
        assert match.reason == "no metadata"
        assert match.ref == "e1"

    @pytest.mark.asyncio
    async def test_malformed_metadata_is_ignored(self, filler, automation):
        automation.evaluate_element.return_value = {"tag": 5, "dataTest": ["x"]}

        [match] = await filler.fill_selectors_from_snapshot([email_input()], LOGIN_SNAPSHOT)

        assert match.metadata is None
        assert match.strategy == SelectorStrategy.ROLE

    @pytest.mark.asyncio
    async def test_no_candidates(self, filler, automation):
        element = ElementSpec(name="rememberCheckbox", type=ElementType.CHECKBOX)

        [match] = await filler.fill_selectors_from_snapshot([element], LOGIN_SNAPSHOT)

        assert match.selector is None
        assert match.strategy is None
        assert match.confidence == 0.0
        assert match.reason == "no candidates in snapshot"
        automation.evaluate_element.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_confidence_saturates(self, filler, automation):
        automation.evaluate_element.return_value = {"tag": "input", "id": "email"}
        snapshot = '- textbox "Email address input field" [ref=e9]'
        element = ElementSpec(name="emailInput", purpose="email address field", type=ElementType.INPUT)

        [match] = await filler.fill_selectors_from_snapshot([element], snapshot)

        assert match.confidence == 1.0

    @pytest.mark.asyncio
    async def test_values_are_escaped(self, filler, automation):
        automation.evaluate_element.return_value = {"placeholder": "Who's there?"}

        [match] = await filler.fill_selectors_from_snapshot([email_input()], LOGIN_SNAPSHOT)

        assert match.selector == "this.page.getByPlaceholder('Who\\'s there?')"

    @pytest.mark.asyncio
    async def test_one_match_per_element_in_order(self, filler, automation):
        automation.evaluate_element.return_value = None
        elements = [
            ElementSpec(name="loginButton", type=ElementType.BUTTON),
            email_input(),
            ElementSpec(name="passwordInput", type=ElementType.INPUT),
        ]

        matches = await filler.fill_selectors_from_snapshot(elements, LOGIN_SNAPSHOT)

        assert [match.element_name for match in matches] == ["loginButton", "emailInput", "passwordInput"]
        assert [match.ref for match in matches] == ["e5", "e3", "e4"]

    @pytest.mark.asyncio
    async def test_fill_page_selectors_navigates_first(self, filler, automation):
        automation.evaluate_element.return_value = EMAIL_METADATA

        matches = await filler.fill_page_selectors("/login", [email_input()])

        automation.navigate.assert_awaited_once_with("/login")
        automation.snapshot.assert_awaited_once()
        assert matches[0].strategy == SelectorStrategy.TEST_ID

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self, filler, automation):
        automation.evaluate_element.side_effect = RuntimeError("connection lost")

        with pytest.raises(RuntimeError, match="connection lost"):
            await filler.fill_selectors_from_snapshot([email_input()], LOGIN_SNAPSHOT)
