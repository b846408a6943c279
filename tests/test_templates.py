"""Tests for template rendering, defaults and layout wrapping."""

from unittest.mock import MagicMock

import pytest

from hrnotify.config.models import BrandingConfig
from hrnotify.domain.models import EmailTemplate, NotificationType
from hrnotify.notifications.defaults import DEFAULT_TEMPLATES, SAMPLE_VARIABLES
from hrnotify.notifications.templates import (
    TemplateEngine,
    format_value,
    get_default_template,
    parse_variables,
    render_variables,
    validate_template_syntax,
)
from hrnotify.persistence import PersistenceError, TemplateRepository, get_session
from hrnotify.utils.timestamps import utc_now


@pytest.fixture
def engine(database):
    return TemplateEngine(branding=BrandingConfig(app_name="Workseed", app_url="https://hr.example.com"))


class TestRenderVariables:
    """Tests for {{variable}} substitution."""

    def test_replaces_known_variables(self):
        """Test every occurrence of a token is replaced."""
        result = render_variables("Hi {{name}}, bye {{name}}", {"name": "Erin"})

        assert result == "Hi Erin, bye Erin"

    def test_missing_and_none_render_empty(self):
        """Test missing or None values become an empty string."""
        result = render_variables("[{{missing}}][{{empty}}]", {"empty": None})

        assert result == "[][]"

    def test_malformed_tokens_pass_through(self):
        """Test tokens outside the name grammar are copied unchanged."""
        template = "{{ spaced }} {{bad-name}} {single} {{}} {{ok}}"

        result = render_variables(template, {"ok": "yes", "spaced": "no"})

        assert result == "{{ spaced }} {{bad-name}} {single} {{}} yes"

    def test_scalar_formatting(self):
        """Test booleans and integral floats render like the admin UI expects."""
        result = render_variables(
            "{{a}} {{b}} {{c}} {{d}}", {"a": True, "b": False, "c": 5.0, "d": 2.5}
        )

        assert result == "true false 5 2.5"

    def test_rendering_is_idempotent_without_tokens_in_values(self):
        """Test rendering the output again changes nothing."""
        once = render_variables("Leave: {{leaveType}}", {"leaveType": "Annual Leave"})

        assert render_variables(once, {"leaveType": "Other"}) == once

    def test_values_are_not_escaped(self):
        """Test substituted values are inserted verbatim."""
        assert render_variables("{{html}}", {"html": "<b>bold</b>"}) == "<b>bold</b>"

    def test_empty_template(self):
        """Test an empty template renders to an empty string."""
        assert render_variables("", {"a": 1}) == ""

    def test_format_value_none(self):
        """Test None formats as an empty string."""
        assert format_value(None) == ""


class TestParseAndValidate:
    """Tests for variable discovery and syntax checks."""

    def test_parse_variables_unique_in_order(self):
        """Test names are returned once each, first-seen order."""
        assert parse_variables("{{b}} {{a}} {{b}} {{c}}") == ["b", "a", "c"]

    def test_valid_template(self):
        """Test a well-formed template passes validation."""
        result = validate_template_syntax("Hello {{name}}")

        assert result.valid is True
        assert result.errors == []

    def test_mismatched_brackets(self):
        """Test unbalanced braces are reported."""
        result = validate_template_syntax("Hello {{name}")

        assert result.valid is False
        assert any("Mismatched" in error for error in result.errors)

    def test_empty_variable(self):
        """Test an empty token is reported."""
        result = validate_template_syntax("Hello {{}}")

        assert result.valid is False
        assert any("Empty variable" in error for error in result.errors)


class TestDefaults:
    """Tests for the built-in template set."""

    def test_every_type_has_a_default(self):
        """Test the defaults cover the whole NotificationType enum."""
        assert set(DEFAULT_TEMPLATES) == set(NotificationType)

    def test_default_templates_are_syntactically_valid(self):
        """Test no built-in template has broken braces."""
        for notification_type, template in DEFAULT_TEMPLATES.items():
            assert validate_template_syntax(template.subject).valid, notification_type
            assert validate_template_syntax(template.html_body).valid, notification_type

    def test_unknown_type_falls_back_to_custom(self):
        """Test lookup of an unknown type returns the CUSTOM template."""
        assert get_default_template("NOT_A_TYPE") == DEFAULT_TEMPLATES[NotificationType.CUSTOM]

    def test_leave_approved_subject(self):
        """Test the leave approved subject renders the leave type."""
        template = get_default_template(NotificationType.LEAVE_REQUEST_APPROVED)

        subject = render_variables(template.subject, {"leaveType": "Annual Leave"})

        assert subject == "Leave Request Approved - Annual Leave"


class TestTemplateEngine:
    """Tests for template selection, layout and preview."""

    def test_default_used_without_active_template(self, engine):
        """Test the built-in template is chosen when the database has none."""
        template = engine.resolve_template(NotificationType.WELCOME_EMAIL)

        assert template == DEFAULT_TEMPLATES[NotificationType.WELCOME_EMAIL]

    def test_active_template_wins(self, engine):
        """Test an active admin template replaces the default."""
        with get_session() as session:
            TemplateRepository(session).create(
                EmailTemplate(
                    name="Custom welcome",
                    type=NotificationType.WELCOME_EMAIL,
                    subject="Hello {{recipientName}}",
                    html_body="<p>Welcome aboard</p>",
                )
            )

        template = engine.resolve_template(NotificationType.WELCOME_EMAIL)

        assert isinstance(template, EmailTemplate)
        assert template.subject == "Hello {{recipientName}}"
        assert template.id is not None

    def test_inactive_template_is_ignored(self, engine):
        """Test inactive admin templates are not consulted."""
        with get_session() as session:
            TemplateRepository(session).create(
                EmailTemplate(
                    name="Old welcome",
                    type=NotificationType.WELCOME_EMAIL,
                    subject="Old",
                    html_body="<p>Old</p>",
                    is_active=False,
                )
            )

        assert engine.get_active_template(NotificationType.WELCOME_EMAIL) is None

    def test_lookup_failure_falls_back_to_default(self):
        """Test a database error while reading templates falls back to the default."""
        session_factory = MagicMock(side_effect=PersistenceError("db down"))
        engine = TemplateEngine(session_factory=session_factory)

        template = engine.resolve_template(NotificationType.APPRECIATION)

        assert template == DEFAULT_TEMPLATES[NotificationType.APPRECIATION]

    def test_build_variables(self, engine):
        """Test base variables are present and context values override them."""
        variables = engine.build_variables(
            "Erin Employee", "erin@example.com", {"leaveType": "Sick", "appName": "Override"}
        )

        assert variables["recipientName"] == "Erin Employee"
        assert variables["recipientEmail"] == "erin@example.com"
        assert variables["appUrl"] == "https://hr.example.com"
        assert variables["currentYear"] == utc_now().year
        assert variables["leaveType"] == "Sick"
        assert variables["appName"] == "Override"

    def test_wrap_in_layout(self, engine):
        """Test the layout carries body, branding and year."""
        html = engine.wrap_in_layout("<p>Body text</p>")

        assert "<p>Body text</p>" in html
        assert "Workseed" in html
        assert "https://hr.example.com" in html
        assert str(utc_now().year) in html

    def test_render_flattens_subject(self, engine):
        """Test subjects are stripped and newlines removed."""
        rendered = engine.render("  Hello\n{{name}}  ", "<p>{{name}}</p>", {"name": "Erin"})

        assert rendered.subject == "Hello Erin"
        assert "<p>Erin</p>" in rendered.html

    def test_preview_uses_sample_variables(self, engine):
        """Test preview renders against the sample data set."""
        rendered = engine.preview(NotificationType.LEAVE_REQUEST_APPROVED)

        assert rendered.subject == f"Leave Request Approved - {SAMPLE_VARIABLES['leaveType']}"
        assert SAMPLE_VARIABLES["approverName"] in rendered.html

    def test_preview_overrides(self, engine):
        """Test preview overrides replace sample values."""
        rendered = engine.preview(
            NotificationType.LEAVE_REQUEST_APPROVED, {"leaveType": "Parental Leave"}
        )

        assert rendered.subject == "Leave Request Approved - Parental Leave"
