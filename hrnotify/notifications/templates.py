"""Template rendering for email notifications.

Admin-authored templates use a deliberately small ``{{variable}}``
substitution syntax that never fails: unknown or empty variables render as
an empty string and malformed tokens are left in place. The rendered body
is then placed inside the shared HTML layout, which is a Jinja2 template
shipped with the package.
"""

import logging
import re
from typing import Callable, Dict, List, Mapping, Optional, Union

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from hrnotify.config.models import BrandingConfig
from hrnotify.domain.models import EmailTemplate, NotificationType, Scalar
from hrnotify.persistence import PersistenceError, TemplateRepository, get_session
from hrnotify.utils.timestamps import utc_now

from .defaults import DEFAULT_TEMPLATES, SAMPLE_VARIABLES
from .models import DefaultTemplate, RenderedEmail, TemplateValidation

logger = logging.getLogger(__name__)

VARIABLE_PATTERN = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")
_OPEN_PATTERN = re.compile(r"\{\{")
_CLOSE_PATTERN = re.compile(r"\}\}")
_EMPTY_PATTERN = re.compile(r"\{\{\s*\}\}")

AnyTemplate = Union[EmailTemplate, DefaultTemplate]


def format_value(value: Scalar) -> str:
    """Stringify a variable value for substitution."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def render_variables(template: str, variables: Mapping[str, Scalar]) -> str:
    """Replace every ``{{name}}`` token with its value.

    Missing and None values become "". Anything that is not a well-formed
    token is copied through unchanged.
    """
    if not template:
        return ""
    return VARIABLE_PATTERN.sub(
        lambda match: format_value(variables.get(match.group(1))), template
    )


def parse_variables(template: str) -> List[str]:
    """Variable names referenced by ``template``, unique, in first-seen order."""
    return list(dict.fromkeys(VARIABLE_PATTERN.findall(template or "")))


def validate_template_syntax(template: str) -> TemplateValidation:
    """Check for unbalanced braces and empty ``{{}}`` tokens."""
    errors = []
    template = template or ""

    if len(_OPEN_PATTERN.findall(template)) != len(_CLOSE_PATTERN.findall(template)):
        errors.append("Mismatched template brackets: {{ and }} count differs")

    if _EMPTY_PATTERN.search(template):
        errors.append("Empty variable name found: {{}}")

    return TemplateValidation(valid=not errors, errors=errors)


def get_default_template(notification_type: NotificationType) -> DefaultTemplate:
    """Built-in template for the type, CUSTOM for anything unknown."""
    try:
        return DEFAULT_TEMPLATES[NotificationType(notification_type)]
    except (KeyError, ValueError):
        return DEFAULT_TEMPLATES[NotificationType.CUSTOM]


class TemplateEngine:
    """Picks, renders and wraps email templates.

    Active admin templates are read from the database; when none exists (or
    the lookup fails) the built-in default for the type is used.
    """

    def __init__(
        self,
        branding: Optional[BrandingConfig] = None,
        session_factory: Callable = get_session,
        template_dir: str = "email_templates",
        layout_template: str = "layout.html.j2",
    ):
        """Initialize the engine.

        Args:
            branding: App name and URL injected into every email
            session_factory: Context manager yielding a database session
            template_dir: Directory name within the hrnotify.notifications package
            layout_template: Filename of the shared HTML layout
        """
        self.branding = branding or BrandingConfig()
        self.session_factory = session_factory
        self.layout_template_name = layout_template

        self.env = Environment(
            loader=PackageLoader("hrnotify.notifications", template_dir),
            autoescape=True,
            undefined=StrictUndefined,
        )

    def get_active_template(self, notification_type: NotificationType) -> Optional[EmailTemplate]:
        try:
            with self.session_factory() as session:
                template = TemplateRepository(session).get_active(notification_type)
        except PersistenceError as e:
            logger.warning(
                f"Falling back to default template for {notification_type}: {e}",
                extra={"event": "template.lookup_failed", "notification_type": str(notification_type)},
            )
            return None

        if template is None:
            logger.debug(
                f"No active template for {notification_type}, using default",
                extra={"event": "template.default_used"},
            )
        return template

    def get_default_template(self, notification_type: NotificationType) -> DefaultTemplate:
        return get_default_template(notification_type)

    def resolve_template(self, notification_type: NotificationType) -> AnyTemplate:
        return self.get_active_template(notification_type) or self.get_default_template(
            notification_type
        )

    def build_variables(
        self,
        recipient_name: str,
        recipient_email: str,
        context_variables: Optional[Mapping[str, Scalar]] = None,
    ) -> Dict[str, Scalar]:
        """Base variables every template can use, overlaid by the event's own."""
        variables: Dict[str, Scalar] = {
            "appName": self.branding.app_name,
            "appUrl": self.branding.app_url,
            "currentYear": utc_now().year,
            "recipientName": recipient_name,
            "recipientEmail": recipient_email,
        }
        variables.update(context_variables or {})
        return variables

    def render_variables(self, template: str, variables: Mapping[str, Scalar]) -> str:
        return render_variables(template, variables)

    def parse_variables(self, template: str) -> List[str]:
        return parse_variables(template)

    def validate_template_syntax(self, template: str) -> TemplateValidation:
        return validate_template_syntax(template)

    def wrap_in_layout(self, body_html: str) -> str:
        """Place a rendered body inside the shared layout.

        Raises:
            TemplateError: Only if the packaged layout itself is broken
        """
        try:
            layout = self.env.get_template(self.layout_template_name)
            return layout.render(
                body=body_html or "",
                app_name=self.branding.app_name,
                app_url=self.branding.app_url,
                current_year=utc_now().year,
            )
        except TemplateError as e:
            logger.error(f"Email layout rendering failed: {e}", exc_info=True)
            raise

    def render(
        self, subject: str, html_body: str, variables: Mapping[str, Scalar]
    ) -> RenderedEmail:
        """Substitute variables into subject and body, then wrap the body."""
        return RenderedEmail(
            subject=render_variables(subject, variables).strip().replace("\n", " "),
            html=self.wrap_in_layout(render_variables(html_body, variables)),
        )

    def render_template(
        self, template: AnyTemplate, variables: Mapping[str, Scalar]
    ) -> RenderedEmail:
        return self.render(template.subject, template.html_body, variables)

    def preview(
        self,
        template: Union[AnyTemplate, NotificationType],
        overrides: Optional[Mapping[str, Scalar]] = None,
    ) -> RenderedEmail:
        """Render a template against sample data for inspection."""
        if isinstance(template, (NotificationType, str)):
            template = self.resolve_template(NotificationType(template))

        variables = self.build_variables(
            SAMPLE_VARIABLES["recipientName"], SAMPLE_VARIABLES["recipientEmail"]
        )
        variables.update(SAMPLE_VARIABLES)
        variables.update(overrides or {})
        return self.render_template(template, variables)
