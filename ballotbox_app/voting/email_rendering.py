from collections.abc import Mapping
from dataclasses import dataclass

from django.template import engines
from django.utils.html import escape
from post_office.models import EmailTemplate


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str


def render_template_string(value: str, context: Mapping[str, object]) -> str:
    """Render a user-authored template string (broadcast subject/body).

    Uses the post_office engine so authored content behaves the same as
    stored EmailTemplates. Syntax errors propagate to the caller.
    """
    template_engine = engines["post_office"]
    return template_engine.from_string(value or "").render(dict(context))


def render_email_template(template_name: str, context: Mapping[str, object]) -> RenderedEmail:
    """Render a stored post_office EmailTemplate to a subject and HTML body."""
    template = EmailTemplate.objects.get(name=template_name, language="")
    subject = render_template_string(template.subject or "", context).strip()
    html = render_template_string(template.html_content or "", context)
    return RenderedEmail(subject=subject, html=html)


def button_html(text: str, url: str) -> str:
    return (
        '<p style="margin: 24px 0;">'
        f'<a href="{escape(url)}" style="background-color: #2563eb; color: #ffffff; padding: 12px 24px; '
        f'border-radius: 6px; text-decoration: none; font-weight: 600;">{escape(text)}</a>'
        "</p>"
    )


def format_email_html(html: str) -> str:
    """Wrap a body fragment in the standard layout unless it is a full document."""
    if "<body" in html:
        return html
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        '<head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>\n'
        '<body style="margin: 0; padding: 20px; background-color: #ffffff; color: #000000; '
        "font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;\">\n"
        f'<div style="color: #000000; line-height: 1.6;">{html}</div>\n'
        "</body>\n"
        "</html>\n"
    )
