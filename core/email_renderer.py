# core/email_renderer.py
"""
Email rendering for form submissions

Pure functions turning a stored submission into the administrator
notification and the submitter confirmation. Every user-supplied value goes
through the ``email_safe`` filter, which escapes at render time whether or
not the validator escaped it before storage.
"""

import html
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo

import premailer
from bs4 import BeautifulSoup
from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from markupsafe import Markup, escape

from core.models import FormKind, Submission

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / 'email_templates'


@dataclass(frozen=True)
class Branding:
    """Organisation details shown in email copy"""
    brand_name: str = 'EmotionEase'
    support_email: str = 'support@emotionease.in'
    support_phone: str = '+91 1234567890'
    display_timezone: str = 'Asia/Kolkata'
    user_subject: Optional[str] = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'Branding':
        return cls(
            brand_name=config.get('BRAND_NAME') or cls.brand_name,
            support_email=config.get('SUPPORT_EMAIL') or cls.support_email,
            support_phone=config.get('SUPPORT_PHONE') or cls.support_phone,
            display_timezone=config.get('DISPLAY_TIMEZONE') or cls.display_timezone,
            user_subject=config.get('USER_EMAIL_SUBJECT') or None,
        )


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


def email_safe(value: Any) -> Markup:
    """Escape user text for HTML, keeping line breaks; safe on pre-escaped input"""
    if value is None:
        return Markup('')
    text = html.unescape(str(value))
    return Markup('<br>').join(escape(line) for line in text.splitlines())


def first_name(value: Any) -> str:
    text = html.unescape(str(value or '')).strip()
    return text.split(' ')[0] if text else ''


def _plain(value: Any) -> str:
    """Header-safe single line text for subjects"""
    return re.sub(r'\s+', ' ', html.unescape(str(value or ''))).strip()


def _build_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(['html', 'xml']),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters['email_safe'] = email_safe
    env.filters['first_name'] = first_name
    return env


_env = _build_environment()


def _local_time(moment: datetime, branding: Branding) -> str:
    local = moment.astimezone(ZoneInfo(branding.display_timezone))
    return local.strftime('%d %b %Y, %I:%M %p %Z')


def _inline_css(html_content: str) -> str:
    """Inline <style> rules for clients that ignore style blocks"""
    try:
        return premailer.Premailer(
            html_content,
            remove_classes=False,
            keep_style_tags=True,
            allow_network=False,
            disable_validation=True,
            cssutils_logging_level=logging.CRITICAL,
        ).transform()
    except Exception as e:
        logger.warning(f"CSS inlining failed: {str(e)}")
        return html_content


def html_to_text(html_content: str) -> str:
    """Plain-text alternative for multipart messages"""
    soup = BeautifulSoup(html_content, 'html.parser')
    for tag in soup(['head', 'style', 'title']):
        tag.decompose()
    for br in soup.find_all('br'):
        br.replace_with('\n')
    for li in soup.find_all('li'):
        li.insert_before('- ')
    for link in soup.find_all('a', href=True):
        href = link['href']
        label = link.get_text()
        if href.startswith('mailto:') or href.startswith('tel:') or href == label:
            continue
        link.replace_with(f"{label} ({href})")

    text = soup.get_text()
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n\s*\n+', '\n\n', text)
    return text.strip()


ADMIN_SUBJECTS = {
    FormKind.CONTACT: lambda s, b: f"New Contact Form Submission - {_plain(s.category)}",
    FormKind.SIGNUP: lambda s, b: f"New Signup: {_plain(s.name)}",
    FormKind.SUBDOMAIN_CONTACT: lambda s, b: f"New Contact Form Submission from {_plain(s.name)}",
}

USER_SUBJECTS = {
    FormKind.CONTACT: lambda b: f"Thank you for contacting {b.brand_name}",
    FormKind.SIGNUP: lambda b: f"Welcome to {b.brand_name}!",
    FormKind.SUBDOMAIN_CONTACT: lambda b: f"Thank you for contacting {b.brand_name}",
}


def _render(template_name: str, submission: Submission, branding: Branding) -> str:
    template = _env.get_template(template_name)
    rendered = template.render(
        submission=submission,
        brand=branding,
        submitted_at=_local_time(submission.date, branding),
        year=submission.date.year,
    )
    return _inline_css(rendered)


def render_admin_notification(submission: Submission,
                              branding: Branding = Branding()) -> RenderedEmail:
    """Render the notification sent to the administrator"""
    body = _render(f"{submission.form.value}/admin.html", submission, branding)
    return RenderedEmail(
        subject=ADMIN_SUBJECTS[submission.form](submission, branding),
        html=body,
        text=html_to_text(body),
    )


def render_user_confirmation(submission: Submission,
                             branding: Branding = Branding()) -> RenderedEmail:
    """Render the confirmation sent to the submitter"""
    body = _render(f"{submission.form.value}/user.html", submission, branding)
    subject = branding.user_subject or USER_SUBJECTS[submission.form](branding)
    return RenderedEmail(subject=subject, html=body, text=html_to_text(body))
