"""
Email Templates
===============

Admin-editable email templates with a built-in fallback.

Templates are stored as JSON in the settings key/value store under
EMAIL_TEMPLATE_<NAME> (e.g. EMAIL_TEMPLATE_CONFIRMATION):

    {"subject": "...", "body": "<html>...", "from": "...", "reply_to": "..."}

Placeholders use {{ VAR }} (the legacy <%= VAR %> form is accepted too) and
are replaced per recipient; values are HTML-escaped in the body. A
plain-text body is derived from the HTML.
"""

import json
import logging
import re
from dataclasses import dataclass, asdict
from typing import Dict, Optional

from markupsafe import escape

from subscribekit.modules.settings.database import get_setting, set_setting

logger = logging.getLogger(__name__)

KNOWN_TEMPLATES = ('confirmation',)


class UnknownTemplateError(KeyError):
    """Template name is not one the framework knows how to send"""


@dataclass(frozen=True)
class Template:
    subject: str
    body: str
    from_override: Optional[str] = None
    reply_to_override: Optional[str] = None

    def to_dict(self):
        return {
            'subject': self.subject,
            'body': self.body,
            'from': self.from_override,
            'reply_to': self.reply_to_override,
        }

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict) or not data.get('body'):
            raise ValueError("Template must be an object with a non-empty body")
        return cls(
            subject=data.get('subject') or '',
            body=data['body'],
            from_override=data.get('from') or None,
            reply_to_override=data.get('reply_to') or None,
        )


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str
    sender: Optional[str] = None
    reply_to: Optional[str] = None

    def to_dict(self):
        return asdict(self)


FALLBACK_TEMPLATES = {
    'confirmation': Template(
        subject='Please confirm your newsletter subscription',
        body="""
<h1>Welcome {{USER}}!</h1>
<p>Thanks for subscribing to our newsletter. Please click the link below to confirm your email address:</p>
<a href="{{URL}}" target="_blank" style="background-color: #007cba; color: white; padding: 10px 20px; text-decoration: none; border-radius: 5px; display: inline-block;">Confirm subscription</a>
<p>This link will expire in {{DAYS}} days.</p>
<hr>
<p>If you did not request this subscription, you can safely ignore this email.</p>
<p>To unsubscribe in the future, visit: <a href="{{UNSUBSCRIBE_URL}}">unsubscribe</a>.</p>
""",
    ),
}


def html_to_text(html):
    """Strip HTML tags, convert <p>/<br> to newlines, decode common entities."""
    if not html:
        return ''
    text = html
    text = re.sub(r'<br\s*/?>', '\n', text)
    text = re.sub(r'</p>\s*<p[^>]*>', '\n\n', text)
    text = re.sub(r'<a[^>]*href="([^"]*)"[^>]*>(.*?)</a>', r'\2 (\1)', text, flags=re.DOTALL)
    text = re.sub(r'<[^>]+>', '', text)
    text = re.sub(r'&nbsp;', ' ', text)
    text = re.sub(r'&lt;', '<', text)
    text = re.sub(r'&gt;', '>', text)
    text = re.sub(r'&#39;', "'", text)
    text = re.sub(r'&quot;|&#34;', '"', text)
    text = re.sub(r'&amp;', '&', text)
    text = re.sub(r'[ \t]+\n', '\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


def substitute_variables(text, variables):
    """Replace {{ VAR }} and <%= VAR %> placeholders with actual values"""
    if not text:
        return text or ''
    for key, value in variables.items():
        pattern = r'\{\{\s*' + re.escape(key) + r'\s*\}\}|<%=\s*' + re.escape(key) + r'\s*%>'
        text = re.sub(pattern, lambda _m: str(value), text)
    return text


def _setting_key(name):
    return f'EMAIL_TEMPLATE_{name.upper()}'


class TemplateStore:
    """Reads and writes templates in the admin settings store."""

    def get(self, name) -> Optional[Template]:
        """Return the stored template, or None when the admin has not set one"""
        if name not in KNOWN_TEMPLATES:
            raise UnknownTemplateError(name)
        raw = get_setting(_setting_key(name))
        if not raw:
            return None
        data = json.loads(raw) if isinstance(raw, str) else raw
        return Template.from_dict(data)

    def save(self, name, template: Template):
        if name not in KNOWN_TEMPLATES:
            raise UnknownTemplateError(name)
        set_setting(
            _setting_key(name),
            json.dumps(template.to_dict()),
            category='email_templates',
            description=f'{name} email template',
        )
        logger.info(f"Email template {name} updated successfully")


class TemplateResolver:
    """
    Resolves a named template to a ready-to-send email.

    Stored templates win; any problem reading them (missing, bad JSON, store
    unavailable) falls back to FALLBACK_TEMPLATES.
    """

    def __init__(self, store=None, default_sender=None, default_reply_to=None):
        self.store = store if store is not None else TemplateStore()
        self.default_sender = default_sender
        self.default_reply_to = default_reply_to

    def resolve(self, name) -> Template:
        try:
            template = self.store.get(name)
            if template is not None:
                return template
        except UnknownTemplateError:
            raise
        except Exception as e:
            logger.error(f"Error getting email template {name}: {e}")
        return FALLBACK_TEMPLATES[name]

    def render(self, name, variables: Dict[str, object]) -> RenderedEmail:
        """
        Values substituted into the HTML body are escaped, so subscriber-supplied
        text (e.g. a name) can never add markup or links. The subject and the
        plain-text part carry the raw values.
        """
        template = self.resolve(name)
        html = substitute_variables(
            template.body, {key: escape(value) for key, value in variables.items()}
        )
        return RenderedEmail(
            subject=substitute_variables(template.subject, variables),
            html=html,
            text=html_to_text(html),
            sender=template.from_override or self.default_sender,
            reply_to=template.reply_to_override or self.default_reply_to,
        )
