"""Email templates for Skill Up Academy notifications."""
from __future__ import annotations

from typing import Any, Dict

from jinja2 import DictLoader, Environment, StrictUndefined, TemplateNotFound, select_autoescape

from .models import NotificationMessage

WELCOME_TEMPLATE = "welcome"
WELCOME_ACCENT = "#2c6dd6"
INACTIVITY_ACCENT = "#d68d00"
GENERIC_INACTIVITY_TEMPLATE = "inactivity"

_BASE_HTML = """\
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <style>
    body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background-color: #f9fafb; margin: 0; padding: 0; }
    .container { max-width: 600px; margin: 40px auto; background: white; border-radius: 16px; overflow: hidden; }
    .header { background: {{ accent }}; padding: 40px 20px; text-align: center; color: white; }
    .content { padding: 40px 30px; }
    .message { color: #4b5563; line-height: 1.6; font-size: 16px; margin-bottom: 20px; }
    .cta-button { display: inline-block; background: {{ accent }}; color: white; padding: 14px 32px;
                  text-decoration: none; border-radius: 8px; font-weight: 600; margin: 20px 0; }
    .footer { background: #f3f4f6; padding: 30px; text-align: center; color: #6b7280; font-size: 14px; }
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>Skill Up Academy</h1></div>
    <div class="content">
      {% block content %}{% endblock %}
    </div>
    <div class="footer">
      <p>Skill Up Academy | {% block tagline %}Transforming Lives Through Education{% endblock %}</p>
      <p style="margin-top: 10px; font-size: 12px;">{% block footnote %}If you have any questions, reply to this email.{% endblock %}</p>
    </div>
  </div>
</body>
</html>
"""

_WELCOME_HTML = """\
{% extends "base.html" %}
{% block content %}
      <h2>Welcome, {{ name }}!</h2>
      <p class="message">
        We're thrilled to have you join Skill Up Academy! You've just taken the first step towards
        transforming your career and unlocking your full potential.
      </p>
      <ul class="message">
        <li>Access 14 weeks of comprehensive course modules</li>
        <li>Watch engaging video lessons at your own pace</li>
        <li>Complete assignments to reinforce your learning</li>
        <li>Track your progress with daily accountability</li>
      </ul>
      <a href="{{ frontend_url }}/student" class="cta-button">Start Learning Now</a>
      <p class="message"><strong>Pro Tip:</strong> Set aside dedicated time each day for your learning.</p>
{% endblock %}
"""

_INACTIVITY_HTML = """\
{% extends "base.html" %}
{% block content %}
      <h2>{{ headline }}</h2>
      <p class="message">Hi {{ name }},<br><br>{{ message }}</p>
      <p class="message" style="text-align: center;">
        <strong style="font-size: 36px; color: #428dff;">{{ days }}</strong><br>Days Since Last Activity
      </p>
      <p class="message">
        <strong>Quick Wins to Get Back on Track:</strong><br>
        Watch one 15-minute video today<br>
        Log your daily accountability<br>
        Join the community discussion
      </p>
      <a href="{{ frontend_url }}/student/modules" class="cta-button">Resume Learning</a>
{% endblock %}
{% block tagline %}We're Here to Support You{% endblock %}
{% block footnote %}Need help getting back on track? Reply to this email anytime.{% endblock %}
"""

# template id -> (subject, headline, message); values are jinja expressions
INACTIVITY_COPY: Dict[str, Dict[str, str]] = {
    "inactivity_3d": {
        "subject": "{{ name }}, we miss you!",
        "headline": "We Miss You!",
        "message": "It's been {{ days }} days since we last saw you. Your learning journey is waiting!",
    },
    "inactivity_7d": {
        "subject": "Don't lose momentum, {{ name }}!",
        "headline": "A Week Has Passed!",
        "message": "It's been a full week! Don't let your momentum slip. "
        "Just 15 minutes today can make a huge difference.",
    },
    "inactivity_14d": {
        "subject": "Last chance to get back on track, {{ name }}!",
        "headline": "Your Goals Are Waiting!",
        "message": "Two weeks without progress! Remember why you started. Let's get back on track together.",
    },
    GENERIC_INACTIVITY_TEMPLATE: {
        "subject": "{{ name }}, your courses are waiting",
        "headline": "Pick Up Where You Left Off",
        "message": "It's been {{ days }} days since your last visit. Let's keep your progress going.",
    },
}

_TEXT_BODIES = {
    WELCOME_TEMPLATE: "Welcome to Skill Up Academy, {{ name }}!\n\nStart learning: {{ frontend_url }}/student\n",
    "inactivity": "Hi {{ name }},\n\n{{ message }}\n\nResume learning: {{ frontend_url }}/student/modules\n",
}


class TemplateRenderer:
    """Renders a template id plus variables into a NotificationMessage."""

    def __init__(self, frontend_url: str = ""):
        self.frontend_url = frontend_url.rstrip("/")
        self.env = Environment(
            loader=DictLoader(
                {
                    "base.html": _BASE_HTML,
                    "welcome.html": _WELCOME_HTML,
                    "inactivity.html": _INACTIVITY_HTML,
                }
            ),
            autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
            undefined=StrictUndefined,
        )

    def template_for_threshold(self, threshold: int) -> str:
        specific = f"inactivity_{threshold}d"
        return specific if specific in INACTIVITY_COPY else GENERIC_INACTIVITY_TEMPLATE

    def _string(self, source: str, context: Dict[str, Any]) -> str:
        return self.env.from_string(source).render(**context)

    def render(self, template_id: str, variables: Dict[str, Any]) -> NotificationMessage:
        context = {"frontend_url": self.frontend_url, **variables}
        if template_id == WELCOME_TEMPLATE:
            context.setdefault("accent", WELCOME_ACCENT)
            return NotificationMessage(
                subject=self._string("Welcome to Skill Up Academy, {{ name }}!", context),
                body_html=self.env.get_template("welcome.html").render(**context),
                body_text=self._string(_TEXT_BODIES[WELCOME_TEMPLATE], context),
            )

        copy = INACTIVITY_COPY.get(template_id)
        if copy is None:
            raise TemplateNotFound(template_id)
        context.setdefault("accent", INACTIVITY_ACCENT)
        context["headline"] = self._string(copy["headline"], context)
        context["message"] = self._string(copy["message"], context)
        return NotificationMessage(
            subject=self._string(copy["subject"], context),
            body_html=self.env.get_template("inactivity.html").render(**context),
            body_text=self._string(_TEXT_BODIES["inactivity"], context),
        )
