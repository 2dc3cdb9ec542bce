"""Guest email rendering.

Each email type has a built-in template. An active ``email_templates`` row
with the same key overrides it. Both use ``{{ variable }}`` placeholders;
placeholders without a value are left in the output as written.
"""

import html
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hostdesk.core.errors import ValidationError
from hostdesk.models.email import EmailTemplate
from hostdesk.models.enums import BookingPlatform, EmailType

_PLACEHOLDER = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")

REVIEW_LINKS = {
    BookingPlatform.AIRBNB.value: "https://airbnb.com/reviews",
    BookingPlatform.VRBO.value: "https://vrbo.com/reviews",
    BookingPlatform.BOOKING.value: "https://booking.com/reviews",
}
DEFAULT_REVIEW_LINK = "https://google.com/reviews"

EMAIL_TAGS = {
    EmailType.CHECK_IN_INSTRUCTIONS: ["check-in", "automated"],
    EmailType.CHECKOUT_REMINDER: ["checkout", "automated"],
    EmailType.THANK_YOU_REVIEW: ["thank-you", "review-request", "automated"],
}


@dataclass(frozen=True)
class EmailContext:
    """Booking and property facts available to templates."""

    guest_name: str
    property_name: str
    property_address: Optional[str]
    check_in: datetime
    check_out: datetime
    booking_platform: str


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: Optional[str] = None


def render_template_string(
    template: str, variables: dict[str, Optional[str]], escape: bool = False
) -> str:
    """Substitute ``{{ name }}`` placeholders; unknown names stay verbatim.

    With ``escape`` the values are HTML-escaped, for the html part of an email.
    """
    if not template:
        return ""

    def substitute(match: re.Match) -> str:
        value = variables.get(match.group(1))
        if value is None:
            return match.group(0)
        return html.escape(str(value)) if escape else str(value)

    return _PLACEHOLDER.sub(substitute, template)


def review_link_for(platform: Optional[str]) -> str:
    return REVIEW_LINKS.get((platform or "").lower(), DEFAULT_REVIEW_LINK)


def format_date(value: datetime) -> str:
    return f"{value:%A, %B} {value.day}, {value.year}"


def format_time(value: datetime) -> str:
    return f"{value:%I:%M %p}".lstrip("0")


def template_variables(context: EmailContext) -> dict[str, Optional[str]]:
    return {
        "guest_name": context.guest_name,
        "property_name": context.property_name,
        "property_address": context.property_address or "",
        "booking_platform": context.booking_platform,
        "check_in_date": format_date(context.check_in),
        "check_in_time": format_time(context.check_in),
        "check_out_date": format_date(context.check_out),
        "check_out_time": format_time(context.check_out),
        # Aliases used by the checkout template
        "checkout_date": format_date(context.check_out),
        "checkout_time": format_time(context.check_out),
        "review_link": review_link_for(context.booking_platform),
    }


_BUILT_IN = {
    EmailType.CHECK_IN_INSTRUCTIONS: RenderedEmail(
        subject="Check-in Instructions for {{ property_name }} - {{ check_in_date }}",
        html=(
            "<h1>Welcome, {{ guest_name }}!</h1>"
            "<p>We look forward to hosting you at <strong>{{ property_name }}</strong>.</p>"
            "<h2>Your stay</h2>"
            "<ul>"
            "<li>Check-in: {{ check_in_date }} from {{ check_in_time }}</li>"
            "<li>Check-out: {{ check_out_date }} by {{ check_out_time }}</li>"
            "<li>Address: {{ property_address }}</li>"
            "</ul>"
            "<p>Reply to this email if you have any questions before you arrive.</p>"
        ),
        text=(
            "Welcome, {{ guest_name }}!\n\n"
            "We look forward to hosting you at {{ property_name }}.\n\n"
            "Check-in: {{ check_in_date }} from {{ check_in_time }}\n"
            "Check-out: {{ check_out_date }} by {{ check_out_time }}\n"
            "Address: {{ property_address }}\n\n"
            "Reply to this email if you have any questions before you arrive."
        ),
    ),
    EmailType.CHECKOUT_REMINDER: RenderedEmail(
        subject="Checkout Reminder - {{ property_name }} Tomorrow",
        html=(
            "<h1>Hi {{ guest_name }},</h1>"
            "<p>This is a friendly reminder that checkout from <strong>{{ property_name }}</strong> "
            "is tomorrow, {{ checkout_date }}, by {{ checkout_time }}.</p>"
            "<h2>Before you leave</h2>"
            "<ul>"
            "<li>Leave the keys where you found them</li>"
            "<li>Close all windows and lock the doors</li>"
            "<li>Turn off lights and appliances</li>"
            "</ul>"
            "<p>Safe travels!</p>"
        ),
        text=(
            "Hi {{ guest_name }},\n\n"
            "Checkout from {{ property_name }} is tomorrow, {{ checkout_date }}, by {{ checkout_time }}.\n\n"
            "Before you leave:\n"
            "- Leave the keys where you found them\n"
            "- Close all windows and lock the doors\n"
            "- Turn off lights and appliances\n\n"
            "Safe travels!"
        ),
    ),
    EmailType.THANK_YOU_REVIEW: RenderedEmail(
        subject="Thank you for staying at {{ property_name }}!",
        html=(
            "<h1>Thank you, {{ guest_name }}!</h1>"
            "<p>We hope you enjoyed your stay at <strong>{{ property_name }}</strong> "
            "from {{ check_in_date }} to {{ check_out_date }}.</p>"
            "<p>Your feedback helps future guests and helps us improve.</p>"
            '<p><a href="{{ review_link }}">Leave a Review</a></p>'
            "<p>We would love to host you again.</p>"
        ),
        text=(
            "Thank you, {{ guest_name }}!\n\n"
            "We hope you enjoyed your stay at {{ property_name }} "
            "from {{ check_in_date }} to {{ check_out_date }}.\n\n"
            "Leave a Review: {{ review_link }}\n\n"
            "We would love to host you again."
        ),
    ),
}


class EmailTemplateRenderer:
    """Renders guest emails, preferring active database templates."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_override(self, email_type: EmailType) -> Optional[EmailTemplate]:
        result = await self.db.execute(
            select(EmailTemplate)
            .where(
                EmailTemplate.template_key == email_type.value,
                EmailTemplate.is_active.is_(True),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def render(self, email_type: EmailType, context: EmailContext) -> RenderedEmail:
        """Render one email type.

        Raises:
            ValidationError: no template exists for the type
        """
        try:
            email_type = EmailType(email_type)
        except ValueError:
            raise ValidationError(f"Unknown email type: {email_type}")

        variables = template_variables(context)
        override = await self.get_override(email_type)
        if override is not None:
            source = RenderedEmail(override.subject, override.html_content, override.text_content)
        else:
            source = _BUILT_IN[email_type]

        return RenderedEmail(
            subject=render_template_string(source.subject, variables),
            html=render_template_string(source.html, variables, escape=True),
            text=render_template_string(source.text, variables) if source.text else None,
        )
