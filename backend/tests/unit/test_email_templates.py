"""
Unit tests for guest email rendering.
"""
from dataclasses import replace
from datetime import datetime

import pytest

from hostdesk.core.errors import ValidationError
from hostdesk.models.email import EmailTemplate
from hostdesk.models.enums import EmailType
from hostdesk.services.email_templates import (
    DEFAULT_REVIEW_LINK,
    EmailContext,
    EmailTemplateRenderer,
    format_date,
    format_time,
    render_template_string,
    review_link_for,
    template_variables,
)


@pytest.fixture
def context():
    return EmailContext(
        guest_name="Alice",
        property_name="Beach House",
        property_address=None,
        check_in=datetime(2025, 6, 6, 15, 0),
        check_out=datetime(2025, 6, 10, 11, 0),
        booking_platform="airbnb",
    )


@pytest.mark.unit
def test_render_template_string_substitutes_known_names():
    rendered = render_template_string(
        "Hi {{ guest_name }}, welcome to {{property_name}}!",
        {"guest_name": "Alice", "property_name": "Beach House"},
    )

    assert rendered == "Hi Alice, welcome to Beach House!"


@pytest.mark.unit
def test_render_template_string_keeps_unknown_placeholders():
    assert render_template_string("Code: {{ door_code }}", {"guest_name": "Alice"}) == "Code: {{ door_code }}"
    assert render_template_string("", {"guest_name": "Alice"}) == ""


@pytest.mark.unit
def test_render_template_string_escapes_values_for_html():
    variables = {"guest_name": "Tom & <b>Jerry</b>"}

    assert render_template_string("<p>{{ guest_name }}</p>", variables, escape=True) == (
        "<p>Tom &amp; &lt;b&gt;Jerry&lt;/b&gt;</p>"
    )
    assert render_template_string("{{ guest_name }}", variables) == "Tom & <b>Jerry</b>"


@pytest.mark.unit
@pytest.mark.parametrize(
    "platform,expected",
    [
        ("airbnb", "https://airbnb.com/reviews"),
        ("VRBO", "https://vrbo.com/reviews"),
        ("booking", "https://booking.com/reviews"),
        ("manual", DEFAULT_REVIEW_LINK),
        (None, DEFAULT_REVIEW_LINK),
    ],
)
def test_review_link_for(platform, expected):
    assert review_link_for(platform) == expected


@pytest.mark.unit
def test_date_and_time_formatting():
    assert format_date(datetime(2025, 6, 10, 11, 0)) == "Tuesday, June 10, 2025"
    assert format_time(datetime(2025, 6, 10, 11, 0)) == "11:00 AM"
    assert format_time(datetime(2025, 6, 6, 15, 0)) == "3:00 PM"


@pytest.mark.unit
def test_template_variables(context):
    variables = template_variables(context)

    assert variables["property_address"] == ""
    assert variables["checkout_date"] == variables["check_out_date"] == "Tuesday, June 10, 2025"
    assert variables["checkout_time"] == "11:00 AM"
    assert variables["review_link"] == "https://airbnb.com/reviews"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_built_in_templates(db, context):
    renderer = EmailTemplateRenderer(db)

    check_in = await renderer.render(EmailType.CHECK_IN_INSTRUCTIONS, context)
    reminder = await renderer.render(EmailType.CHECKOUT_REMINDER, context)
    thank_you = await renderer.render(EmailType.THANK_YOU_REVIEW, context)

    assert check_in.subject == "Check-in Instructions for Beach House - Friday, June 6, 2025"
    assert "Welcome, Alice!" in check_in.html
    assert "{{" not in check_in.text
    assert reminder.subject == "Checkout Reminder - Beach House Tomorrow"
    assert "Tuesday, June 10, 2025, by 11:00 AM" in reminder.html
    assert thank_you.subject == "Thank you for staying at Beach House!"
    assert 'href="https://airbnb.com/reviews"' in thank_you.html


@pytest.mark.unit
@pytest.mark.asyncio
async def test_active_override_wins(db, context):
    db.add(
        EmailTemplate(
            template_key="thank_you_review",
            name="Thanks",
            subject="Thanks {{ guest_name }}",
            html_content="<p>{{ review_link }}</p>",
            text_content="{{ review_link }}",
        )
    )
    await db.commit()

    rendered = await EmailTemplateRenderer(db).render(EmailType.THANK_YOU_REVIEW, context)

    assert rendered.subject == "Thanks Alice"
    assert rendered.html == "<p>https://airbnb.com/reviews</p>"
    assert rendered.text == "https://airbnb.com/reviews"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_guest_supplied_markup_is_escaped_in_html_only(db, context):
    context = replace(context, guest_name='Tom & <script>alert("x")</script>')

    rendered = await EmailTemplateRenderer(db).render(EmailType.CHECK_IN_INSTRUCTIONS, context)

    assert "<script>" not in rendered.html
    assert "Welcome, Tom &amp; &lt;script&gt;alert(&quot;x&quot;)&lt;/script&gt;!" in rendered.html
    assert 'Tom & <script>alert("x")</script>' in rendered.text


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unknown_email_type_is_rejected(db, context):
    with pytest.raises(ValidationError, match="Unknown email type"):
        await EmailTemplateRenderer(db).render("welcome_gift", context)
