"""Unit tests for message personalization and rendering."""

from datetime import datetime, timezone

import pytest

from loopreviews.services import templating


class TestPersonalize:
    def test_both_placeholder_styles(self):
        text = "Hi [Name], thanks from {{companyName}}! Review [Company] at {{reviewUrl}}"
        result = templating.personalize(text, "Sam", "Blue Door", "https://r.test/x?cid=1")
        assert result == "Hi Sam, thanks from Blue Door! Review Blue Door at https://r.test/x?cid=1"

    def test_link_and_rating_left_alone_when_missing(self):
        result = templating.personalize("{{customerName}}: {{reviewUrl}} {{rating}}", "Sam", "Blue Door")
        assert result == "Sam: {{reviewUrl}} {{rating}}"

    def test_rating(self):
        assert templating.personalize("{{rating}} stars", "Sam", "Blue Door", rating=4) == "4 stars"

    def test_empty_text(self):
        assert templating.personalize(None, "Sam", "Blue Door") == ""


def test_trackable_url():
    assert templating.trackable_url("https://r.test/r/abc", "cust_1") == "https://r.test/r/abc?cid=cust_1"
    assert templating.trackable_url("https://r.test/r/abc", None) == "https://r.test/r/abc"
    assert templating.trackable_url(None, "cust_1") == templating.FALLBACK_REVIEW_URL


@pytest.mark.parametrize("rating, expected", [
    (5, "positive_review"),
    (4, "positive_review"),
    (3, "neutral_review"),
    (2, "negative_review"),
    (1, "negative_review"),
    (None, "negative_review"),
])
def test_rating_class(rating, expected):
    assert templating.rating_class(rating) == expected


def test_email_html_escapes_content():
    body = templating.render_email_html("Hello <b>there</b>\n\nSecond", "Sam & Co", "Blue Door",
                                         "https://r.test/r/abc?cid=1&x=2")
    assert "Hello &lt;b&gt;there&lt;/b&gt;" in body
    assert "Hi Sam &amp; Co!" in body
    assert 'href="https://r.test/r/abc?cid=1&amp;x=2"' in body
    assert "LEAVE A REVIEW" in body


def test_email_html_without_link_has_no_button():
    assert "LEAVE A REVIEW" not in templating.render_email_html("Hi", "Sam", "Blue Door")


def test_feedback_notification():
    body = templating.render_feedback_notification(
        "Blue Door", "Sam", "sam@example.com", 2, "Cold\ncoffee", agreed_to_marketing=True)
    assert "★★☆☆☆" in body
    assert "Cold<br>coffee" in body
    assert "marketing communications" in body


def test_support_request():
    received = datetime(2024, 3, 10, 9, 5, tzinfo=timezone.utc)
    body = templating.render_support_request("Sam", "sam@example.com", "Help", "Line 1\nLine 2", received)
    assert "Received: 2024-03-10 09:05 UTC" in body
    assert "Line 1<br>Line 2" in body
