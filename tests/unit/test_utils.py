"""Unit tests for utility functions."""

from datetime import datetime, timezone

from loopreviews.utils import (
    ensure_utc,
    is_anonymous,
    is_valid_customer_id,
    is_valid_email,
    isoformat,
    random_token,
    review_url_id,
    review_url_id_from_page,
    to_base36,
    truncate,
)


def test_to_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"
    assert to_base36(1295) == "zz"
    assert to_base36(46656) == "1000"


def test_random_token_alphabet():
    token = random_token(13)
    assert len(token) == 13
    assert token == token.lower()
    assert token.isalnum()


def test_customer_id_validation():
    assert is_valid_customer_id("cust_123-abc")
    assert not is_valid_customer_id("cust 123")
    assert not is_valid_customer_id("<script>")
    assert not is_valid_customer_id("a" * 101)
    assert is_valid_customer_id("a" * 100)


def test_anonymous_ids():
    """Anything without an id, or carrying the anon marker, is a visitor."""
    assert is_anonymous(None)
    assert is_anonymous("")
    assert is_anonymous("anon_1700000000000_x1y2z3")
    assert not is_anonymous("cust_1")


def test_email_validation():
    assert is_valid_email("sam@example.com")
    assert not is_valid_email("sam@example")
    assert not is_valid_email("sam @example.com")
    assert not is_valid_email(None)


def test_review_url_ids():
    assert review_url_id("https://app.loopreview.test/r/ab12cd34") == "ab12cd34"
    assert review_url_id("https://app.loopreview.test/r/ab12cd34/") == "ab12cd34"
    assert review_url_id(None) is None

    assert review_url_id_from_page("/r/ab12cd34?cid=cust_1") == "ab12cd34"
    assert review_url_id_from_page("https://app.loopreview.test/r/ab12cd34") == "ab12cd34"
    assert review_url_id_from_page("/dashboard") is None
    assert review_url_id_from_page("/r/") is None


def test_truncate():
    assert truncate(None, 5) is None
    assert truncate("abcdefgh", 5) == "abcde"
    assert truncate(12345678, 3) == "123"


def test_naive_datetimes_are_treated_as_utc():
    naive = datetime(2025, 1, 25, 12, 0, 0)
    aware = ensure_utc(naive)
    assert aware.tzinfo == timezone.utc
    assert isoformat(naive) == "2025-01-25T12:00:00+00:00"
    assert isoformat(None) is None
