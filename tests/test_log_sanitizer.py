"""Tests for keeping diary text out of logs."""

import pytest

from utils.log_sanitizer import sanitize_for_log, sanitize_log


@pytest.mark.parametrize("text,placeholder", [
    ("email me at jo.bloggs@example.com", "[EMAIL]"),
    ("call +44 7700 900123 tomorrow", "[PHONE]"),
    ("card 4111 1111 1111 1111", "[CARD]"),
    ("wifi password: hunter22", "password=[REDACTED]"),
    ("recovery " + "a1" * 20, "[LONG_TOKEN]"),
])
def test_sanitize_log_redacts(text, placeholder):
    assert placeholder in sanitize_log(text)


def test_sanitize_log_leaves_plain_text():
    assert sanitize_log("Buy milk at 9") == "Buy milk at 9"
    assert sanitize_log("") == ""


def test_sanitize_for_log_single_line_and_truncated():
    text = "Dear diary,\n\n" + "today was long. " * 10

    result = sanitize_for_log(text, max_length=20)

    assert "\n" not in result
    assert result.startswith("Dear diary, today wa")
    assert result.endswith(f"... [{len(text)} chars]")


def test_sanitize_for_log_handles_none_and_bytes():
    assert sanitize_for_log(None) == "<None>"
    assert sanitize_for_log("Buy milk".encode()) == "Buy milk"
