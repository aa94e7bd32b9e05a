"""URL validation and title cleanup edge cases."""
from __future__ import annotations

import pytest

from bookmark_importer.config import MAX_TITLE_LENGTH
from bookmark_importer.normalizer import clean_title, validate_url


@pytest.mark.parametrize(
    "raw",
    [
        "javascript:alert(1)",
        "JavaScript:void(0)",
        "data:text/html,x",
        "mailto:a@b.com",
        "tel:+15550100",
        "file:///etc/passwd",
    ],
)
def test_unsafe_schemes_rejected(raw: str) -> None:
    if validate_url(raw) is not None:
        msg = f"Expected {raw!r} to be rejected"
        raise AssertionError(msg)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("example.com/page", "https://example.com/page"),
        ("https://example.com", "https://example.com/"),
        ("HTTP://Example.COM/Path?q=1#top", "http://example.com/Path?q=1#top"),
        ("  https://example.com/a b  ", "https://example.com/a%20b"),
        ("https://example.com:443/x", "https://example.com/x"),
        ("http://example.com:8080/x", "http://example.com:8080/x"),
        ("https://bücher.example/", "https://xn--bcher-kva.example/"),
    ],
)
def test_urls_canonicalised(raw: str, expected: str) -> None:
    result = validate_url(raw)
    if result != expected:
        msg = f"validate_url({raw!r}) returned {result!r}, expected {expected!r}"
        raise AssertionError(msg)


def test_non_http_scheme_gets_https_prefix() -> None:
    # Not on the unsafe list, so it is treated like a bare address.
    result = validate_url("ftp://bad")
    if result is None or not result.startswith("https://ftp"):
        msg = f"Unexpected result for ftp URL: {result!r}"
        raise AssertionError(msg)


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "https://", "http://exa mple.com", "https://a..b/", "https://host:99999/", "http://[::1"],
)
def test_unparseable_urls_return_none(raw: str) -> None:
    if validate_url(raw) is not None:
        msg = f"Expected {raw!r} to be rejected"
        raise AssertionError(msg)


@pytest.mark.parametrize("raw", ["\x00", "%%%", "://", "https://%zz", " ", "[", "a" * 5000])
def test_validate_url_never_raises(raw: str) -> None:
    validate_url(raw)


def test_clean_title_collapses_whitespace() -> None:
    if clean_title(" a   b ") != "a b":
        raise AssertionError("Whitespace not collapsed")
    if clean_title("line\n\tbreak") != "line break":
        raise AssertionError("Newlines and tabs should collapse to one space")
    if clean_title("   ") != "":
        raise AssertionError("Blank titles clean to the empty string")


def test_clean_title_caps_length() -> None:
    cleaned = clean_title("x" * 500)
    if len(cleaned) != MAX_TITLE_LENGTH:
        msg = f"Expected length {MAX_TITLE_LENGTH}, got {len(cleaned)}"
        raise AssertionError(msg)
