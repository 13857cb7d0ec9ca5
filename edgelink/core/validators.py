"""
Input Validators and Sanitizers

This module provides validation and sanitization functions for user inputs.
These functions help prevent security issues and ensure data integrity.

Accepted short code shapes:
- word code: three hyphen-joined lowercase words of 3-8 letters ("amber-coral-nova")
- fallback code: 8 lowercase hex digits, minted when word draws keep colliding
- legacy code: 6 characters from an alphabet without look-alikes (no 0, 1, I, O, i, l or o)

Security Considerations:
- Codes end up in store keys and redirect paths; anything outside the
  shapes above is rejected before it reaches the store
- Short links may only point back at the application's own origin,
  so the service cannot be used as an open redirect
"""

import re
from typing import Optional
from urllib.parse import urlsplit

LEGACY_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"
LEGACY_CODE_LENGTH = 6

WORD_CODE_RE = re.compile(r"^[a-z]{3,8}-[a-z]{3,8}-[a-z]{3,8}$")
FALLBACK_CODE_RE = re.compile(r"^[0-9a-f]{8}$")
LEGACY_CODE_RE = re.compile(rf"^[{LEGACY_ALPHABET}]{{{LEGACY_CODE_LENGTH}}}$")


def is_word_code(code: str) -> bool:
    return bool(WORD_CODE_RE.match(code))


def is_legacy_code(code: str) -> bool:
    return bool(LEGACY_CODE_RE.match(code))


def is_current_shape(code: str) -> bool:
    """True for shapes the generator still mints (word and fallback codes)."""
    return bool(WORD_CODE_RE.match(code) or FALLBACK_CODE_RE.match(code))


def sanitize_short_code(short_code: object) -> Optional[str]:
    """
    Sanitize and validate short code format.

    Args:
        short_code: The short code to sanitize

    Returns:
        Sanitized short code if it has an accepted shape, None otherwise
    """
    if not short_code or not isinstance(short_code, str):
        return None

    short_code = short_code.strip()

    # Longest accepted shape is a word code: 3 * 8 letters + 2 hyphens
    if len(short_code) > 26:
        return None

    if is_current_shape(short_code) or is_legacy_code(short_code):
        return short_code
    return None


def origin_of(url: str) -> Optional[str]:
    """Return scheme://host[:port] for an absolute http(s) URL."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


def is_same_origin_url(url: object, app_origin: str, max_length: int = 8192) -> bool:
    """
    Validate that a URL may be shortened.

    Args:
        url: The candidate long URL
        app_origin: Canonical application origin (scheme://host[:port])
        max_length: Maximum allowed length

    Returns:
        True if the URL targets the application's own origin
    """
    if not url or not isinstance(url, str):
        return False
    if len(url) > max_length:
        return False
    # Control characters and whitespace have no place in a shareable link
    if any(ord(char) < 0x21 or ord(char) == 0x7F for char in url):
        return False
    return origin_of(url) == app_origin.lower()
