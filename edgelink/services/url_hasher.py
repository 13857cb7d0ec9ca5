"""
URL Hasher

Digest used as the reverse-lookup key (hash:<digest> -> code). Long
application-state URLs would exceed store key limits; the digest has a
fixed length and identical URLs always map to the same key.
"""

import hashlib


def hash_url(url: str) -> str:
    """SHA-256 of the UTF-8 encoded URL, as 64 lowercase hex characters."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()
