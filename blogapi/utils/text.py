"""Text helpers: slugs and reading-time estimates."""

import math
import re
import time
import unicodedata


WORDS_PER_MINUTE = 200

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def generate_slug(text: str) -> str:
    """Generate a URL-friendly slug.

    Accents are folded to ASCII, every run of non-alphanumeric characters
    becomes a single hyphen, and leading/trailing hyphens are trimmed.

    >>> generate_slug("  Hello, Wörld!  ")
    'hello-world'
    """
    slug = unicodedata.normalize("NFKD", text)
    slug = slug.encode("ascii", "ignore").decode("ascii")
    return _NON_ALNUM.sub("-", slug.lower()).strip("-")


def generate_post_slug(title: str, timestamp_ms: int | None = None) -> str:
    """Slug for a post: title slug plus a millisecond timestamp suffix."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    base = generate_slug(title)
    return f"{base}-{timestamp_ms}" if base else str(timestamp_ms)


def count_words(text: str) -> int:
    return len(text.split())


def estimate_read_time(content: str) -> int:
    """Minutes needed to read ``content``, never less than one."""
    return max(1, math.ceil(count_words(content) / WORDS_PER_MINUTE))
