"""Utility modules."""

from blogapi.utils.text import estimate_read_time, generate_post_slug, generate_slug


__all__ = ["estimate_read_time", "generate_post_slug", "generate_slug"]
