"""Threaded comments with moderation."""
