"""Recruitment and moderation bot with Git-mirrored JSON documents."""

__version__ = "1.0.0"
