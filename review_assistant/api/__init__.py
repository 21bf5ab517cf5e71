"""
API package for the Code Review Assistant.

This package contains all API route handlers.
"""

from review_assistant.api import health, review

__all__ = ["health", "review"]
