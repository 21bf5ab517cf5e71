"""
Code Review Assistant.

Reviews submitted code with an LLM, returns typed, severity-tagged
suggestions and holds a follow-up conversation per session.
"""

__version__ = "1.0.0"
