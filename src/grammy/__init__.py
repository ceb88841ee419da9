"""Suggestion reconciliation and check sessions for an LLM-backed grammar checker."""

__version__ = "0.3.0"
