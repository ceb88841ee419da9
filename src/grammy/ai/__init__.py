"""AI client, prompts and the grammar check operation."""

from .client import AIClient, ClientSettings

__all__ = ["AIClient", "ClientSettings"]
