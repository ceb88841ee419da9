"""Service layer helpers (settings persistence)."""

from .settings import Provider, Settings, SettingsStore

__all__ = ["Provider", "Settings", "SettingsStore"]
