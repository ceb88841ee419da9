"""Settings dataclasses and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

from ..ai.prompts import SpanMode

__all__ = [
    "Provider",
    "Settings",
    "SettingsStore",
    "SecretVault",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".grammy"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_SECRET_FIELDS: tuple[str, ...] = ("openai_api_key", "openrouter_api_key")
_CIPHERTEXT_SUFFIX = "_ciphertext"
_ENV_OVERRIDES: Mapping[str, str] = {
    "GRAMMY_PROVIDER": "provider",
    "GRAMMY_MODEL": "model",
    "GRAMMY_BASE_URL": "base_url",
    "GRAMMY_SPAN_MODE": "span_mode",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "GRAMMY_DEBUG_LOGGING": "debug_logging",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "GRAMMY_DEBOUNCE_MS": "debounce_ms",
    "GRAMMY_HISTORY_PAIRS": "history_pairs",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "GRAMMY_REQUEST_TIMEOUT": "request_timeout",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


class Provider(str, Enum):
    """Supported OpenAI-compatible chat completion providers."""

    OPENAI = "openai"
    OPENROUTER = "openrouter"

    @property
    def display_name(self) -> str:
        return {Provider.OPENAI: "OpenAI", Provider.OPENROUTER: "OpenRouter"}[self]

    @property
    def base_url(self) -> str:
        return {
            Provider.OPENAI: "https://api.openai.com/v1",
            Provider.OPENROUTER: "https://openrouter.ai/api/v1",
        }[self]

    @property
    def default_model(self) -> str:
        return {Provider.OPENAI: "gpt-4o-mini", Provider.OPENROUTER: "openai/gpt-4o-mini"}[self]

    @property
    def default_headers(self) -> dict[str, str]:
        if self is Provider.OPENROUTER:
            return {"HTTP-Referer": "https://github.com/grammy-app", "X-Title": "Grammy"}
        return {}

    @property
    def key_field(self) -> str:
        return f"{self.value}_api_key"

    @classmethod
    def coerce(cls, value: Any) -> Provider:
        if isinstance(value, Provider):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if text in {member.value, member.display_name.lower()}:
                return member
        raise ValueError(f"Unknown provider: {value!r}")


@dataclass(slots=True)
class Settings:
    """User-configurable settings, read once when a session starts."""

    provider: Provider = Provider.OPENAI
    model: str = ""
    base_url: str = ""
    openai_api_key: str = ""
    openrouter_api_key: str = ""
    debounce_ms: int = 800
    tick_interval_ms: int = 50
    request_timeout: float = 60.0
    history_pairs: int = 5
    span_mode: SpanMode = SpanMode.LITERAL
    debug_logging: bool = False

    def __post_init__(self) -> None:
        self.provider = Provider.coerce(self.provider)
        self.span_mode = SpanMode.coerce(self.span_mode)

    @property
    def api_key(self) -> str:
        return getattr(self, self.provider.key_field)

    @property
    def resolved_model(self) -> str:
        return self.model.strip() or self.provider.default_model

    @property
    def resolved_base_url(self) -> str:
        return self.base_url.strip() or self.provider.base_url

    @property
    def debounce_seconds(self) -> float:
        return max(0, self.debounce_ms) / 1000.0

    @property
    def tick_seconds(self) -> float:
        return max(1, self.tick_interval_ms) / 1000.0

    def with_api_key(self, api_key: str) -> Settings:
        """Return a copy with ``api_key`` stored for the active provider."""

        return replace(self, **{self.provider.key_field: api_key.strip()})


class SecretVault:
    """Encrypts API keys with a symmetric Fernet key stored beside the settings."""

    name = "fernet"

    def __init__(self, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._get_fernet().encrypt(secret.encode("utf-8"))
        return f"{self.name}:{token.decode('ascii')}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        prefix, _, payload = token.partition(":")
        if prefix != self.name or not payload:
            raise ValueError("Unrecognized secret token")
        try:
            return self._get_fernet().decrypt(payload.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_key())
        return self._fernet

    def _load_or_create_key(self) -> bytes:
        path = self._key_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            return path.read_bytes().strip()
        key = Fernet.generate_key()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)
        return key


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, then apply CLI and environment overrides."""

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data = _filter_fields(payload)
            for field_name in _SECRET_FIELDS:
                data[field_name] = self._decrypt_secret(payload.get(field_name + _CIPHERTEXT_SUFFIX), field_name)
            try:
                settings = Settings(**data)
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
        LOGGER.debug("Settings loaded from %s (provider=%s)", self._path, settings.provider.value)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with an atomic file write."""

        body = json.dumps(self._serialize(settings), indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _serialize(self, settings: Settings) -> Dict[str, Any]:
        data = asdict(settings)
        data["provider"] = settings.provider.value
        data["span_mode"] = settings.span_mode.value
        for field_name in _SECRET_FIELDS:
            secret = data.pop(field_name, "") or ""
            if secret:
                data[field_name + _CIPHERTEXT_SUFFIX] = self._vault.encrypt(secret)
        data["version"] = _SETTINGS_VERSION
        return data

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}

    def _decrypt_secret(self, token: Any, field_name: str) -> str:
        if not isinstance(token, str) or not token:
            return ""
        try:
            return self._vault.decrypt(token)
        except ValueError as exc:
            LOGGER.warning("Unable to decrypt %s: %s", field_name, exc)
            return ""

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {field.name for field in fields(Settings)}
        filtered: Dict[str, Any] = {}
        api_key = overrides.get("api_key")
        for key, value in overrides.items():
            if key not in allowed or value is None:
                continue
            filtered[key] = _coerce_override(key, value)
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        if api_key:
            settings = settings.with_api_key(str(api_key))
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        api_key = os.environ.get("GRAMMY_API_KEY")
        if api_key:
            overrides["api_key"] = api_key
        if overrides:
            try:
                settings = self._apply_overrides(settings, overrides, source="environment")
            except ValueError as exc:
                LOGGER.warning("Ignoring environment overrides: %s", exc)
        if not settings.api_key:
            fallback = os.environ.get(f"{settings.provider.value.upper()}_API_KEY", "").strip()
            if fallback:
                settings = settings.with_api_key(fallback)
        return settings


def redact_secret(secret: str | None) -> str:
    """Return a hint such as ``sk-…abcd`` that never reveals the whole secret."""

    if not secret:
        return ""
    if len(secret) <= 8:
        return "…" + secret[-2:]
    return f"{secret[:3]}…{secret[-4:]}"


def _coerce_override(field_name: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    default = getattr(Settings(), field_name)
    if isinstance(default, bool):
        return value.strip().lower() in _TRUE_VALUES
    if isinstance(default, int):
        return int(value, 10)
    if isinstance(default, float):
        return float(value)
    return value


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(Settings)} - set(_SECRET_FIELDS)
    return {key: value for key, value in payload.items() if key in allowed}
