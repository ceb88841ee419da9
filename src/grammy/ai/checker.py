"""Grammar check operation backed by an OpenAI-compatible chat endpoint."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, List, Mapping, Sequence

import httpx
from openai import OpenAIError

from ..services.settings import Settings
from ..session.history import HistoryEntry
from ..suggestions.models import RawMatch
from .ai_types import CheckError, CheckResult
from .client import AIClient, ClientSettings, describe_api_error
from .prompts import SpanMode, format_user_prompt, system_prompt

__all__ = ["GrammarChecker", "MISSING_API_KEY_MESSAGE", "build_checker"]

LOGGER = logging.getLogger(__name__)

MISSING_API_KEY_MESSAGE = "API key not set. Run `grammy --set api_key=...` to configure."
_EMPTY_REPLY = '{"matches": []}'
_LOG_PREVIEW_CHARS = 200


class GrammarChecker:
    """Implements the check operation on top of :class:`AIClient`."""

    def __init__(
        self,
        client: AIClient,
        *,
        provider_name: str = "OpenAI",
        span_mode: SpanMode | str = SpanMode.LITERAL,
    ) -> None:
        self._client = client
        self._provider_name = provider_name
        self._span_mode = SpanMode.coerce(span_mode)
        self._system_prompt = system_prompt(self._span_mode)

    @property
    def client(self) -> AIClient:
        return self._client

    @property
    def provider_name(self) -> str:
        return self._provider_name

    @property
    def span_mode(self) -> SpanMode:
        return self._span_mode

    async def check(self, text: str, history: Sequence[HistoryEntry] = ()) -> CheckResult:
        settings = self._client.settings
        LOGGER.debug(
            "Starting grammar check, provider=%s, model=%s, text_len=%s",
            self._provider_name,
            settings.model,
            len(text),
        )
        if not settings.api_key:
            raise CheckError(MISSING_API_KEY_MESSAGE, provider=self._provider_name)
        if not text.strip():
            LOGGER.debug("Empty text, returning no matches")
            return CheckResult()

        user_content = format_user_prompt(text)
        messages = self.build_messages(user_content, history)
        started = time.perf_counter()
        try:
            content = await self._client.complete_chat(messages)
        except (OpenAIError, httpx.HTTPError) as exc:
            message, status = describe_api_error(exc, provider=self._provider_name)
            LOGGER.debug("Check request failed after %.2fs: %s", time.perf_counter() - started, message)
            raise CheckError(message, status_code=status, provider=self._provider_name) from exc

        reply = content or _EMPTY_REPLY
        LOGGER.debug("Model reply after %.2fs: %s", time.perf_counter() - started, reply[:_LOG_PREVIEW_CHARS])
        matches = parse_matches(reply)
        return CheckResult(matches=matches, transcript=reply, user_content=user_content)

    def build_messages(self, user_content: str, history: Sequence[HistoryEntry] = ()) -> List[dict[str, str]]:
        """System prompt, then prior exchanges, then the current text."""

        messages = [{"role": "system", "content": self._system_prompt}]
        messages.extend(entry.as_message() for entry in history)
        messages.append({"role": "user", "content": user_content})
        return messages

    async def list_models(self, *, force_refresh: bool = False) -> List[str]:
        """Return the provider's sorted model ids, raising :class:`CheckError` on failure."""

        if not self._client.settings.api_key:
            raise CheckError(MISSING_API_KEY_MESSAGE, provider=self._provider_name)
        try:
            return await self._client.list_models(force_refresh=force_refresh)
        except (OpenAIError, httpx.HTTPError) as exc:
            message, status = describe_api_error(exc, provider=self._provider_name)
            raise CheckError(message, status_code=status, provider=self._provider_name) from exc

    async def test_connection(self) -> str:
        """Verify the key and endpoint by listing models; returns a status line."""

        models = await self.list_models(force_refresh=True)
        return f"Connected to {self._provider_name} ({len(models)} models available)"

    async def aclose(self) -> None:
        await self._client.aclose()


def parse_matches(reply: str) -> tuple[RawMatch, ...]:
    """Decode the model's JSON reply into raw matches.

    Malformed entries inside ``matches`` are skipped; a reply that is not a
    JSON object at all raises :class:`CheckError`.
    """

    try:
        payload: Any = json.loads(reply)
    except json.JSONDecodeError as exc:
        raise CheckError(f"Invalid JSON from model: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise CheckError("Invalid JSON from model: expected an object")
    entries = payload.get("matches") or []
    if not isinstance(entries, list):
        raise CheckError("Invalid JSON from model: 'matches' must be a list")

    matches: list[RawMatch] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        match = RawMatch.from_payload(entry)
        if match is None:
            LOGGER.debug("Skipping unusable match payload: %s", entry)
            continue
        matches.append(match)
    return tuple(matches)


def build_checker(settings: Settings, *, client: Any | None = None) -> GrammarChecker:
    """Create a checker for the configured provider."""

    provider = settings.provider
    client_settings = ClientSettings(
        base_url=settings.resolved_base_url,
        api_key=settings.api_key,
        model=settings.resolved_model,
        request_timeout=settings.request_timeout,
        default_headers=provider.default_headers or None,
        debug_logging=settings.debug_logging,
    )
    return GrammarChecker(
        AIClient(client_settings, client=client),
        provider_name=provider.display_name,
        span_mode=settings.span_mode,
    )
