"""
LLM Client - OpenRouter access for continuations and assistant decisions.

Each public call is a single attempt. Failures raise LLMRequestError with
enough detail (status, Retry-After, transient flag) for with_retry to
decide whether to try again.
"""

import asyncio
import os
import time
import uuid
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import aiohttp

from shared.logging import get_logger

from .models import ModelSettings

log = get_logger("llm", "client")

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

# Requests per minute per model
DEFAULT_REQUESTS_PER_MINUTE = 60

# Used when a 429 carries no usable Retry-After
DEFAULT_RETRY_AFTER_SECONDS = 60.0


def _parse_retry_after(value: Optional[str]) -> float:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return DEFAULT_RETRY_AFTER_SECONDS
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER_SECONDS
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class LLMRequestError(Exception):
    """A model call failed."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        retry_after: Optional[float] = None,
        transient: bool = True,
    ):
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after
        self.transient = transient


class RateLimiter:
    """Simple token bucket rate limiter per model."""

    def __init__(self, requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE):
        self._limit = requests_per_minute
        self._tokens: dict[str, float] = {}
        self._last_update: dict[str, float] = {}

    async def acquire(self, model: str) -> None:
        """Wait until we can make a request to this model."""
        limit = self._limit
        tokens_per_second = limit / 60.0

        now = time.time()

        if model not in self._tokens:
            self._tokens[model] = limit
            self._last_update[model] = now

        elapsed = now - self._last_update[model]
        self._tokens[model] = min(limit, self._tokens[model] + elapsed * tokens_per_second)
        self._last_update[model] = now

        if self._tokens[model] < 1:
            wait_time = (1 - self._tokens[model]) / tokens_per_second
            log.info("llm.rate_limit.waiting", model=model, wait_seconds=wait_time)
            await asyncio.sleep(wait_time)
            self._tokens[model] = 0
        else:
            self._tokens[model] -= 1


class LLMClient:
    """
    OpenRouter client for Helm.

    Usage:
        client = LLMClient(api_key="sk-or-...")

        text = await client.call_continuation_model(branch_text, settings.continuations)
        reply = await client.call_assistant_model(system, user, settings.assistant)

        await client.close()
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE,
        timeout_seconds: int = 120,
    ):
        """
        Initialize the client.

        Args:
            api_key: OpenRouter API key (or uses OPENROUTER_API_KEY env var)
            base_url: OpenRouter API base URL
            requests_per_minute: Per-model rate limit
            timeout_seconds: Total timeout for one request
        """
        self._api_key = api_key or os.environ.get("OPENROUTER_API_KEY")
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._http_session: Optional[aiohttp.ClientSession] = None
        self._rate_limiter = RateLimiter(requests_per_minute)

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    async def _get_http_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
        return self._http_session

    async def close(self):
        """Close HTTP session."""
        if self._http_session and not self._http_session.closed:
            await self._http_session.close()
            self._http_session = None

    async def call_continuation_model(self, prompt: str, settings: ModelSettings) -> str:
        """
        Continue prompt with the base model. No system prompt is sent.

        Returns:
            The completion text (may be empty)

        Raises:
            LLMRequestError: if the request fails
        """
        return await self._complete(
            [{"role": "user", "content": prompt}],
            settings,
            kind="continuation",
        )

    async def call_assistant_model(
        self,
        system_prompt: str,
        user_message: str,
        settings: ModelSettings,
    ) -> str:
        """
        Ask the assistant model for a structured decision.

        Raises:
            LLMRequestError: if the request fails
        """
        return await self._complete(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            settings,
            kind="assistant",
        )

    async def _complete(
        self,
        messages: list[dict],
        settings: ModelSettings,
        kind: str,
    ) -> str:
        if not self._api_key:
            raise LLMRequestError("OPENROUTER_API_KEY not configured", transient=False)

        model = settings.model_name
        await self._rate_limiter.acquire(model)

        request_id = uuid.uuid4().hex[:12]
        start_time = log.request_start(
            request_id, model, messages[-1]["content"], kind=kind,
        )
        request_body = {"messages": messages, **settings.to_request()}

        try:
            session = await self._get_http_session()
            async with session.post(
                f"{self._base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                    "HTTP-Referer": "https://helm.local",
                    "X-Title": "Helm",
                },
                json=request_body,
                timeout=aiohttp.ClientTimeout(total=self._timeout_seconds),
            ) as resp:
                if resp.status == 429:
                    retry_after = _parse_retry_after(resp.headers.get("Retry-After"))
                    log.request_error(request_id, model, "rate limited", "rate_limited",
                                      start_time, retry_after=retry_after)
                    raise LLMRequestError(
                        "Rate limited by OpenRouter",
                        status=429,
                        retry_after=retry_after,
                    )

                try:
                    data = await resp.json(content_type=None)
                except (ValueError, aiohttp.ContentTypeError):
                    data = None

                if resp.status != 200:
                    error_msg = "response body is not JSON" if data is None else str(data)
                    if isinstance(data, dict) and isinstance(data.get("error"), dict):
                        error_msg = data["error"].get("message", error_msg)
                    log.request_error(request_id, model, error_msg, "http_error",
                                      start_time, status=resp.status)
                    raise LLMRequestError(
                        f"API request failed ({resp.status}): {error_msg}",
                        status=resp.status,
                        transient=resp.status >= 500 or resp.status == 408,
                    )

                if data is None:
                    log.request_error(request_id, model, "response body is not JSON",
                                      "malformed", start_time, status=resp.status)
                    raise LLMRequestError("Malformed response from API", status=resp.status)

        except asyncio.TimeoutError:
            log.request_error(request_id, model, "timed out", "timeout", start_time)
            raise LLMRequestError(
                f"Request timed out after {self._timeout_seconds} seconds"
            ) from None
        except aiohttp.ClientError as e:
            log.request_error(request_id, model, str(e), "connection", start_time)
            raise LLMRequestError(f"Connection error: {e}") from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            log.request_error(request_id, model, "no choices returned", "empty", start_time)
            raise LLMRequestError("No completion returned from API")

        choice = choices[0]
        text = (choice.get("message") or {}).get("content") or choice.get("text") or ""

        log.request_complete(request_id, model, text, start_time, kind=kind)
        return text
