"""Anthropic Messages API provider for performance reports.

Each successful call is recorded as a :class:`Usage` so the CLI can show
token spend and flag reports that were cut off at ``max_tokens``. Transient
failures are retried; the wait comes from :func:`retry_delay`.
"""
from __future__ import annotations

import logging
import os
import random
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import anthropic
from dotenv import load_dotenv

from mhub.config import BudgetConfig, RetryConfig
from mhub.providers.base import ANALYST_SYSTEM_PROMPT, BaseProvider

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504, 529}


class BudgetExceededError(RuntimeError):
    """Raised when the per-run call or token budget has been used up."""


@dataclass(frozen=True)
class Usage:
    """Token accounting for one successful report call."""

    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = ""

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def truncated(self) -> bool:
        return self.stop_reason == "max_tokens"


def _retry_after(exc: anthropic.APIStatusError) -> Optional[float]:
    try:
        value = exc.response.headers.get("retry-after")
        return max(0.0, float(value)) if value else None
    except (AttributeError, TypeError, ValueError):
        return None


def retry_delay(
    exc: BaseException,
    attempt: int,
    cfg: RetryConfig,
    jitter: Callable[[], float] = random.random,
) -> Optional[float]:
    """Seconds to wait before retry number ``attempt + 1``, or None if ``exc`` is final.

    Rate limits, overload and 5xx responses are retried (``Retry-After``
    wins when present), as are connection errors and timeouts. Anything
    else, e.g. a 400 for a malformed prompt, is not.
    """
    if isinstance(exc, anthropic.APIStatusError):
        if exc.status_code not in _RETRYABLE_STATUS_CODES:
            return None
        header = _retry_after(exc)
        if header is not None:
            return header
    elif not isinstance(exc, anthropic.APIConnectionError):
        return None
    return min(cfg.backoff_base_seconds * (2 ** attempt) + jitter(), cfg.backoff_max_seconds)


def _describe(exc: BaseException) -> str:
    if isinstance(exc, anthropic.APIStatusError):
        return f"HTTP {exc.status_code}: {exc.message}"
    return str(exc) or type(exc).__name__


def _text_of(message) -> str:
    # a response may hold several text blocks; join them in order
    parts = [getattr(block, "text", None) for block in message.content]
    return "".join(p for p in parts if isinstance(p, str))


def _usage_of(message) -> Usage:
    usage = getattr(message, "usage", None)
    return Usage(
        input_tokens=int(getattr(usage, "input_tokens", 0) or 0),
        output_tokens=int(getattr(usage, "output_tokens", 0) or 0),
        stop_reason=str(getattr(message, "stop_reason", "") or ""),
    )


class AnthropicProvider(BaseProvider):
    """Report writer backed by Claude, with retries and a per-run budget."""

    def __init__(
        self,
        model: str = "claude-sonnet-4-5-20250929",
        temperature: float = 0.4,
        max_tokens: int = 2048,
        retry_cfg: Optional[RetryConfig] = None,
        budget_cfg: Optional[BudgetConfig] = None,
    ):
        load_dotenv()
        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise EnvironmentError(
                "ANTHROPIC_API_KEY not found. Copy .env.example to .env and add your key."
            )
        self.client = anthropic.Anthropic(api_key=api_key)
        self.model = model
        self.temperature = temperature
        self.default_max_tokens = max_tokens

        self._retry_cfg = retry_cfg or RetryConfig()
        self._budget_cfg = budget_cfg or BudgetConfig()

        self.usage: List[Usage] = []
        self.retry_count: int = 0
        self.last_error: Optional[str] = None

    @property
    def call_count(self) -> int:
        return len(self.usage)

    @property
    def total_tokens(self) -> int:
        return sum(u.total_tokens for u in self.usage)

    def _check_budget(self) -> None:
        max_calls = self._budget_cfg.max_calls_per_run
        if max_calls and self.call_count >= max_calls:
            raise BudgetExceededError(
                f"max_calls_per_run={max_calls} reached ({self.total_tokens} tokens used)"
            )
        max_tokens = self._budget_cfg.max_tokens_per_run
        if max_tokens and self.total_tokens >= max_tokens:
            raise BudgetExceededError(
                f"max_tokens_per_run={max_tokens} reached ({self.total_tokens} tokens used)"
            )

    def generate(self, prompt: str, system: str = "", max_tokens: int = 0) -> str:
        """Send a report prompt and return the report text.

        Raises :class:`BudgetExceededError` before calling the API when the
        run's budget is spent, and re-raises the last API error once retries
        are exhausted.
        """
        self._check_budget()
        request = dict(
            model=self.model,
            max_tokens=max_tokens or self.default_max_tokens,
            temperature=self.temperature,
            system=system or ANALYST_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )

        attempt = 0
        while True:
            try:
                message = self.client.messages.create(**request)
            except anthropic.APIError as exc:
                wait = retry_delay(exc, attempt, self._retry_cfg)
                if wait is None or attempt >= self._retry_cfg.max_api_retries:
                    self.last_error = _describe(exc)
                    raise
                attempt += 1
                self.retry_count += 1
                logger.warning("Anthropic call failed (%s); retry %d in %.1fs", _describe(exc), attempt, wait)
                time.sleep(wait)
                continue

            usage = _usage_of(message)
            self.usage.append(usage)
            if usage.truncated:
                logger.warning("Report stopped at max_tokens=%d; text may be incomplete", request["max_tokens"])
            return _text_of(message)

    def stats(self) -> dict:
        return {
            "call_count": self.call_count,
            "retry_count": self.retry_count,
            "total_input_tokens": sum(u.input_tokens for u in self.usage),
            "total_output_tokens": sum(u.output_tokens for u in self.usage),
            "total_tokens": self.total_tokens,
            "truncated_count": sum(1 for u in self.usage if u.truncated),
            "last_error": self.last_error,
        }
