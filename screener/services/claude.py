"""
Claude API helpers shared by the screening and highlights services.

- get_anthropic_client(): AsyncAnthropic with SDK retries disabled
- with_retry(): bounded retry loop for rate limits, 5xx and dropped connections
- first_text() / parse_json_payload(): turn a message into parsed JSON

Parsing never raises. It returns Parsed or ParseError and each caller
decides whether a bad payload is fatal (screening, final ranking) or just
an empty batch (highlights phase 1).
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

import anthropic
import httpx

from screener.middleware.metrics import record_llm_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = {429, 500, 502, 503}
CONNECTION_ERRORS = (
    anthropic.APIConnectionError,  # includes APITimeoutError
    httpx.ConnectError,
    httpx.TimeoutException,
    ConnectionResetError,
    asyncio.TimeoutError,
)

API_BACKOFF_BASE = 2.0
CONNECTION_BACKOFF_BASE = 5.0
MAX_BACKOFF = 60.0

FENCED_BLOCK = re.compile(r"```(?:json)?\n?([\s\S]*?)```")


def get_anthropic_client(api_key: str, timeout: float = 300.0) -> anthropic.AsyncAnthropic:
    return anthropic.AsyncAnthropic(
        api_key=api_key,
        timeout=timeout,
        max_retries=0,  # with_retry owns retries
    )


# ==================== Retry ====================

def is_connection_error(error: BaseException) -> bool:
    return isinstance(error, CONNECTION_ERRORS)


def is_retryable(error: BaseException) -> bool:
    if is_connection_error(error):
        return True
    return getattr(error, "status_code", None) in RETRYABLE_STATUS


def retry_delay(attempt: int, connection_error: bool) -> float:
    base = CONNECTION_BACKOFF_BASE if connection_error else API_BACKOFF_BASE
    return min(base * (2 ** (attempt - 1)), MAX_BACKOFF)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    label: str = "API call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Call fn until it succeeds, at most max_attempts times.

    Only retryable failures are retried; anything else, and the failure of
    the last attempt, propagates unchanged.
    """
    attempt = 1
    while True:
        try:
            return await fn()
        except Exception as e:
            if not is_retryable(e) or attempt >= max_attempts:
                raise

            connection_error = is_connection_error(e)
            kind = "connection" if connection_error else "api"
            delay = retry_delay(attempt, connection_error)
            logger.warning(
                f"{label} failed (attempt {attempt}/{max_attempts}), "
                f"retrying in {delay}s [{kind}]: {e}"
            )
            record_llm_retry(kind)
            await sleep(delay)
            attempt += 1


# ==================== Response parsing ====================

@dataclass
class Parsed:
    value: Any


@dataclass
class ParseError:
    raw: str
    reason: str


ParseResult = Union[Parsed, ParseError]


def first_text(message: Any) -> Optional[str]:
    """Text of the first text block of a Messages API response."""
    for block in getattr(message, "content", None) or []:
        if getattr(block, "type", None) == "text":
            return block.text
    return None


def unwrap_json(text: str) -> str:
    match = FENCED_BLOCK.search(text)
    return (match.group(1) if match else text).strip()


def parse_json_payload(text: Optional[str]) -> ParseResult:
    if text is None:
        return ParseError(raw="", reason="no text content in response")
    try:
        return Parsed(json.loads(unwrap_json(text)))
    except json.JSONDecodeError as e:
        return ParseError(raw=text, reason=str(e))
