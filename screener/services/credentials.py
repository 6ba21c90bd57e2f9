"""
API credential helpers for the settings screen: masking saved secrets and
probing Greenhouse and Anthropic with candidate keys.
"""

import logging
from typing import Optional

import anthropic
import httpx

from screener.schemas import KeyValidation
from screener.services.claude import get_anthropic_client

logger = logging.getLogger(__name__)

MASK_CHAR = "•"
VISIBLE_CHARS = 4


def mask_secret(value: Optional[str]) -> str:
    """Replace all but the last four characters with bullets."""
    if not value:
        return ""
    return MASK_CHAR * max(0, len(value) - VISIBLE_CHARS) + value[-VISIBLE_CHARS:]


def is_masked(value: Optional[str]) -> bool:
    return bool(value) and MASK_CHAR in value


def unmasked(value: Optional[str]) -> Optional[str]:
    """The value if the user actually typed it, None for blanks and masked echoes."""
    if not value or is_masked(value):
        return None
    return value


async def validate_greenhouse_key(
    api_key: str,
    user_id: str,
    base_url: str,
    http_client: Optional[httpx.AsyncClient] = None,
    timeout: float = 30.0,
) -> KeyValidation:
    if not api_key:
        return KeyValidation(valid=False, error="No API key provided")

    client = http_client or httpx.AsyncClient(timeout=timeout)
    try:
        response = await client.get(
            f"{base_url.rstrip('/')}/jobs",
            params={"per_page": 1},
            auth=httpx.BasicAuth(api_key, ""),
            headers={"On-Behalf-Of": user_id or "1"},
        )
    except httpx.HTTPError as e:
        return KeyValidation(valid=False, error=str(e))
    finally:
        if http_client is None:
            await client.aclose()

    if response.is_success:
        return KeyValidation(valid=True)
    if response.status_code == 401:
        return KeyValidation(valid=False, error="Invalid API key")
    if response.status_code == 403:
        return KeyValidation(valid=False, error="API key lacks required permissions")
    return KeyValidation(valid=False, error=f"API returned {response.status_code}")


async def validate_anthropic_key(
    api_key: str,
    model: str,
    client: Optional[anthropic.AsyncAnthropic] = None,
) -> KeyValidation:
    """Send a one-token message; any successful response proves the key."""
    if not api_key:
        return KeyValidation(valid=False, error="No API key provided")

    owns_client = client is None
    client = client or get_anthropic_client(api_key, timeout=30.0)
    try:
        await client.messages.create(
            model=model,
            max_tokens=1,
            messages=[{"role": "user", "content": "Hi"}],
        )
    except anthropic.AuthenticationError:
        return KeyValidation(valid=False, error="Invalid API key")
    except anthropic.PermissionDeniedError:
        return KeyValidation(valid=False, error="API key lacks permissions")
    except anthropic.APIStatusError as e:
        return KeyValidation(valid=False, error=e.message or f"API returned {e.status_code}")
    except anthropic.APIConnectionError as e:
        return KeyValidation(valid=False, error=str(e))
    finally:
        if owns_client:
            await client.close()
    return KeyValidation(valid=True)
