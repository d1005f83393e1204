"""
Provider HTTP Client

Shared transport for the Cohere-compatible embed, rerank and summarize
endpoints. It owns the request timeout, translates transport and HTTP
failures into the provider error taxonomy, and retries the recoverable ones
(timeouts and rate limits) with exponential backoff.

Malformed bodies and provider-reported errors are never retried.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..core.errors import (
    MalformedResponse,
    ProviderError,
    ProviderRateLimited,
    ProviderTimeout,
)
from ..core.retry import retry_async

logger = logging.getLogger("hask.provider")

_TIMEOUT_STATUSES = {408, 504}


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class CohereClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key or settings.cohere_api_key.get_secret_value()
        self.base_url = (base_url or settings.cohere_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.provider_timeout
        self.max_attempts = max_attempts if max_attempts is not None else settings.provider_max_attempts
        self.backoff_base = backoff_base if backoff_base is not None else settings.provider_backoff_base
        self.backoff_max = backoff_max if backoff_max is not None else settings.provider_backoff_max
        # Injected in tests (httpx.MockTransport)
        self._transport = transport

    async def post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST ``payload`` to ``path`` and return the decoded JSON object.

        Raises ProviderTimeout, ProviderRateLimited, ProviderError or
        MalformedResponse once retries are exhausted.
        """
        return await retry_async(
            lambda: self._post_once(path, payload),
            max_attempts=self.max_attempts,
            base_delay=self.backoff_base,
            max_delay=self.backoff_max,
            retry_on=(ProviderTimeout, ProviderRateLimited),
            description=f"POST {path}",
        )

    async def _post_once(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ProviderTimeout(f"{path} timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            logger.error("Provider transport error on %s: %s", path, exc)
            raise ProviderError(None, f"{type(exc).__name__}: {exc}") from exc

        if resp.status_code == 429:
            raise ProviderRateLimited(
                f"{path} rate limited",
                retry_after=_parse_retry_after(resp.headers.get("Retry-After")),
            )
        if resp.status_code in _TIMEOUT_STATUSES:
            raise ProviderTimeout(f"{path} returned HTTP {resp.status_code}")
        if resp.is_error:
            raise ProviderError(resp.status_code, self._error_message(resp))

        try:
            data = resp.json()
        except ValueError as exc:
            logger.error("Provider returned non-JSON body on %s: %.200r", path, resp.text)
            raise MalformedResponse(f"{path} returned a non-JSON body") from exc

        if not isinstance(data, dict):
            logger.error("Provider returned non-object JSON on %s: %.200r", path, data)
            raise MalformedResponse(f"{path} returned {type(data).__name__}, expected object")

        return data

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text[:200] or resp.reason_phrase
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return resp.reason_phrase
