"""Remote model metadata lookups through the Portkey gateway.

Fetches a model's catalog entry (modalities, token ceilings, ordering flags)
so the capability resolver can describe models it has no local knowledge of.

Example usage:
    client = PortkeyMetadataClient(api_key="pk-...")
    metadata = await client.get_model_metadata("gpt-4.1")
    if metadata and "image" in (metadata.modalities or []):
        ...
"""

import asyncio
import logging
import os
from typing import Any, Optional
from urllib.parse import quote

import httpx

from context_envelope.core.gateway.errors import (
    AuthenticationError,
    GatewayProviderError,
    RateLimitError,
)
from context_envelope.core.gateway.models import ModelMetadata

logger = logging.getLogger(__name__)

PROVIDER_NAME = "portkey"
DEFAULT_PORTKEY_BASE_URL = "https://api.portkey.ai/v1"
MODELS_ENDPOINT = "/models"
DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_RETRIES = 2


class PortkeyMetadataClient:
    """Read-only client for the gateway's model catalog.

    Attributes:
        base_url: Gateway base URL (``PORTKEY_BASE_URL`` or the public endpoint)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        """Initialize the client.

        Args:
            api_key: Gateway API key (falls back to ``PORTKEY_API_KEY``)
            base_url: Gateway base URL (falls back to ``PORTKEY_BASE_URL``)
            timeout: Request timeout in seconds
            max_retries: Attempts before giving up (at least one is made)
        """
        self._api_key = api_key or os.environ.get("PORTKEY_API_KEY")
        self.base_url = (
            base_url or os.environ.get("PORTKEY_BASE_URL") or DEFAULT_PORTKEY_BASE_URL
        ).rstrip("/")
        self._timeout = timeout
        self._max_retries = max(max_retries, 1)

    async def get_model_metadata(
        self, model: str, api_key: Optional[str] = None
    ) -> Optional[ModelMetadata]:
        """Fetch catalog metadata for a model.

        Args:
            model: Exact model name
            api_key: Per-call key overriding the client's key

        Returns:
            ModelMetadata, or None when no API key is available

        Raises:
            AuthenticationError: If the key is rejected
            RateLimitError: If rate limited after all retries
            GatewayProviderError: For other HTTP or transport failures
        """
        key = api_key or self._api_key
        if not key:
            logger.debug(f"No gateway API key, skipping metadata lookup for {model}")
            return None

        url = f"{self.base_url}{MODELS_ENDPOINT}/{quote(model, safe='')}"
        data = await self._execute_request(url, {"Authorization": f"Bearer {key}"})
        return self._parse_metadata(model, data)

    async def _execute_request(self, url: str, headers: dict[str, str]) -> dict[str, Any]:
        """GET with retries and exponential backoff."""
        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, headers=headers)

                    if response.status_code in (401, 403):
                        raise AuthenticationError(
                            provider=PROVIDER_NAME,
                            message=f"Access denied ({response.status_code}) - check API key",
                        )

                    if response.status_code == 429:
                        retry_after = self._parse_retry_after(response)
                        if attempt < self._max_retries - 1:
                            wait_time = retry_after or (2**attempt)
                            logger.warning(
                                f"Gateway rate limit hit, waiting {wait_time}s "
                                f"(attempt {attempt + 1}/{self._max_retries})"
                            )
                            await asyncio.sleep(wait_time)
                            continue
                        raise RateLimitError(provider=PROVIDER_NAME, retry_after=retry_after)

                    if response.status_code >= 400:
                        error_msg = self._parse_error_response(response)
                        raise GatewayProviderError(
                            provider=PROVIDER_NAME,
                            message=f"API error {response.status_code}: {error_msg}",
                            retryable=response.status_code >= 500,
                        )

                    return response.json()

            except httpx.TimeoutException as e:
                last_error = e
                if attempt < self._max_retries - 1:
                    wait_time = 2**attempt
                    logger.warning(
                        f"Gateway request timeout, retrying in {wait_time}s "
                        f"(attempt {attempt + 1}/{self._max_retries})"
                    )
                    await asyncio.sleep(wait_time)
                    continue

            except httpx.RequestError as e:
                last_error = e
                if attempt < self._max_retries - 1:
                    wait_time = 2**attempt
                    logger.warning(
                        f"Gateway request error: {e}, retrying in {wait_time}s "
                        f"(attempt {attempt + 1}/{self._max_retries})"
                    )
                    await asyncio.sleep(wait_time)
                    continue

        raise GatewayProviderError(
            provider=PROVIDER_NAME,
            message=f"Request failed after {self._max_retries} attempts",
            retryable=False,
            original_error=last_error,
        )

    def _parse_retry_after(self, response: httpx.Response) -> Optional[float]:
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return None

    def _parse_error_response(self, response: httpx.Response) -> str:
        try:
            data = response.json()
            error = data.get("error", data.get("message", str(data)))
            if isinstance(error, dict):
                return str(error.get("message", error))
            return str(error)
        except Exception:
            return response.text[:200] if response.text else "Unknown error"

    def _parse_metadata(self, model: str, data: dict[str, Any]) -> ModelMetadata:
        """Map a catalog entry to ModelMetadata.

        Modalities come from ``modalities`` or, for older catalogs,
        ``capabilities``; the input ceiling from ``max_input_tokens`` or
        ``context_length``.
        """
        modalities = data.get("modalities") or data.get("capabilities")
        max_input = data.get("max_input_tokens")
        if max_input is None:
            max_input = data.get("context_length")

        return ModelMetadata(
            id=model,
            modalities=[str(m) for m in modalities] if isinstance(modalities, list) else None,
            max_input_tokens=max_input,
            max_output_tokens=data.get("max_output_tokens"),
            requires_images_first=data.get("requires_images_first"),
            requires_base64_images=data.get("requires_base64_images"),
        )
