"""Base class for OCR providers.

Each provider implementation defines:
1. the credential it needs and how it is labelled in errors
2. its default endpoint and model
3. the JSON request body for an image
4. how to pull the text out of a response body

The shared ``analyze`` performs exactly one outbound call under the configured
timeout. On expiry the task owning the socket operation is cancelled, so the
transport is aborted rather than abandoned.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from ..cache import OcrResult
from ..config import CredentialProvider, LimitsConfig, ProviderConfig
from ..errors import MissingCredential, ProviderResponseError, ProviderTimeoutError, ProviderTransportError

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = (
    "Extract all readable text from this image. "
    "Preserve the reading order and return only the extracted text."
)


def image_data_url(image_bytes: bytes, mime_type: str = "image/png") -> str:
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


class OcrProvider(ABC):
    """One OCR/vision service reachable over HTTP."""

    name: ClassVar[str]
    display_name: ClassVar[str]
    credential_env: ClassVar[str]
    default_endpoint: ClassVar[str]
    default_model: ClassVar[str]

    def __init__(
        self,
        *,
        limits: LimitsConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Create a provider.

        Args:
            limits: Connect timeout and error body truncation limits.
            transport: Optional httpx transport for tests.
        """
        self._limits = limits or LimitsConfig()
        self._transport = transport

    def endpoint(self, config: ProviderConfig) -> str:
        return config.endpoint or self.default_endpoint

    def model(self, config: ProviderConfig) -> str:
        return config.model or self.default_model

    def require_credential(self, credentials: CredentialProvider) -> str:
        """Resolve the API key or fail before any network activity."""
        api_key = credentials.get(self.credential_env)
        if not api_key:
            raise MissingCredential(
                f"{self.display_name} provider requires {self.credential_env}.",
                hint=f"Set {self.credential_env} in the server environment",
            )
        return api_key

    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        }

    @abstractmethod
    def build_payload(self, image_bytes: bytes, config: ProviderConfig, *, mime_type: str) -> dict[str, Any]:
        """Build the JSON request body for one image."""

    @abstractmethod
    def extract_text(self, data: object) -> str | None:
        """Return the recognized text, or None when the body lacks it."""

    def _truncate(self, text: str) -> str:
        limit = self._limits.max_error_body_chars
        return text if len(text) <= limit else text[:limit] + "..."

    async def _post_json(self, *, url: str, api_key: str, body: dict[str, Any], timeout_ms: int) -> httpx.Response:
        # Only connecting is bounded by httpx; the configured timeout bounds the whole call.
        timeout = httpx.Timeout(None, connect=self._limits.connect_timeout_s)

        async with httpx.AsyncClient(
            follow_redirects=False,
            timeout=timeout,
            transport=self._transport,
        ) as client:
            try:
                return await asyncio.wait_for(
                    client.post(url, headers=self._headers(api_key), json=body),
                    timeout=timeout_ms / 1000,
                )
            except asyncio.TimeoutError as exc:
                logger.warning("%s request timed out after %sms", self.display_name, timeout_ms)
                raise ProviderTimeoutError(timeout_ms) from exc
            except httpx.HTTPError as exc:
                detail = str(exc) or type(exc).__name__
                logger.warning("%s request failed: %s", self.display_name, detail)
                raise ProviderTransportError(f"OCR provider request failed: {detail}", cause=exc) from exc

    async def analyze(
        self,
        image_bytes: bytes,
        config: ProviderConfig,
        *,
        credentials: CredentialProvider,
        mime_type: str = "image/png",
    ) -> OcrResult:
        """Send one image to the provider and normalize the response."""
        api_key = self.require_credential(credentials)
        body = self.build_payload(image_bytes, config, mime_type=mime_type)
        url = self.endpoint(config)

        resp = await self._post_json(url=url, api_key=api_key, body=body, timeout_ms=config.effective_timeout_ms)

        if not resp.is_success:
            raise ProviderResponseError(
                f"OCR provider returned HTTP {resp.status_code}.",
                status_code=resp.status_code,
                body=self._truncate(resp.text),
            )

        try:
            data = resp.json()
        except ValueError as exc:  # JSONDecodeError or UnicodeDecodeError
            raise ProviderResponseError(
                "OCR provider returned invalid JSON.",
                status_code=resp.status_code,
                body=self._truncate(resp.text),
            ) from exc

        text = self.extract_text(data)
        if text is None:
            raise ProviderResponseError(
                "OCR provider response did not contain text.",
                status_code=resp.status_code,
                body=self._truncate(resp.text),
            )

        logger.info("%s returned %s characters", self.display_name, len(text))
        return OcrResult(provider=self.name, text=text)
