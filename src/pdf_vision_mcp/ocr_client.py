"""OCR provider client.

Provides:
- provider selection by configured type
- credential lookup through an injectable provider
- one bounded outbound call per invocation, no retries
"""

from __future__ import annotations

import httpx

from .cache import OcrResult
from .config import CredentialProvider, EnvCredentialProvider, LimitsConfig, ProviderConfig
from .errors import InvalidArgument
from .providers import OcrProvider, get_provider_class


class OcrProviderClient:
    """Dispatches ``analyze`` to the provider named in the config."""

    def __init__(
        self,
        *,
        credentials: CredentialProvider | None = None,
        limits: LimitsConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        providers: dict[str, type[OcrProvider]] | None = None,
    ) -> None:
        """Create an OCR client.

        Args:
            credentials: Credential lookup; defaults to the process environment.
            limits: Connect timeout and error body limits.
            transport: Optional httpx transport for tests.
            providers: Optional registry override.
        """
        self._credentials = credentials or EnvCredentialProvider()
        self._limits = limits or LimitsConfig()
        self._transport = transport
        self._providers = providers

    def _provider_class(self, provider_type: str) -> type[OcrProvider]:
        if self._providers is not None and provider_type in self._providers:
            return self._providers[provider_type]
        return get_provider_class(provider_type)

    def provider_for(self, config: ProviderConfig) -> OcrProvider:
        return self._provider_class(config.type)(limits=self._limits, transport=self._transport)

    def has_credential(self, config: ProviderConfig) -> bool:
        """Whether the configured provider's credential resolves (value never exposed)."""
        try:
            provider_cls = self._provider_class(config.type)
        except InvalidArgument:
            return False
        return bool(self._credentials.get(provider_cls.credential_env))

    async def analyze(self, image_bytes: bytes, config: ProviderConfig, *, mime_type: str = "image/png") -> OcrResult:
        provider = self.provider_for(config)
        return await provider.analyze(image_bytes, config, credentials=self._credentials, mime_type=mime_type)
