"""OCR provider abstraction for pdf-vision-mcp."""

from ..errors import InvalidArgument
from .base import DEFAULT_PROMPT, OcrProvider
from .mistral import MistralOcrProvider, MistralProvider

PROVIDERS: dict[str, type[OcrProvider]] = {
    MistralProvider.name: MistralProvider,
    MistralOcrProvider.name: MistralOcrProvider,
}


def get_provider_class(name: str) -> type[OcrProvider]:
    """Look up the provider implementation registered under ``name``."""
    provider_cls = PROVIDERS.get(name)
    if provider_cls is None:
        raise InvalidArgument(
            f"Unsupported OCR provider: {name}",
            hint=f"Supported providers: {', '.join(sorted(PROVIDERS))}",
        )
    return provider_cls


__all__ = [
    "DEFAULT_PROMPT",
    "PROVIDERS",
    "MistralOcrProvider",
    "MistralProvider",
    "OcrProvider",
    "get_provider_class",
]
