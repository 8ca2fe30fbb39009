"""Mistral providers: vision chat completions and the dedicated OCR endpoint."""

from __future__ import annotations

from typing import Any

from ..config import ProviderConfig
from .base import DEFAULT_PROMPT, OcrProvider, image_data_url


class MistralProvider(OcrProvider):
    """Vision-capable chat model prompted to transcribe the image."""

    name = "mistral"
    display_name = "Mistral OCR"
    credential_env = "MISTRAL_API_KEY"
    default_endpoint = "https://api.mistral.ai/v1/chat/completions"
    default_model = "mistral-large-latest"

    def build_payload(self, image_bytes: bytes, config: ProviderConfig, *, mime_type: str) -> dict[str, Any]:
        return {
            "model": self.model(config),
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": config.prompt or DEFAULT_PROMPT},
                        {"type": "image_url", "image_url": image_data_url(image_bytes, mime_type)},
                    ],
                }
            ],
        }

    def extract_text(self, data: object) -> str | None:
        if not isinstance(data, dict):
            return None
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return None
        message = choices[0].get("message")
        if not isinstance(message, dict):
            return None

        content = message.get("content")
        if isinstance(content, str):
            return content
        # Newer models may answer with a list of typed chunks.
        if isinstance(content, list):
            parts = [
                chunk["text"]
                for chunk in content
                if isinstance(chunk, dict) and chunk.get("type") == "text" and isinstance(chunk.get("text"), str)
            ]
            if parts:
                return "".join(parts)
        return None


class MistralOcrProvider(OcrProvider):
    """Mistral's document OCR endpoint; returns markdown per page."""

    name = "mistral-ocr"
    display_name = "Mistral Document OCR"
    credential_env = "MISTRAL_API_KEY"
    default_endpoint = "https://api.mistral.ai/v1/ocr"
    default_model = "mistral-ocr-latest"

    def build_payload(self, image_bytes: bytes, config: ProviderConfig, *, mime_type: str) -> dict[str, Any]:
        return {
            "model": self.model(config),
            "document": {
                "type": "image_url",
                "image_url": image_data_url(image_bytes, mime_type),
            },
        }

    def extract_text(self, data: object) -> str | None:
        if not isinstance(data, dict):
            return None
        pages = data.get("pages")
        if not isinstance(pages, list):
            return None
        texts = [p["markdown"] for p in pages if isinstance(p, dict) and isinstance(p.get("markdown"), str)]
        if len(texts) != len(pages):
            return None
        return "\n\n".join(texts)
