"""Configuration loading for pdf-vision-mcp.

Configuration is supplied by the host environment (e.g., MCP client config), not by the agent.
Provider credentials are never stored in configuration objects; they are looked up through a
credential provider at call time so they can be rotated or substituted in tests.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .errors import ConfigError

DEFAULT_PROVIDER = "mistral"
DEFAULT_TIMEOUT_MS = 60_000


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Selects and tunes the OCR provider used for vision requests."""

    type: str = DEFAULT_PROVIDER
    endpoint: str | None = None
    model: str | None = None
    timeout_ms: int | None = None
    prompt: str | None = None

    def __post_init__(self) -> None:
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ConfigError(f"OCR timeout_ms must be greater than 0, got {self.timeout_ms}.")

    @property
    def effective_timeout_ms(self) -> int:
        return self.timeout_ms if self.timeout_ms is not None else DEFAULT_TIMEOUT_MS


@dataclass(frozen=True, slots=True)
class CacheConfig:
    """Bounds for the in-process result cache. ``None`` disables the bound."""

    max_entries: int | None = None
    ttl_s: float | None = None


@dataclass(frozen=True, slots=True)
class LimitsConfig:
    """Non-functional safety limits."""

    connect_timeout_s: float = 5.0
    max_pdf_bytes: int = 100 * 1024 * 1024
    render_dpi: int = 150
    max_error_body_chars: int = 500


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Server configuration."""

    project_root: Path
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    audit_log_path: Path | None = None


class CredentialProvider(Protocol):
    """Read-only lookup of named credentials."""

    def get(self, name: str) -> str | None: ...


class EnvCredentialProvider:
    """Resolves credentials from an environment mapping at lookup time.

    With no mapping, the live process environment is consulted on every call.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ

    def get(self, name: str) -> str | None:
        env = os.environ if self._environ is None else self._environ
        value = env.get(name)
        if value is None:
            return None
        value = value.strip()
        return value or None


def _parse_positive_int(name: str, value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer") from exc
    if parsed <= 0:
        raise ConfigError(f"{name} must be greater than 0")
    return parsed


def _parse_positive_float(name: str, value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        parsed = float(value.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number") from exc
    if parsed <= 0:
        raise ConfigError(f"{name} must be greater than 0")
    return parsed


def _optional_str(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _absolute_path(name: str, value: str | None) -> Path | None:
    raw = _optional_str(value)
    if raw is None:
        return None
    p = Path(raw)
    if not p.is_absolute():
        raise ConfigError(f"{name} must be an absolute path when set")
    return p


def load_config_from_env(environ: Mapping[str, str] | None = None) -> AppConfig:
    """Load and validate configuration from environment variables.

    Raises:
        ConfigError: If a configured value is invalid.
    """
    env = os.environ if environ is None else environ

    provider_type = (_optional_str(env.get("PDF_VISION_OCR_PROVIDER")) or DEFAULT_PROVIDER).lower()
    provider = ProviderConfig(
        type=provider_type,
        endpoint=_optional_str(env.get("PDF_VISION_OCR_ENDPOINT")),
        model=_optional_str(env.get("PDF_VISION_OCR_MODEL")),
        timeout_ms=_parse_positive_int("PDF_VISION_OCR_TIMEOUT_MS", env.get("PDF_VISION_OCR_TIMEOUT_MS")),
        prompt=_optional_str(env.get("PDF_VISION_OCR_PROMPT")),
    )

    cache = CacheConfig(
        max_entries=_parse_positive_int("PDF_VISION_CACHE_MAX_ENTRIES", env.get("PDF_VISION_CACHE_MAX_ENTRIES")),
        ttl_s=_parse_positive_float("PDF_VISION_CACHE_TTL_S", env.get("PDF_VISION_CACHE_TTL_S")),
    )

    limits = LimitsConfig()
    max_mb = _parse_positive_int("PDF_VISION_MAX_PDF_MB", env.get("PDF_VISION_MAX_PDF_MB"))
    dpi = _parse_positive_int("PDF_VISION_RENDER_DPI", env.get("PDF_VISION_RENDER_DPI"))
    if max_mb is not None or dpi is not None:
        limits = LimitsConfig(
            max_pdf_bytes=max_mb * 1024 * 1024 if max_mb is not None else limits.max_pdf_bytes,
            render_dpi=dpi if dpi is not None else limits.render_dpi,
        )

    project_root = _absolute_path("PDF_VISION_PROJECT_ROOT", env.get("PDF_VISION_PROJECT_ROOT")) or Path.cwd()

    return AppConfig(
        project_root=project_root,
        provider=provider,
        cache=cache,
        limits=limits,
        audit_log_path=_absolute_path("PDF_VISION_AUDIT_LOG_PATH", env.get("PDF_VISION_AUDIT_LOG_PATH")),
    )
