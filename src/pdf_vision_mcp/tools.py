"""Tool registry and dispatch layer.

This module:
- defines the tools exposed over MCP (public contract surface)
- builds a per-server runtime from host-provided config
- tracks each tool call with a correlation_id and exactly one audit record
- validates arguments before executing any tool implementation
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any

from .audit import AuditSink, ToolCallAudit
from .cache import ResultCache
from .config import AppConfig, EnvCredentialProvider, load_config_from_env
from .errors import InvalidArgument, VisionError, internal_error, vision_error_to_result
from .ocr_client import OcrProviderClient
from .paths import PathResolver
from .sources import PNG_MIME_TYPE, PdfSourceMaterializer, parse_source
from .vision import VisionOrchestrator, parse_vision_request

logger = logging.getLogger(__name__)

_SOURCE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "description": "PDF source: either a file path (absolute or relative to the project root) or inline base64 PDF bytes.",
    "properties": {
        "path": {"type": "string", "minLength": 1},
        "base64": {"type": "string", "minLength": 1},
    },
    "additionalProperties": False,
}

TOOL_METADATA: dict[str, dict[str, Any]] = {
    "pdf_vision": {
        "description": "Run OCR/vision analysis on a rendered PDF page or on one image embedded in it.",
        "inputSchema": {
            "type": "object",
            "required": ["source", "page"],
            "properties": {
                "source": _SOURCE_SCHEMA,
                "page": {"type": "integer", "minimum": 1, "description": "1-based page number."},
                "index": {
                    "type": "integer",
                    "minimum": 0,
                    "description": (
                        "0-based image index within the page. If provided, the specific image is analyzed. "
                        "If omitted, the entire rendered page is analyzed."
                    ),
                },
                "cache": {
                    "type": "boolean",
                    "default": True,
                    "description": "Use cached vision result when available. Defaults to true.",
                },
            },
            "additionalProperties": False,
        },
    },
    "pdf_render_page": {
        "description": "Render a PDF page to a PNG image (base64).",
        "inputSchema": {
            "type": "object",
            "required": ["source", "page"],
            "properties": {
                "source": _SOURCE_SCHEMA,
                "page": {"type": "integer", "minimum": 1, "description": "1-based page number."},
            },
            "additionalProperties": False,
        },
    },
    "pdf_extract_image": {
        "description": "Extract one image embedded in a PDF page as PNG (base64).",
        "inputSchema": {
            "type": "object",
            "required": ["source", "page", "index"],
            "properties": {
                "source": _SOURCE_SCHEMA,
                "page": {"type": "integer", "minimum": 1, "description": "1-based page number."},
                "index": {"type": "integer", "minimum": 0, "description": "0-based image index within the page."},
            },
            "additionalProperties": False,
        },
    },
}


@dataclass(frozen=True, slots=True)
class Runtime:
    """Per-server runtime dependencies shared across tool calls."""

    config: AppConfig
    audit: AuditSink
    cache: ResultCache
    materializer: PdfSourceMaterializer
    ocr: OcrProviderClient
    vision: VisionOrchestrator


_RUNTIME: Runtime | None = None


def validate_tool_arguments(tool_name: str, arguments: dict[str, Any]) -> None:
    """Validate tool arguments against the tool's declared input schema.

    This is intentionally a minimal validator that enforces:
    - required fields
    - no extra properties when additionalProperties=false
    - basic JSON types (string/integer/boolean/object)
    - integer minimum/maximum

    It does NOT implement full JSON Schema. Nested source objects are checked by
    ``parse_source``.
    """
    if tool_name not in TOOL_METADATA:
        raise InvalidArgument("Unknown tool")

    schema = TOOL_METADATA[tool_name]["inputSchema"]
    props: dict[str, Any] = schema.get("properties", {})
    required: list[str] = schema.get("required", [])

    for k in required:
        if k not in arguments:
            raise InvalidArgument(f"Missing required field: {k}")

    if schema.get("additionalProperties", True) is False:
        extras = [k for k in arguments if k not in props]
        if extras:
            raise InvalidArgument("Unexpected fields are not allowed", hint=f"Allowed fields: {', '.join(props)}")

    for k, spec in props.items():
        if k not in arguments:
            continue
        expected = spec.get("type")
        v = arguments[k]
        if expected == "string" and not isinstance(v, str):
            raise InvalidArgument(f"Field '{k}' must be a string")
        if expected == "integer" and (not isinstance(v, int) or isinstance(v, bool)):
            raise InvalidArgument(f"Field '{k}' must be an integer")
        if expected == "boolean" and not isinstance(v, bool):
            raise InvalidArgument(f"Field '{k}' must be a boolean")
        if expected == "object" and not isinstance(v, dict):
            raise InvalidArgument(f"Field '{k}' must be an object")

        if expected == "integer":
            minimum = spec.get("minimum")
            maximum = spec.get("maximum")
            if isinstance(minimum, int) and v < minimum:
                raise InvalidArgument(f"Field '{k}' must be >= {minimum}")
            if isinstance(maximum, int) and v > maximum:
                raise InvalidArgument(f"Field '{k}' must be <= {maximum}")


def build_runtime(config: AppConfig, *, ocr: OcrProviderClient | None = None) -> Runtime:
    """Wire runtime dependencies from a loaded config."""
    cache = ResultCache(config.cache)
    materializer = PdfSourceMaterializer(PathResolver(config.project_root), config.limits)
    ocr = ocr or OcrProviderClient(credentials=EnvCredentialProvider(), limits=config.limits)
    vision = VisionOrchestrator(
        materializer=materializer,
        ocr_client=ocr,
        cache=cache,
        provider_config=config.provider,
    )
    return Runtime(
        config=config,
        audit=AuditSink(config.audit_log_path),
        cache=cache,
        materializer=materializer,
        ocr=ocr,
        vision=vision,
    )


def initialize_runtime_from_env() -> Runtime:
    """Initialize and cache runtime from environment.

    Called at server startup (fail-fast), and can also be used lazily.
    """
    global _RUNTIME  # pylint: disable=global-statement
    if _RUNTIME is not None:
        return _RUNTIME

    _RUNTIME = build_runtime(load_config_from_env())
    return _RUNTIME


def _image_payload(image: bytes) -> dict[str, Any]:
    return {
        "mime_type": PNG_MIME_TYPE,
        "size_bytes": len(image),
        "data": base64.b64encode(image).decode("ascii"),
    }


async def _tool_pdf_vision(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    request = parse_vision_request(arguments)
    outcome = await runtime.vision.analyze(request)
    out: dict[str, Any] = outcome.result.to_dict()
    out.update({"page": request.page, "index": request.index, "cache": outcome.cache_status})
    return out


async def _tool_pdf_render_page(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    source = parse_source(arguments["source"])
    page = arguments["page"]
    image = await runtime.materializer.render_page(source, page)
    out: dict[str, Any] = {"page": page}
    out.update(_image_payload(image))
    return out


async def _tool_pdf_extract_image(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    source = parse_source(arguments["source"])
    page = arguments["page"]
    index = arguments["index"]
    image = await runtime.materializer.extract_image(source, page, index)
    out: dict[str, Any] = {"page": page, "index": index}
    out.update(_image_payload(image))
    return out


_TOOL_FUNCS = {
    "pdf_vision": _tool_pdf_vision,
    "pdf_render_page": _tool_pdf_render_page,
    "pdf_extract_image": _tool_pdf_extract_image,
}


async def dispatch_tool(name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Dispatch a tool call.

    Always returns an envelope that includes correlation_id.
    """
    audit = ToolCallAudit(name, arguments)

    try:
        runtime = initialize_runtime_from_env()
        audit.start(runtime.audit)

        if name not in TOOL_METADATA:
            raise InvalidArgument(
                f"Unknown tool: {name}",
                hint=f"Available tools: {', '.join(sorted(TOOL_METADATA.keys()))}",
            )

        validate_tool_arguments(name, arguments)

        result = await _TOOL_FUNCS[name](runtime, arguments)
        audit.succeeded(cache=result.get("cache"))

        out: dict[str, Any] = {"ok": True, "correlation_id": audit.correlation_id}
        out.update(result)
        return out

    except VisionError as err:
        audit.errored(err)
        result = vision_error_to_result(err)
        result["correlation_id"] = audit.correlation_id
        return result
    except Exception:  # pylint: disable=broad-exception-caught
        logger.exception("Tool %s failed with unexpected exception", name)
        audit.crashed()
        result = internal_error("Internal error")
        result["correlation_id"] = audit.correlation_id
        return result
