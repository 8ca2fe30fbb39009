"""MCP server wiring for pdf-vision-mcp.

Registers tools and resources and serializes every tool result as JSON text
content. Logging goes to stderr because stdout carries the MCP stream.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool

from . import __version__
from .errors import VisionError, internal_error
from .providers import PROVIDERS
from .tools import TOOL_METADATA, dispatch_tool, initialize_runtime_from_env

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

server = Server("pdf-vision-mcp")

_RESOURCES = (
    ("pdf-vision://server-status", "Server Status", "Provider configuration, limits and cache statistics"),
    ("pdf-vision://capabilities", "Capabilities", "Supported providers, source kinds and tools"),
)


def _resources() -> list[Resource]:
    return [Resource(uri=uri, name=name, description=description) for uri, name, description in _RESOURCES]


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    tools = [
        Tool(name=tool_name, description=metadata["description"], inputSchema=metadata["inputSchema"])
        for tool_name, metadata in TOOL_METADATA.items()
    ]
    logger.info("Listed %s tools", len(tools))
    return tools


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Execute a tool and return MCP-compliant TextContent."""
    if not isinstance(arguments, dict):
        arguments = {}

    logger.info("Tool called: %s", name)

    try:
        raw_result = await dispatch_tool(name, arguments)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("Tool %s failed: %s", name, exc)
        raw_result = internal_error("Tool execution failed")

    logger.info("Tool %s completed ok=%s code=%s", name, raw_result.get("ok"), raw_result.get("code", ""))
    return [TextContent(type="text", text=json.dumps(raw_result, indent=2, default=str))]


@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return _resources()


def _capabilities() -> dict[str, Any]:
    return {
        "server": "pdf-vision-mcp",
        "version": __version__,
        "tools": sorted(TOOL_METADATA.keys()),
        "providers": {
            name: {"credential_env": cls.credential_env, "default_model": cls.default_model}
            for name, cls in sorted(PROVIDERS.items())
        },
        "source_kinds": ["path", "base64"],
        "image_format": "png",
    }


def _server_status() -> dict[str, Any]:
    status: dict[str, Any] = {
        "server": "pdf-vision-mcp",
        "version": __version__,
        "tools_available": len(TOOL_METADATA),
        "tool_names": sorted(TOOL_METADATA.keys()),
        "configured": False,
    }
    try:
        runtime = initialize_runtime_from_env()
    except VisionError as exc:
        status["error"] = exc.message
        return status

    provider = runtime.config.provider
    status["configured"] = True
    status["provider"] = {
        "type": provider.type,
        "model": provider.model,
        "endpoint_overridden": provider.endpoint is not None,
        "timeout_ms": provider.effective_timeout_ms,
        "credential_configured": runtime.ocr.has_credential(provider),
    }
    status["limits"] = {
        "max_pdf_bytes": runtime.config.limits.max_pdf_bytes,
        "render_dpi": runtime.config.limits.render_dpi,
    }
    status["cache"] = runtime.cache.stats()
    status["audit"] = {"file_sink_enabled": runtime.config.audit_log_path is not None}
    return status


@server.read_resource()
async def read_resource(uri: Any) -> str:
    """Read resource content."""
    uri_s = (uri if isinstance(uri, str) else str(uri)).rstrip("/")
    logger.info("Resource requested: %s", uri_s)

    if uri_s == "pdf-vision://capabilities":
        return json.dumps(_capabilities(), indent=2)

    if uri_s == "pdf-vision://server-status":
        return json.dumps(_server_status(), indent=2)

    return json.dumps({"ok": False, "code": "NotFound", "message": "Unknown resource"}, indent=2)


async def run_server() -> None:
    """Run the server over stdio."""
    # Fail fast on invalid host configuration.
    try:
        runtime = initialize_runtime_from_env()
    except VisionError as exc:
        logger.error("Startup configuration error: %s", exc.message)
        raise

    if not runtime.ocr.has_credential(runtime.config.provider):
        logger.warning("OCR provider '%s' has no credential configured; pdf_vision calls will fail", runtime.config.provider.type)
    logger.info("Registered tools: %s", ", ".join(TOOL_METADATA.keys()))

    from mcp.server.stdio import stdio_server

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


async def test_server() -> None:
    """Lightweight self-test to ensure tool/resource listing works."""
    tools = [
        Tool(name=name, description=meta["description"], inputSchema=meta["inputSchema"])
        for name, meta in TOOL_METADATA.items()
    ]
    print(f"Available tools: {[t.name for t in tools]}")
    print(f"Available resources: {[r.name for r in _resources()]}")
    print(f"Capabilities: {json.dumps(_capabilities())}")
