"""PDF Vision MCP Server.

A Model Context Protocol server that renders PDF pages, extracts embedded
images, and runs OCR/vision analysis on them through an external provider.

Features:
- Page rendering and embedded image extraction
- OCR/vision analysis with bounded, cancellable provider calls
- In-process result cache keyed by request fingerprint
- Path and inline (base64) PDF sources

Run with: uvx python -m pdf_vision_mcp
"""

__version__ = "1.0.0"
