"""
PDF source descriptors and materialization.

A source is either a file path (resolved against the project root) or inline
base64 PDF bytes. Materialization turns a (source, page, index) selector into
PNG bytes: the whole rendered page when no index is given, otherwise the
index-th image embedded in the page.
"""

import asyncio
import base64
import binascii
import hashlib
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar, Optional, Protocol, Union

import pdfplumber
import pypdf
from PIL import Image

from .config import LimitsConfig
from .errors import InvalidArgument, SourceResolutionError
from .paths import PathResolver, sanitize_filename, validate_pdf_file

logger = logging.getLogger(__name__)

PNG_MIME_TYPE = "image/png"
_PNG_MODES = {"1", "L", "LA", "P", "RGB", "RGBA"}


@dataclass(frozen=True, slots=True)
class PathSource:
    """PDF file referenced by a user-supplied path."""

    path: str
    kind: ClassVar[str] = "path"


@dataclass(frozen=True, slots=True)
class InlineSource:
    """PDF bytes supplied directly with the request."""

    data: bytes
    kind: ClassVar[str] = "inline"


Source = Union[PathSource, InlineSource]


def parse_source(raw: Any) -> Source:
    """
    Validate a raw ``source`` argument and build a source descriptor.

    Exactly one of ``path`` or ``base64`` must be present.

    Raises:
        InvalidArgument: If the descriptor is malformed
    """
    if not isinstance(raw, dict):
        raise InvalidArgument("Field 'source' must be an object")

    extras = [k for k in raw if k not in ("path", "base64")]
    if extras:
        raise InvalidArgument("Unexpected source fields are not allowed", hint="Use 'path' or 'base64'")

    has_path = "path" in raw
    has_data = "base64" in raw
    if has_path == has_data:
        raise InvalidArgument("Source must provide exactly one of 'path' or 'base64'")

    if has_path:
        path = raw["path"]
        if not isinstance(path, str):
            raise InvalidArgument("Path must be a string.")
        if not path.strip():
            raise InvalidArgument("Field 'source.path' must not be empty")
        return PathSource(path=path)

    encoded = raw["base64"]
    if not isinstance(encoded, str):
        raise InvalidArgument("Field 'source.base64' must be a string")
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidArgument("Field 'source.base64' is not valid base64") from exc
    if not data:
        raise InvalidArgument("Field 'source.base64' must not be empty")
    return InlineSource(data=data)


def describe_source(source: Source) -> str:
    """Short, non-sensitive label for logs and audit events."""
    if isinstance(source, PathSource):
        return sanitize_filename(Path(source.path).name)
    return "<inline>"


class SourceMaterializer(Protocol):
    """Produces fingerprints and image bytes for PDF sources."""

    async def identify(self, source: Source) -> str: ...

    async def materialize(self, source: Source, page: int, index: Optional[int]) -> bytes: ...


def _check_page(page: int, page_count: int) -> None:
    if page > page_count:
        raise SourceResolutionError(
            f"Page {page} is out of range (document has {page_count} pages).",
            hint="Use a 1-based page number within the document",
        )


def render_page_png(pdf_bytes: bytes, page: int, resolution: int) -> bytes:
    """Rasterize a 1-based page to PNG bytes."""
    try:
        pdf = pdfplumber.open(io.BytesIO(pdf_bytes))
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise SourceResolutionError("Unable to read PDF source.") from exc

    with pdf:
        _check_page(page, len(pdf.pages))
        try:
            page_image = pdf.pages[page - 1].to_image(resolution=resolution)
            buf = io.BytesIO()
            page_image.original.save(buf, format="PNG")
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise SourceResolutionError(f"Failed to render page {page}.") from exc
    return buf.getvalue()


def extract_image_png(pdf_bytes: bytes, page: int, index: int) -> bytes:
    """Extract the 0-based ``index``-th image embedded in a 1-based page as PNG bytes."""
    try:
        reader = pypdf.PdfReader(io.BytesIO(pdf_bytes))
        page_count = len(reader.pages)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise SourceResolutionError("Unable to read PDF source.") from exc

    _check_page(page, page_count)

    try:
        images = reader.pages[page - 1].images
        image_count = len(images)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise SourceResolutionError(f"Failed to list images on page {page}.") from exc

    if index >= image_count:
        raise SourceResolutionError(
            f"Image index {index} is out of range (page {page} has {image_count} images).",
            hint="Use a 0-based image index within the page",
        )

    try:
        img: Image.Image = images[index].image
        if img.mode not in _PNG_MODES:
            img = img.convert("RGB")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise SourceResolutionError(f"Failed to extract image {index} from page {page}.") from exc
    return buf.getvalue()


class PdfSourceMaterializer:
    """Materializes PDF sources using pypdf and pdfplumber."""

    def __init__(self, resolver: PathResolver, limits: LimitsConfig):
        self.resolver = resolver
        self.limits = limits

    def _check_inline_size(self, data: bytes) -> None:
        if len(data) > self.limits.max_pdf_bytes:
            limit_mb = self.limits.max_pdf_bytes / (1024 * 1024)
            raise SourceResolutionError(f"Inline PDF exceeds limit of {limit_mb:.1f}MB")

    async def identify(self, source: Source) -> str:
        """
        Fingerprint a source without reading its content where possible.

        Path sources are identified by normalized path, size and modification
        time; inline sources by the SHA-256 of their bytes.
        """
        if isinstance(source, InlineSource):
            self._check_inline_size(source.data)
            return "sha256:" + hashlib.sha256(source.data).hexdigest()

        path = self.resolver.resolve(source.path)
        await asyncio.to_thread(validate_pdf_file, path, self.limits.max_pdf_bytes)
        try:
            stat = await asyncio.to_thread(path.stat)
        except OSError as exc:
            raise SourceResolutionError(f"Unable to read PDF file: {sanitize_filename(path.name)}") from exc
        return f"path:{path}:{stat.st_size}:{stat.st_mtime_ns}"

    async def read_bytes(self, source: Source) -> bytes:
        if isinstance(source, InlineSource):
            self._check_inline_size(source.data)
            return source.data

        path = self.resolver.resolve(source.path)
        await asyncio.to_thread(validate_pdf_file, path, self.limits.max_pdf_bytes)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise SourceResolutionError(f"Unable to read PDF file: {sanitize_filename(path.name)}") from exc

    async def render_page(self, source: Source, page: int) -> bytes:
        data = await self.read_bytes(source)
        return await asyncio.to_thread(render_page_png, data, page, self.limits.render_dpi)

    async def extract_image(self, source: Source, page: int, index: int) -> bytes:
        data = await self.read_bytes(source)
        return await asyncio.to_thread(extract_image_png, data, page, index)

    async def materialize(self, source: Source, page: int, index: Optional[int]) -> bytes:
        if index is None:
            image = await self.render_page(source, page)
        else:
            image = await self.extract_image(source, page, index)
        logger.info(
            "Materialized %s page=%s index=%s (%s bytes)",
            describe_source(source), page, index, len(image),
        )
        return image
