"""
Path resolution and file guards for PDF sources.

Relative paths are resolved against a fixed project root (the server's working
directory unless configured otherwise). Only normalization is applied here; no
containment policy is enforced.
"""

import os
from pathlib import Path
from typing import Union

from .errors import InvalidArgument, SourceResolutionError

PROJECT_ROOT = Path.cwd()
ALLOWED_EXTENSIONS = {".pdf"}


class PathResolver:
    """Maps user-supplied paths to normalized absolute paths."""

    def __init__(self, root: Union[str, Path, None] = None):
        self.root = Path(os.path.normpath(str(root if root is not None else PROJECT_ROOT)))

    def resolve(self, user_path: object) -> Path:
        """
        Resolve a user-provided path, accepting both absolute and relative paths.

        Args:
            user_path: The path provided by the user

        Returns:
            Normalized absolute Path

        Raises:
            InvalidArgument: If user_path is not a string
        """
        if not isinstance(user_path, str):
            raise InvalidArgument("Path must be a string.")
        normalized = os.path.normpath(user_path)
        if os.path.isabs(normalized):
            return Path(normalized)
        return Path(os.path.normpath(os.path.join(self.root, normalized)))


def resolve_path(user_path: object) -> Path:
    """Resolve against the process-wide project root."""
    return PathResolver().resolve(user_path)


def validate_pdf_file(path: Path, max_bytes: int) -> int:
    """
    Check that a resolved path names a readable PDF within the size limit.

    Returns:
        File size in bytes

    Raises:
        SourceResolutionError: If the file is missing, not a PDF, or too large
    """
    if path.suffix.lower() not in ALLOWED_EXTENSIONS:
        raise SourceResolutionError(
            f"File type '{path.suffix}' not supported. Only PDF files allowed.",
            hint="Ensure the file is a valid PDF",
        )
    try:
        if not path.exists():
            raise SourceResolutionError(f"PDF file not found: {sanitize_filename(path.name)}")
        if not path.is_file():
            raise SourceResolutionError(f"Path is not a file: {sanitize_filename(path.name)}")
        size = path.stat().st_size
    except OSError as exc:
        raise SourceResolutionError(f"Unable to access PDF file: {sanitize_filename(path.name)}") from exc

    if size > max_bytes:
        size_mb = size / (1024 * 1024)
        limit_mb = max_bytes / (1024 * 1024)
        raise SourceResolutionError(
            f"File size {size_mb:.1f}MB exceeds limit of {limit_mb:.1f}MB",
            hint="Use a smaller PDF file",
        )
    return size


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename for safe usage in responses and audit events.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename with dangerous characters removed
    """
    dangerous_chars = ['/', '\\', '..', '<', '>', ':', '"', '|', '?', '*']
    sanitized = filename
    for char in dangerous_chars:
        sanitized = sanitized.replace(char, '_')

    if len(sanitized) > 255:
        sanitized = sanitized[:255]

    return sanitized
