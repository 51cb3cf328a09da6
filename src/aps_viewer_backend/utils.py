"""
Utility functions for file system operations and string sanitization.

This module provides helper functions for:
- Sanitizing client-provided filenames for safe temporary storage
- Ensuring directory creation with proper error handling
"""

from __future__ import annotations

import re
from pathlib import Path

# Pattern to match characters that are not safe for filesystem paths
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")


def sanitize_filename(filename: str, fallback: str = "model") -> str:
    """
    Generate a filesystem-safe name for a stored upload.

    Only the final path component is kept, so names such as ``../x.rvt``
    cannot escape the upload directory. The extension is preserved because
    APS picks the translator from it.

    Args:
        filename: The filename sent by the client
        fallback: Stem to use if sanitization leaves nothing

    Returns:
        A filesystem-safe filename

    Example:
        >>> sanitize_filename("My House (v2).rvt")
        "My-House-v2.rvt"
        >>> sanitize_filename("../../etc/passwd")
        "passwd"
    """
    name = Path(filename.replace("\\", "/")).name
    stem, suffix = Path(name).stem, Path(name).suffix
    cleaned = SANITIZE_PATTERN.sub("-", stem.strip()).strip("-_.") or fallback
    return f"{cleaned}{SANITIZE_PATTERN.sub('', suffix)}"


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    This is a safe idempotent operation that won't fail if the directory
    already exists.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining

    Raises:
        OSError: If directory creation fails due to permissions or other I/O errors
    """
    path.mkdir(parents=True, exist_ok=True)
    return path
