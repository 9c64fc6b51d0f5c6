"""
Input validation utilities for uploads and free-text search.
"""
import os
from pathlib import Path
from typing import Tuple, Optional

MAX_FILENAME_LENGTH = 255
MAX_SEARCH_LENGTH = 100


def sanitize_filename(filename: str) -> str:
    """
    Reduce a client-supplied file name to its base name.

    The declared name is otherwise kept as given, spaces, punctuation and
    non-ASCII letters included; escaping for the download header happens in
    core.utils.content_disposition.

    Args:
        filename: Name supplied by the client

    Returns:
        Base name without directory components or control characters
    """
    if not filename:
        raise ValueError("Filename cannot be empty")

    # Windows clients sometimes send the full path
    filename = filename.replace("\\", "/").rsplit("/", 1)[-1]
    filename = "".join(char for char in filename if char.isprintable())

    if len(filename) > MAX_FILENAME_LENGTH:
        stem, ext = os.path.splitext(filename)
        filename = stem[:MAX_FILENAME_LENGTH - len(ext)] + ext

    if not filename.strip() or filename in (".", ".."):
        raise ValueError("Filename became empty after sanitization")

    return filename


def validate_extension(filename: str, allowed_extensions: set) -> bool:
    """
    Validate file extension.

    Args:
        filename: Filename to check
        allowed_extensions: Set of allowed extensions (e.g., {".csv"})
    """
    if not filename:
        return False

    ext = Path(filename).suffix.lower()
    return ext in allowed_extensions


def validate_file_size(file_size: int, max_size_bytes: int) -> Tuple[bool, Optional[str]]:
    """
    Validate file size.

    Args:
        file_size: File size in bytes
        max_size_bytes: Maximum allowed size in bytes

    Returns:
        Tuple of (is_valid, error_message)
    """
    if file_size <= 0:
        return False, "File is empty"

    if file_size > max_size_bytes:
        max_size_mb = max_size_bytes / (1024 * 1024)
        actual_size_mb = file_size / (1024 * 1024)
        return False, f"File too large: {actual_size_mb:.2f}MB (max: {max_size_mb:.0f}MB)"

    return True, None


def clean_search_term(search: Optional[str]) -> Optional[str]:
    """Trim a search box value; blank means no filter."""
    if search is None:
        return None
    search = search.strip()[:MAX_SEARCH_LENGTH]
    return search or None
