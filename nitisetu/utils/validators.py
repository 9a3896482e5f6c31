"""
Utility functions for upload validation and file handling
"""
import re
import uuid
from pathlib import Path
from typing import List, Optional


def validate_file_extension(filename: str, allowed_extensions: List[str]) -> bool:
    """
    Validate file extension

    Args:
        filename: Name of the file to validate
        allowed_extensions: Lower-case extensions with leading dot

    Returns:
        True if extension is allowed, False otherwise
    """
    file_ext = Path(filename).suffix.lower()
    return file_ext in allowed_extensions


def validate_file_size(file_size: int, max_size: int) -> bool:
    """True if a non-empty file is within ``max_size`` bytes"""
    return 0 < file_size <= max_size


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename for safe storage

    Args:
        filename: Original filename

    Returns:
        Sanitized filename
    """
    # Drop any directory components, then replace unsafe characters
    sanitized = re.sub(r'[<>:"/\\|?*\x00-\x1f]', '_', Path(filename).name)

    # Remove leading/trailing dots and spaces
    sanitized = sanitized.strip('. ')

    # Ensure filename is not empty
    if not sanitized:
        sanitized = "unnamed_file"

    # Limit length
    if len(sanitized) > 255:
        name, ext = Path(sanitized).stem, Path(sanitized).suffix
        max_name_length = 255 - len(ext)
        sanitized = name[:max_name_length] + ext

    return sanitized


def staged_upload_path(upload_dir: str, filename: str) -> Path:
    """Unique path inside ``upload_dir`` for a sanitized upload"""
    return Path(upload_dir) / f"{uuid.uuid4().hex}_{sanitize_filename(filename)}"


def parse_comma_list(value: Optional[str]) -> List[str]:
    """Split a comma-separated form field into trimmed, non-empty items"""
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in human-readable format

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string
    """
    if size_bytes == 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while size_bytes >= 1024 and i < len(size_names) - 1:
        size_bytes /= 1024.0
        i += 1

    return f"{size_bytes:.1f} {size_names[i]}"
