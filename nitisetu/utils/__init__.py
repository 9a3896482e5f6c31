"""
Utility functions for the Niti-Setu scheme retrieval service
"""

from .similarity import cosine_similarities, cosine_scores, cosine_similarity, cosine_score
from .validators import (
    validate_file_extension,
    validate_file_size,
    sanitize_filename,
    staged_upload_path,
    parse_comma_list,
    format_file_size
)

__all__ = [
    "cosine_similarities",
    "cosine_scores",
    "cosine_similarity",
    "cosine_score",
    "validate_file_extension",
    "validate_file_size",
    "sanitize_filename",
    "staged_upload_path",
    "parse_comma_list",
    "format_file_size"
]
