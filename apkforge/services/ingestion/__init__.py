"""Upload validation service."""

from .service import UploadValidator, format_file_size

__all__ = ["UploadValidator", "format_file_size"]
