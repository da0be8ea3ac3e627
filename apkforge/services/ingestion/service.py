"""
Ingestion Service.

Validates uploaded project archives before anything touches the disk:
extension, size bounds, filename safety and the ZIP signature.
"""

from __future__ import annotations

from ...core.config import UploadConfig
from ...core.exceptions import ValidationError
from ...core.logging import get_logger
from ...models.build import FileInfo, ValidationReport

logger = get_logger(__name__)

ZIP_MAGIC = b"PK"
_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def format_file_size(size: int) -> str:
    """Render a byte count the way the upload UI shows it.

    >>> format_file_size(0)
    '0 Bytes'
    >>> format_file_size(1536)
    '1.5 KB'
    >>> format_file_size(500 * 1024 * 1024)
    '500 MB'
    """
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    rendered = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{rendered} {_SIZE_UNITS[unit]}"


class UploadValidator:
    """Checks an uploaded file against the configured upload limits.

    Only the first bytes of the payload are inspected, so callers can pass
    a small head buffer instead of the whole upload.
    """

    def __init__(self, config: UploadConfig) -> None:
        self.config = config

    def validate(
        self,
        filename: str,
        size: int,
        head: bytes,
        content_type: str | None = None,
    ) -> ValidationReport:
        """Collect every reason an upload would be rejected.

        Args:
            filename: Client-supplied file name
            size: Total payload size in bytes
            head: Leading bytes of the payload (at least two for the signature)
            content_type: Declared MIME type, if any

        Returns:
            Report with itemized errors and warnings
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not filename.lower().endswith(".zip"):
            errors.append("Only ZIP files are supported")

        max_size = self.config.max_size_bytes
        if size == 0:
            errors.append("File is empty")
        elif size > max_size:
            errors.append(
                f"File size ({format_file_size(size)}) exceeds maximum limit ({format_file_size(max_size)})"
            )

        if content_type and content_type not in self.config.allowed_mime_types:
            warnings.append(f"Unexpected file type: {content_type}. Expected ZIP format")

        if len(filename) > self.config.max_filename_length:
            errors.append(f"File name is too long (maximum {self.config.max_filename_length} characters)")

        if ".." in filename or "/" in filename or "\\" in filename:
            errors.append("File name contains invalid characters")

        zip_valid = head[:2] == ZIP_MAGIC
        if not zip_valid:
            errors.append("File is not a valid ZIP archive")

        if size > self.config.large_file_warning_bytes:
            warnings.append("Large file detected. Upload may take longer")

        report = ValidationReport(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            file_info=FileInfo(name=filename, size=size, type=content_type or "application/zip"),
            zip_valid=zip_valid,
        )
        logger.debug("Upload validated", filename=filename, size=size, valid=report.is_valid)
        return report

    def ensure_valid(
        self,
        filename: str,
        size: int,
        head: bytes,
        content_type: str | None = None,
    ) -> ValidationReport:
        """Validate and raise if the upload must be rejected.

        Raises:
            ValidationError: With every itemized reason
        """
        report = self.validate(filename, size, head, content_type)
        if not report.is_valid:
            raise ValidationError(
                message="File validation failed",
                context={"filename": filename, "size": size},
                errors=report.errors,
                warnings=report.warnings,
            )
        return report
