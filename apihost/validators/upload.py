"""Upload filename validation.

The extension is the only thing that decides whether a file is accepted;
the declared content-type is ignored.
"""

from __future__ import annotations

from pathlib import PurePosixPath, PureWindowsPath

from apihost.errors import ValidationError

# Extension -> runtime the file is written for
_LANGUAGE_BY_EXTENSION = {
    ".py": "python",
    ".js": "nodejs",
    ".ts": "nodejs",
    ".go": "go",
}


def validate_upload_filename(
    filename: str | None,
    *,
    allowed_extensions: list[str] | tuple[str, ...],
    field_name: str = "code",
) -> str:
    """Validate an uploaded filename and reduce it to its basename.

    Rules:
    1. Must not be empty
    2. Must not contain null bytes
    3. Directory components (posix or windows style) are dropped
    4. Extension (case-insensitive) must be in the allowed set

    Returns:
        The basename to store the artifact under

    Raises:
        ValidationError: If validation fails

    Examples:
        >>> validate_upload_filename("sum.py", allowed_extensions=[".py"])
        'sum.py'
        >>> validate_upload_filename("../../etc/sum.py", allowed_extensions=[".py"])
        'sum.py'
    """
    if not filename:
        raise ValidationError(
            message=f"{field_name} file is required",
            details={"field": field_name, "reason": "missing_file"},
        )

    if "\x00" in filename:
        raise ValidationError(
            message=f"{field_name} filename contains invalid characters",
            details={"field": field_name, "reason": "null_byte"},
        )

    basename = PurePosixPath(PureWindowsPath(filename).name).name
    if basename in ("", ".", ".."):
        raise ValidationError(
            message=f"{field_name} filename is invalid",
            details={"field": field_name, "reason": "invalid_filename"},
        )

    extension = PurePosixPath(basename).suffix.lower()
    allowed = sorted({ext.lower() for ext in allowed_extensions})
    if extension not in allowed:
        raise ValidationError(
            message=f"Unsupported file extension: {extension or '(none)'}",
            details={
                "field": field_name,
                "reason": "unsupported_extension",
                "allowed": allowed,
            },
        )

    return basename


def language_hint_for(filename: str) -> str:
    """Runtime a file is most likely written for, from its extension."""
    return _LANGUAGE_BY_EXTENSION.get(PurePosixPath(filename).suffix.lower(), "unknown")
