"""Unit tests for upload filename validation."""

from __future__ import annotations

import pytest

from apihost.errors import ValidationError
from apihost.validators.upload import language_hint_for, validate_upload_filename

ALLOWED = [".py", ".js", ".go", ".ts"]


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("sum.py", "sum.py"),
        ("SUM.PY", "SUM.PY"),
        ("dir/handler.ts", "handler.ts"),
        ("../../etc/main.go", "main.go"),
        ("C:\\Users\\dev\\index.js", "index.js"),
    ],
)
def test_valid_filenames(filename: str, expected: str):
    assert validate_upload_filename(filename, allowed_extensions=ALLOWED) == expected


@pytest.mark.parametrize(
    ("filename", "reason"),
    [
        (None, "missing_file"),
        ("", "missing_file"),
        ("sum\x00.py", "null_byte"),
        ("..", "invalid_filename"),
        ("sum.rb", "unsupported_extension"),
        ("sum", "unsupported_extension"),
        ("sum.py.txt", "unsupported_extension"),
    ],
)
def test_invalid_filenames(filename, reason: str):
    with pytest.raises(ValidationError) as exc_info:
        validate_upload_filename(filename, allowed_extensions=ALLOWED)
    assert exc_info.value.details["reason"] == reason


def test_unsupported_extension_lists_allowed():
    with pytest.raises(ValidationError) as exc_info:
        validate_upload_filename("x.rb", allowed_extensions=ALLOWED)
    assert exc_info.value.details["allowed"] == sorted(ALLOWED)


@pytest.mark.parametrize(
    ("filename", "hint"),
    [("a.py", "python"), ("a.JS", "nodejs"), ("a.ts", "nodejs"), ("a.go", "go"), ("a", "unknown")],
)
def test_language_hint(filename: str, hint: str):
    assert language_hint_for(filename) == hint
