"""Input validators."""

from apihost.validators.upload import language_hint_for, validate_upload_filename

__all__ = ["language_hint_for", "validate_upload_filename"]
