"""Text sanitization utilities to prevent stored XSS."""

import re

_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)


def strip_script_tags(value: str | None) -> str | None:
    """Remove ``<script>...</script>`` blocks from user-supplied text.

    Non-string values pass through untouched.
    """
    if not isinstance(value, str):
        return value
    return _SCRIPT_BLOCK.sub("", value)
