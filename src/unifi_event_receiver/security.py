"""
Security utilities for the UniFi Event Receiver service.

Event identifiers and device identifiers arrive from the webhook sender and are
embedded verbatim in object keys of the form
``{dayFolder}/{eventId}_{device}_{timestamp}.{ext}``. A hostile or malformed
identifier could otherwise:

- escape its day folder (``../``, embedded ``/`` or ``\\``)
- produce keys that cannot be listed back by prefix (invisible characters,
  surrounding whitespace)
- exceed the S3 key length limit once combined with the rest of the key

Values are validated, never rewritten: a rewritten identifier would break the
deterministic key derivation that makes reprocessing idempotent.
"""

import unicodedata

from .exceptions import UnsafeKeyComponentError

# Leaves room for the day folder, the timestamp and the extension inside
# S3's 1024 byte key limit.
MAX_COMPONENT_BYTES = 255

_INVALID_CONTROL_CHARS: set[int] = set(range(0x00, 0x20)) | {0x7F}

_UNICODE_INVISIBLES: set[int] = {
    # Zero-width characters
    0x200B,  # Zero Width Space
    0x200C,  # Zero Width Non-Joiner
    0x200D,  # Zero Width Joiner
    0xFEFF,  # Zero Width No-Break Space (BOM)

    # Directional override characters
    0x202E,  # Right-to-Left Override
    0x202D,  # Left-to-Right Override
    0x202C,  # Pop Directional Formatting

    # Line/paragraph separators
    0x2028,  # Line Separator
    0x2029,  # Paragraph Separator

    # Other problematic Unicode
    0x00A0,  # Non-breaking space
    0x1680,  # Ogham space mark
}

_PATH_SEPARATORS = {"/", "\\"}


def validate_key_component(field: str, value: object) -> str:
    """
    Validates a single identifier that will become part of an object key.

    Args:
        field: Name of the field, used in the error context.
        value: The identifier as received.

    Returns:
        The identifier, unchanged.

    Raises:
        UnsafeKeyComponentError: If the value cannot be embedded safely.

    Examples:
        >>> validate_key_component("device", "AA:BB:CC:DD:EE:FF")
        'AA:BB:CC:DD:EE:FF'

        >>> validate_key_component("eventId", "../secrets")
        UnsafeKeyComponentError: Unsafe value for 'eventId': contains a path separator
    """
    if not isinstance(value, str):
        raise UnsafeKeyComponentError(field, value, "not a string")

    if not value:
        raise UnsafeKeyComponentError(field, value, "empty")

    if len(value.encode("utf-8")) > MAX_COMPONENT_BYTES:
        raise UnsafeKeyComponentError(
            field, value, f"longer than {MAX_COMPONENT_BYTES} bytes"
        )

    if value in {".", ".."}:
        raise UnsafeKeyComponentError(field, value, "relative path component")

    if value != value.strip():
        raise UnsafeKeyComponentError(field, value, "leading or trailing whitespace")

    for char in value:
        char_code = ord(char)
        if char in _PATH_SEPARATORS:
            raise UnsafeKeyComponentError(field, value, "contains a path separator")
        if char_code in _INVALID_CONTROL_CHARS:
            raise UnsafeKeyComponentError(field, value, "contains control characters")
        # Format characters (Cf) are invisible and always rejected
        if char_code in _UNICODE_INVISIBLES or unicodedata.category(char) == "Cf":
            raise UnsafeKeyComponentError(
                field, value, f"contains invisible character {hex(char_code)}"
            )

    return value
