# passkey_auth/core/log_utils.py
"""Utilities for safe logging of user-controlled values.

Strips what could forge or hide log entries:
- ANSI escape sequences (terminal manipulation)
- Control characters and raw line breaks (log forging)
- Bidirectional controls and zero-width characters (visual spoofing)

WARNING: This does NOT prevent format-string injection.
Always use: logger.info("%s", user_input) NOT logger.info(user_input)
"""

from __future__ import annotations

import re
from typing import Any

_ANSI_RE = re.compile(
    r"""
    \x1B
    (?:
        \] (?: [^\x07\x1B]* (?:\x07|\x1B\\))  # OSC ... BEL or ST
      | \[ [0-?]* [ -/]* [@-~]             # CSI ... Cmd
      | [@-Z\\-_]                          # 7-bit C1 control (Fe)
    )
    """,
    re.VERBOSE,
)

# Control characters other than \t, \n and \r, which are escaped separately.
_UNSAFE_CTRL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")

_BIDI_RE = re.compile(r"[\u202A-\u202E\u2066-\u2069\u200E\u200F]")

_INVISIBLE_RE = re.compile(r"[\u200B-\u200D\u2060\u00AD]")

_TRUNCATED_SUFFIX = "...[truncated]"


def sanitize_for_log(value: Any, max_length: int | None = 200) -> str:
    """Sanitize a user-controlled value for line-oriented logs.

    Args:
        value: Any value; converted with str(). Bytes are decoded leniently.
        max_length: Maximum output length. None for no limit.

    Returns:
        A single-line string safe to interpolate into a log record.

    Examples:
        >>> sanitize_for_log("Hello\\nWorld")
        'Hello\\\\nWorld'
        >>> sanitize_for_log("User: \\x1b[31mRED\\x1b[0m")
        'User: RED'
        >>> sanitize_for_log(None)
        '<None>'
    """
    if value is None:
        return "<None>"

    if isinstance(value, bytes | bytearray):
        text = bytes(value).decode("utf-8", errors="backslashreplace")
    else:
        try:
            text = str(value)
        except Exception:  # noqa: BLE001 - buggy __str__ must not break logging
            return f"<unprintable {type(value).__name__}>"

    text = _ANSI_RE.sub("", text)

    # Backslashes first so the escapes below stay unambiguous.
    text = (
        text.replace("\\", "\\\\")
        .replace("\r", "\\r")
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )

    text = _UNSAFE_CTRL_RE.sub("", text)
    text = _BIDI_RE.sub("", text)
    text = _INVISIBLE_RE.sub("", text)

    if max_length is not None and len(text) > max_length:
        keep = max(0, max_length - len(_TRUNCATED_SUFFIX))
        text = text[:keep] + _TRUNCATED_SUFFIX

    return text
