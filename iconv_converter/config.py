"""Configuration constants, encoding-name fixups, and .env loading.

WHY: Backend choice, library location, and buffer sizing are deployment
concerns, not code. Keeping them as plain module constants means they
are easy to find and override without touching the engine.

HOW: python-dotenv loads the .env file on import. Constants are read
from environment variables with sensible defaults. The alias table used
by fix_encoding_name() is plain data, not buried in logic.

RULES:
- ICONV_BACKEND selects the default conversion primitive ("libiconv")
- ICONV_LIBRARY optionally points at a specific iconv shared library
- ICONV_INITIAL_CAPACITY is the first output allocation (default 16)
- ICONV_LOG_LEVEL is used by the CLI when configuring logging
- Unrecognized encoding names pass through fix_encoding_name() unchanged
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Encoding-name fixups
# ---------------------------------------------------------------------------

ENCODING_ALIASES: dict[str, str] = {
    "UTF7": "UTF-7",
    "UTF8": "UTF-8",
    "UTF16": "UTF-16",
    "UTF16LE": "UTF-16LE",
    "UTF16BE": "UTF-16BE",
    "UTF32": "UTF-32",
    "UTF32LE": "UTF-32LE",
    "UTF32BE": "UTF-32BE",
}
"""Unhyphenated UTF names (upper-cased) → the spelling every iconv knows."""


def fix_encoding_name(name: str) -> str:
    """Return the canonical spelling of a UTF encoding name.

    WHY: Some iconv implementations (notably GNU libiconv) recognize
    "UTF-8" but not "UTF8". Users type both, so the converter fixes the
    common spellings before opening a primitive.

    HOW: Case-insensitive lookup in ENCODING_ALIASES.

    RULES:
    - "utf8", "UTF8", "Utf8" all become "UTF-8"
    - Names that already carry the hyphen are returned as given
    - Unknown names are returned as given (the primitive decides)
    """
    return ENCODING_ALIASES.get(name.upper(), name)


# ---------------------------------------------------------------------------
# Runtime configuration
# ---------------------------------------------------------------------------

ICONV_BACKEND = os.getenv("ICONV_BACKEND", "libiconv").strip().lower()
ICONV_LIBRARY = os.getenv("ICONV_LIBRARY", "").strip() or None
ICONV_LOG_LEVEL = os.getenv("ICONV_LOG_LEVEL", "WARNING").strip().upper()


def load_initial_capacity() -> int:
    """Read ICONV_INITIAL_CAPACITY from the environment.

    RULES:
    - Defaults to 16 bytes
    - Raises ValueError for non-integers and values below 1
    """
    raw = os.getenv("ICONV_INITIAL_CAPACITY", "16").strip()
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            "ICONV_INITIAL_CAPACITY must be an integer, got {!r}".format(raw)
        ) from None
    if value < 1:
        raise ValueError(
            "ICONV_INITIAL_CAPACITY must be at least 1, got {}".format(value)
        )
    return value


INITIAL_CAPACITY = load_initial_capacity()
