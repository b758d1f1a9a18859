"""Iconv Converter: streaming character-encoding conversion.

WHY: Byte strings arrive in whatever encoding their producer chose
(Shift_JIS mail, Latin-1 CSV exports, UTF-16 logs). Callers need to turn
them into another encoding in one call, with a precise error instead of
a silently truncated or garbled result.

HOW: Two layers. A converter handle (``Iconv``) owns one stateful
conversion primitive bound to a (source, target) pair. The streaming
engine drives that primitive over the whole input, growing its output
buffer on demand, flushing trailing shift sequences, and returning an
exactly-sized ``bytes`` object.

RULES:
- Public argument order is (source, target)
- A conversion returns the full output or raises an IconvError subclass,
  never both
- Handles are released by ``close()`` or the ``with`` statement
"""

from iconv_converter.converter import Iconv
from iconv_converter.errors import (
    IconvError,
    IllegalSequenceError,
    IncompleteSequenceError,
    OtherSystemError,
    OutOfMemoryError,
    UnsupportedConversionError,
)

__version__ = "0.1.0"

__all__ = [
    "Iconv",
    "IconvError",
    "IllegalSequenceError",
    "IncompleteSequenceError",
    "OtherSystemError",
    "OutOfMemoryError",
    "UnsupportedConversionError",
    "__version__",
]
