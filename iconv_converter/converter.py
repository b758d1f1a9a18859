"""Converter handle: one primitive bound to a (source, target) pair.

WHY: Callers think "convert from Shift_JIS to UTF-8", open that once, and
reuse it for many buffers. The handle owns the stateful primitive, fixes
encoding-name spellings, and guarantees the primitive is released.

HOW: The constructor applies fix_encoding_name() to both names and opens
the configured primitive. Note the argument order: Iconv takes
(source, target) while the primitive, like iconv_open(3), takes
(target, source). convert() serializes calls with a lock and delegates
to the streaming engine.

RULES:
- (source, target) is fixed for the handle's lifetime
- Prefer ``with Iconv(...) as cd:`` or an explicit close(); __del__ is a
  best-effort fallback and does not run if the interpreter is killed
- close() releases the primitive exactly once; later calls are no-ops
- convert() after close() raises ValueError
- str input is converted from its UTF-8 encoding
"""

from __future__ import annotations

import logging
import threading

from iconv_converter import config, engine
from iconv_converter.config import fix_encoding_name
from iconv_converter.primitives import ConversionPrimitive, get_primitive

logger = logging.getLogger(__name__)


class Iconv:
    """A reusable converter FROM ``source`` TO ``target``.

    WHY: Mirrors the classic iconv descriptor, but with Python resource
    handling and exceptions instead of errno.

    HOW: Opens ``backend.open(target, source)`` on construction. Each
    convert() call resets the primitive, so no state leaks from one call
    into the next.

    RULES:
    - backend may be a registry name ("libiconv", "codecs") or a
      ConversionPrimitive subclass; default is config.ICONV_BACKEND
    - Raises UnsupportedConversionError when the pair cannot be opened
    - Raises ValueError for empty encoding names

    Args:
        source: Encoding of the input bytes, e.g. "UTF-8" or "utf8".
        target: Encoding of the output bytes.
        backend: Which conversion primitive to open.
    """

    def __init__(
        self,
        source: str,
        target: str,
        *,
        backend: str | type[ConversionPrimitive] | None = None,
    ) -> None:
        # set first so __del__ is safe if anything below raises
        self._primitive: ConversionPrimitive | None = None
        self._lock = threading.Lock()

        if not source or not target:
            raise ValueError("source and target encodings must be non-empty")

        if backend is None:
            backend = config.ICONV_BACKEND
        primitive_class = get_primitive(backend) if isinstance(backend, str) else backend

        self.source = fix_encoding_name(source)
        self.target = fix_encoding_name(target)
        self.backend = primitive_class.name or primitive_class.__name__

        # iconv_open order: target first
        self._primitive = primitive_class.open(self.target, self.source)
        logger.debug("Opened %s converter %s -> %s", self.backend, self.source, self.target)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return "<Iconv {} -> {} ({}, {})>".format(self.source, self.target, self.backend, state)

    @property
    def closed(self) -> bool:
        return self._primitive is None

    def convert(self, data: bytes | bytearray | memoryview | str) -> bytes:
        """Convert a whole buffer and return the result.

        RULES:
        - bytes, bytearray and memoryview are converted as-is
        - str is encoded as UTF-8 first
        - Any other type raises TypeError
        - The result is complete or an IconvError is raised; never both

        Raises:
            IncompleteSequenceError: Input ends mid-character.
            IllegalSequenceError: Input is invalid, or unrepresentable in
                the target encoding.
            OutOfMemoryError: The output buffer could not grow.
            OtherSystemError: The primitive failed for another reason.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        elif not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(
                "convert() argument must be str or a bytes-like object, not {}".format(
                    type(data).__name__
                )
            )

        with self._lock:
            if self._primitive is None:
                raise ValueError("convert() on a closed converter")
            return engine.convert(self._primitive, data)

    def close(self) -> None:
        """Release the primitive. Safe to call more than once."""
        with self._lock:
            primitive, self._primitive = self._primitive, None
        if primitive is not None:
            primitive.close()
            logger.debug("Closed %s converter %s -> %s", self.backend, self.source, self.target)

    def __enter__(self) -> Iconv:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self) -> None:
        # the lock may already be gone during interpreter shutdown
        primitive = getattr(self, "_primitive", None)
        if primitive is not None:
            self._primitive = None
            primitive.close()
