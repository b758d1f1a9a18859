"""System iconv(3) driven through ctypes.

WHY: The C library's iconv knows every encoding the platform ships,
including the stateful ones (ISO-2022-*, UTF-7) that need shift sequences
and explicit flushing. Calling it directly gives the converter exactly
the behaviour of the system iconv without a compiled extension.

HOW: The shared library is located once per process (ICONV_LIBRARY, then
the C library, then a standalone libiconv) and its three functions are
bound with explicit argtypes. Each step passes pointers into the caller's
buffers at the given offsets; the distance iconv moved them becomes
StepResult.consumed/produced. errno is read via ctypes' private errno copy.

RULES:
- iconv_open takes (target, source), same as the C function
- E2BIG → OUTPUT_TOO_SMALL, EINVAL → INCOMPLETE_INPUT, EILSEQ →
  ILLEGAL_INPUT, ENOMEM → OUT_OF_MEMORY, anything else → OTHER
- The ctypes view of the output buffer is dropped before step() returns,
  so the caller is free to resize the bytearray afterwards
- GNU libiconv's prefixed symbols (libiconv_open, ...) are accepted
"""

from __future__ import annotations

import ctypes
import ctypes.util
import errno
import logging
import threading

from iconv_converter import config
from iconv_converter.errors import OtherSystemError, UnsupportedConversionError
from iconv_converter.primitives.base import ConversionPrimitive, StepResult, StepStatus

logger = logging.getLogger(__name__)

_ICONV_FAILED = ctypes.c_size_t(-1).value
_INVALID_HANDLE = ctypes.c_void_p(-1).value

# Stand-in target address when the output tail has zero capacity.
_NO_ROOM = ctypes.create_string_buffer(1)

_ERRNO_STATUS: dict[int, StepStatus] = {
    errno.E2BIG: StepStatus.OUTPUT_TOO_SMALL,
    errno.EINVAL: StepStatus.INCOMPLETE_INPUT,
    errno.EILSEQ: StepStatus.ILLEGAL_INPUT,
    errno.ENOMEM: StepStatus.OUT_OF_MEMORY,
}

_size_p = ctypes.POINTER(ctypes.c_size_t)
_void_pp = ctypes.POINTER(ctypes.c_void_p)


class _IconvLibrary:
    """The three iconv entry points of one loaded shared library."""

    def __init__(self, cdll: ctypes.CDLL, prefix: str, path: str | None) -> None:
        self.path = path or "<process>"
        self.iconv_open = getattr(cdll, prefix + "iconv_open")
        self.iconv_open.argtypes = [ctypes.c_char_p, ctypes.c_char_p]
        self.iconv_open.restype = ctypes.c_void_p

        self.iconv = getattr(cdll, prefix + "iconv")
        self.iconv.argtypes = [ctypes.c_void_p, _void_pp, _size_p, _void_pp, _size_p]
        self.iconv.restype = ctypes.c_size_t

        self.iconv_close = getattr(cdll, prefix + "iconv_close")
        self.iconv_close.argtypes = [ctypes.c_void_p]
        self.iconv_close.restype = ctypes.c_int


_library: _IconvLibrary | None = None
_library_lock = threading.Lock()


def _candidate_paths() -> list[str | None]:
    if config.ICONV_LIBRARY:
        return [config.ICONV_LIBRARY]
    # None loads the running process itself, which links the C library
    candidates: list[str | None] = [ctypes.util.find_library("c"), None]
    standalone = ctypes.util.find_library("iconv")
    if standalone:
        candidates.append(standalone)
    return candidates


def load_library() -> _IconvLibrary:
    """Locate and bind the iconv shared library, once per process.

    RULES:
    - ICONV_LIBRARY, when set, is the only candidate
    - The first candidate exporting iconv_open or libiconv_open wins
    - Raises OtherSystemError(ENOENT) when no candidate qualifies
    """
    global _library
    with _library_lock:
        if _library is not None:
            return _library

        tried: list[str] = []
        for path in _candidate_paths():
            tried.append(path or "<process>")
            try:
                cdll = ctypes.CDLL(path, use_errno=True)
            except (OSError, TypeError) as exc:
                logger.debug("Cannot load %s: %s", path, exc)
                continue
            for prefix in ("", "lib"):
                if hasattr(cdll, prefix + "iconv_open"):
                    _library = _IconvLibrary(cdll, prefix, path)
                    logger.debug("Using %siconv from %s", prefix, path or "<process>")
                    return _library

        raise OtherSystemError(
            errno.ENOENT,
            "No iconv library found (tried {})".format(", ".join(tried)),
            syscall="dlopen",
        )


def _status_for(code: int) -> StepStatus:
    return _ERRNO_STATUS.get(code, StepStatus.OTHER)


class LibiconvPrimitive(ConversionPrimitive):
    """One iconv_t descriptor from the system iconv."""

    name = "libiconv"

    def __init__(self, library: _IconvLibrary, handle: int) -> None:
        self._lib = library
        self._handle: int | None = handle

    @classmethod
    def open(cls, target: str, source: str) -> LibiconvPrimitive:
        library = load_library()
        try:
            target_name = target.encode("ascii")
            source_name = source.encode("ascii")
        except UnicodeEncodeError:
            raise UnsupportedConversionError(
                errno.EINVAL, "Conversion not supported (non-ASCII encoding name)."
            ) from None

        ctypes.set_errno(0)
        handle = library.iconv_open(target_name, source_name)
        if handle is None or handle == _INVALID_HANDLE:
            raise UnsupportedConversionError(ctypes.get_errno() or errno.EINVAL)
        return cls(library, handle)

    def _descriptor(self) -> int:
        if self._handle is None:
            raise ValueError("iconv descriptor is closed")
        return self._handle

    def reset(self) -> None:
        self._lib.iconv(self._descriptor(), None, None, None, None)

    def step(
        self,
        source: bytes,
        source_pos: int,
        target: bytearray,
        target_pos: int,
    ) -> StepResult:
        in_base = ctypes.cast(ctypes.c_char_p(source), ctypes.c_void_p).value or 0
        in_ptr = ctypes.c_void_p(in_base + source_pos)
        in_left = ctypes.c_size_t(len(source) - source_pos)
        return self._call(in_ptr, in_left, target, target_pos)

    def flush(self, target: bytearray, target_pos: int) -> StepResult:
        return self._call(None, None, target, target_pos)

    def _call(
        self,
        in_ptr: ctypes.c_void_p | None,
        in_left: ctypes.c_size_t | None,
        target: bytearray,
        target_pos: int,
    ) -> StepResult:
        in_total = in_left.value if in_left is not None else 0
        capacity = max(len(target) - target_pos, 0)
        window = None
        if capacity:
            window = (ctypes.c_char * capacity).from_buffer(target, target_pos)
            out_ptr = ctypes.c_void_p(ctypes.addressof(window))
        else:
            out_ptr = ctypes.c_void_p(ctypes.addressof(_NO_ROOM))
        out_left = ctypes.c_size_t(capacity)

        ctypes.set_errno(0)
        rv = self._lib.iconv(
            self._descriptor(),
            ctypes.byref(in_ptr) if in_ptr is not None else None,
            ctypes.byref(in_left) if in_left is not None else None,
            ctypes.byref(out_ptr),
            ctypes.byref(out_left),
        )
        code = ctypes.get_errno()
        # release the buffer export so the caller can resize target
        del window

        consumed = in_total - in_left.value if in_left is not None else 0
        produced = capacity - out_left.value
        if rv == _ICONV_FAILED:
            return StepResult(_status_for(code), consumed, produced, code)
        return StepResult(StepStatus.OK, consumed, produced)

    def close(self) -> None:
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        if self._lib.iconv_close(handle) != 0:
            logger.warning("iconv_close failed: errno %d", ctypes.get_errno())
