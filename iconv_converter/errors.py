"""Classified conversion errors.

WHY: A failed conversion can mean the caller named an encoding the
platform lacks, fed truncated or invalid bytes, or ran out of memory.
Callers need a typed exception per cause, not an errno to decode.

HOW: IconvError carries the system error code and the name of the call
that failed. One subclass per failure kind; each also derives from the
builtin exception a Python caller would naturally catch (ValueError for
bad input, MemoryError for allocation failures).

RULES:
- errno is always set (EINVAL, EILSEQ, ENOMEM, or whatever the
  primitive reported)
- str(error) reads "<syscall>: <message> [errno N]"
"""

from __future__ import annotations

import errno as _errno
import os


class IconvError(Exception):
    """Base class for every conversion failure."""

    default_message = "Conversion failed."

    def __init__(
        self,
        errno: int,
        message: str | None = None,
        syscall: str = "iconv",
    ) -> None:
        self.errno = errno
        self.syscall = syscall
        self.message = message or self.default_message
        super().__init__("{}: {} [errno {}]".format(syscall, self.message, errno))


class UnsupportedConversionError(IconvError, ValueError):
    """Raised when the primitive cannot open the (source, target) pair.

    RULES:
    - syscall is "iconv_open"
    - No converter handle exists after this is raised
    """

    default_message = "Conversion not supported."

    def __init__(
        self,
        errno: int = _errno.EINVAL,
        message: str | None = None,
        syscall: str = "iconv_open",
    ) -> None:
        super().__init__(errno, message, syscall)


class IncompleteSequenceError(IconvError, ValueError):
    """Raised when the input ends in the middle of a multibyte character."""

    default_message = "Incomplete character sequence."

    def __init__(self, errno: int = _errno.EINVAL, message: str | None = None) -> None:
        super().__init__(errno, message)


class IllegalSequenceError(IconvError, ValueError):
    """Raised when the input holds bytes that are invalid in the source encoding,
    or characters the target encoding cannot represent."""

    default_message = "Illegal character sequence."

    def __init__(self, errno: int = _errno.EILSEQ, message: str | None = None) -> None:
        super().__init__(errno, message)


class OutOfMemoryError(IconvError, MemoryError):
    """Raised when the output buffer or the primitive cannot allocate."""

    default_message = "Out of memory."

    def __init__(self, errno: int = _errno.ENOMEM, message: str | None = None) -> None:
        super().__init__(errno, message)


class OtherSystemError(IconvError):
    """Raised for any other failure the primitive reports.

    HOW: The message defaults to os.strerror() of the error code so the
    diagnostic matches what the platform would print.
    """

    def __init__(
        self,
        errno: int,
        message: str | None = None,
        syscall: str = "iconv",
    ) -> None:
        super().__init__(errno, message or os.strerror(errno), syscall)
