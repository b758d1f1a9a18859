"""Streaming conversion engine.

WHY: A conversion primitive converts as much as fits into the output
space it is given and then stops. Turning that into "give me the whole
input in the target encoding" needs a loop that grows the output,
retries, drains the trailing shift state, and reports failures without
ever leaking a half-built result. That loop is this module.

HOW: Three pieces:
  ConversionRequest: the input bytes and a read cursor
  ConversionBuffer: a bytearray plus a write cursor kept as an offset,
      so growing (which may move the storage) never invalidates it
  convert(): resets the primitive, runs the grow-and-retry loop, then
      flushes and shrinks the buffer to its logical length

RULES:
- Capacity grows geometrically: max(initial_capacity, capacity * 2)
- OUTPUT_TOO_SMALL is the only status that is retried, and only after
  growing the buffer
- The flush is retried at most once, after one more growth
- Every other failure status raises the matching IconvError subclass
  after the buffer has been released
- A step that reports OK must consume all remaining input; one that
  stops short raises OtherSystemError(EIO)
- A failed shrink is not an error; the result is still exact because it
  is cut at the logical length
"""

from __future__ import annotations

import errno
import logging

from iconv_converter.config import INITIAL_CAPACITY
from iconv_converter.errors import (
    IconvError,
    IllegalSequenceError,
    IncompleteSequenceError,
    OtherSystemError,
    OutOfMemoryError,
)
from iconv_converter.primitives.base import ConversionPrimitive, StepResult, StepStatus

logger = logging.getLogger(__name__)

_STATUS_ERRORS: dict[StepStatus, type[IconvError]] = {
    StepStatus.INCOMPLETE_INPUT: IncompleteSequenceError,
    StepStatus.ILLEGAL_INPUT: IllegalSequenceError,
    StepStatus.OUT_OF_MEMORY: OutOfMemoryError,
}


class ConversionRequest:
    """The input span of one conversion and how much of it is consumed.

    RULES:
    - position only moves forward
    - The request is done when remaining reaches zero
    """

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.position = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.position

    def advance(self, count: int) -> None:
        if count < 0 or count > self.remaining:
            raise ValueError(
                "cannot advance by {} with {} bytes remaining".format(count, self.remaining)
            )
        self.position += count


class ConversionBuffer:
    """Growable output storage with a write cursor.

    WHY: The output size of a conversion is unknown up front. The buffer
    starts empty and doubles whenever the primitive runs out of room.

    HOW: ``storage`` is a bytearray whose length is the capacity. The
    write cursor ``length`` is an offset, so resizing the bytearray never
    invalidates it. All resizing goes through _resize().

    RULES:
    - 0 <= length <= capacity at all times
    - Growth keeps every written byte and the cursor offset
    - shrink() happens once, at the end of a successful conversion
    """

    def __init__(self, initial_capacity: int = INITIAL_CAPACITY) -> None:
        if initial_capacity < 1:
            raise ValueError("initial_capacity must be at least 1")
        self.initial_capacity = initial_capacity
        self.storage = bytearray()
        self.length = 0

    @property
    def capacity(self) -> int:
        return len(self.storage)

    @property
    def tail(self) -> int:
        """Unused capacity after the write cursor."""
        return self.capacity - self.length

    def _resize(self, size: int) -> None:
        if size > len(self.storage):
            self.storage.extend(bytes(size - len(self.storage)))
        else:
            del self.storage[size:]

    def grow(self) -> None:
        """Double the capacity (at least initial_capacity).

        Raises:
            OutOfMemoryError: The allocation failed. Written bytes are
                left untouched.
        """
        new_capacity = max(self.initial_capacity, self.capacity * 2)
        try:
            self._resize(new_capacity)
        except MemoryError:
            raise OutOfMemoryError() from None
        logger.debug("Grew conversion buffer to %d bytes (%d used)", new_capacity, self.length)

    def advance(self, count: int) -> None:
        if count < 0 or count > self.tail:
            raise ValueError(
                "cannot advance by {} with {} bytes of room".format(count, self.tail)
            )
        self.length += count

    def shrink(self) -> None:
        """Drop the unused tail. Failure to reallocate is ignored."""
        try:
            self._resize(self.length)
        except MemoryError:
            logger.debug(
                "Could not shrink conversion buffer from %d to %d bytes; keeping it",
                self.capacity,
                self.length,
            )

    def release(self) -> None:
        self.storage = bytearray()
        self.length = 0

    def getvalue(self) -> bytes:
        """The logical contents, exactly ``length`` bytes."""
        view = memoryview(self.storage)
        try:
            return view[:self.length].tobytes()
        finally:
            view.release()


def raise_for_status(result: StepResult) -> None:
    """Raise the IconvError subclass that matches a failure status.

    RULES:
    - OK returns None
    - OUTPUT_TOO_SMALL reaching this point is an OtherSystemError; the
      engine only retries it where growth can help
    """
    if result.status is StepStatus.OK:
        return
    error_class = _STATUS_ERRORS.get(result.status)
    if error_class is None:
        raise OtherSystemError(result.errno)
    if result.errno:
        raise error_class(result.errno)
    raise error_class()


def _as_bytes(data) -> bytes:
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    raise TypeError(
        "expected a bytes-like object, got {}".format(type(data).__name__)
    )


def convert(
    primitive: ConversionPrimitive,
    data: bytes | bytearray | memoryview,
    *,
    initial_capacity: int = INITIAL_CAPACITY,
) -> bytes:
    """Convert ``data`` in full with ``primitive``.

    WHY: This is the single entry point every converter handle uses; it
    owns the output buffer for the duration of the call and hands the
    caller either the complete result or an exception.

    HOW:
      1. Reset the primitive's shift state.
      2. While input remains (or the primitive still holds back output),
         grow the buffer when its tail is full or the last step ran
         out of room, then step. Only OUTPUT_TOO_SMALL loops without
         consuming the request.
      3. Flush the trailing shift sequence; on OUTPUT_TOO_SMALL grow once
         and flush once more.
      4. Shrink the buffer to the bytes written and return them.

    RULES:
    - Empty input never calls step(); it may still produce flush bytes
    - On any exception the buffer is released before it propagates

    Args:
        primitive: An open primitive. It is used exclusively for the
                   duration of the call.
        data: Input in the primitive's source encoding.
        initial_capacity: First allocation of the output buffer.

    Returns:
        The converted bytes.

    Raises:
        IncompleteSequenceError, IllegalSequenceError, OutOfMemoryError,
        OtherSystemError: The conversion failed.
    """
    request = ConversionRequest(_as_bytes(data))
    buffer = ConversionBuffer(initial_capacity)

    primitive.reset()

    try:
        too_small = False
        while request.remaining or too_small:
            if too_small or buffer.tail == 0:
                buffer.grow()
            result = primitive.step(request.data, request.position, buffer.storage, buffer.length)
            request.advance(result.consumed)
            buffer.advance(result.produced)
            too_small = result.status is StepStatus.OUTPUT_TOO_SMALL
            if not too_small:
                raise_for_status(result)
                if request.remaining:
                    raise OtherSystemError(
                        errno.EIO,
                        "{} step stopped with {} input bytes unconsumed".format(
                            primitive.name, request.remaining
                        ),
                    )

        result = primitive.flush(buffer.storage, buffer.length)
        buffer.advance(result.produced)
        if result.status is StepStatus.OUTPUT_TOO_SMALL:
            buffer.grow()
            result = primitive.flush(buffer.storage, buffer.length)
            buffer.advance(result.produced)
        raise_for_status(result)
    except BaseException:
        logger.debug(
            "Conversion failed after %d of %d input bytes", request.position, len(request.data)
        )
        buffer.release()
        raise

    buffer.shrink()
    output = buffer.getvalue()
    logger.debug("Converted %d bytes into %d bytes", len(request.data), len(output))
    return output
