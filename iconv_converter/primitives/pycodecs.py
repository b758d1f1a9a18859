"""Conversion primitive built on Python's incremental codecs.

WHY: Not every platform has a usable iconv (Windows, minimal containers).
Python ships incremental decoders and encoders for a large set of
encodings, stateful ones included, so the same streaming engine can run
on top of them.

HOW: A step decodes the rest of the input with the source encoding's
incremental decoder and encodes the text with the target encoding's
incremental encoder. Encoded bytes that do not fit the output tail are
held back and reported as OUTPUT_TOO_SMALL; the next call writes them
first. flush() asks the encoder for its closing bytes (final=True).

RULES:
- Names are resolved with codecs lookup; unknown names and non-text
  codecs (base64, rot13) are unsupported
- UnicodeDecodeError and UnicodeEncodeError → ILLEGAL_INPUT (EILSEQ)
- Bytes the decoder still buffers once the input is exhausted, and that
  do not decode on a final flush, → INCOMPLETE_INPUT (EINVAL)
- step() is always handed the whole remaining input, so the decoder is
  finalized at the end of every step
- MemoryError from the decoder or encoder → OUT_OF_MEMORY (ENOMEM)
- Encoders that write a byte-order mark (UTF-16, UTF-32 without an
  endianness suffix) emit it even for empty input, where libiconv
  produces nothing
"""

from __future__ import annotations

import codecs
import errno

from iconv_converter.errors import UnsupportedConversionError
from iconv_converter.primitives.base import ConversionPrimitive, StepResult, StepStatus


class CodecsPrimitive(ConversionPrimitive):
    """Incremental decoder of the source chained to an encoder of the target."""

    name = "codecs"

    def __init__(
        self,
        decoder: codecs.IncrementalDecoder,
        encoder: codecs.IncrementalEncoder,
    ) -> None:
        self._decoder = decoder
        self._encoder = encoder
        self._pending = b""
        self._flushed = False
        self._closed = False

    @classmethod
    def open(cls, target: str, source: str) -> CodecsPrimitive:
        try:
            # str.encode/bytes.decode reject bytes-to-bytes codecs
            "".encode(target)
            b"".decode(source)
            decoder = codecs.getincrementaldecoder(source)("strict")
            encoder = codecs.getincrementalencoder(target)("strict")
        except LookupError as exc:
            raise UnsupportedConversionError(
                errno.EINVAL, "Conversion not supported ({}).".format(exc)
            ) from exc
        return cls(decoder, encoder)

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("codecs primitive is closed")

    def reset(self) -> None:
        self._check_open()
        self._decoder.reset()
        self._encoder.reset()
        self._pending = b""
        self._flushed = False

    def _drain(self, target: bytearray, target_pos: int) -> int:
        """Copy as much held-back output as fits; return the count."""
        room = max(len(target) - target_pos, 0)
        chunk = self._pending[:room]
        target[target_pos:target_pos + len(chunk)] = chunk
        self._pending = self._pending[len(chunk):]
        return len(chunk)

    def _finish(self, consumed: int, produced: int) -> StepResult:
        if self._pending:
            return StepResult(StepStatus.OUTPUT_TOO_SMALL, consumed, produced, errno.E2BIG)
        return StepResult(StepStatus.OK, consumed, produced)

    def step(
        self,
        source: bytes,
        source_pos: int,
        target: bytearray,
        target_pos: int,
    ) -> StepResult:
        self._check_open()
        produced = self._drain(target, target_pos)
        if self._pending:
            return self._finish(0, produced)

        chunk = source[source_pos:]
        try:
            text = self._decoder.decode(chunk, final=False)
        except UnicodeDecodeError:
            return StepResult(StepStatus.ILLEGAL_INPUT, 0, produced, errno.EILSEQ)
        except MemoryError:
            return StepResult(StepStatus.OUT_OF_MEMORY, 0, produced, errno.ENOMEM)

        buffered = self._decoder.getstate()[0]
        if buffered:
            try:
                text += self._decoder.decode(b"", final=True)
            except UnicodeDecodeError:
                return StepResult(
                    StepStatus.INCOMPLETE_INPUT,
                    len(chunk) - len(buffered),
                    produced,
                    errno.EINVAL,
                )
            except MemoryError:
                return StepResult(StepStatus.OUT_OF_MEMORY, 0, produced, errno.ENOMEM)

        try:
            self._pending = self._encoder.encode(text)
        except UnicodeEncodeError:
            return StepResult(StepStatus.ILLEGAL_INPUT, 0, produced, errno.EILSEQ)
        except MemoryError:
            return StepResult(StepStatus.OUT_OF_MEMORY, 0, produced, errno.ENOMEM)

        produced += self._drain(target, target_pos + produced)
        return self._finish(len(chunk), produced)

    def flush(self, target: bytearray, target_pos: int) -> StepResult:
        self._check_open()
        if not self._flushed:
            try:
                self._pending += self._encoder.encode("", final=True)
            except UnicodeEncodeError:
                return StepResult(StepStatus.ILLEGAL_INPUT, 0, 0, errno.EILSEQ)
            except MemoryError:
                return StepResult(StepStatus.OUT_OF_MEMORY, 0, 0, errno.ENOMEM)
            self._flushed = True
        return self._finish(0, self._drain(target, target_pos))

    def close(self) -> None:
        self._closed = True
        self._pending = b""
