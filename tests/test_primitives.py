"""Tests for the concrete conversion primitives.

WHY: The engine trusts each primitive's StepResult: if consumed or
produced is off by one, or a status is misclassified, output is lost or
the wrong exception surfaces. These tests pin down each primitive's
contract directly, without the engine.

HOW: TestLibiconvPrimitive calls the system iconv through
LibiconvPrimitive and is skipped when no iconv library can be loaded.
TestCodecsPrimitive always runs. TestLibraryLoading patches the module's
cached library and config to exercise the loader's failure path.

RULES:
- Target buffers are plain bytearrays whose length is the capacity
"""

from __future__ import annotations

import codecs
import errno

import pytest

from iconv_converter import Iconv, config
from iconv_converter.errors import (
    IconvError,
    OtherSystemError,
    OutOfMemoryError,
    UnsupportedConversionError,
)
from iconv_converter.primitives import (
    PRIMITIVES,
    CodecsPrimitive,
    LibiconvPrimitive,
    StepStatus,
    get_primitive,
)
from iconv_converter.primitives import libiconv

from conftest import libiconv_available

requires_libiconv = pytest.mark.skipif(
    not libiconv_available(), reason="no iconv library on this host"
)


class _OutOfMemoryEncoder(codecs.IncrementalEncoder):
    def encode(self, input, final=False):
        raise MemoryError


class _OutOfMemoryDecoder(codecs.IncrementalDecoder):
    def decode(self, input, final=False):
        raise MemoryError


class TestRegistry:
    """PRIMITIVES maps backend names to classes."""

    def test_registered_backends(self):
        assert PRIMITIVES == {"libiconv": LibiconvPrimitive, "codecs": CodecsPrimitive}

    def test_lookup_is_case_insensitive(self):
        assert get_primitive("CODECS") is CodecsPrimitive

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Available backends: codecs, libiconv"):
            get_primitive("nope")


@requires_libiconv
class TestLibiconvPrimitive:
    """LibiconvPrimitive reports iconv's progress and errno faithfully."""

    def test_step_ok(self):
        p = LibiconvPrimitive.open("UTF-8", "ISO-8859-1")
        try:
            target = bytearray(8)
            result = p.step(b"\xe9t\xe9", 0, target, 0)
            assert result.status is StepStatus.OK
            assert result.consumed == 3
            assert result.produced == 5
            assert bytes(target[:5]) == "été".encode("utf-8")
        finally:
            p.close()

    def test_step_output_too_small_reports_progress(self):
        p = LibiconvPrimitive.open("UTF-8", "UTF-8")
        try:
            target = bytearray(4)
            result = p.step("ÅÅÅ".encode("utf-8"), 0, target, 0)
            assert result.status is StepStatus.OUTPUT_TOO_SMALL
            assert result.errno == errno.E2BIG
            assert 0 < result.produced <= 4
            assert result.consumed == result.produced
        finally:
            p.close()

    def test_step_honours_offsets(self):
        p = LibiconvPrimitive.open("UTF-8", "UTF-8")
        try:
            target = bytearray(b"XY\x00\x00\x00")
            result = p.step(b"skip-abc", 5, target, 2)
            assert result.ok
            assert bytes(target) == b"XYabc"
        finally:
            p.close()

    def test_step_with_no_room(self):
        p = LibiconvPrimitive.open("UTF-8", "UTF-8")
        try:
            result = p.step(b"abc", 0, bytearray(), 0)
            assert result.status is StepStatus.OUTPUT_TOO_SMALL
            assert result.consumed == 0
        finally:
            p.close()

    def test_errno_classification(self):
        p = LibiconvPrimitive.open("UTF-8", "UTF-8")
        try:
            assert p.step(b"\xe2", 0, bytearray(8), 0).status is StepStatus.INCOMPLETE_INPUT
            p.reset()
            assert p.step(b"\xff", 0, bytearray(8), 0).status is StepStatus.ILLEGAL_INPUT
        finally:
            p.close()

    def test_flush_writes_shift_sequence(self):
        p = LibiconvPrimitive.open("ISO-2022-JP", "UTF-8")
        try:
            target = bytearray(16)
            step = p.step("日".encode("utf-8"), 0, target, 0)
            assert step.ok
            flush = p.flush(target, step.produced)
            assert flush.ok
            assert bytes(target[step.produced:step.produced + flush.produced]) == b"\x1b(B"
        finally:
            p.close()

    def test_flush_without_room(self):
        p = LibiconvPrimitive.open("ISO-2022-JP", "UTF-8")
        try:
            target = bytearray(16)
            step = p.step("日".encode("utf-8"), 0, target, 0)
            result = p.flush(bytearray(), 0)
            assert step.ok
            assert result.status is StepStatus.OUTPUT_TOO_SMALL
        finally:
            p.close()

    def test_open_unknown(self):
        with pytest.raises(UnsupportedConversionError) as exc_info:
            LibiconvPrimitive.open("UTF-8", "NOT-A-REAL-ENCODING")
        assert exc_info.value.errno != 0

    def test_open_non_ascii_name(self):
        with pytest.raises(UnsupportedConversionError):
            LibiconvPrimitive.open("UTF-8", "ÜTF-8")

    def test_close_is_idempotent(self):
        p = LibiconvPrimitive.open("UTF-8", "UTF-8")
        p.close()
        p.close()
        with pytest.raises(ValueError):
            p.reset()


class TestLibraryLoading:
    """load_library() honours ICONV_LIBRARY and fails with ENOENT."""

    def test_missing_configured_library(self, monkeypatch):
        monkeypatch.setattr(libiconv, "_library", None)
        monkeypatch.setattr(config, "ICONV_LIBRARY", "/nonexistent/libiconv-test.so")
        with pytest.raises(OtherSystemError) as exc_info:
            libiconv.load_library()
        assert exc_info.value.errno == errno.ENOENT
        assert exc_info.value.syscall == "dlopen"
        assert "/nonexistent/libiconv-test.so" in str(exc_info.value)

    @requires_libiconv
    def test_library_is_cached(self):
        assert libiconv.load_library() is libiconv.load_library()


class TestCodecsPrimitive:
    """CodecsPrimitive holds back output that does not fit."""

    def test_step_ok(self):
        p = CodecsPrimitive.open("UTF-16LE", "UTF-8")
        target = bytearray(16)
        result = p.step(b"abc", 0, target, 0)
        assert result.ok
        assert (result.consumed, result.produced) == (3, 6)
        assert bytes(target[:6]) == "abc".encode("utf-16-le")

    def test_held_back_output_drains_on_next_step(self):
        p = CodecsPrimitive.open("UTF-8", "UTF-8")
        target = bytearray(2)
        first = p.step(b"abcdef", 0, target, 0)
        assert first.status is StepStatus.OUTPUT_TOO_SMALL
        assert (first.consumed, first.produced) == (6, 2)

        target.extend(bytes(6))
        second = p.step(b"abcdef", 6, target, 2)
        assert second.ok
        assert second.produced == 4
        assert bytes(target[:6]) == b"abcdef"

    def test_incomplete_input(self):
        p = CodecsPrimitive.open("UTF-8", "UTF-8")
        result = p.step(b"ab\xe2\x82", 0, bytearray(8), 0)
        assert result.status is StepStatus.INCOMPLETE_INPUT
        assert result.errno == errno.EINVAL
        assert result.consumed == 2

    def test_illegal_input(self):
        p = CodecsPrimitive.open("UTF-8", "UTF-8")
        result = p.step(b"\xff", 0, bytearray(8), 0)
        assert result.status is StepStatus.ILLEGAL_INPUT
        assert result.errno == errno.EILSEQ

    def test_unrepresentable_output(self):
        p = CodecsPrimitive.open("ASCII", "UTF-8")
        result = p.step("é".encode("utf-8"), 0, bytearray(8), 0)
        assert result.status is StepStatus.ILLEGAL_INPUT

    def test_flush_writes_shift_sequence_once(self):
        p = CodecsPrimitive.open("ISO-2022-JP", "UTF-8")
        target = bytearray(16)
        step = p.step("日".encode("utf-8"), 0, target, 0)
        short = p.flush(bytearray(1), 0)
        assert short.status is StepStatus.OUTPUT_TOO_SMALL
        rest = p.flush(target, step.produced)
        assert rest.ok
        # the first byte went into the short buffer; the rest follows
        assert bytes(target[step.produced:step.produced + rest.produced]) == b"(B"

    def test_reset_discards_state(self):
        p = CodecsPrimitive.open("UTF-8", "UTF-8")
        p.step(b"abcdef", 0, bytearray(2), 0)
        p.reset()
        target = bytearray(8)
        result = p.step(b"xy", 0, target, 0)
        assert result.ok
        assert bytes(target[:2]) == b"xy"

    @pytest.mark.parametrize("name", ["NOT-A-REAL-ENCODING", "base64", "rot13"])
    def test_open_rejects_non_text_codecs(self, name):
        with pytest.raises(UnsupportedConversionError):
            CodecsPrimitive.open(name, "UTF-8")

    def test_closed_primitive(self):
        p = CodecsPrimitive.open("UTF-8", "UTF-8")
        p.close()
        with pytest.raises(ValueError):
            p.step(b"a", 0, bytearray(4), 0)

    def test_encoder_memory_error_is_out_of_memory(self):
        decoder = codecs.getincrementaldecoder("utf-8")()
        p = CodecsPrimitive(decoder, _OutOfMemoryEncoder())
        result = p.step(b"abc", 0, bytearray(8), 0)
        assert result.status is StepStatus.OUT_OF_MEMORY
        assert (result.consumed, result.errno) == (0, errno.ENOMEM)

    def test_decoder_memory_error_is_out_of_memory(self):
        encoder = codecs.getincrementalencoder("utf-8")()
        p = CodecsPrimitive(_OutOfMemoryDecoder(), encoder)
        result = p.step(b"abc", 0, bytearray(8), 0)
        assert result.status is StepStatus.OUT_OF_MEMORY

    def test_flush_memory_error_is_out_of_memory(self):
        decoder = codecs.getincrementaldecoder("utf-8")()
        p = CodecsPrimitive(decoder, _OutOfMemoryEncoder())
        result = p.flush(bytearray(8), 0)
        assert result.status is StepStatus.OUT_OF_MEMORY
        assert result.errno == errno.ENOMEM

    def test_memory_error_surfaces_as_iconv_error(self):
        with Iconv("UTF-8", "UTF-16LE", backend="codecs") as cd:
            cd._primitive._encoder = _OutOfMemoryEncoder()
            with pytest.raises(OutOfMemoryError) as exc_info:
                cd.convert(b"abc")
        assert isinstance(exc_info.value, IconvError)
        assert exc_info.value.errno == errno.ENOMEM

    def test_empty_input_to_bom_encoding_writes_bom(self):
        with Iconv("UTF-8", "UTF-16", backend="codecs") as cd:
            assert cd.convert(b"") in (codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)
