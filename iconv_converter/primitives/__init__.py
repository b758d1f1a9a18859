"""Conversion primitive registry.

WHY: The converter handle opens a primitive by backend name (from config
or the caller). A central dict makes that lookup trivial and gives new
backends one place to register.

HOW: PRIMITIVES maps backend names to primitive *classes*. Callers open
an instance with ``PRIMITIVES[name].open(target, source)``.

RULES:
- Keys are the primitives' ``name`` attributes
- Every primitive listed here must be importable on every platform;
  library loading happens in open(), not at import
"""

from __future__ import annotations

from iconv_converter.primitives.base import ConversionPrimitive, StepResult, StepStatus
from iconv_converter.primitives.libiconv import LibiconvPrimitive
from iconv_converter.primitives.pycodecs import CodecsPrimitive

PRIMITIVES: dict[str, type[ConversionPrimitive]] = {
    "libiconv": LibiconvPrimitive,
    "codecs": CodecsPrimitive,
}


def get_primitive(backend: str) -> type[ConversionPrimitive]:
    """Look up a primitive class by backend name.

    Raises:
        ValueError: No primitive is registered under ``backend``.
    """
    try:
        return PRIMITIVES[backend.lower()]
    except KeyError:
        available = ", ".join(sorted(PRIMITIVES))
        raise ValueError(
            "Unknown backend '{}'. Available backends: {}".format(backend, available)
        ) from None


__all__ = [
    "PRIMITIVES",
    "CodecsPrimitive",
    "ConversionPrimitive",
    "LibiconvPrimitive",
    "StepResult",
    "StepStatus",
    "get_primitive",
]
