"""Abstract conversion primitive and its step results.

WHY: The streaming engine never transcodes anything itself. It drives an
opaque, stateful primitive one chunk at a time and reacts to what the
primitive reports. This module fixes that contract so the engine works
the same over the system iconv, Python codecs, or a test double.

HOW: ConversionPrimitive is an ABC with the five operations of the iconv
family: open (a classmethod, target-first like iconv_open), reset, step,
flush, close. Positions are plain integer offsets into caller-owned
buffers; step and flush report how far they moved as a StepResult
instead of mutating pointers.

RULES:
- open() raises UnsupportedConversionError when the pair is unavailable
- step() and flush() never raise for conversion failures; they return a
  StepResult whose status classifies the failure
- consumed/produced are valid even when status is not OK
- The target buffer's length is its capacity; primitives write only into
  target[target_pos:]
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass


class StepStatus(str, enum.Enum):
    """Outcome of a single step() or flush() call.

    RULES:
    - OK: all requested work finished
    - OUTPUT_TOO_SMALL: stopped because the target tail is full (E2BIG)
    - INCOMPLETE_INPUT: input ends mid-character (EINVAL)
    - ILLEGAL_INPUT: invalid or unrepresentable sequence (EILSEQ)
    - OUT_OF_MEMORY: the primitive could not allocate (ENOMEM)
    - OTHER: anything else; errno carries the detail
    """

    OK = "ok"
    OUTPUT_TOO_SMALL = "output_too_small"
    INCOMPLETE_INPUT = "incomplete_input"
    ILLEGAL_INPUT = "illegal_input"
    OUT_OF_MEMORY = "out_of_memory"
    OTHER = "other"


@dataclass(frozen=True)
class StepResult:
    """Progress and status of one primitive call.

    Attributes:
        status: Classified outcome.
        consumed: Input bytes consumed by this call.
        produced: Output bytes written by this call.
        errno: System error code behind a failure status, 0 on OK.
    """

    status: StepStatus
    consumed: int = 0
    produced: int = 0
    errno: int = 0

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.OK


class ConversionPrimitive(ABC):
    """Abstract base for all conversion primitives.

    To add a new primitive:
    1. Create a new module in primitives/
    2. Subclass ConversionPrimitive and set ``name``
    3. Implement open, reset, step, flush and close
    4. Register it in PRIMITIVES in primitives/__init__.py
    """

    name: str = ""

    @classmethod
    @abstractmethod
    def open(cls, target: str, source: str) -> ConversionPrimitive:
        """Open a primitive converting FROM ``source`` TO ``target``.

        The argument order is target-first, as in iconv_open(3).

        Raises:
            UnsupportedConversionError: The pair cannot be converted.
        """

    @abstractmethod
    def reset(self) -> None:
        """Return the shift state to the initial state."""

    @abstractmethod
    def step(
        self,
        source: bytes,
        source_pos: int,
        target: bytearray,
        target_pos: int,
    ) -> StepResult:
        """Convert ``source[source_pos:]`` into ``target[target_pos:]``."""

    @abstractmethod
    def flush(self, target: bytearray, target_pos: int) -> StepResult:
        """Write the trailing shift sequence into ``target[target_pos:]``."""

    @abstractmethod
    def close(self) -> None:
        """Release primitive state. The primitive is unusable afterwards."""
