"""Shared test fixtures for the iconv_converter test suite.

WHY: The engine must be tested against exact primitive behaviour (how
much room each step saw, which status came back), which a real iconv
cannot script. The conversion properties, on the other hand, must hold
for every real backend. This module provides both.

HOW: ScriptedPrimitive is an identity "conversion" that copies as much
input as fits, can append a trailer on flush, and can be told to return
specific statuses. It records every call. The ``backend`` fixture is
parametrized over the registered backends and skips libiconv when no
iconv library can be loaded on the host.

RULES:
- ScriptedPrimitive.open() rejects the encoding name "BOGUS"
- Scripted statuses are consumed in order, one per call
- Every ScriptedPrimitive opened through open() is kept in ``opened``
"""

from __future__ import annotations

import errno
import threading
import time
from typing import List, Optional, Sequence, Tuple

import pytest

from iconv_converter.errors import IconvError, UnsupportedConversionError
from iconv_converter.primitives import ConversionPrimitive, StepResult, StepStatus
from iconv_converter.primitives.libiconv import load_library

Script = Sequence[Tuple[StepStatus, int]]


class ScriptedPrimitive(ConversionPrimitive):
    """Identity primitive with scriptable failures and call recording."""

    name = "scripted"
    opened: List["ScriptedPrimitive"] = []

    def __init__(
        self,
        target: str = "SCRIPTED",
        source: str = "SCRIPTED",
        *,
        trailer: bytes = b"",
        step_script: Optional[Script] = None,
        flush_script: Optional[Script] = None,
        step_delay: float = 0.0,
    ) -> None:
        self.target = target
        self.source = source
        self.trailer = trailer
        self.step_script = list(step_script or [])
        self.flush_script = list(flush_script or [])
        self.step_delay = step_delay
        self.calls: List[Tuple[str, int]] = []
        self.resets = 0
        self.closes = 0
        self.active = 0
        self.max_active = 0
        self._active_lock = threading.Lock()

    @classmethod
    def open(cls, target: str, source: str) -> "ScriptedPrimitive":
        if "BOGUS" in (target, source):
            raise UnsupportedConversionError()
        primitive = cls(target, source)
        cls.opened.append(primitive)
        return primitive

    @property
    def step_rooms(self) -> List[int]:
        return [room for kind, room in self.calls if kind == "step"]

    @property
    def flush_rooms(self) -> List[int]:
        return [room for kind, room in self.calls if kind == "flush"]

    def reset(self) -> None:
        self.resets += 1
        self.calls.append(("reset", 0))

    def step(self, source, source_pos, target, target_pos) -> StepResult:
        with self._active_lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.step_delay:
                time.sleep(self.step_delay)
            room = len(target) - target_pos
            self.calls.append(("step", room))
            if self.step_script:
                status, code = self.step_script.pop(0)
                return StepResult(status, 0, 0, code)

            remaining = len(source) - source_pos
            count = min(remaining, room)
            target[target_pos:target_pos + count] = source[source_pos:source_pos + count]
            if count < remaining:
                return StepResult(StepStatus.OUTPUT_TOO_SMALL, count, count, errno.E2BIG)
            return StepResult(StepStatus.OK, count, count)
        finally:
            with self._active_lock:
                self.active -= 1

    def flush(self, target, target_pos) -> StepResult:
        room = len(target) - target_pos
        self.calls.append(("flush", room))
        if self.flush_script:
            status, code = self.flush_script.pop(0)
            return StepResult(status, 0, 0, code)
        if len(self.trailer) > room:
            return StepResult(StepStatus.OUTPUT_TOO_SMALL, 0, 0, errno.E2BIG)
        target[target_pos:target_pos + len(self.trailer)] = self.trailer
        return StepResult(StepStatus.OK, 0, len(self.trailer))

    def close(self) -> None:
        self.closes += 1


@pytest.fixture(autouse=True)
def _reset_scripted_registry():
    ScriptedPrimitive.opened.clear()
    yield
    ScriptedPrimitive.opened.clear()


@pytest.fixture
def scripted():
    """A fresh ScriptedPrimitive with no trailer and no scripted failures."""
    return ScriptedPrimitive()


def libiconv_available() -> bool:
    try:
        load_library()
    except IconvError:
        return False
    return True


@pytest.fixture(params=["libiconv", "codecs"])
def backend(request):
    """Every real backend available on this host."""
    if request.param == "libiconv" and not libiconv_available():
        pytest.skip("no iconv library on this host")
    return request.param
