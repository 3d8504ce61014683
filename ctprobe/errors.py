"""Error taxonomy for ctprobe.

HarnessError is fatal to the probe that raised it. ProbeFailure is an
assertion failure: it can be recorded by a ProbeReport so that sibling
checks still run.
"""

from __future__ import annotations

from typing import Any, Optional


class ResolutionError(Exception):
    """Image reference could not be resolved.

    Resolution always yields a string, so nothing raises this today.
    """


class ConfigError(ValueError):
    """Invalid suite file or probe settings."""


class HarnessError(RuntimeError):
    """Container could not be started, became ready, or be exec'd into."""

    def __init__(self, message: str, image: Optional[str] = None) -> None:
        super().__init__(message)
        self.image = image


class ProbeFailure(AssertionError):
    """The container was reachable but the expectation did not hold."""

    def __init__(
        self,
        label: str,
        message: str,
        expected: Any = None,
        actual: Any = None,
    ) -> None:
        self.label = label
        self.message = message
        self.expected = expected
        self.actual = actual
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"{self.label}: {self.message}"
        if self.expected is not None or self.actual is not None:
            text += f" (expected={self.expected!r}, actual={self.actual!r})"
        return text
