"""Declarative probe expectations.

Three kinds of check can be made against an image:

    FileExpectation("/usr/local/bin/yq")
    HttpExpectation(path="/healthz", port=8080, status=200, body="ok")
    CommandExpectation(entrypoint="yq", args=["--version"], output="version")

Each kind knows how to build itself from a suite-file table (``from_dict``)
and how to describe itself when no explicit label is given.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field, fields
from typing import Any, Optional, Union

from .errors import ConfigError


def _known_fields(cls, data: dict[str, Any], kind: str) -> dict[str, Any]:
    """Copy a suite-file table, rejecting keys that are not dataclass fields."""
    names = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - names)
    if unknown:
        raise ConfigError(f"Unknown {kind} probe field(s): {', '.join(unknown)}")
    return dict(data)


@dataclass(frozen=True)
class FileExpectation:
    """A path that must exist inside the container filesystem."""

    path: str
    label: Optional[str] = None

    kind = "file"

    def __post_init__(self) -> None:
        if not isinstance(self.path, str) or not self.path.startswith("/"):
            raise ConfigError(f"File probe path must be absolute: {self.path!r}")

    def describe(self) -> str:
        return self.label or f"Check {self.path} exists"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileExpectation:
        return cls(**_known_fields(cls, data, cls.kind))


@dataclass(frozen=True)
class HttpExpectation:
    """An HTTP route served by the container's own entrypoint."""

    path: str = "/"
    port: int = 80
    status: int = 200
    body: Optional[str] = None
    method: str = "GET"
    label: Optional[str] = None

    kind = "http"

    def __post_init__(self) -> None:
        if not isinstance(self.path, str) or not self.path.startswith("/"):
            raise ConfigError(f"HTTP probe path must start with '/': {self.path!r}")
        if not isinstance(self.port, int) or not 0 < self.port < 65536:
            raise ConfigError(f"Invalid HTTP probe port: {self.port!r}")
        if not isinstance(self.status, int):
            raise ConfigError(f"HTTP probe status must be an integer: {self.status!r}")

    def describe(self) -> str:
        return self.label or f"{self.method} :{self.port}{self.path} returns {self.status}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HttpExpectation:
        return cls(**_known_fields(cls, data, cls.kind))


@dataclass(frozen=True)
class CommandExpectation:
    """A command run inside the container and its expected outcome.

    ``output`` is matched against stdout and stderr combined; ``stdout`` and
    ``stderr`` are matched against their own stream only.
    """

    entrypoint: Optional[str] = None
    args: tuple[str, ...] = field(default_factory=tuple)
    exit_code: int = 0
    output: Optional[str] = None
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    label: Optional[str] = None

    kind = "command"

    def __post_init__(self) -> None:
        # Lists from TOML are stored as tuples to keep the expectation hashable
        if isinstance(self.args, str) or not all(isinstance(a, str) for a in self.args):
            raise ConfigError(f"Command probe args must be a list of strings: {self.args!r}")
        object.__setattr__(self, "args", tuple(self.args))
        if not self.argv():
            raise ConfigError("Command probe needs an entrypoint or args")

    def argv(self) -> list[str]:
        """Full command line executed inside the container."""
        head = [self.entrypoint] if self.entrypoint else []
        return head + list(self.args)

    def describe(self) -> str:
        return self.label or f"Run {shlex.join(self.argv())} exits {self.exit_code}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommandExpectation:
        return cls(**_known_fields(cls, data, cls.kind))


Expectation = Union[FileExpectation, HttpExpectation, CommandExpectation]

# Suite-file table names to expectation classes
EXPECTATION_TABLES: dict[str, type] = {
    "files": FileExpectation,
    "http": HttpExpectation,
    "commands": CommandExpectation,
}
