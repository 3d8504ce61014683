"""Configuration for ctprobe.

This module holds the explicit configuration passed into every probe:
- ContainerConfig: what the started container gets (env vars, keepalive)
- ProbeSettings: how the harness behaves (runtime, backend, timeouts)
- Suite: a TOML file describing the expectations for one image
"""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

try:
    import tomllib
except ImportError:
    # For python < 3.11
    import tomli as tomllib

from .errors import ConfigError
from .expectations import EXPECTATION_TABLES, Expectation

# Entrypoint used for file and command probes so exec has a live container
DEFAULT_KEEPALIVE = ("sleep", "infinity")

# Default suite file name inside an app directory
SUITE_FILE_NAME = "container-test.toml"

BACKENDS = ("cli", "sdk")


@dataclass(frozen=True)
class ContainerConfig:
    """Configuration for the container started by a probe."""

    env: Mapping[str, str] = field(default_factory=dict)
    keepalive: Tuple[str, ...] = DEFAULT_KEEPALIVE

    def __post_init__(self):
        for name, value in self.env.items():
            if not isinstance(name, str) or not isinstance(value, str):
                raise ConfigError(f"Environment entries must be strings: {name!r}={value!r}")
        # Copy so later changes to the caller's dict never reach the container
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))
        object.__setattr__(self, "keepalive", tuple(self.keepalive))
        if not self.keepalive:
            raise ConfigError("keepalive command cannot be empty")

    def with_env(self, env: Mapping[str, str]) -> "ContainerConfig":
        """Return a copy with extra env vars layered on top."""
        return replace(self, env={**self.env, **env})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContainerConfig":
        kwargs: Dict[str, Any] = {}
        if "env" in data:
            if not isinstance(data["env"], dict):
                raise ConfigError("env must be a table of NAME = \"value\" pairs")
            kwargs["env"] = {k: str(v) if isinstance(v, (int, float)) else v for k, v in data["env"].items()}
        if "keepalive" in data:
            kwargs["keepalive"] = data["keepalive"]
        return cls(**kwargs)


@dataclass(frozen=True)
class ProbeSettings:
    """Harness behavior: which runtime to use and how long to wait.

    All durations are in seconds.
    """

    backend: str = "cli"
    runtime: str = "docker"
    start_timeout: float = 300.0  # includes pulling the image
    ready_timeout: float = 60.0
    poll_interval: float = 0.5
    command_timeout: float = 30.0
    exec_timeout: float = 60.0
    http_timeout: float = 5.0
    log_tail: int = 50

    def __post_init__(self):
        if self.backend not in BACKENDS:
            raise ConfigError(f"Unknown backend {self.backend!r}, expected one of {', '.join(BACKENDS)}")
        for name in ("start_timeout", "ready_timeout", "poll_interval", "command_timeout", "exec_timeout", "http_timeout"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(f"{name} must be a positive number, got {value!r}")

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "ProbeSettings":
        """Settings with runtime and backend taken from RUNNER and CTPROBE_BACKEND."""
        if environ is None:
            environ = os.environ
        kwargs = {}
        if environ.get("RUNNER"):
            kwargs["runtime"] = environ["RUNNER"]
        if environ.get("CTPROBE_BACKEND"):
            kwargs["backend"] = environ["CTPROBE_BACKEND"]
        return cls(**kwargs)

    def merged(self, overrides: Mapping[str, Any]) -> "ProbeSettings":
        """Return a copy with overrides applied, rejecting unknown keys."""
        names = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - names)
        if unknown:
            raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")
        return replace(self, **overrides)


@dataclass
class Suite:
    """Expectations for one image, loaded from a suite file."""

    name: str
    image: str
    config: ContainerConfig
    expectations: List[Expectation]
    settings: Dict[str, Any] = field(default_factory=dict)
    path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], name: str, path: Optional[Path] = None) -> "Suite":
        image = data.get("image")
        if not isinstance(image, str) or not image:
            raise ConfigError(f"Suite {name!r} needs an 'image' string")

        config = ContainerConfig.from_dict(data)

        settings = data.get("settings", {})
        if not isinstance(settings, dict):
            raise ConfigError(f"Suite {name!r}: [settings] must be a table")

        known = {"image", "name", "env", "keepalive", "settings", *EXPECTATION_TABLES}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Suite {name!r}: unknown key(s) {', '.join(unknown)}")

        expectations: List[Expectation] = []
        for table, expectation_cls in EXPECTATION_TABLES.items():
            entries = data.get(table, [])
            if not isinstance(entries, list):
                raise ConfigError(f"Suite {name!r}: use [[{table}]] for {table} probes")
            for entry in entries:
                try:
                    expectations.append(expectation_cls.from_dict(entry))
                except TypeError as e:
                    raise ConfigError(f"Suite {name!r}: invalid {table} probe {entry!r}: {e}") from e

        if not expectations:
            logging.warning(f"Suite {name!r} defines no probes")

        return cls(
            name=data.get("name", name),
            image=image,
            config=config,
            expectations=expectations,
            settings=settings,
            path=path,
        )

    @classmethod
    def load(cls, path: Path) -> "Suite":
        """Load a suite from a TOML file or an app directory holding one."""
        path = Path(path)
        if path.is_dir():
            path = path / SUITE_FILE_NAME
        if not path.exists():
            raise ConfigError(f"Suite file not found: {path}")

        data = _load_toml(path)
        # apps/<name>/container-test.toml is named after its directory
        default_name = path.parent.name if path.name == SUITE_FILE_NAME else path.stem
        return cls.from_dict(data, name=default_name, path=path)

    def resolve_settings(self, base: ProbeSettings) -> ProbeSettings:
        return base.merged(self.settings)


def _load_toml(path: Path) -> Dict[str, Any]:
    """Load and parse a TOML file."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
        logging.debug(f"Loaded suite from {path}")
        return data
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Error reading {path}: {e}") from e
