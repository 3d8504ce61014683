"""Container lifecycle providers.

The harness only talks to a ContainerProvider: start a container, ask for its
state, exec into it, look up a published port, read logs and remove it. The
default provider drives the runtime CLI (``docker`` or ``podman``) through
subprocess; ``ctprobe.docker_sdk`` talks to the Docker Engine API instead.
"""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Sequence

from .config import ContainerConfig, ProbeSettings
from .errors import HarnessError

# Label added to every container started by ctprobe so leftovers can be pruned
MANAGED_LABEL_KEY = "ctprobe.managed"
MANAGED_LABEL = f"{MANAGED_LABEL_KEY}=true"

# Runtime error text that means exec itself failed, not the command inside
EXEC_FAILURE_MARKERS = ("Error response from daemon", "OCI runtime exec failed")


def exec_failed(returncode: int, output: str) -> bool:
    """Whether a non-zero exec result comes from the runtime rather than the command."""
    return returncode != 0 and any(marker in output for marker in EXEC_FAILURE_MARKERS)


@dataclass
class ExecResult:
    """Result from executing a command inside a container."""

    returncode: int
    stdout: str
    stderr: str
    command: list[str]

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr combined."""
        return self.stdout + self.stderr


@dataclass
class ContainerHandle:
    """Handle to one running ephemeral container.

    Owned by the probe invocation that started it. All operations are
    delegated to the provider that created the handle.
    """

    container_id: str
    image: str
    provider: ContainerProvider = field(repr=False, compare=False)

    def __hash__(self) -> int:
        return hash(self.container_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContainerHandle):
            return False
        return self.container_id == other.container_id

    @property
    def short_id(self) -> str:
        return self.container_id[:12]

    def exec(self, command: list[str]) -> ExecResult:
        """Execute a command inside the container."""
        return self.provider.exec(self, command)

    def state(self) -> str:
        return self.provider.state(self)

    def is_running(self) -> bool:
        return self.provider.is_running(self)

    def host_port(self, container_port: int) -> tuple[str, int]:
        return self.provider.host_port(self, container_port)

    def logs(self) -> str:
        return self.provider.logs(self)


class ContainerProvider(ABC):
    """Capability set the probe harness needs from a container runtime."""

    name = "abstract"

    @abstractmethod
    def available(self) -> bool:
        """Whether the runtime can be reached at all."""

    @abstractmethod
    def start(
        self,
        image: str,
        config: ContainerConfig,
        *,
        entrypoint: Optional[Sequence[str]] = None,
        ports: Sequence[int] = (),
    ) -> ContainerHandle:
        """Create and start a detached container.

        ``entrypoint`` replaces the image entrypoint and command; its first
        element is the executable. ``ports`` are container TCP ports to
        publish on random loopback host ports. A container that was created but
        could not be started is removed before HarnessError is raised.
        """

    @abstractmethod
    def state(self, handle: ContainerHandle) -> str:
        """Runtime status string: created, running, exited, dead, ..."""

    def is_running(self, handle: ContainerHandle) -> bool:
        return self.state(handle) == "running"

    @abstractmethod
    def exec(self, handle: ContainerHandle, command: list[str]) -> ExecResult:
        """Run a command inside the container and capture its result."""

    @abstractmethod
    def host_port(self, handle: ContainerHandle, container_port: int) -> tuple[str, int]:
        """Host address a published container port is reachable on."""

    @abstractmethod
    def logs(self, handle: ContainerHandle) -> str:
        """Recent container output."""

    @abstractmethod
    def remove(self, handle: ContainerHandle) -> None:
        """Stop and remove the container."""

    @abstractmethod
    def list_managed(self) -> list[str]:
        """IDs of all containers carrying the ctprobe label."""


class CliProvider(ContainerProvider):
    """Provider that drives the docker (or podman) command line."""

    name = "cli"

    def __init__(self, settings: Optional[ProbeSettings] = None) -> None:
        self.settings = settings or ProbeSettings()
        self.runtime = self.settings.runtime

    def _run(self, args: list[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        cmd = [self.runtime, *args]
        logging.debug(f"Executing: {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout or self.settings.command_timeout,
            )
        except FileNotFoundError:
            raise HarnessError(
                f"Container runtime '{self.runtime}' not found. Please install Docker or Podman."
            ) from None
        except subprocess.TimeoutExpired as e:
            raise HarnessError(f"'{' '.join(cmd)}' timed out after {e.timeout}s") from e

    def available(self) -> bool:
        try:
            return self._run(["info"]).returncode == 0
        except HarnessError:
            return False

    def build_create_args(
        self,
        image: str,
        config: ContainerConfig,
        entrypoint: Optional[Sequence[str]] = None,
        ports: Sequence[int] = (),
    ) -> list[str]:
        """Build the ``create`` arguments for a labelled container."""
        args = ["create", f"--label={MANAGED_LABEL}"]

        for name, value in sorted(config.env.items()):
            args.append(f"--env={name}={value}")

        for port in ports:
            args.append(f"--publish=127.0.0.1::{port}")

        command: list[str] = []
        if entrypoint:
            args.append(f"--entrypoint={entrypoint[0]}")
            command = list(entrypoint[1:])

        args.append(image)
        args.extend(command)
        return args

    def start(
        self,
        image: str,
        config: ContainerConfig,
        *,
        entrypoint: Optional[Sequence[str]] = None,
        ports: Sequence[int] = (),
    ) -> ContainerHandle:
        # create and start are separate so a container that fails to start
        # still has an ID to remove
        args = self.build_create_args(image, config, entrypoint, ports)
        result = self._run(args, timeout=self.settings.start_timeout)
        if result.returncode != 0:
            raise HarnessError(
                f"Failed to create container from {image} "
                f"(exit code {result.returncode}): {result.stderr.strip()}",
                image=image,
            )

        lines = result.stdout.strip().splitlines()
        if not lines:
            raise HarnessError(f"'{self.runtime} create' printed no container ID", image=image)
        handle = ContainerHandle(container_id=lines[-1].strip(), image=image, provider=self)

        result = self._run(["start", handle.container_id])
        if result.returncode != 0:
            error = HarnessError(
                f"Failed to start container from {image} "
                f"(exit code {result.returncode}): {result.stderr.strip()}",
                image=image,
            )
            discard_unstarted(handle, error)
            raise error
        return handle

    def state(self, handle: ContainerHandle) -> str:
        result = self._run(["inspect", "--format", "{{.State.Status}}", handle.container_id])
        if result.returncode != 0:
            raise HarnessError(f"{self.runtime} inspect failed: {result.stderr.strip()}")
        return result.stdout.strip().lower()

    def exec(self, handle: ContainerHandle, command: list[str]) -> ExecResult:
        args = ["exec", handle.container_id, *command]
        result = self._run(args, timeout=self.settings.exec_timeout)

        if exec_failed(result.returncode, result.stderr):
            raise HarnessError(
                f"Could not exec {command} in {handle.short_id}: {result.stderr.strip()}",
                image=handle.image,
            )

        return ExecResult(
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            command=command,
        )

    def host_port(self, handle: ContainerHandle, container_port: int) -> tuple[str, int]:
        result = self._run(["port", handle.container_id, f"{container_port}/tcp"])
        lines = result.stdout.strip().splitlines()
        if result.returncode != 0 or not lines:
            raise HarnessError(
                f"Port {container_port} is not published for {handle.short_id}: "
                f"{result.stderr.strip()}"
            )

        # Output looks like "127.0.0.1:49153" (or "[::1]:49153")
        host, _, port = lines[0].strip().rpartition(":")
        host = host.strip("[]")
        if host in ("0.0.0.0", "::", ""):
            host = "127.0.0.1"
        return host, int(port)

    def logs(self, handle: ContainerHandle) -> str:
        result = self._run(["logs", "--tail", str(self.settings.log_tail), handle.container_id])
        return result.stdout + result.stderr

    def remove(self, handle: ContainerHandle) -> None:
        result = self._run(["rm", "--force", "--volumes", handle.container_id])
        if result.returncode != 0:
            raise HarnessError(
                f"Failed to remove container {handle.short_id}: {result.stderr.strip()}"
            )
        logging.debug(f"Removed container {handle.short_id}")

    def list_managed(self) -> list[str]:
        result = self._run(["ps", "--all", "--quiet", "--filter", f"label={MANAGED_LABEL}"])
        if result.returncode != 0:
            raise HarnessError(f"{self.runtime} ps failed: {result.stderr.strip()}")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def discard_unstarted(handle: ContainerHandle, error: HarnessError) -> None:
    """Remove a container that never started, keeping ``error`` as the cause."""
    try:
        handle.provider.remove(handle)
    except HarnessError as e:
        logging.error(f"Cleanup of {handle.short_id} after '{error}' failed: {e}")


def get_provider(settings: Optional[ProbeSettings] = None) -> ContainerProvider:
    """Create the provider selected by ``settings.backend``."""
    settings = settings or ProbeSettings()
    if settings.backend == "cli":
        return CliProvider(settings)
    if settings.backend == "sdk":
        from .docker_sdk import DockerSdkProvider

        return DockerSdkProvider(settings=settings)
    raise HarnessError(f"Unknown container backend: {settings.backend!r}")
