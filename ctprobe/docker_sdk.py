"""Provider backed by the Docker Engine API (docker-py).

Useful where no ``docker`` binary is installed but a daemon socket is
reachable, e.g. inside CI job containers.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import docker
from docker.errors import DockerException, ImageNotFound, NotFound

from .config import ContainerConfig, ProbeSettings
from .errors import HarnessError
from .provider import (
    MANAGED_LABEL,
    MANAGED_LABEL_KEY,
    ContainerHandle,
    ContainerProvider,
    ExecResult,
    discard_unstarted,
    exec_failed,
)


class DockerSdkProvider(ContainerProvider):
    """Provider that talks to the Docker daemon through docker-py."""

    name = "sdk"

    def __init__(self, client=None, settings: Optional[ProbeSettings] = None) -> None:
        self.settings = settings or ProbeSettings(backend="sdk")
        self._client = client

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = docker.from_env(timeout=int(self.settings.start_timeout))
            except DockerException as e:
                raise HarnessError(f"Cannot connect to Docker daemon: {e}") from e
        return self._client

    def _container(self, handle: ContainerHandle):
        try:
            return self.client.containers.get(handle.container_id)
        except DockerException as e:
            raise HarnessError(f"Cannot find container {handle.short_id}: {e}") from e

    def available(self) -> bool:
        try:
            return bool(self.client.ping())
        except (DockerException, HarnessError):
            return False

    def start(
        self,
        image: str,
        config: ContainerConfig,
        *,
        entrypoint: Optional[Sequence[str]] = None,
        ports: Sequence[int] = (),
    ) -> ContainerHandle:
        kwargs = {
            "environment": dict(config.env),
            "labels": {MANAGED_LABEL_KEY: "true"},
        }
        if entrypoint:
            kwargs["entrypoint"] = [entrypoint[0]]
            kwargs["command"] = list(entrypoint[1:])
        if ports:
            # None asks the daemon for a random host port
            kwargs["ports"] = {f"{port}/tcp": ("127.0.0.1", None) for port in ports}

        logging.debug(f"Creating container from {image} with {kwargs}")
        try:
            container = self._create(image, kwargs)
        except ImageNotFound as e:
            raise HarnessError(f"Image {image} not found: {e}", image=image) from e
        except DockerException as e:
            raise HarnessError(f"Failed to create container from {image}: {e}", image=image) from e

        handle = ContainerHandle(container_id=container.id, image=image, provider=self)
        try:
            container.start()
        except DockerException as e:
            error = HarnessError(f"Failed to start container from {image}: {e}", image=image)
            discard_unstarted(handle, error)
            raise error from e
        return handle

    def _create(self, image: str, kwargs: dict):
        # containers.create does not pull, unlike containers.run
        try:
            return self.client.containers.create(image, **kwargs)
        except ImageNotFound:
            logging.info(f"Pulling {image}")
            self.client.images.pull(image)
        return self.client.containers.create(image, **kwargs)

    def state(self, handle: ContainerHandle) -> str:
        container = self._container(handle)
        return container.status

    def exec(self, handle: ContainerHandle, command: list[str]) -> ExecResult:
        container = self._container(handle)

        logging.debug(f"Exec in {handle.short_id}: {command}")
        try:
            exit_code, (stdout, stderr) = container.exec_run(command, demux=True)
        except DockerException as e:
            raise HarnessError(f"Could not exec {command} in {handle.short_id}: {e}") from e

        result = ExecResult(
            returncode=exit_code,
            stdout=(stdout or b"").decode("utf-8", errors="replace"),
            stderr=(stderr or b"").decode("utf-8", errors="replace"),
            command=command,
        )
        # The daemon reports a missing executable as exit 126/127 with its
        # own error text in the output stream
        if exec_failed(result.returncode, result.output):
            raise HarnessError(
                f"Could not exec {command} in {handle.short_id}: {result.output.strip()}",
                image=handle.image,
            )
        return result

    def host_port(self, handle: ContainerHandle, container_port: int) -> tuple[str, int]:
        container = self._container(handle)
        bindings = container.attrs.get("NetworkSettings", {}).get("Ports", {}) or {}
        published = bindings.get(f"{container_port}/tcp") or []
        if not published:
            raise HarnessError(f"Port {container_port} is not published for {handle.short_id}")

        host = published[0].get("HostIp") or "127.0.0.1"
        if host in ("0.0.0.0", "::"):
            host = "127.0.0.1"
        return host, int(published[0]["HostPort"])

    def logs(self, handle: ContainerHandle) -> str:
        container = self._container(handle)
        return container.logs(tail=self.settings.log_tail).decode("utf-8", errors="replace")

    def remove(self, handle: ContainerHandle) -> None:
        try:
            self.client.containers.get(handle.container_id).remove(force=True, v=True)
        except NotFound:
            logging.debug(f"Container {handle.short_id} already gone")
            return
        except DockerException as e:
            raise HarnessError(f"Failed to remove container {handle.short_id}: {e}") from e
        logging.debug(f"Removed container {handle.short_id}")

    def list_managed(self) -> list[str]:
        try:
            containers = self.client.containers.list(all=True, filters={"label": MANAGED_LABEL})
        except DockerException as e:
            raise HarnessError(f"Listing containers failed: {e}") from e
        return [c.id for c in containers]
