"""Probe harness: run one expectation against a fresh container.

Every probe follows the same shape:

    with running_container(provider, image, config, settings) as handle:
        wait for readiness
        perform the check

running_container() removes the container on every exit path, so a probe
never leaves a container behind whether it passes, fails or errors.
"""

from __future__ import annotations

import contextlib
import http.client
import logging
import socket
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Union

from .config import ContainerConfig, ProbeSettings
from .errors import HarnessError, ProbeFailure
from .expectations import (
    CommandExpectation,
    Expectation,
    FileExpectation,
    HttpExpectation,
)
from .provider import ContainerHandle, ContainerProvider, ExecResult

# Runtime states a container never leaves on its own
_TERMINAL_STATES = ("exited", "dead", "removing")


@dataclass
class HttpResponse:
    """Status and decoded body of one HTTP probe request."""

    status: int
    body: str
    url: str


ProbeResult = Union[ExecResult, HttpResponse]


@contextlib.contextmanager
def running_container(
    provider: ContainerProvider,
    image: str,
    config: Optional[ContainerConfig] = None,
    *,
    keepalive: bool = False,
    ports: Sequence[int] = (),
) -> Iterator[ContainerHandle]:
    """Start one container and guarantee its removal.

    With ``keepalive`` the image entrypoint is replaced by
    ``config.keepalive`` so the container stays up for exec.
    """
    config = config or ContainerConfig()
    entrypoint = config.keepalive if keepalive else None

    handle = provider.start(image, config, entrypoint=entrypoint, ports=ports)
    logging.debug(f"Started container {handle.short_id} from {image}")

    try:
        yield handle
    except BaseException:
        # Keep the original error; a failed removal is only logged here
        try:
            provider.remove(handle)
        except HarnessError as e:
            logging.error(f"Cleanup of {handle.short_id} failed: {e}")
        raise
    provider.remove(handle)


def _describe_exit(handle: ContainerHandle, state: str) -> str:
    try:
        logs = handle.logs().strip()
    except HarnessError:
        logs = ""
    message = f"Container {handle.short_id} from {handle.image} is {state}"
    if logs:
        message += f"; last output:\n{logs}"
    return message


def wait_for_running(handle: ContainerHandle, settings: ProbeSettings) -> None:
    """Block until the container's main process is running.

    Raises:
        HarnessError: If the container exits or the timeout passes first
    """
    deadline = time.monotonic() + settings.ready_timeout
    while True:
        state = handle.state()
        if state == "running":
            logging.debug(f"Container {handle.short_id} is running")
            return
        if state in _TERMINAL_STATES:
            raise HarnessError(_describe_exit(handle, state), image=handle.image)
        if time.monotonic() >= deadline:
            raise HarnessError(
                f"Container {handle.short_id} not running after "
                f"{settings.ready_timeout}s (state: {state})",
                image=handle.image,
            )
        time.sleep(settings.poll_interval)


def wait_for_port(
    handle: ContainerHandle,
    container_port: int,
    settings: ProbeSettings,
    deadline: Optional[float] = None,
) -> tuple[str, int]:
    """Block until the published port accepts TCP connections.

    Returns:
        (host, port) the container port is reachable on
    """
    if deadline is None:
        deadline = time.monotonic() + settings.ready_timeout
    host, port = handle.host_port(container_port)

    while True:
        try:
            with socket.create_connection((host, port), timeout=settings.http_timeout):
                logging.debug(f"{host}:{port} accepts connections")
                return host, port
        except OSError as e:
            logging.debug(f"{host}:{port} not ready: {e}")

        if not handle.is_running():
            raise HarnessError(_describe_exit(handle, handle.state()), image=handle.image)
        if time.monotonic() >= deadline:
            raise HarnessError(
                f"Port {container_port} of {handle.short_id} not reachable after "
                f"{settings.ready_timeout}s",
                image=handle.image,
            )
        time.sleep(settings.poll_interval)


class _NoRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Return 3xx responses as they are instead of following them."""

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        return None


# The probed path's own status is what gets compared; a redirect target
# usually names the container-internal port and is unreachable anyway
_opener = urllib.request.build_opener(_NoRedirectHandler)


def _request(url: str, method: str, timeout: float) -> HttpResponse:
    request = urllib.request.Request(url, method=method)
    try:
        with _opener.open(request, timeout=timeout) as response:
            body = response.read()
            status = response.status
    except urllib.error.HTTPError as e:
        # Non-2xx statuses are still answers
        body = e.read()
        status = e.code
    return HttpResponse(status=status, body=body.decode("utf-8", errors="replace"), url=url)


def fetch_http(
    handle: ContainerHandle,
    expectation: HttpExpectation,
    settings: ProbeSettings,
) -> HttpResponse:
    """Wait for the container port, then request the expectation's path.

    A published port can accept connections before the server inside is
    listening, so connection-level errors are retried until the deadline.
    """
    deadline = time.monotonic() + settings.ready_timeout
    host, port = wait_for_port(handle, expectation.port, settings, deadline)
    url = f"http://{host}:{port}{expectation.path}"

    while True:
        try:
            response = _request(url, expectation.method, settings.http_timeout)
            logging.debug(f"{expectation.method} {url} -> {response.status}")
            return response
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            logging.debug(f"{url} not answering yet: {e}")

        if not handle.is_running():
            raise HarnessError(_describe_exit(handle, handle.state()), image=handle.image)
        if time.monotonic() >= deadline:
            raise HarnessError(
                f"No HTTP response from {url} within {settings.ready_timeout}s",
                image=handle.image,
            )
        time.sleep(settings.poll_interval)


def probe_file(
    provider: ContainerProvider,
    image: str,
    expectation: FileExpectation,
    config: Optional[ContainerConfig] = None,
    settings: Optional[ProbeSettings] = None,
) -> ExecResult:
    """Check that a path exists inside a fresh container."""
    settings = settings or ProbeSettings()
    label = expectation.describe()

    with running_container(provider, image, config, keepalive=True) as handle:
        wait_for_running(handle, settings)
        result = handle.exec(["test", "-e", expectation.path])

    if not result.success:
        raise ProbeFailure(
            label,
            f"{expectation.path} does not exist in {image}",
            expected="exists",
            actual="missing",
        )
    return result


def check_http_response(expectation: HttpExpectation, response: HttpResponse) -> None:
    """Compare a response with the expectation.

    Raises:
        ProbeFailure: On a status mismatch or a missing body substring
    """
    label = expectation.describe()
    if response.status != expectation.status:
        raise ProbeFailure(
            label,
            f"unexpected status from {response.url}",
            expected=expectation.status,
            actual=response.status,
        )
    if expectation.body is not None and expectation.body not in response.body:
        raise ProbeFailure(
            label,
            f"response body from {response.url} does not contain {expectation.body!r}",
            expected=expectation.body,
            actual=response.body[:200],
        )


def probe_http(
    provider: ContainerProvider,
    image: str,
    expectation: HttpExpectation,
    config: Optional[ContainerConfig] = None,
    settings: Optional[ProbeSettings] = None,
) -> HttpResponse:
    """Check an HTTP route served by a fresh container."""
    settings = settings or ProbeSettings()

    with running_container(provider, image, config, ports=[expectation.port]) as handle:
        wait_for_running(handle, settings)
        response = fetch_http(handle, expectation, settings)

    check_http_response(expectation, response)
    return response


def check_exec_result(expectation: CommandExpectation, result: ExecResult) -> None:
    """Compare an exec result with the expectation.

    Raises:
        ProbeFailure: On an exit code mismatch or a missing output substring
    """
    label = expectation.describe()
    if result.returncode != expectation.exit_code:
        raise ProbeFailure(
            label,
            f"unexpected exit code; output:\n{result.output.strip()}",
            expected=expectation.exit_code,
            actual=result.returncode,
        )

    for stream, wanted, text in (
        ("output", expectation.output, result.output),
        ("stdout", expectation.stdout, result.stdout),
        ("stderr", expectation.stderr, result.stderr),
    ):
        if wanted is not None and wanted not in text:
            raise ProbeFailure(
                label,
                f"{stream} does not contain {wanted!r}",
                expected=wanted,
                actual=text.strip()[:200],
            )


def probe_command(
    provider: ContainerProvider,
    image: str,
    expectation: CommandExpectation,
    config: Optional[ContainerConfig] = None,
    settings: Optional[ProbeSettings] = None,
) -> ExecResult:
    """Run a command inside a fresh container and check its outcome."""
    settings = settings or ProbeSettings()

    with running_container(provider, image, config, keepalive=True) as handle:
        wait_for_running(handle, settings)
        result = handle.exec(expectation.argv())

    check_exec_result(expectation, result)
    return result


def run_probe(
    provider: ContainerProvider,
    image: str,
    expectation: Expectation,
    config: Optional[ContainerConfig] = None,
    settings: Optional[ProbeSettings] = None,
) -> ProbeResult:
    """Dispatch an expectation to the matching probe."""
    if isinstance(expectation, FileExpectation):
        return probe_file(provider, image, expectation, config, settings)
    if isinstance(expectation, HttpExpectation):
        return probe_http(provider, image, expectation, config, settings)
    if isinstance(expectation, CommandExpectation):
        return probe_command(provider, image, expectation, config, settings)
    raise TypeError(f"Unsupported expectation: {expectation!r}")


def prune_containers(provider: ContainerProvider) -> list[str]:
    """Remove containers left behind by aborted runs.

    Returns:
        IDs of the removed containers
    """
    removed = []
    for container_id in provider.list_managed():
        provider.remove(ContainerHandle(container_id=container_id, image="", provider=provider))
        removed.append(container_id)
    logging.info(f"Removed {len(removed)} leftover container(s)")
    return removed
