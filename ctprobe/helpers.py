"""Helper functions for image tests.

These make per-image tests short:

    def test_actions_runner(container_provider):
        image = get_test_image("ghcr.io/craquehouse/actions-runner:rolling")
        assert_file_exists(container_provider, image, "/usr/local/bin/yq")

Each helper raises ProbeFailure when the expectation does not hold, unless a
ProbeReport is passed, in which case the outcome is recorded there.
"""

from __future__ import annotations

from typing import Any, Optional

from .config import ContainerConfig, ProbeSettings, Suite
from .expectations import (
    CommandExpectation,
    Expectation,
    FileExpectation,
    HttpExpectation,
)
from .harness import ProbeResult, run_probe
from .image import get_test_image
from .provider import ContainerProvider
from .report import ProbeReport


def check(
    provider: ContainerProvider,
    image: str,
    expectation: Expectation,
    config: Optional[ContainerConfig] = None,
    settings: Optional[ProbeSettings] = None,
    report: Optional[ProbeReport] = None,
) -> Optional[ProbeResult]:
    """Run one expectation, raising or recording its outcome.

    Returns the probe result, or None when a failure was recorded.
    """
    if report is None:
        return run_probe(provider, image, expectation, config, settings)

    result = None
    with report.check(expectation.describe()):
        result = run_probe(provider, image, expectation, config, settings)
    return result


def assert_file_exists(
    provider: ContainerProvider,
    image: str,
    path: str,
    config: Optional[ContainerConfig] = None,
    *,
    settings: Optional[ProbeSettings] = None,
    report: Optional[ProbeReport] = None,
    label: Optional[str] = None,
):
    """Assert that ``path`` exists in the image's filesystem."""
    expectation = FileExpectation(path=path, label=label)
    return check(provider, image, expectation, config, settings, report)


def assert_http_endpoint(
    provider: ContainerProvider,
    image: str,
    path: str = "/",
    port: int = 80,
    status: int = 200,
    body: Optional[str] = None,
    config: Optional[ContainerConfig] = None,
    *,
    settings: Optional[ProbeSettings] = None,
    report: Optional[ProbeReport] = None,
    label: Optional[str] = None,
):
    """Assert that the image serves ``path`` on ``port`` with ``status``."""
    expectation = HttpExpectation(path=path, port=port, status=status, body=body, label=label)
    return check(provider, image, expectation, config, settings, report)


def assert_command_succeeds(
    provider: ContainerProvider,
    image: str,
    entrypoint: Optional[str],
    *args: str,
    exit_code: int = 0,
    output: Optional[str] = None,
    config: Optional[ContainerConfig] = None,
    settings: Optional[ProbeSettings] = None,
    report: Optional[ProbeReport] = None,
    label: Optional[str] = None,
):
    """Assert that ``entrypoint args...`` exits with ``exit_code``."""
    expectation = CommandExpectation(
        entrypoint=entrypoint,
        args=args,
        exit_code=exit_code,
        output=output,
        label=label,
    )
    return check(provider, image, expectation, config, settings, report)


def run_suite(
    provider: ContainerProvider,
    suite: Suite,
    image: Optional[str] = None,
    settings: Optional[ProbeSettings] = None,
    extra_env: Optional[dict[str, str]] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> ProbeReport:
    """Run every expectation of a suite into a fresh report.

    Without an explicit ``image`` the suite's image is used, overridable
    through TEST_IMAGE. The suite's ``[settings]`` table is applied on top
    of ``settings``, and ``overrides`` on top of both. A HarnessError aborts
    the suite.
    """
    image = image or get_test_image(suite.image)
    settings = suite.resolve_settings(settings or ProbeSettings()).merged(overrides or {})
    config = suite.config.with_env(extra_env) if extra_env else suite.config

    report = ProbeReport(name=f"{suite.name} ({image})")
    for expectation in suite.expectations:
        check(provider, image, expectation, config, settings, report)
    return report
