"""Pytest fixtures for image tests.

Registered through the ``pytest11`` entry point, so any test can ask for:
- probe_settings: settings from RUNNER / CTPROBE_BACKEND
- container_provider: a reachable provider, or the test is skipped
- probe_report: a per-test ProbeReport for soft, labelled checks
"""

import pytest

from .config import ProbeSettings
from .errors import HarnessError
from .provider import get_provider
from .report import ProbeReport


@pytest.fixture(scope="session")
def probe_settings():
    """Probe settings for the whole test session."""
    return ProbeSettings.from_environ()


@pytest.fixture(scope="session")
def container_provider(probe_settings):
    """Skip tests if no container runtime is reachable."""
    try:
        provider = get_provider(probe_settings)
    except HarnessError as e:
        pytest.skip(f"Container runtime not available: {e}")
    if not provider.available():
        pytest.skip(f"Container runtime not available ({probe_settings.backend}: {probe_settings.runtime})")
    return provider


@pytest.fixture
def probe_report(request):
    """Provide a report named after the test.

    Call ``probe_report.assert_all()`` at the end of the test to fail it
    when any recorded check failed.
    """
    return ProbeReport(name=request.node.name)
