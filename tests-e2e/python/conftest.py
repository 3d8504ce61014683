"""Pytest fixtures for container integration tests.

These tests start real containers. The ``container_provider`` fixture from
the ctprobe pytest plugin skips them when no runtime is reachable.

These fixtures provide:
- Test image pre-pulling
- A check that no labelled container outlives a test
- A helper for running the ctprobe command line
"""

import subprocess
import sys
from pathlib import Path

import pytest


ALPINE = "alpine:3.20"
NGINX = "nginx:1.27-alpine"

REPO_ROOT = Path(__file__).resolve().parent.parent.parent


@pytest.fixture(scope="session")
def test_images(container_provider, probe_settings):
    """Ensure test images are available so pulls do not eat readiness time."""
    images = [ALPINE, NGINX]
    if probe_settings.backend == "cli":
        for image in images:
            subprocess.run([probe_settings.runtime, "pull", image], capture_output=True)
    return images


@pytest.fixture
def settings(probe_settings):
    return probe_settings.merged({"ready_timeout": 30.0})


@pytest.fixture
def no_leftovers(container_provider):
    """Fail the test if it leaves a ctprobe container behind."""
    before = set(container_provider.list_managed())
    yield
    leftovers = set(container_provider.list_managed()) - before
    assert not leftovers, f"Containers left running: {leftovers}"


@pytest.fixture
def run_ctprobe():
    """Run the ctprobe CLI as a subprocess and return the CompletedProcess."""

    def run(*args, env=None):
        return subprocess.run(
            [sys.executable, "-m", "ctprobe", *args],
            cwd=REPO_ROOT,
            capture_output=True,
            text=True,
            env=env,
        )

    return run
