"""Command-line integration tests.

Each test shows a real ctprobe command line that can be used as documentation.
"""

import os

import pytest

from .conftest import ALPINE, NGINX


@pytest.fixture
def suite_file(tmp_path):
    path = tmp_path / "container-test.toml"
    path.write_text(
        f"""
image = "{ALPINE}"

[[files]]
path = "/etc/os-release"

[[commands]]
entrypoint = "cat"
args = ["/etc/os-release"]
output = "Alpine"
"""
    )
    return path


def test_check_passes(container_provider, test_images, suite_file, run_ctprobe):
    result = run_ctprobe("check", str(suite_file))

    assert result.returncode == 0, result.stderr
    assert "2/2 checks passed" in result.stdout


def test_check_failing_image(container_provider, test_images, suite_file, run_ctprobe):
    """busybox has no /etc/os-release, so both checks fail."""
    result = run_ctprobe("check", "--image", "busybox:1.36", str(suite_file))

    assert result.returncode == 1, result.stderr
    assert "0/2 checks passed" in result.stdout


def test_image_from_environment(container_provider, test_images, suite_file, run_ctprobe):
    """nginx:alpine is Alpine based, so the suite passes against it too."""
    env = {**os.environ, "TEST_IMAGE": NGINX}
    result = run_ctprobe("check", str(suite_file), env=env)

    assert f": {NGINX}" in result.stderr
    assert result.returncode == 0, result.stdout + result.stderr


def test_invalid_image(container_provider, suite_file, run_ctprobe):
    result = run_ctprobe("check", "--image", "nonexistent.invalid/image:tag", str(suite_file))

    assert result.returncode == 2
    assert "Error:" in result.stderr


def test_prune(container_provider, run_ctprobe):
    result = run_ctprobe("prune")
    assert result.returncode == 0
