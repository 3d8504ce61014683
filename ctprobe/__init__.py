"""ctprobe - Check that container images expose expected files, HTTP endpoints and commands"""

from ctprobe.version import __version__
from ctprobe.config import ContainerConfig, ProbeSettings, Suite
from ctprobe.errors import ConfigError, HarnessError, ProbeFailure, ResolutionError
from ctprobe.expectations import CommandExpectation, FileExpectation, HttpExpectation
from ctprobe.harness import (
    probe_command,
    probe_file,
    probe_http,
    prune_containers,
    run_probe,
    running_container,
)
from ctprobe.helpers import (
    assert_command_succeeds,
    assert_file_exists,
    assert_http_endpoint,
    run_suite,
)
from ctprobe.image import get_test_image
from ctprobe.provider import CliProvider, ContainerHandle, ContainerProvider, ExecResult, get_provider
from ctprobe.report import ProbeReport

__all__ = [
    "__version__",
    # Configuration
    "ContainerConfig",
    "ProbeSettings",
    "Suite",
    "get_test_image",
    # Expectations
    "FileExpectation",
    "HttpExpectation",
    "CommandExpectation",
    # Harness
    "running_container",
    "run_probe",
    "probe_file",
    "probe_http",
    "probe_command",
    "prune_containers",
    "assert_file_exists",
    "assert_http_endpoint",
    "assert_command_succeeds",
    "run_suite",
    "ProbeReport",
    # Providers
    "ContainerProvider",
    "ContainerHandle",
    "CliProvider",
    "ExecResult",
    "get_provider",
    # Errors
    "ResolutionError",
    "ConfigError",
    "HarnessError",
    "ProbeFailure",
]
