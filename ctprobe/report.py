"""Per-check reporting for probes.

A ProbeReport lets one test make several labelled checks against an image.
Probe failures are recorded instead of raised, so every check runs; harness
errors still abort the test immediately:

    report = ProbeReport("actions-runner")
    with report.check("Check /usr/local/bin/yq exists"):
        probe_file(provider, image, FileExpectation("/usr/local/bin/yq"))
    with report.check("yq runs"):
        probe_command(provider, image, CommandExpectation("yq", ["--version"]))
    report.assert_all()
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .errors import ProbeFailure


@dataclass
class CheckResult:
    """Outcome of one labelled check."""

    label: str
    failure: Optional[ProbeFailure] = None

    @property
    def passed(self) -> bool:
        return self.failure is None

    def describe(self) -> str:
        if self.passed:
            return f"PASS  {self.label}"
        return f"FAIL  {self.failure}"


@dataclass
class ProbeReport:
    """Collects check results for one test or suite."""

    name: Optional[str] = None
    results: list[CheckResult] = field(default_factory=list)

    @contextlib.contextmanager
    def check(self, label: str) -> Iterator[CheckResult]:
        """Run a block as one labelled check.

        ProbeFailure raised inside the block is recorded and swallowed;
        any other exception propagates without a result being recorded.
        """
        result = CheckResult(label=label)
        try:
            yield result
        except ProbeFailure as e:
            result.failure = e
            logging.info(f"FAIL {label}: {e.message}")
        else:
            logging.info(f"PASS {label}")
        self.results.append(result)

    def record(self, label: str, failure: Optional[ProbeFailure] = None) -> CheckResult:
        """Add an outcome computed elsewhere."""
        result = CheckResult(label=label, failure=failure)
        self.results.append(result)
        return result

    @property
    def failures(self) -> list[CheckResult]:
        return [r for r in self.results if not r.passed]

    @property
    def passed(self) -> bool:
        """True when every recorded check passed."""
        return not self.failures

    def summary(self) -> list[str]:
        lines = [r.describe() for r in self.results]
        total = len(self.results)
        failed = len(self.failures)
        title = f"{self.name}: " if self.name else ""
        lines.append(f"{title}{total - failed}/{total} checks passed")
        return lines

    def assert_all(self) -> None:
        """Raise one ProbeFailure listing every failed check."""
        failures = self.failures
        if not failures:
            return
        if len(failures) == 1:
            raise failures[0].failure
        details = "\n".join(f"  - {r.failure}" for r in failures)
        raise ProbeFailure(
            self.name or "probe report",
            f"{len(failures)} of {len(self.results)} checks failed:\n{details}",
        )
