"""Concurrent QEMU test runner."""

import json
import logging
import os
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from ..config import DEFAULT_TEST_TIMEOUT
from ..errors import EmulatorError
from .protocol import TestOutcome, TestResult, decode_exit

log = logging.getLogger(__name__)

QEMU_BINARY = "qemu-system-x86_64"
DEBUG_EXIT_DEVICE = "isa-debug-exit,iobase=0xf4,iosize=0x04"

TEST_PREFIX = "test-"


@dataclass
class TestTarget:
    """A built test image and the name it is reported under."""

    __test__ = False

    name: str
    image_path: Path

    @property
    def output_path(self) -> Path:
        """File receiving the guest's serial output."""
        return Path(f"{self.image_path}-output.txt")


@dataclass
class TestReport:
    """Aggregated verdicts of one test invocation."""

    __test__ = False

    outcomes: list[TestOutcome] = field(default_factory=list)
    duration_s: float = 0.0

    @property
    def succeeded(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def failures(self) -> list[TestOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def counts(self) -> dict[str, int]:
        counts = {r.value: 0 for r in TestResult}
        for o in self.outcomes:
            counts[o.result.value] += 1
        return counts

    def save(self, path: Path) -> None:
        """Write the report as JSON."""
        report = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "duration_s": round(self.duration_s, 3),
            "succeeded": self.succeeded,
            "summary": self.counts(),
            "tests": [o.to_dict() for o in self.outcomes],
        }
        with open(path, "w") as f:
            json.dump(report, f, indent=2)


def discover_test_kernels(directory: Path, prefix: str = TEST_PREFIX) -> list[Path]:
    """Executables in `directory` whose name starts with `prefix`."""
    directory = Path(directory)
    kernels = []
    for path in sorted(directory.iterdir()):
        if not path.is_file() or not path.name.startswith(prefix):
            continue
        # Skip our own by-products
        if path.suffix in (".bin", ".txt", ".d"):
            continue
        if os.access(path, os.X_OK):
            kernels.append(path)
    return kernels


def _log_diagnostic(text: str | None) -> None:
    for line in (text or "").splitlines():
        log.error("    %s", line)


def _log_outcome(outcome: TestOutcome) -> None:
    if outcome.result is TestResult.OK:
        log.info("OK: %s", outcome.name)
    elif outcome.result is TestResult.TIMED_OUT:
        log.error("Timed Out: %s", outcome.name)
    elif outcome.result is TestResult.FAILED:
        if outcome.diagnostic == outcome.name:
            log.error("FAIL: %s", outcome.name)
        else:
            log.error("FAIL: %s:", outcome.name)
            _log_diagnostic(outcome.diagnostic)
    elif outcome.exit_code is None:
        log.error("FAIL: %s: No Exit Code.", outcome.name)
        _log_diagnostic(outcome.diagnostic)
    elif outcome.exit_code == 1:
        log.error("FAIL: %s: Invalid Output:", outcome.name)
        _log_diagnostic(outcome.diagnostic)
    else:
        log.error("FAIL: %s: Invalid Exit Code %d:", outcome.name, outcome.exit_code)
        _log_diagnostic(outcome.diagnostic)


class TestRunner:
    """Boots test images in QEMU and classifies each run."""

    __test__ = False

    def __init__(
        self,
        timeout: float = DEFAULT_TEST_TIMEOUT,
        max_workers: int | None = None,
        qemu_path: str = QEMU_BINARY,
    ):
        self.timeout = timeout
        self.max_workers = max_workers
        self.qemu_path = qemu_path

    def command(self, target: TestTarget) -> list[str]:
        """QEMU invocation for one target."""
        return [
            self.qemu_path,
            "-drive", f"format=raw,file={target.image_path}",
            "-device", DEBUG_EXIT_DEVICE,
            "-display", "none",
            "-serial", f"file:{target.output_path}",
        ]

    def _execute(self, target: TestTarget) -> TestOutcome:
        cmd = self.command(target)
        log.debug("Launching: %s", " ".join(cmd))
        try:
            child = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise EmulatorError(f"Failed to launch QEMU: {cmd}\n{e}") from e

        try:
            returncode = child.wait(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            return TestOutcome(target.name, TestResult.TIMED_OUT)
        finally:
            if child.poll() is None:
                child.kill()
                child.wait()

        # Negative return codes mean the process died from a signal
        exit_code = returncode if returncode >= 0 else None

        try:
            output = target.output_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise EmulatorError(
                f"Failed to read test output file {target.output_path}: {e}"
            ) from e

        return decode_exit(exit_code, output, target.name)

    def run_target(self, target: TestTarget) -> TestOutcome:
        """Run one target; launch and collection errors become Invalid."""
        log.info("RUN: %s", target.name)
        try:
            outcome = self._execute(target)
        except EmulatorError as e:
            log.error("FAIL: %s: Could not run test:", target.name)
            _log_diagnostic(str(e))
            return TestOutcome(target.name, TestResult.INVALID, str(e))
        _log_outcome(outcome)
        return outcome

    def _worker_count(self, num_targets: int) -> int:
        if self.max_workers is not None:
            return max(1, min(self.max_workers, num_targets))
        return max(1, min(num_targets, os.cpu_count() or 1))

    def run_all(self, targets: list[TestTarget]) -> TestReport:
        """Run every target concurrently and wait for all verdicts."""
        if not targets:
            return TestReport()

        workers = self._worker_count(len(targets))
        log.info("Running %d tests with %d workers", len(targets), workers)
        start_time = time.time()

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.run_target, t) for t in targets]
            outcomes = [f.result() for f in futures]

        return TestReport(outcomes=outcomes, duration_s=time.time() - start_time)


def run_tests(targets: list[TestTarget], runner: TestRunner | None = None) -> TestReport:
    """Run `targets` with `runner` (a default TestRunner if omitted)."""
    return (runner or TestRunner()).run_all(targets)
