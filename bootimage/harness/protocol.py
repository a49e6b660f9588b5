"""Exit protocol of test kernels: isa-debug-exit codes plus serial markers.

A test kernel writes a status `n` to the debug-exit port; QEMU then exits
with `(n << 1) | 1`. Only n = 0, 2 and 3 are defined:

    exit 1  (n=0)  outcome is in the serial text: "ok\\n" or "failed\\n..."
    exit 5  (n=2)  success, no markers expected
    exit 7  (n=3)  failure, details follow a "failed\\n" marker if present

Anything else, including signal termination, is Invalid.
"""

from dataclasses import dataclass
from enum import Enum

OK_MARKER = "ok\n"
FAILED_MARKER = "failed\n"

EXIT_CHECK_OUTPUT = 1  # 0 << 1 | 1
EXIT_SUCCESS = 5  # 2 << 1 | 1
EXIT_FAILURE = 7  # 3 << 1 | 1


class TestResult(Enum):
    __test__ = False

    OK = "Ok"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"
    INVALID = "Invalid"

    def __str__(self) -> str:
        return self.value


@dataclass
class TestOutcome:
    """Verdict for one test target."""

    __test__ = False

    name: str
    result: TestResult
    diagnostic: str | None = None
    exit_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.result is TestResult.OK

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "result": self.result.value,
            "diagnostic": self.diagnostic,
            "exit_code": self.exit_code,
        }


def decode_exit(exit_code: int | None, output: str, target_name: str) -> TestOutcome:
    """Classify a finished QEMU run. `exit_code` is None when killed by a signal."""
    if exit_code is None:
        return TestOutcome(target_name, TestResult.INVALID, output)

    if exit_code == EXIT_CHECK_OUTPUT:
        if output.startswith(OK_MARKER):
            return TestOutcome(target_name, TestResult.OK, exit_code=exit_code)
        if output.startswith(FAILED_MARKER):
            return TestOutcome(
                target_name, TestResult.FAILED, output[len(FAILED_MARKER):], exit_code
            )
        return TestOutcome(target_name, TestResult.INVALID, output, exit_code)

    if exit_code == EXIT_SUCCESS:
        return TestOutcome(target_name, TestResult.OK, exit_code=exit_code)

    if exit_code == EXIT_FAILURE:
        index = output.find(FAILED_MARKER)
        if index >= 0:
            return TestOutcome(
                target_name, TestResult.FAILED, output[index + len(FAILED_MARKER):], exit_code
            )
        # Marker lost; the kernel still reported failure.
        return TestOutcome(target_name, TestResult.FAILED, target_name, exit_code)

    return TestOutcome(target_name, TestResult.INVALID, output, exit_code)
