"""QEMU test harness: exit-code protocol and concurrent runner."""

from .protocol import (
    EXIT_CHECK_OUTPUT,
    EXIT_FAILURE,
    EXIT_SUCCESS,
    TestOutcome,
    TestResult,
    decode_exit,
)
from .runner import (
    TestReport,
    TestRunner,
    TestTarget,
    discover_test_kernels,
    run_tests,
)

__all__ = [
    # Protocol
    "EXIT_CHECK_OUTPUT",
    "EXIT_FAILURE",
    "EXIT_SUCCESS",
    "TestOutcome",
    "TestResult",
    "decode_exit",
    # Runner
    "TestReport",
    "TestRunner",
    "TestTarget",
    "discover_test_kernels",
    "run_tests",
]
