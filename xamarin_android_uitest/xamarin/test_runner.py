"""Test execution with the NUnit console runner."""

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from xamarin_android_uitest.config import ToolSettings
from xamarin_android_uitest.core.exceptions import RunnerCrashed, StepError, TestExecutionFailed
from xamarin_android_uitest.xamarin.process import CommandResult, CommandRunner
from xamarin_android_uitest.utils.logging import get_logger

logger = get_logger(__name__)

# test-case result values that count as a failing test (NUnit 3 and NUnit 2)
FAILED_RESULTS = {"failed", "failure", "error"}

SUMMARY_PATTERN = re.compile(
    r"Tests run:\s*(?P<total>\d+),\s*Errors:\s*(?P<errors>\d+),\s*Failures:\s*(?P<failures>\d+),"
    r"\s*Inconclusive:\s*(?P<inconclusive>\d+),\s*Time:\s*(?P<time>\S+)\s*seconds\s*"
    r"Not run:\s*(?P<not_run>\d+),\s*Invalid:\s*(?P<invalid>\d+),\s*Ignored:\s*(?P<ignored>\d+),"
    r"\s*Skipped:\s*(?P<skipped>\d+)"
)


class TestRunState(str, Enum):
    __test__ = False

    NOT_RUN = "not_run"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    RUNNER_CRASHED = "runner_crashed"


@dataclass
class TestCaseFailure:
    """A failing test-case record from the NUnit report."""

    __test__ = False

    name: str
    full_name: str
    result: str
    message: str | None = None
    stack_trace: str | None = None


@dataclass
class TestSummary:
    """Aggregate counts printed by the NUnit 2 console."""

    __test__ = False

    total: int
    errors: int
    failures: int
    inconclusive: int
    not_run: int
    invalid: int
    ignored: int
    skipped: int
    time_seconds: float = 0.0

    @property
    def failing(self) -> bool:
        return self.errors > 0 or self.failures > 0


@dataclass
class TestRunResult:
    """Result of one test assembly run."""

    __test__ = False

    test_assembly: Path
    state: TestRunState = TestRunState.NOT_RUN
    exit_code: int | None = None
    command: list[str] = field(default_factory=list)
    output: str = ""
    report_path: Path | None = None
    report_text: str | None = None
    failures: list[TestCaseFailure] = field(default_factory=list)
    summary: TestSummary | None = None
    error: StepError | None = None

    @property
    def success(self) -> bool:
        return self.state is TestRunState.PASSED


def parse_summary(output: str) -> TestSummary | None:
    """
    Parse the NUnit console summary block.

    Args:
        output: Console output of the runner

    Returns:
        TestSummary or None if the summary is not present
    """
    match = SUMMARY_PATTERN.search(output)
    if not match:
        return None

    try:
        time_seconds = float(match.group("time").replace(",", "."))
    except ValueError:
        time_seconds = 0.0

    return TestSummary(
        total=int(match.group("total")),
        errors=int(match.group("errors")),
        failures=int(match.group("failures")),
        inconclusive=int(match.group("inconclusive")),
        not_run=int(match.group("not_run")),
        invalid=int(match.group("invalid")),
        ignored=int(match.group("ignored")),
        skipped=int(match.group("skipped")),
        time_seconds=time_seconds,
    )


def parse_failed_test_cases(report_text: str) -> list[TestCaseFailure]:
    """
    Extract failing test cases from an NUnit XML report.

    Args:
        report_text: Report content

    Returns:
        Failing test cases in document order

    Raises:
        ET.ParseError: If the report is not well-formed XML
    """
    root = ET.fromstring(report_text)
    failures = []

    for case in root.iter("test-case"):
        result = case.get("result", "")
        if result.lower() not in FAILED_RESULTS:
            continue

        name = case.get("name", "Unknown")
        message = case.findtext("failure/message") or case.findtext("reason/message")
        stack_trace = case.findtext("failure/stack-trace")

        failures.append(TestCaseFailure(
            name=name,
            full_name=case.get("fullname", name),
            result=result,
            message=message.strip() if message else None,
            stack_trace=stack_trace.strip() if stack_trace else None,
        ))

    return failures


class TestRunner:
    """
    Runs Xamarin.UITest assemblies with the NUnit console.

    A non-zero runner exit is a reportable outcome, not an exception.
    Failing tests are read from the XML report; when no report is
    written the console summary is used instead.
    """

    __test__ = False

    def __init__(
        self,
        tools: ToolSettings,
        result_log_path: Path,
        runner: CommandRunner | None = None,
    ):
        """
        Initialize test runner.

        Args:
            tools: Tool locations and timeouts; nunit_console must be set
            result_log_path: Where the NUnit XML report is written
            runner: Command runner (defaults to a new CommandRunner)
        """
        self.tools = tools
        self.result_log_path = result_log_path
        self.runner = runner or CommandRunner()

    @property
    def is_legacy_console(self) -> bool:
        """NUnit 2 consoles take -run/-xml instead of --test/--result."""
        return Path(self.tools.nunit_console or "").name.lower() == "nunit-console.exe"

    def command_for(self, test_assembly: Path, test_filter: str | None = None) -> list[str]:
        cmd = [self.tools.mono_path, str(self.tools.nunit_console), str(test_assembly)]
        if self.is_legacy_console:
            if test_filter:
                cmd.append(f"-run={test_filter}")
            cmd.append(f"-xml={self.result_log_path}")
        else:
            if test_filter:
                cmd.append(f"--test={test_filter}")
            cmd.append(f"--result={self.result_log_path}")
        return cmd

    def run(
        self,
        test_assembly: Path,
        test_filter: str | None = None,
        environment: dict[str, str] | None = None,
    ) -> TestRunResult:
        """
        Run a test assembly.

        Args:
            test_assembly: Path to the UITest .dll
            test_filter: Optional test or fixture name to run
            environment: Extra environment for the runner (APK path, serial)

        Returns:
            TestRunResult in state PASSED, FAILED or RUNNER_CRASHED
        """
        run_result = TestRunResult(test_assembly=test_assembly)

        if self.result_log_path.exists():
            logger.debug(f"[TEST] Removing previous result log: {self.result_log_path}")
            self.result_log_path.unlink()
        self.result_log_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = self.command_for(test_assembly, test_filter)
        run_result.command = cmd
        run_result.state = TestRunState.RUNNING

        logger.info(f"[TEST] Running Xamarin UITest: {test_assembly.name}")
        if test_filter:
            logger.info(f"[TEST] Test filter: {test_filter}")

        result = self.runner.run(
            cmd,
            tag="TEST",
            description=f"Running tests in {test_assembly.name}",
            timeout=self.tools.test_timeout,
            env=environment,
        )

        run_result.exit_code = result.exit_code
        run_result.output = result.output

        report_parsed = self._read_report(run_result)
        if not report_parsed:
            run_result.summary = parse_summary(result.output)

        self._finish(run_result, result)
        return run_result

    def _read_report(self, run_result: TestRunResult) -> bool:
        """Read and parse the XML report if the runner wrote one."""
        if not self.result_log_path.exists():
            logger.warning(f"[TEST] No result log at {self.result_log_path}")
            return False

        run_result.report_path = self.result_log_path
        try:
            run_result.report_text = self.result_log_path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"[TEST] Failed to read test result, error: {e}")
            return False

        try:
            run_result.failures = parse_failed_test_cases(run_result.report_text)
        except ET.ParseError as e:
            logger.warning(f"[TEST] Failed to parse result log, error: {e}")
            return False

        return True

    def _finish(self, run_result: TestRunResult, result: CommandResult) -> None:
        """Decide the final state of a run."""
        if run_result.failures:
            run_result.state = TestRunState.FAILED
        elif run_result.summary is not None and run_result.summary.failing:
            run_result.state = TestRunState.FAILED
        elif result.success:
            run_result.state = TestRunState.PASSED
        else:
            run_result.state = TestRunState.RUNNER_CRASHED

        if run_result.state is TestRunState.FAILED:
            names = [f.full_name for f in run_result.failures]
            count = len(names)
            if not count and run_result.summary is not None:
                count = run_result.summary.errors + run_result.summary.failures
            run_result.error = TestExecutionFailed(
                f"{count} test(s) failed in {run_result.test_assembly.name}",
                failed_tests=names,
                exit_code=result.exit_code,
            )
        elif run_result.state is TestRunState.RUNNER_CRASHED:
            if result.timed_out:
                reason = f"timed out after {self.tools.test_timeout}s"
            elif result.launch_error:
                reason = result.launch_error
            else:
                reason = f"exit code {result.exit_code} without failing test records"
            run_result.error = RunnerCrashed(
                f"Test runner crashed: {reason}",
                command=result.printable_command,
                exit_code=result.exit_code,
                timed_out=result.timed_out,
            )

        logger.info(f"[TEST] Test run finished: {run_result.state.value}")

    def log_failures(self, run_result: TestRunResult) -> None:
        """Report every failing test case through the error log."""
        for failure in run_result.failures:
            logger.error(f"[TEST] Failed: {failure.full_name}")
            if failure.message:
                logger.error(f"[TEST]   Message: {failure.message}")
            if failure.stack_trace:
                logger.error(f"[TEST]   Stack trace:\n{failure.stack_trace}")

        summary = run_result.summary
        if summary is not None and summary.failing:
            logger.error(
                f"[TEST] Tests run: {summary.total}, Errors: {summary.errors}, "
                f"Failures: {summary.failures}"
            )
