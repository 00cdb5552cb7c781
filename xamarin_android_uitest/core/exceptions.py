"""Custom exceptions for the UITest step."""

from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories reported by the step."""

    CONFIGURATION = "configuration"
    MALFORMED_PROJECT = "malformed_project"
    MALFORMED_SOLUTION = "malformed_solution"
    RESTORE_FAILED = "restore_failed"
    BUILD_FAILED = "build_failed"
    ARTIFACT_NOT_FOUND = "artifact_not_found"
    NO_MATCHING_TEST_PROJECT = "no_matching_test_project"
    TEST_EXECUTION_FAILED = "test_execution_failed"
    RUNNER_CRASHED = "runner_crashed"
    UNEXPECTED = "unexpected"

    @property
    def fatal(self) -> bool:
        """Whether this kind of failure stops the pipeline."""
        return self is not ErrorKind.RESTORE_FAILED


class StepError(Exception):
    """Base exception for all step errors."""

    kind: ErrorKind = ErrorKind.CONFIGURATION

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def fatal(self) -> bool:
        return self.kind.fatal

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(StepError):
    """Missing or invalid step input."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str, option: str | None = None, value: str | None = None):
        super().__init__(
            message,
            details={"option": option, "value": value} if option else None,
        )
        self.option = option
        self.value = value


class MalformedProjectFile(StepError):
    """A project file could not be read or lacks required fields."""

    kind = ErrorKind.MALFORMED_PROJECT

    def __init__(self, message: str, file_path: str | None = None, missing: list[str] | None = None):
        super().__init__(
            message,
            details={"file_path": file_path, "missing": missing or []},
        )
        self.file_path = file_path
        self.missing = missing or []


class MalformedSolutionFile(StepError):
    """A solution file could not be read or declares no projects."""

    kind = ErrorKind.MALFORMED_SOLUTION

    def __init__(self, message: str, file_path: str | None = None):
        super().__init__(message, details={"file_path": file_path})
        self.file_path = file_path


class ExternalCommandError(StepError):
    """Base for failures of an external tool invocation."""

    def __init__(
        self,
        message: str,
        command: str | None = None,
        exit_code: int | None = None,
        timed_out: bool = False,
    ):
        super().__init__(
            message,
            details={"command": command, "exit_code": exit_code, "timed_out": timed_out},
        )
        self.command = command
        self.exit_code = exit_code
        self.timed_out = timed_out


class RestoreFailed(ExternalCommandError):
    """NuGet restore failed for a solution. Logged, never fatal."""

    kind = ErrorKind.RESTORE_FAILED


class BuildFailed(ExternalCommandError):
    """The build toolchain exited with a non-zero status."""

    kind = ErrorKind.BUILD_FAILED


class ArtifactNotFound(StepError):
    """The build succeeded but produced no artifact of the expected type."""

    kind = ErrorKind.ARTIFACT_NOT_FOUND

    def __init__(self, message: str, search_root: str | None = None, extension: str | None = None):
        super().__init__(
            message,
            details={"search_root": search_root, "extension": extension},
        )
        self.search_root = search_root
        self.extension = extension


class NoMatchingTestProject(StepError):
    """No test project references the application project."""

    kind = ErrorKind.NO_MATCHING_TEST_PROJECT

    def __init__(self, message: str, app_projects: list[str] | None = None):
        super().__init__(message, details={"app_projects": app_projects or []})
        self.app_projects = app_projects or []


class TestExecutionFailed(StepError):
    """The test run reported failing tests."""

    __test__ = False
    kind = ErrorKind.TEST_EXECUTION_FAILED

    def __init__(
        self,
        message: str,
        failed_tests: list[str] | None = None,
        exit_code: int | None = None,
    ):
        super().__init__(
            message,
            details={"failed_count": len(failed_tests or []), "exit_code": exit_code},
        )
        self.failed_tests = failed_tests or []
        self.exit_code = exit_code


class RunnerCrashed(ExternalCommandError):
    """The test runner failed without producing a usable report."""

    kind = ErrorKind.RUNNER_CRASHED


class UnexpectedError(StepError):
    """An error outside the step's own taxonomy, such as an OS failure."""

    kind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, error_type: str | None = None):
        super().__init__(message, details={"error_type": error_type} if error_type else None)
        self.error_type = error_type
