"""Core pipeline and exception handling."""

from xamarin_android_uitest.core.exceptions import (
    StepError,
    ErrorKind,
    ConfigurationError,
    MalformedProjectFile,
    MalformedSolutionFile,
    RestoreFailed,
    BuildFailed,
    ArtifactNotFound,
    NoMatchingTestProject,
    TestExecutionFailed,
    RunnerCrashed,
    UnexpectedError,
)

__all__ = [
    "StepError",
    "ErrorKind",
    "ConfigurationError",
    "MalformedProjectFile",
    "MalformedSolutionFile",
    "RestoreFailed",
    "BuildFailed",
    "ArtifactNotFound",
    "NoMatchingTestProject",
    "TestExecutionFailed",
    "RunnerCrashed",
    "UnexpectedError",
]
