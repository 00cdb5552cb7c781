"""Configuration management for the UITest step."""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from xamarin_android_uitest.core.exceptions import ConfigurationError

MONO_BIN = Path("/Library/Frameworks/Mono.framework/Versions/Current/bin")

_TRUE_VALUES = {"true", "t", "yes", "y", "1"}
_FALSE_VALUES = {"false", "f", "no", "n", "0", ""}


def parse_bool(value: str | bool | None, option: str = "value") -> bool:
    """
    Parse a bool-like step input.

    Args:
        value: Raw input (case-insensitive true/t/yes/y/1 or false/f/no/n/0)
        option: Option name used in the error message

    Returns:
        Parsed boolean

    Raises:
        ConfigurationError: If the value is not bool-like
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value

    normalized = str(value).strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False

    raise ConfigurationError(
        f"Invalid boolean for {option}: {value!r}",
        option=option,
        value=str(value),
    )


class StepSettings(BaseSettings):
    """Values provided by the Bitrise environment."""

    model_config = SettingsConfigDict(populate_by_name=True)

    source_dir: Path = Field(
        default=Path("."),
        validation_alias=AliasChoices("BITRISE_SOURCE_DIR", "source_dir"),
        description="Checked out source directory",
    )
    deploy_dir: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("BITRISE_DEPLOY_DIR", "deploy_dir"),
        description="Directory for artifacts deployed by the workflow",
    )
    emulator_serial: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ANDROID_EMULATOR_SERIAL", "emulator_serial"),
        description="Serial of the running emulator",
    )

    @property
    def result_log_path(self) -> Path:
        """Path of the NUnit XML report."""
        return (self.deploy_dir or self.source_dir) / "TestResult.xml"


class ToolSettings(BaseSettings):
    """External tool locations and invocation limits."""

    model_config = SettingsConfigDict(env_prefix="TOOLS_")

    build_tool: Literal["msbuild", "xbuild"] = Field(
        default="msbuild",
        description="Build tool used for clean and build",
    )
    msbuild_path: str = Field(default="msbuild", description="msbuild executable")
    xbuild_path: str = Field(
        default=str(MONO_BIN / "xbuild"),
        description="xbuild executable",
    )
    nuget_path: str = Field(
        default=str(MONO_BIN / "nuget"),
        description="nuget executable used for package restore",
    )
    mono_path: str = Field(
        default=str(MONO_BIN / "mono"),
        description="mono executable used to launch the NUnit console",
    )
    nunit_console: str | None = Field(
        default=None,
        validation_alias=AliasChoices("TOOLS_NUNIT_CONSOLE", "NUNIT_PATH", "nunit_console"),
        description="Path to nunit3-console.exe (or legacy nunit-console.exe)",
    )
    envman_path: str = Field(default="envman", description="envman executable")
    restore_timeout: int | None = Field(
        default=None,
        description="Restore timeout in seconds (None waits indefinitely)",
    )
    build_timeout: int | None = Field(
        default=None,
        description="Clean/build timeout in seconds (None waits indefinitely)",
    )
    test_timeout: int | None = Field(
        default=None,
        description="Test run timeout in seconds (None waits indefinitely)",
    )

    @property
    def build_tool_path(self) -> str:
        return self.xbuild_path if self.build_tool == "xbuild" else self.msbuild_path


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    format: str = Field(
        default="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        description="Log message format",
    )
    file: Path | None = Field(
        default=None,
        description="Log file path (None for console only)",
    )
    rich_console: bool = Field(
        default=True,
        description="Use rich console for prettier output",
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    step: StepSettings = Field(default_factory=StepSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables and .env file."""
        return cls(
            step=StepSettings(),
            tools=ToolSettings(),
            logging=LoggingSettings(),
        )


class RunOptions(BaseModel):
    """Inputs for a single step run."""

    model_config = {"frozen": True}

    project: Path
    test: str | None = None
    configuration: str = "Release"
    platform: str | None = None
    clean: bool = True
    emulator_serial: str

    @property
    def is_solution(self) -> bool:
        return self.project.suffix.lower() == ".sln"

    @property
    def test_project(self) -> Path | None:
        """The test project path when --test names a project file."""
        if self.test and self.test.lower().endswith(".csproj"):
            return Path(self.test)
        return None

    @property
    def test_filter(self) -> str | None:
        """The test filter when --test is not a project file."""
        if self.test and self.test_project is None:
            return self.test
        return None

    @property
    def effective_platform(self) -> str:
        if self.platform:
            return self.platform
        return "Any CPU" if self.is_solution else "AnyCPU"

    def validate_paths(self) -> None:
        """
        Check that the given project files exist.

        Raises:
            ConfigurationError: If a path is missing or has the wrong type
        """
        if self.project.suffix.lower() not in (".csproj", ".sln"):
            raise ConfigurationError(
                "project must be a .csproj or .sln file",
                option="project",
                value=str(self.project),
            )
        if not self.project.is_file():
            raise ConfigurationError(
                "project does not exist",
                option="project",
                value=str(self.project),
            )
        if self.test_project is not None:
            if self.is_solution:
                raise ConfigurationError(
                    "a test project can only be given together with an application project",
                    option="test",
                    value=self.test,
                )
            if not self.test_project.is_file():
                raise ConfigurationError(
                    "test project does not exist",
                    option="test",
                    value=self.test,
                )
