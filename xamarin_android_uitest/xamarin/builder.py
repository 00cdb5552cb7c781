"""Build operations for Xamarin projects."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Iterator

from xamarin_android_uitest.config import ToolSettings
from xamarin_android_uitest.core.exceptions import ArtifactNotFound, BuildFailed, StepError
from xamarin_android_uitest.xamarin.process import CommandResult, CommandRunner
from xamarin_android_uitest.xamarin.project import ProjectDescriptor
from xamarin_android_uitest.xamarin.solution import SolutionDescriptor
from xamarin_android_uitest.utils.logging import get_logger

logger = get_logger(__name__)

APK_EXTENSION = ".apk"
ASSEMBLY_EXTENSION = ".dll"


class BuildTargetKind(str, Enum):
    """MSBuild targets used by the step."""

    PACKAGE = "PackageForAndroid"
    BUILD = "Build"


@dataclass(frozen=True)
class BuildTarget:
    """A project together with the configuration it is built for."""

    project: ProjectDescriptor
    configuration: str
    platform: str
    target: BuildTargetKind

    @property
    def relative_output_path(self) -> str:
        return f"bin/{self.platform}/{self.configuration}/"

    @property
    def output_dir(self) -> Path:
        return self.project.directory / "bin" / self.platform / self.configuration

    @property
    def artifact_extension(self) -> str:
        if self.target is BuildTargetKind.PACKAGE:
            return APK_EXTENSION
        return ASSEMBLY_EXTENSION


@dataclass
class BuildOutput:
    """Artifacts produced by a successful build."""

    project: ProjectDescriptor
    output_dir: Path
    artifact_path: Path
    is_package: bool
    is_test: bool


@dataclass
class BuildResult:
    """Result of a clean or build operation."""

    success: bool
    command: list[str]
    duration_seconds: float
    target: BuildTarget | None = None
    output: str = ""
    error: StepError | None = None
    build_output: BuildOutput | None = None


@dataclass
class SolutionBuildResult:
    """Result of building the relevant projects of a solution."""

    solution: SolutionDescriptor
    results: list[BuildResult] = field(default_factory=list)
    outputs: dict[str, BuildOutput] = field(default_factory=dict)
    error: StepError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def apps(self) -> list[BuildOutput]:
        return [o for o in self.outputs.values() if o.is_package]

    def tests(self) -> list[BuildOutput]:
        return [o for o in self.outputs.values() if o.is_test]


def _walk_sorted(root: Path) -> Iterator[Path]:
    """Depth-first walk in lexicographic order; directory links are not followed."""
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if entry.is_symlink() and entry.is_dir():
            logger.debug(f"Not following directory link: {entry}")
            continue
        if entry.is_dir():
            yield from _walk_sorted(entry)
        elif entry.is_file():
            yield entry


def find_artifact(
    root: Path,
    extension: str,
    prefer: Callable[[Path], bool] | None = None,
) -> Path:
    """
    Find a build artifact below a directory.

    The tree is walked depth-first with entries in lexicographic order.
    The first file with the extension is returned, unless a later match
    satisfies ``prefer``, in which case the first preferred match wins.

    Args:
        root: Directory to search
        extension: File extension including the dot (e.g. ".apk")
        prefer: Optional predicate selecting preferred matches

    Returns:
        Canonical absolute path to the artifact

    Raises:
        ArtifactNotFound: If no file with the extension exists
    """
    extension = extension.lower()
    first: Path | None = None

    if root.is_dir():
        for candidate in _walk_sorted(root):
            if candidate.suffix.lower() != extension:
                continue
            if prefer is not None and prefer(candidate):
                first = candidate
                break
            if first is None:
                first = candidate
                if prefer is None:
                    break

    if first is None:
        raise ArtifactNotFound(
            f"No {extension} file found in {root}",
            search_root=str(root),
            extension=extension,
        )

    try:
        return first.resolve(strict=True)
    except OSError as e:
        raise ArtifactNotFound(
            f"Artifact {first} could not be resolved: {e}",
            search_root=str(root),
            extension=extension,
        ) from e


class ProjectBuilder:
    """
    Handles clean and build operations through msbuild/xbuild.

    Every invocation is a full, blocking build. A failed build is
    returned as a BuildResult carrying a BuildFailed error; nothing
    is retried.
    """

    def __init__(self, tools: ToolSettings, runner: CommandRunner | None = None):
        """
        Initialize builder.

        Args:
            tools: Tool locations and timeouts
            runner: Command runner (defaults to a new CommandRunner)
        """
        self.tools = tools
        self.runner = runner or CommandRunner()

    def clean_command(self, project: ProjectDescriptor, configuration: str, platform: str) -> list[str]:
        return [
            self.tools.build_tool_path,
            str(project.path),
            "/t:Clean",
            f"/p:Configuration={configuration}",
            f"/p:Platform={platform}",
        ]

    def command_for(self, build_target: BuildTarget) -> list[str]:
        """Reconstruct the build command for a target."""
        return [
            self.tools.build_tool_path,
            str(build_target.project.path),
            f"/t:{build_target.target.value}",
            f"/p:Configuration={build_target.configuration}",
            f"/p:Platform={build_target.platform}",
            f"/p:OutputPath={build_target.relative_output_path}",
        ]

    def clean(
        self,
        project: ProjectDescriptor,
        configuration: str,
        platform: str,
    ) -> BuildResult:
        """
        Clean build outputs of a project.

        Args:
            project: Project to clean
            configuration: Build configuration
            platform: Build platform

        Returns:
            BuildResult; error is BuildFailed on a non-zero exit
        """
        cmd = self.clean_command(project, configuration, platform)
        result = self.runner.run(
            cmd,
            tag="BUILD",
            description=f"Cleaning project: {project.name}",
            timeout=self.tools.build_timeout,
        )

        if not result.success:
            return BuildResult(
                success=False,
                command=cmd,
                duration_seconds=result.duration_seconds,
                output=result.output,
                error=self._build_failed(f"Clean failed for {project.name}", result),
            )

        return BuildResult(
            success=True,
            command=cmd,
            duration_seconds=result.duration_seconds,
            output=result.output,
        )

    def build(
        self,
        project: ProjectDescriptor,
        configuration: str,
        platform: str,
        target: BuildTargetKind,
    ) -> BuildResult:
        """
        Build a project and locate its artifact.

        Args:
            project: Project to build
            configuration: Build configuration
            platform: Build platform
            target: PACKAGE for an installable .apk, BUILD for an assembly

        Returns:
            BuildResult with the located artifact on success; error is
            BuildFailed or ArtifactNotFound otherwise
        """
        build_target = BuildTarget(
            project=project,
            configuration=configuration,
            platform=platform,
            target=target,
        )
        cmd = self.command_for(build_target)

        logger.info("=" * 60)
        logger.info(f"[BUILD] {'Building test project' if project.is_test else 'Building project'}: {project.name}")
        logger.info("=" * 60)

        result = self.runner.run(
            cmd,
            tag="BUILD",
            description=f"Building {project.name} ({configuration}|{platform}, /t:{target.value})",
            timeout=self.tools.build_timeout,
        )

        if not result.success:
            logger.error(f"[BUILD] Build FAILED for {project.name}")
            return BuildResult(
                success=False,
                command=cmd,
                duration_seconds=result.duration_seconds,
                target=build_target,
                output=result.output,
                error=self._build_failed(f"Build failed for {project.name}", result),
            )

        try:
            artifact = find_artifact(
                build_target.output_dir,
                build_target.artifact_extension,
                prefer=self._artifact_preference(build_target),
            )
        except ArtifactNotFound as e:
            logger.error(f"[BUILD] {e.message}")
            return BuildResult(
                success=False,
                command=cmd,
                duration_seconds=result.duration_seconds,
                target=build_target,
                output=result.output,
                error=e,
            )

        logger.info(f"[BUILD] Build SUCCEEDED for {project.name} in {result.duration_seconds:.1f}s")
        logger.info(f"[BUILD] Artifact: {artifact}")

        return BuildResult(
            success=True,
            command=cmd,
            duration_seconds=result.duration_seconds,
            target=build_target,
            output=result.output,
            build_output=BuildOutput(
                project=project,
                output_dir=build_target.output_dir,
                artifact_path=artifact,
                is_package=target is BuildTargetKind.PACKAGE,
                is_test=project.is_test,
            ),
        )

    def build_solution(
        self,
        solution: SolutionDescriptor,
        projects: Iterable[ProjectDescriptor],
        configuration: str,
        platform: str,
        clean: bool = True,
    ) -> SolutionBuildResult:
        """
        Clean and build the given projects of a solution in one pass.

        Each project is built with the configuration the solution maps
        the solution-wide configuration to. Android application projects
        are packaged, everything else gets a plain build. Stops at the
        first failure.

        Args:
            solution: Parsed solution
            projects: Projects of the solution to build
            configuration: Solution configuration (e.g. Release)
            platform: Solution platform (e.g. Any CPU)
            clean: Clean each project before building

        Returns:
            SolutionBuildResult with outputs keyed by project GUID
        """
        by_guid = {p.guid: p for p in projects}
        solution_result = SolutionBuildResult(solution=solution)

        ordered = [by_guid[p.guid] for p in solution.csproj_projects if p.guid in by_guid]

        for project in ordered:
            project_config = solution.project_configuration(project.guid, configuration, platform)
            if not project_config.build:
                logger.warning(
                    f"[BUILD] {project.name} is not built in {configuration}|{platform}, skipping..."
                )
                continue

            if clean:
                clean_result = self.clean(project, project_config.configuration, project_config.platform)
                solution_result.results.append(clean_result)
                if not clean_result.success:
                    solution_result.error = clean_result.error
                    return solution_result

            target = BuildTargetKind.PACKAGE if project.is_android_app else BuildTargetKind.BUILD
            result = self.build(project, project_config.configuration, project_config.platform, target)
            solution_result.results.append(result)

            if not result.success:
                solution_result.error = result.error
                return solution_result

            solution_result.outputs[project.guid] = result.build_output

        return solution_result

    def _artifact_preference(self, build_target: BuildTarget) -> Callable[[Path], bool]:
        if build_target.target is BuildTargetKind.PACKAGE:
            return lambda p: p.name.lower().endswith("-signed.apk")
        assembly = f"{build_target.project.assembly_name}{ASSEMBLY_EXTENSION}".lower()
        return lambda p: p.name.lower() == assembly

    def _build_failed(self, message: str, result: CommandResult) -> BuildFailed:
        if result.timed_out:
            message = f"{message}: timed out after {self.tools.build_timeout}s"
        elif result.launch_error:
            message = f"{message}: {result.launch_error}"
        else:
            message = f"{message}: exit code {result.exit_code}"
        return BuildFailed(
            message,
            command=result.printable_command,
            exit_code=result.exit_code,
            timed_out=result.timed_out,
        )
