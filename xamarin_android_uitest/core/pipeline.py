"""Main pipeline driver: restore, build and run UI tests."""

from dataclasses import dataclass, field
from pathlib import Path

from xamarin_android_uitest.config import RunOptions, Settings
from xamarin_android_uitest.core.exceptions import (
    ArtifactNotFound,
    ConfigurationError,
    ErrorKind,
    MalformedProjectFile,
    StepError,
    UnexpectedError,
)
from xamarin_android_uitest.xamarin.builder import BuildTargetKind, ProjectBuilder
from xamarin_android_uitest.xamarin.process import CommandRunner
from xamarin_android_uitest.xamarin.project import ProjectDescriptor, ProjectParser
from xamarin_android_uitest.xamarin.resolver import DependencyResolver, TestPairing
from xamarin_android_uitest.xamarin.restorer import PackageRestorer
from xamarin_android_uitest.xamarin.solution import (
    SolutionDescriptor,
    SolutionParser,
    find_related_solutions,
)
from xamarin_android_uitest.xamarin.test_runner import TestRunner, TestRunResult
from xamarin_android_uitest.utils.envman import (
    APK_PATH_KEY,
    EMULATOR_SERIAL_KEY,
    FULL_RESULTS_KEY,
    RESULT_FAILED,
    RESULT_KEY,
    RESULT_SUCCEEDED,
    EnvmanExporter,
)
from xamarin_android_uitest.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


@dataclass
class PairingOutcome:
    """Artifacts and test result for one app/test pairing."""

    pairing: TestPairing
    apk_path: Path
    dll_path: Path
    test_result: TestRunResult

    @property
    def success(self) -> bool:
        return self.test_result.success


@dataclass
class PipelineResult:
    """Result of a complete step run."""

    project: str
    success: bool = False
    error_kind: ErrorKind | None = None
    outcomes: list[PairingOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    result_log: str | None = None
    result_log_path: Path | None = None

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def record_error(self, error: StepError) -> None:
        self.errors.append(error.message)
        if self.error_kind is None:
            self.error_kind = error.kind


class UITestPipeline:
    """
    Pipeline driver.

    Parses the given project or solution, pairs UITest projects with the
    Android apps they reference, restores packages, builds both sides and
    runs every pairing. Parse and pairing errors stop the run before any
    external tool is started.
    """

    def __init__(
        self,
        settings: Settings,
        options: RunOptions,
        runner: CommandRunner | None = None,
        exporter: EnvmanExporter | None = None,
    ):
        """
        Initialize pipeline.

        Args:
            settings: Step, tool and logging settings
            options: Inputs for this run
            runner: Command runner shared by all external invocations
            exporter: Output exporter (defaults to envman)
        """
        self.settings = settings
        self.options = options

        setup_logging(
            level=self.settings.logging.level,
            log_format=self.settings.logging.format,
            log_file=self.settings.logging.file,
            rich_console=self.settings.logging.rich_console,
        )

        runner = runner or CommandRunner()
        self.project_parser = ProjectParser()
        self.solution_parser = SolutionParser()
        self.resolver = DependencyResolver()
        self.restorer = PackageRestorer(settings.tools, runner)
        self.builder = ProjectBuilder(settings.tools, runner)
        self.test_runner = TestRunner(settings.tools, settings.step.result_log_path, runner)
        self.exporter = exporter or EnvmanExporter(settings.tools.envman_path)

    def run(self) -> PipelineResult:
        """
        Execute the step.

        Returns:
            PipelineResult; result variables are exported before returning
        """
        result = PipelineResult(project=str(self.options.project))

        try:
            self._validate()
            if self.options.is_solution:
                self._run_solution(result)
            else:
                self._run_project(result)
        except StepError as e:
            logger.error(f"{type(e).__name__}: {e}")
            result.record_error(e)
        except Exception as e:
            logger.exception(f"Step failed unexpectedly: {e}")
            result.record_error(UnexpectedError(str(e), error_type=type(e).__name__))

        result.success = not result.errors
        self._export_outputs(result)

        if result.success:
            logger.info("All UI tests passed")
        else:
            logger.error(f"Step failed: {result.error_kind.value if result.error_kind else 'unknown'}")

        return result

    def _validate(self) -> None:
        """Fail fast on invalid inputs before any external process runs."""
        self.options.validate_paths()

        nunit_console = self.settings.tools.nunit_console
        if not nunit_console:
            raise ConfigurationError("nunit console path not specified", option="nunit")
        if not Path(nunit_console).is_file():
            raise ConfigurationError(
                "nunit console does not exist",
                option="nunit",
                value=nunit_console,
            )

    # Project mode

    def _run_project(self, result: PipelineResult) -> None:
        options = self.options
        configuration = options.configuration
        platform = options.effective_platform

        app = self.project_parser.parse(options.project, configuration, platform)
        app_solutions = find_related_solutions(app.path, parser=self.solution_parser)

        if options.test_project is not None:
            tests = [self.project_parser.parse(options.test_project, configuration, platform)]
        else:
            tests = self._discover_test_projects(app, app_solutions, configuration, platform)

        pairings = self.resolver.resolve(app, tests)
        paired_tests = self._unique([p.test for p in pairings])

        solutions = list(app_solutions)
        for test in paired_tests:
            solutions.extend(find_related_solutions(test.path, parser=self.solution_parser))
        self._restore(solutions, result)

        if options.clean:
            for project in [app, *paired_tests]:
                clean = self.builder.clean(project, configuration, platform)
                if not clean.success:
                    raise clean.error

        app_build = self.builder.build(app, configuration, platform, BuildTargetKind.PACKAGE)
        if not app_build.success:
            raise app_build.error
        apk_path = app_build.build_output.artifact_path
        logger.info(f"(i) .apk path: {apk_path}")

        dll_paths: dict[str, Path] = {}
        for test in paired_tests:
            test_build = self.builder.build(test, configuration, platform, BuildTargetKind.BUILD)
            if not test_build.success:
                raise test_build.error
            dll_paths[test.guid] = test_build.build_output.artifact_path
            logger.info(f"(i) .dll path: {dll_paths[test.guid]}")

        for pairing in pairings:
            self._run_pairing(pairing, apk_path, dll_paths[pairing.test.guid], result)

    def _discover_test_projects(
        self,
        app: ProjectDescriptor,
        solutions: list[Path],
        configuration: str,
        platform: str,
    ) -> list[ProjectDescriptor]:
        """Parse the test projects of the solutions that contain the app."""
        if not solutions:
            logger.warning(f"No solution found for project: {app.path}")
            return []

        tests: list[ProjectDescriptor] = []
        for solution_path in solutions:
            solution = self.solution_parser.parse(solution_path)
            for project in self._parse_members(solution, configuration, platform):
                if project.is_uitest and project.guid not in {t.guid for t in tests}:
                    tests.append(project)
        return tests

    # Solution mode

    def _run_solution(self, result: PipelineResult) -> None:
        options = self.options
        configuration = options.configuration
        platform = options.effective_platform

        solution = self.solution_parser.parse(options.project)
        projects = self._parse_members(solution, configuration, platform)

        apps, tests = self.resolver.split(projects)
        pairings = self.resolver.resolve_all(apps, tests)

        self._restore([solution.path], result)

        relevant = self._unique([p.app for p in pairings] + [p.test for p in pairings])
        build = self.builder.build_solution(
            solution,
            relevant,
            configuration,
            platform,
            clean=options.clean,
        )
        if not build.success:
            raise build.error

        for pairing in pairings:
            app_output = build.outputs.get(pairing.app.guid)
            test_output = build.outputs.get(pairing.test.guid)
            if app_output is None or test_output is None:
                missing = pairing.app if app_output is None else pairing.test
                raise ArtifactNotFound(
                    f"No build output for {missing.name} in {configuration}|{platform}",
                    search_root=str(missing.directory),
                )
            self._run_pairing(pairing, app_output.artifact_path, test_output.artifact_path, result)

    def _parse_members(
        self,
        solution: SolutionDescriptor,
        configuration: str,
        platform: str,
    ) -> list[ProjectDescriptor]:
        """Parse member projects; unusable members are skipped with a warning."""
        projects = []
        for member in solution.csproj_projects:
            if not member.path.is_file():
                logger.warning(f"Project {member.name} not found at {member.path}, skipping...")
                continue

            project_config = solution.project_configuration(member.guid, configuration, platform)
            try:
                projects.append(self.project_parser.parse(
                    member.path,
                    project_config.configuration,
                    project_config.platform,
                ))
            except MalformedProjectFile as e:
                logger.warning(f"Skipping project {member.name}: {e}")
        return projects

    # Shared steps

    def _restore(self, solutions: list[Path], result: PipelineResult) -> None:
        logger.info("=" * 60)
        logger.info("[NUGET] STEP: PACKAGE RESTORE")
        logger.info("=" * 60)

        if not solutions:
            message = f"No solution found for project: {self.options.project}, skipping nuget restore..."
            logger.warning(message)
            result.warnings.append(message)
            return

        report = self.restorer.restore(solutions)
        for failure in report.failures:
            result.warnings.append(failure.message)

    def _run_pairing(
        self,
        pairing: TestPairing,
        apk_path: Path,
        dll_path: Path,
        result: PipelineResult,
    ) -> None:
        logger.info("=" * 60)
        logger.info(f"Testing ({pairing.test.name}) against ({pairing.app.name})")
        logger.info(f"test dll: {dll_path}")
        logger.info(f"apk: {apk_path}")
        logger.info("=" * 60)

        environment = {
            APK_PATH_KEY: str(apk_path),
            EMULATOR_SERIAL_KEY: self.options.emulator_serial,
        }
        test_result = self.test_runner.run(
            dll_path,
            test_filter=self.options.test_filter,
            environment=environment,
        )

        outcome = PairingOutcome(
            pairing=pairing,
            apk_path=apk_path,
            dll_path=dll_path,
            test_result=test_result,
        )
        result.outcomes.append(outcome)

        if test_result.report_text is not None:
            result.result_log = test_result.report_text
        if test_result.report_path is not None:
            result.result_log_path = test_result.report_path

        if not outcome.success:
            self.test_runner.log_failures(test_result)
            logger.error(f"Test failed for {pairing}: {test_result.error}")
            result.record_error(test_result.error)

    def _export_outputs(self, result: PipelineResult) -> None:
        self.exporter.export(RESULT_KEY, RESULT_SUCCEEDED if result.success else RESULT_FAILED)

        if result.result_log:
            self.exporter.export(FULL_RESULTS_KEY, result.result_log)
        elif result.result_log_path is not None:
            self.exporter.export(FULL_RESULTS_KEY, str(result.result_log_path))

        self.exporter.export(EMULATOR_SERIAL_KEY, self.options.emulator_serial)
        if result.outcomes:
            self.exporter.export(APK_PATH_KEY, str(result.outcomes[-1].apk_path))

    @staticmethod
    def _unique(projects: list[ProjectDescriptor]) -> list[ProjectDescriptor]:
        seen: set[str] = set()
        unique = []
        for project in projects:
            if project.guid not in seen:
                seen.add(project.guid)
                unique.append(project)
        return unique
