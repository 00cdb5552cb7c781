"""NuGet package restore for solutions."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from xamarin_android_uitest.config import ToolSettings
from xamarin_android_uitest.core.exceptions import RestoreFailed
from xamarin_android_uitest.xamarin.process import CommandRunner
from xamarin_android_uitest.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RestoreReport:
    """Outcome of restoring a set of solutions."""

    restored: list[Path] = field(default_factory=list)
    failures: list[RestoreFailed] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


class PackageRestorer:
    """
    Restores NuGet packages, one solution at a time.

    Restores share the package cache, so they never run concurrently.
    A failed restore is reported but does not stop the caller.
    """

    def __init__(self, tools: ToolSettings, runner: CommandRunner | None = None):
        """
        Initialize restorer.

        Args:
            tools: Tool locations and timeouts
            runner: Command runner (defaults to a new CommandRunner)
        """
        self.tools = tools
        self.runner = runner or CommandRunner()

    def command_for(self, solution: Path) -> list[str]:
        return [self.tools.nuget_path, "restore", str(solution)]

    def restore(self, solutions: Iterable[Path]) -> RestoreReport:
        """
        Restore packages for each distinct solution in input order.

        Args:
            solutions: Solution paths; duplicates are skipped

        Returns:
            RestoreReport listing restored solutions and failures
        """
        report = RestoreReport()
        seen: set[Path] = set()

        for solution in solutions:
            key = Path(solution).resolve()
            if key in seen:
                continue
            seen.add(key)

            logger.info(f"[NUGET] Restoring packages for solution: {solution}")
            cmd = self.command_for(solution)
            result = self.runner.run(
                cmd,
                tag="NUGET",
                description=f"Restoring packages for {Path(solution).name}",
                timeout=self.tools.restore_timeout,
            )

            if result.success:
                logger.info(f"[NUGET] Restore completed for {Path(solution).name}")
                report.restored.append(Path(solution))
                continue

            if result.timed_out:
                reason = f"timed out after {self.tools.restore_timeout}s"
            elif result.launch_error:
                reason = result.launch_error
            else:
                reason = f"exit code {result.exit_code}"

            failure = RestoreFailed(
                f"Failed to restore nuget packages for {solution}: {reason}",
                command=result.printable_command,
                exit_code=result.exit_code,
                timed_out=result.timed_out,
            )
            logger.error(f"[NUGET] {failure.message}")
            report.failures.append(failure)

        return report
