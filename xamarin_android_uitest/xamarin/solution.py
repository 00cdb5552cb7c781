"""Solution analysis for Xamarin solutions."""

import re
from dataclasses import dataclass, field
from pathlib import Path

from xamarin_android_uitest.core.exceptions import MalformedSolutionFile
from xamarin_android_uitest.xamarin.project import GUID_PATTERN, normalize_guid, normalize_path
from xamarin_android_uitest.utils.logging import get_logger

logger = get_logger(__name__)

SOLUTION_FOLDER_TYPE_GUID = "2150E333-8FDC-42A3-9474-1A3956D46DE8"

_PROJECT_LINE_RE = re.compile(
    rf'^\s*Project\(\s*"\{{?([^"}}]*)\}}?"\s*\)\s*=\s*"([^"]*)"\s*,\s*"([^"]*)"\s*,\s*"\{{?({GUID_PATTERN})\}}?"',
    re.IGNORECASE,
)
_SECTION_START_RE = re.compile(r"^\s*GlobalSection\(\s*(\w+)\s*\)", re.IGNORECASE)
_SECTION_END_RE = re.compile(r"^\s*EndGlobalSection", re.IGNORECASE)
_PROJECT_CONFIG_RE = re.compile(
    rf"^\s*\{{?({GUID_PATTERN})\}}?\.([^|]+\|[^.]+?)\.(ActiveCfg|Build\.0)\s*=\s*([^|]+)\|(.+?)\s*$",
    re.IGNORECASE,
)
_SOLUTION_CONFIG_RE = re.compile(r"^\s*([^=]+?\|[^=]+?)\s*=", re.IGNORECASE)


@dataclass(frozen=True)
class SolutionProject:
    """A project declaration inside a solution."""

    name: str
    path: Path
    guid: str
    type_guid: str

    @property
    def is_csproj(self) -> bool:
        return self.path.suffix.lower() == ".csproj"


@dataclass(frozen=True)
class ProjectConfiguration:
    """Project-level build settings for one solution configuration."""

    configuration: str
    platform: str
    build: bool = False


@dataclass(frozen=True)
class SolutionDescriptor:
    """Information about a solution file."""

    path: Path
    projects: tuple[SolutionProject, ...] = field(default_factory=tuple)
    solution_configurations: tuple[str, ...] = field(default_factory=tuple)
    configurations: dict[str, dict[str, ProjectConfiguration]] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.path.stem

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def csproj_projects(self) -> list[SolutionProject]:
        return [p for p in self.projects if p.is_csproj]

    def project_configuration(
        self,
        guid: str,
        configuration: str,
        platform: str,
    ) -> ProjectConfiguration:
        """
        Map a solution configuration to the project's own configuration.

        Args:
            guid: Project GUID
            configuration: Solution configuration name (e.g. Release)
            platform: Solution platform (e.g. Any CPU)

        Returns:
            ProjectConfiguration; the requested pair when the solution
            has no mapping for the project
        """
        mapping = self.configurations.get(f"{configuration}|{platform}", {})
        found = mapping.get(normalize_guid(guid))
        if found is None:
            return ProjectConfiguration(configuration=configuration, platform=platform, build=True)
        return found


class SolutionParser:
    """
    Parses .sln files with a tolerant line scanner.

    Solution files are not XML, so project declarations and
    configuration sections are recognized line by line.
    """

    def parse(self, solution_path: Path, require_projects: bool = True) -> SolutionDescriptor:
        """
        Parse a solution file.

        Args:
            solution_path: Path to .sln file
            require_projects: Fail when no project declarations are found

        Returns:
            SolutionDescriptor with absolute member paths

        Raises:
            MalformedSolutionFile: If unreadable or empty when projects are required
        """
        solution_path = Path(solution_path).absolute()
        logger.info(f"Analyzing solution: {solution_path}")

        try:
            content = solution_path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            raise MalformedSolutionFile(
                f"Failed to read solution file: {e}",
                file_path=str(solution_path),
            ) from e

        projects: list[SolutionProject] = []
        solution_configurations: list[str] = []
        configurations: dict[str, dict[str, ProjectConfiguration]] = {}
        section: str | None = None

        for line in content.splitlines():
            if section is None:
                project_match = _PROJECT_LINE_RE.match(line)
                if project_match:
                    type_guid = normalize_guid(project_match.group(1))
                    if type_guid == SOLUTION_FOLDER_TYPE_GUID:
                        continue
                    projects.append(SolutionProject(
                        name=project_match.group(2),
                        path=solution_path.parent / normalize_path(project_match.group(3)),
                        guid=normalize_guid(project_match.group(4)),
                        type_guid=type_guid,
                    ))
                    continue

                section_match = _SECTION_START_RE.match(line)
                if section_match:
                    section = section_match.group(1)
                continue

            if _SECTION_END_RE.match(line):
                section = None
                continue

            if section.lower() == "solutionconfigurationplatforms":
                config_match = _SOLUTION_CONFIG_RE.match(line)
                if config_match:
                    solution_configurations.append(config_match.group(1).strip())

            elif section.lower() == "projectconfigurationplatforms":
                self._add_project_configuration(line, configurations)

        if require_projects and not projects:
            raise MalformedSolutionFile(
                "No project declarations found in solution",
                file_path=str(solution_path),
            )

        logger.info(f"Found {len(projects)} projects in {solution_path.name}")

        return SolutionDescriptor(
            path=solution_path,
            projects=tuple(projects),
            solution_configurations=tuple(solution_configurations),
            configurations=configurations,
        )

    def _add_project_configuration(
        self,
        line: str,
        configurations: dict[str, dict[str, ProjectConfiguration]],
    ) -> None:
        match = _PROJECT_CONFIG_RE.match(line)
        if not match:
            return

        guid = normalize_guid(match.group(1))
        solution_config = match.group(2).strip()
        entry = match.group(3).lower()
        project_config = ProjectConfiguration(
            configuration=match.group(4).strip(),
            platform=match.group(5).strip(),
        )

        per_project = configurations.setdefault(solution_config, {})
        existing = per_project.get(guid)
        build = entry == "build.0" or (existing is not None and existing.build)
        if entry == "activecfg" or existing is None:
            per_project[guid] = ProjectConfiguration(
                configuration=project_config.configuration,
                platform=project_config.platform,
                build=build,
            )
        else:
            per_project[guid] = ProjectConfiguration(
                configuration=existing.configuration,
                platform=existing.platform,
                build=build,
            )


def find_related_solutions(
    project_path: Path,
    search_root: Path | None = None,
    parser: SolutionParser | None = None,
) -> list[Path]:
    """
    Find every solution that declares a project with the same file name.

    Args:
        project_path: Path to the .csproj file
        search_root: Directory to search (defaults to the parent of the
            project's directory)
        parser: Solution parser to use

    Returns:
        Matching solution paths in sorted order; empty if none match
    """
    project_path = Path(project_path).absolute()
    project_name = project_path.name
    root = search_root or project_path.parent.parent
    parser = parser or SolutionParser()

    related: list[Path] = []
    for solution_path in sorted(root.rglob("*.sln")):
        try:
            solution = parser.parse(solution_path, require_projects=False)
        except MalformedSolutionFile as e:
            logger.warning(f"Skipping unreadable solution {solution_path}: {e}")
            continue

        if any(p.path.name == project_name for p in solution.csproj_projects):
            if solution.path not in related:
                related.append(solution.path)

    logger.info(f"Found {len(related)} solutions referencing {project_name}")
    return related
