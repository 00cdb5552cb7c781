"""Project file analysis for Xamarin projects."""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from xamarin_android_uitest.core.exceptions import MalformedProjectFile
from xamarin_android_uitest.utils.logging import get_logger

logger = get_logger(__name__)


class TargetPlatform(str, Enum):
    ANDROID = "android"
    IOS = "ios"
    MACOS = "macos"
    TVOS = "tvos"
    UNKNOWN = "unknown"


class OutputKind(str, Enum):
    PACKAGE = "package"
    LIBRARY = "library"
    EXECUTABLE = "executable"


class TestFramework(str, Enum):
    __test__ = False

    XAMARIN_UITEST = "xamarin_uitest"
    NUNIT = "nunit"
    NONE = "none"


# Project type GUIDs found in <ProjectTypeGuids>
PLATFORM_TYPE_GUIDS = {
    "EFBA0AD7-5A72-4C68-AF49-83D382785DCF": TargetPlatform.ANDROID,
    "FEACFBD2-3405-455C-9665-78FE426C6842": TargetPlatform.IOS,
    "6BC8ED88-2882-458C-8E55-DFD12B67127B": TargetPlatform.IOS,
    "A3F8F2AB-B479-4A4A-A458-A89E7DC349F1": TargetPlatform.MACOS,
    "42C0BBD9-55CE-4FC1-8D90-A7348ABAFB23": TargetPlatform.MACOS,
    "06FA79CB-D6CD-4721-BB4B-1BD202089C55": TargetPlatform.TVOS,
}

# Assembly references that identify a platform when type GUIDs are missing
PLATFORM_REFERENCES = {
    "mono.android": TargetPlatform.ANDROID,
    "xamarin.ios": TargetPlatform.IOS,
    "xamarin.mac": TargetPlatform.MACOS,
    "xamarin.tvos": TargetPlatform.TVOS,
}

GUID_PATTERN = r"[0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12}"

_PROJECT_GUID_RE = re.compile(
    rf"<ProjectGuid>\s*\{{?({GUID_PATTERN})\}}?\s*</ProjectGuid>", re.IGNORECASE
)
_OUTPUT_TYPE_RE = re.compile(r"<OutputType>\s*([^<\s]+)\s*</OutputType>", re.IGNORECASE)
_ASSEMBLY_NAME_RE = re.compile(r"<AssemblyName>\s*([^<]+?)\s*</AssemblyName>", re.IGNORECASE)
_TYPE_GUIDS_RE = re.compile(r"<ProjectTypeGuids>([^<]+)</ProjectTypeGuids>", re.IGNORECASE)
_ANDROID_APP_RE = re.compile(r"<AndroidApplication>\s*true\s*</AndroidApplication>", re.IGNORECASE)
_CONDITION_RE = re.compile(
    r"'\$\(Configuration\)\|\$\(Platform\)'\s*==\s*'([^'|]+)\|([^']+)'", re.IGNORECASE
)
_PROJECT_REFERENCE_RE = re.compile(
    r"<ProjectReference\s+Include=\"([^\"]+)\"[^>]*?(?:/>|>(.*?)</ProjectReference>)",
    re.IGNORECASE | re.DOTALL,
)
_REFERENCE_GUID_RE = re.compile(
    rf"<Project>\s*\{{?({GUID_PATTERN})\}}?\s*</Project>", re.IGNORECASE
)
_ASSEMBLY_REFERENCE_RE = re.compile(
    r"<(?:Reference|PackageReference)\s+Include=\"([^\",]+)", re.IGNORECASE
)


def normalize_guid(value: str) -> str:
    """Upper-case a GUID and strip braces."""
    return value.strip().strip("{}").upper()


def normalize_path(value: str) -> Path:
    """Convert a path written with either separator to a host path."""
    return Path(value.strip().replace("\\", "/"))


@dataclass(frozen=True)
class ProjectDescriptor:
    """Information about a Xamarin project for one configuration/platform."""

    guid: str
    path: Path
    name: str
    assembly_name: str
    target_platform: TargetPlatform
    output_kind: OutputKind
    test_framework: TestFramework
    configuration: str
    platform: str
    declared_configurations: tuple[str, ...] = field(default_factory=tuple)
    references: tuple[str, ...] = field(default_factory=tuple)
    reference_paths: tuple[Path, ...] = field(default_factory=tuple)

    @property
    def is_test(self) -> bool:
        return self.test_framework is not TestFramework.NONE

    @property
    def is_uitest(self) -> bool:
        return self.test_framework is TestFramework.XAMARIN_UITEST

    @property
    def is_android_app(self) -> bool:
        return (
            self.target_platform is TargetPlatform.ANDROID
            and self.output_kind is OutputKind.PACKAGE
        )

    @property
    def directory(self) -> Path:
        return self.path.parent

    def references_project(self, guid: str) -> bool:
        return normalize_guid(guid) in self.references


class ProjectParser:
    """
    Parses .csproj files.

    Extracts identity, target platform, output kind and project references.
    Every call re-reads the file.
    """

    def parse(
        self,
        project_path: Path,
        configuration: str = "Release",
        platform: str = "AnyCPU",
    ) -> ProjectDescriptor:
        """
        Parse a project file.

        Args:
            project_path: Path to the .csproj file
            configuration: Build configuration the descriptor is for
            platform: Build platform the descriptor is for

        Returns:
            ProjectDescriptor

        Raises:
            MalformedProjectFile: If the file is unreadable or lacks
                ProjectGuid or OutputType
        """
        project_path = Path(project_path).absolute()

        try:
            content = project_path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            raise MalformedProjectFile(
                f"Failed to read project file: {e}",
                file_path=str(project_path),
            ) from e

        guid_match = _PROJECT_GUID_RE.search(content)
        output_match = _OUTPUT_TYPE_RE.search(content)

        missing = []
        if not guid_match:
            missing.append("ProjectGuid")
        if not output_match:
            missing.append("OutputType")
        if missing:
            raise MalformedProjectFile(
                f"Project file is missing required fields: {', '.join(missing)}",
                file_path=str(project_path),
                missing=missing,
            )

        assembly_match = _ASSEMBLY_NAME_RE.search(content)
        assembly_name = assembly_match.group(1) if assembly_match else project_path.stem

        assembly_references = [
            m.group(1).strip().lower() for m in _ASSEMBLY_REFERENCE_RE.finditer(content)
        ]

        references, reference_paths = self._parse_project_references(content, project_path.parent)

        declared = []
        for match in _CONDITION_RE.finditer(content):
            pair = f"{match.group(1).strip()}|{match.group(2).strip()}"
            if pair not in declared:
                declared.append(pair)

        requested = f"{configuration}|{platform}"
        if declared and requested not in declared:
            logger.warning(
                f"{project_path.name} does not declare configuration {requested} "
                f"(declared: {', '.join(declared)})"
            )

        return ProjectDescriptor(
            guid=normalize_guid(guid_match.group(1)),
            path=project_path,
            name=project_path.stem,
            assembly_name=assembly_name,
            target_platform=self._detect_platform(content, assembly_references),
            output_kind=self._detect_output_kind(content, output_match.group(1)),
            test_framework=self._detect_test_framework(assembly_references),
            configuration=configuration,
            platform=platform,
            declared_configurations=tuple(declared),
            references=tuple(references),
            reference_paths=tuple(reference_paths),
        )

    def _parse_project_references(
        self,
        content: str,
        project_dir: Path,
    ) -> tuple[list[str], list[Path]]:
        """Collect GUIDs and paths of <ProjectReference> entries that carry a GUID."""
        references: list[str] = []
        reference_paths: list[Path] = []

        for match in _PROJECT_REFERENCE_RE.finditer(content):
            body = match.group(2) or ""
            guid_match = _REFERENCE_GUID_RE.search(body)
            if not guid_match:
                logger.debug(f"Skipping project reference without GUID: {match.group(1)}")
                continue

            guid = normalize_guid(guid_match.group(1))
            if guid in references:
                continue

            references.append(guid)
            reference_paths.append(project_dir / normalize_path(match.group(1)))

        return references, reference_paths

    def _detect_platform(self, content: str, assembly_references: list[str]) -> TargetPlatform:
        type_match = _TYPE_GUIDS_RE.search(content)
        if type_match:
            for raw in type_match.group(1).split(";"):
                platform = PLATFORM_TYPE_GUIDS.get(normalize_guid(raw))
                if platform:
                    return platform

        for reference in assembly_references:
            platform = PLATFORM_REFERENCES.get(reference)
            if platform:
                return platform

        return TargetPlatform.UNKNOWN

    def _detect_output_kind(self, content: str, output_type: str) -> OutputKind:
        if _ANDROID_APP_RE.search(content):
            return OutputKind.PACKAGE
        if output_type.lower() in ("exe", "winexe"):
            return OutputKind.EXECUTABLE
        return OutputKind.LIBRARY

    def _detect_test_framework(self, assembly_references: list[str]) -> TestFramework:
        if "xamarin.uitest" in assembly_references:
            return TestFramework.XAMARIN_UITEST
        if "nunit" in assembly_references or "nunit.framework" in assembly_references:
            return TestFramework.NUNIT
        return TestFramework.NONE
