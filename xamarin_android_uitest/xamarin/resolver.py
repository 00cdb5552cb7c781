"""Pairing of application projects with the UI test projects that reference them."""

from dataclasses import dataclass
from typing import Iterable

from xamarin_android_uitest.core.exceptions import NoMatchingTestProject
from xamarin_android_uitest.xamarin.project import OutputKind, ProjectDescriptor, TargetPlatform
from xamarin_android_uitest.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TestPairing:
    """An application project and a test project that tests it."""

    __test__ = False

    app: ProjectDescriptor
    test: ProjectDescriptor

    def __str__(self) -> str:
        return f"{self.test.name} -> {self.app.name}"


class DependencyResolver:
    """
    Resolves which test projects exercise which application projects.

    A Xamarin.UITest project is paired with an application project when
    it references the application's GUID and the application targets
    the platform under test. Plain NUnit projects are never paired.
    """

    def __init__(self, platform: TargetPlatform = TargetPlatform.ANDROID):
        self.platform = platform

    def split(
        self,
        projects: Iterable[ProjectDescriptor],
    ) -> tuple[list[ProjectDescriptor], list[ProjectDescriptor]]:
        """
        Classify projects into application projects and test projects.

        Returns:
            Tuple of (apps for the platform under test, test projects)
        """
        apps = []
        tests = []
        for project in projects:
            if project.is_uitest:
                tests.append(project)
            elif (
                project.target_platform is self.platform
                and project.output_kind is OutputKind.PACKAGE
            ):
                apps.append(project)
        return apps, tests

    def resolve(
        self,
        app: ProjectDescriptor,
        tests: Iterable[ProjectDescriptor],
    ) -> list[TestPairing]:
        """
        Pair one application project with the test projects referencing it.

        Raises:
            NoMatchingTestProject: If no test project qualifies
        """
        return self.resolve_all([app], tests)

    def resolve_all(
        self,
        apps: Iterable[ProjectDescriptor],
        tests: Iterable[ProjectDescriptor],
    ) -> list[TestPairing]:
        """
        Pair every application project with the test projects referencing it.

        Args:
            apps: Application project descriptors
            tests: Test project descriptors

        Returns:
            Pairings in (app, test) input order

        Raises:
            NoMatchingTestProject: If no pairing is found
        """
        apps = list(apps)
        tests = list(tests)
        pairings: list[TestPairing] = []

        for app in apps:
            if app.target_platform is not self.platform:
                logger.debug(
                    f"Skipping {app.name}: targets {app.target_platform.value}, "
                    f"not {self.platform.value}"
                )
                continue

            for test in tests:
                if not test.is_uitest:
                    continue
                if test.references_project(app.guid):
                    logger.info(f"Test project {test.name} references {app.name}")
                    pairings.append(TestPairing(app=app, test=test))

        if not pairings:
            names = [app.name for app in apps]
            raise NoMatchingTestProject(
                f"No related test project found for: {', '.join(names) or 'no application project'}",
                app_projects=names,
            )

        return pairings
