"""Xamarin project, solution, build and test operations."""

from xamarin_android_uitest.xamarin.project import ProjectParser, ProjectDescriptor
from xamarin_android_uitest.xamarin.solution import SolutionParser, SolutionDescriptor, find_related_solutions
from xamarin_android_uitest.xamarin.resolver import DependencyResolver, TestPairing
from xamarin_android_uitest.xamarin.restorer import PackageRestorer
from xamarin_android_uitest.xamarin.builder import ProjectBuilder
from xamarin_android_uitest.xamarin.test_runner import TestRunner

__all__ = [
    "ProjectParser",
    "ProjectDescriptor",
    "SolutionParser",
    "SolutionDescriptor",
    "find_related_solutions",
    "DependencyResolver",
    "TestPairing",
    "PackageRestorer",
    "ProjectBuilder",
    "TestRunner",
]
