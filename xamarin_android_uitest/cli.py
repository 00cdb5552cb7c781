"""Command-line interface for the UITest step."""

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from xamarin_android_uitest import __version__
from xamarin_android_uitest.config import (
    LoggingSettings,
    RunOptions,
    Settings,
    StepSettings,
    ToolSettings,
    parse_bool,
)
from xamarin_android_uitest.core.exceptions import ConfigurationError
from xamarin_android_uitest.core.pipeline import PipelineResult, UITestPipeline
from xamarin_android_uitest.utils.envman import RESULT_FAILED, RESULT_KEY, EnvmanExporter

console = Console(force_terminal=True)


def print_banner():
    """Print application banner."""
    banner = """
+-----------------------------------------------------------+
|          Xamarin Android UITest - Bitrise step            |
+-----------------------------------------------------------+
    """
    console.print(banner, style="bold blue")


def print_configs(options: RunOptions, settings: Settings):
    """Print the inputs of this run."""
    table = Table(title="Configs", show_header=True)
    table.add_column("Input", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("project", str(options.project))
    table.add_row("test", options.test or "-")
    table.add_row("configuration", options.configuration)
    table.add_row("platform", options.effective_platform)
    table.add_row("clean_build", str(options.clean))
    table.add_row("emulator_serial", options.emulator_serial)
    table.add_row("build_tool", settings.tools.build_tool)
    table.add_row("nunit_console", settings.tools.nunit_console or "-")
    table.add_row("result_log", str(settings.step.result_log_path))

    console.print(table)


def print_result(result: PipelineResult):
    """Print pipeline result summary."""
    status = "[green]SUCCESS[/green]" if result.success else "[red]FAILED[/red]"

    table = Table(title="UITest Summary", show_header=True)
    table.add_column("Test project", style="cyan")
    table.add_column("App project", style="cyan")
    table.add_column("Result", style="white")
    table.add_column("Failed tests", style="white")

    for outcome in result.outcomes:
        test_result = outcome.test_result
        table.add_row(
            outcome.pairing.test.name,
            outcome.pairing.app.name,
            test_result.state.value,
            str(len(test_result.failures)),
        )

    console.print(table)
    console.print(f"Status: {status}")

    if result.warnings:
        console.print("\n[yellow]Warnings:[/yellow]")
        for warning in result.warnings:
            console.print(f"  -{warning}", markup=False)

    if result.errors:
        console.print("\n[red]Errors:[/red]")
        for error in result.errors:
            console.print(f"  -{error}", markup=False)


def fail_with_message(message: str, envman_path: str = "envman"):
    """Report a fatal input error and exit."""
    console.print(f"[red]{escape(message)}[/red]")
    EnvmanExporter(envman_path).export(RESULT_KEY, RESULT_FAILED)
    sys.exit(1)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("--project", "-s", envvar="xamarin_project", help="Xamarin Android project (.csproj) or solution (.sln)")
@click.option("--test", "-t", envvar="test_to_run", help="UITest project (.csproj) or name of the test to run")
@click.option("--configuration", "-c", default="Release", envvar="xamarin_configuration", help="Build configuration")
@click.option("--platform", "-p", envvar="xamarin_platform", help="Build platform (AnyCPU for projects, Any CPU for solutions)")
@click.option("--clean", "-i", default="true", help="Clean before build (true/false/yes/no/1/0)")
@click.option("--emulator", "-e", envvar="emulator_serial", help="Serial of the running emulator")
@click.option("--nunit", "-n", type=click.Path(), help="Path to the NUnit console executable")
@click.option(
    "--build-tool",
    "-b",
    type=click.Choice(["msbuild", "xbuild"]),
    envvar="build_tool",
    help="Build tool to use",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def main(
    project: str | None,
    test: str | None,
    configuration: str,
    platform: str | None,
    clean: str,
    emulator: str | None,
    nunit: str | None,
    build_tool: str | None,
    verbose: bool,
):
    """Build a Xamarin Android app and its UITest project, then run the UI tests."""
    print_banner()

    step = StepSettings()
    tools = ToolSettings()
    envman_path = tools.envman_path

    try:
        if not project:
            raise ConfigurationError("project not specified", option="project")

        emulator_serial = emulator or step.emulator_serial
        if not emulator_serial:
            raise ConfigurationError("emulator_serial not specified", option="emulator")

        tool_overrides = {}
        if nunit:
            tool_overrides["nunit_console"] = nunit
        if build_tool:
            tool_overrides["build_tool"] = build_tool
        if tool_overrides:
            tools = tools.model_copy(update=tool_overrides)

        options = RunOptions(
            project=Path(project),
            test=test or None,
            configuration=configuration or "Release",
            platform=platform or None,
            clean=parse_bool(clean, option="clean"),
            emulator_serial=emulator_serial,
        )
    except ConfigurationError as e:
        fail_with_message(f"Issue with input: {e}", envman_path)

    settings = Settings(
        step=step,
        tools=tools,
        logging=LoggingSettings(level="DEBUG") if verbose else LoggingSettings(),
    )

    print_configs(options, settings)

    pipeline = UITestPipeline(settings, options)
    result = pipeline.run()

    print_result(result)

    sys.exit(result.exit_code)


if __name__ == "__main__":
    main()
