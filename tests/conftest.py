"""Shared fixtures: project/solution writers and a fake external tool runner."""

from pathlib import Path

import pytest

from xamarin_android_uitest.config import LoggingSettings, Settings, StepSettings, ToolSettings
from xamarin_android_uitest.xamarin.process import CommandResult

APP_GUID = "1A2B3C4D-0000-4000-8000-000000000001"
TEST_GUID = "1A2B3C4D-0000-4000-8000-000000000002"
CORE_GUID = "1A2B3C4D-0000-4000-8000-000000000003"
IOS_GUID = "1A2B3C4D-0000-4000-8000-000000000004"

CSHARP_TYPE_GUID = "FAE04EC0-301F-11D3-BF4B-00C04F79EFBC"
ANDROID_TYPE_GUID = "EFBA0AD7-5A72-4C68-AF49-83D382785DCF"
IOS_TYPE_GUID = "FEACFBD2-3405-455C-9665-78FE426C6842"

CONFIG_GROUPS = """
  <PropertyGroup Condition=" '$(Configuration)|$(Platform)' == 'Debug|AnyCPU' ">
    <OutputPath>bin\\Debug</OutputPath>
  </PropertyGroup>
  <PropertyGroup Condition=" '$(Configuration)|$(Platform)' == 'Release|AnyCPU' ">
    <OutputPath>bin\\Release</OutputPath>
  </PropertyGroup>
"""


def project_reference(include: str, guid: str, name: str) -> str:
    return (
        f'    <ProjectReference Include="{include}">\n'
        f"      <Project>{{{guid}}}</Project>\n"
        f"      <Name>{name}</Name>\n"
        f"    </ProjectReference>\n"
    )


def write_android_app(path: Path, guid: str = APP_GUID, references: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"""<?xml version="1.0" encoding="utf-8"?>
<Project DefaultTargets="Build" ToolsVersion="4.0" xmlns="http://schemas.microsoft.com/developer/msbuild/2003">
  <PropertyGroup>
    <Configuration Condition=" '$(Configuration)' == '' ">Debug</Configuration>
    <Platform Condition=" '$(Platform)' == '' ">AnyCPU</Platform>
    <ProjectGuid>{{{guid}}}</ProjectGuid>
    <ProjectTypeGuids>{{{ANDROID_TYPE_GUID}}};{{{CSHARP_TYPE_GUID}}}</ProjectTypeGuids>
    <OutputType>Library</OutputType>
    <AssemblyName>{path.stem}</AssemblyName>
    <AndroidApplication>True</AndroidApplication>
  </PropertyGroup>
{CONFIG_GROUPS}
  <ItemGroup>
    <Reference Include="System" />
    <Reference Include="Mono.Android" />
  </ItemGroup>
  <ItemGroup>
{references}  </ItemGroup>
</Project>
""", encoding="utf-8")
    return path


def write_ios_app(path: Path, guid: str = IOS_GUID, references: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"""<?xml version="1.0" encoding="utf-8"?>
<Project ToolsVersion="4.0" xmlns="http://schemas.microsoft.com/developer/msbuild/2003">
  <PropertyGroup>
    <ProjectGuid>{{{guid}}}</ProjectGuid>
    <ProjectTypeGuids>{{{IOS_TYPE_GUID}}};{{{CSHARP_TYPE_GUID}}}</ProjectTypeGuids>
    <OutputType>Exe</OutputType>
    <AssemblyName>{path.stem}</AssemblyName>
  </PropertyGroup>
  <ItemGroup>
    <Reference Include="Xamarin.iOS" />
  </ItemGroup>
  <ItemGroup>
{references}  </ItemGroup>
</Project>
""", encoding="utf-8")
    return path


def write_library(path: Path, guid: str = CORE_GUID, references: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"""<?xml version="1.0" encoding="utf-8"?>
<Project ToolsVersion="4.0" xmlns="http://schemas.microsoft.com/developer/msbuild/2003">
  <PropertyGroup>
    <ProjectGuid>{{{guid}}}</ProjectGuid>
    <OutputType>Library</OutputType>
  </PropertyGroup>
{CONFIG_GROUPS}
  <ItemGroup>
{references}  </ItemGroup>
</Project>
""", encoding="utf-8")
    return path


def write_uitest(path: Path, guid: str = TEST_GUID, references: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"""<?xml version="1.0" encoding="utf-8"?>
<Project DefaultTargets="Build" ToolsVersion="4.0" xmlns="http://schemas.microsoft.com/developer/msbuild/2003">
  <PropertyGroup>
    <ProjectGuid>{{{guid}}}</ProjectGuid>
    <OutputType>Library</OutputType>
    <AssemblyName>{path.stem}</AssemblyName>
  </PropertyGroup>
{CONFIG_GROUPS}
  <ItemGroup>
    <Reference Include="nunit.framework, Version=2.6.4.14350, Culture=neutral">
      <HintPath>..\\packages\\NUnit.2.6.4\\lib\\nunit.framework.dll</HintPath>
    </Reference>
    <Reference Include="Xamarin.UITest, Version=2.2.4.0, Culture=neutral">
      <HintPath>..\\packages\\Xamarin.UITest.2.2.4\\lib\\Xamarin.UITest.dll</HintPath>
    </Reference>
  </ItemGroup>
  <ItemGroup>
{references}  </ItemGroup>
</Project>
""", encoding="utf-8")
    return path


def write_solution(
    path: Path,
    projects: list[tuple[str, str, str]],
    configurations: list[str] = ("Debug|Any CPU", "Release|Any CPU"),
    skip_build: tuple[str, ...] = (),
) -> Path:
    """Write a .sln with (name, relative path, guid) projects mapped to AnyCPU."""
    lines = [
        "",
        "Microsoft Visual Studio Solution File, Format Version 12.00",
        "# Visual Studio 2012",
    ]
    for name, rel_path, guid in projects:
        lines.append(f'Project("{{{CSHARP_TYPE_GUID}}}") = "{name}", "{rel_path}", "{{{guid}}}"')
        lines.append("EndProject")
    lines.append("Global")
    lines.append("\tGlobalSection(SolutionConfigurationPlatforms) = preSolution")
    for config in configurations:
        lines.append(f"\t\t{config} = {config}")
    lines.append("\tEndGlobalSection")
    lines.append("\tGlobalSection(ProjectConfigurationPlatforms) = postSolution")
    for _, _, guid in projects:
        for config in configurations:
            project_config = config.split("|")[0]
            lines.append(f"\t\t{{{guid}}}.{config}.ActiveCfg = {project_config}|AnyCPU")
            if guid not in skip_build:
                lines.append(f"\t\t{{{guid}}}.{config}.Build.0 = {project_config}|AnyCPU")
    lines.append("\tEndGlobalSection")
    lines.append("EndGlobal")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def nunit3_report(cases: list[tuple[str, str, str | None, str | None]]) -> str:
    """Build an NUnit 3 report from (name, result, message, stack trace) tuples."""
    failed = len([c for c in cases if c[1] == "Failed"])
    body = []
    for index, (name, result, message, stack) in enumerate(cases):
        body.append(
            f'      <test-case id="1-{index}" name="{name}" fullname="App.UITests.Tests.{name}" '
            f'result="{result}">'
        )
        if message is not None:
            body.append("        <failure>")
            body.append(f"          <message><![CDATA[{message}]]></message>")
            if stack is not None:
                body.append(f"          <stack-trace><![CDATA[{stack}]]></stack-trace>")
            body.append("        </failure>")
        body.append("      </test-case>")

    return f"""<?xml version="1.0" encoding="utf-8" standalone="no"?>
<test-run id="2" testcasecount="{len(cases)}" result="{'Failed' if failed else 'Passed'}" failed="{failed}">
  <test-suite type="Assembly" name="App.UITests.dll">
    <test-suite type="TestFixture" name="Tests">
{chr(10).join(body)}
    </test-suite>
  </test-suite>
</test-run>
"""


def _option_value(cmd: list[str], prefix: str) -> str | None:
    for part in cmd:
        if part.startswith(prefix):
            return part[len(prefix):]
    return None


class FakeRunner:
    """
    Stands in for CommandRunner.

    Build commands create artifacts in the requested output directory the
    way msbuild would. A call fails when any of ``fail_markers`` appears in
    one of its arguments.
    """

    def __init__(self, produce_artifacts: bool = True):
        self.calls: list[dict] = []
        self.fail_markers: set[str] = set()
        self.produce_artifacts = produce_artifacts
        self.test_handler = None

    def run(self, cmd, tag, description, timeout=None, env=None):
        self.calls.append({"cmd": list(cmd), "tag": tag, "env": env, "timeout": timeout})

        if any(marker in part for part in cmd for marker in self.fail_markers):
            return CommandResult(command=cmd, exit_code=1, output="error MSB4000: failed")

        if tag == "BUILD" and self.produce_artifacts:
            self._produce_artifact(cmd)

        if tag == "TEST" and self.test_handler is not None:
            return self.test_handler(cmd, env)

        return CommandResult(command=cmd, exit_code=0, output="done")

    def commands(self, tag: str | None = None) -> list[list[str]]:
        return [c["cmd"] for c in self.calls if tag is None or c["tag"] == tag]

    def _produce_artifact(self, cmd: list[str]) -> None:
        output_path = _option_value(cmd, "/p:OutputPath=")
        if output_path is None:
            return

        project = Path(cmd[1])
        output_dir = project.parent / output_path
        output_dir.mkdir(parents=True, exist_ok=True)

        if "/t:PackageForAndroid" in cmd:
            (output_dir / "com.example.app.apk").write_bytes(b"apk")
            (output_dir / "com.example.app-Signed.apk").write_bytes(b"signed apk")
        else:
            (output_dir / "nunit.framework.dll").write_bytes(b"dll")
            (output_dir / f"{project.stem}.dll").write_bytes(b"dll")
            (output_dir / "Xamarin.UITest.dll").write_bytes(b"dll")


def report_writer(report: str | None, exit_code: int = 0, output: str = ""):
    """Test handler that writes ``report`` to the --result path."""

    def handler(cmd, env):
        result_path = _option_value(cmd, "--result=") or _option_value(cmd, "-xml=")
        if report is not None and result_path:
            Path(result_path).write_text(report, encoding="utf-8")
        return CommandResult(command=cmd, exit_code=exit_code, output=output)

    return handler


class FakeExporter:
    def __init__(self):
        self.exported: dict[str, str] = {}

    def export(self, key: str, value: str) -> bool:
        self.exported[key] = value
        return True


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_exporter() -> FakeExporter:
    return FakeExporter()


@pytest.fixture
def nunit_console(tmp_path: Path) -> Path:
    console = tmp_path / "tools" / "nunit3-console.exe"
    console.parent.mkdir(parents=True)
    console.write_bytes(b"")
    return console


@pytest.fixture
def tools(nunit_console: Path) -> ToolSettings:
    return ToolSettings(
        msbuild_path="msbuild",
        nuget_path="nuget",
        mono_path="mono",
        nunit_console=str(nunit_console),
    )


@pytest.fixture
def settings(tmp_path: Path, tools: ToolSettings) -> Settings:
    deploy_dir = tmp_path / "deploy"
    deploy_dir.mkdir()
    return Settings(
        step=StepSettings(source_dir=tmp_path, deploy_dir=deploy_dir),
        tools=tools,
        logging=LoggingSettings(rich_console=False),
    )


@pytest.fixture
def sample_repo(tmp_path: Path) -> dict[str, Path]:
    """An app, a UITest project and a core library in one solution."""
    root = tmp_path / "repo"
    core = write_library(root / "Core" / "Core.csproj")
    app = write_android_app(
        root / "App.Droid" / "App.Droid.csproj",
        references=project_reference("..\\Core\\Core.csproj", CORE_GUID, "Core"),
    )
    test = write_uitest(
        root / "App.UITests" / "App.UITests.csproj",
        references=project_reference("..\\App.Droid\\App.Droid.csproj", APP_GUID, "App.Droid"),
    )
    solution = write_solution(
        root / "App.sln",
        [
            ("Core", "Core\\Core.csproj", CORE_GUID),
            ("App.Droid", "App.Droid\\App.Droid.csproj", APP_GUID),
            ("App.UITests", "App.UITests\\App.UITests.csproj", TEST_GUID),
        ],
    )
    return {"root": root, "core": core, "app": app, "test": test, "solution": solution}
