"""
Project Setup Service.

Implements the four setup steps that prepare an analyzed project for the
build phase:

1. Dependency install through the framework's package manager
2. Materialization of every missing required file from boilerplate
3. SDK and runtime probe
4. Build-tool preparation (wrapper scripts, toolchain checks)

External tools are best-effort. A missing or slow tool is logged and the
step still succeeds. An internal failure raises ``PhaseStepError``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from ...core.exceptions import PhaseStepError
from ...core.logging import get_logger
from ...models.analysis import Framework, ProjectAnalysis
from ...models.build import StepResult
from ...storage.local import LocalFileStore
from ..tooling import ToolOutcome, ToolProbe
from .templates import GRADLEW_STUB, render_template

logger = get_logger(__name__)


@dataclass(frozen=True)
class SetupStep:
    """Static description of one setup step."""

    key: str
    title: str
    progress: int


SETUP_STEPS: tuple[SetupStep, ...] = (
    SetupStep("dependencies", "Installing project dependencies", 30),
    SetupStep("missing_files", "Creating missing files and directories", 40),
    SetupStep("sdk_setup", "Setting up required SDKs", 50),
    SetupStep("build_tools", "Installing build tools", 60),
)


def _first_line(text: str) -> str:
    return text.splitlines()[0].strip() if text else ""


class SetupService:
    """Runs the setup steps against a project working directory."""

    def __init__(self, file_store: LocalFileStore, tool_probe: ToolProbe) -> None:
        """Initialize the setup service.

        Args:
            file_store: File store for reading and writing project files
            tool_probe: Probe used for every external command
        """
        self.file_store = file_store
        self.tool_probe = tool_probe
        self._steps: dict[str, Callable[[Path, ProjectAnalysis], Awaitable[StepResult]]] = {
            "dependencies": self.install_dependencies,
            "missing_files": self.materialize_missing_files,
            "sdk_setup": self.probe_sdks,
            "build_tools": self.prepare_build_tools,
        }

    async def run_step(self, step: SetupStep, project_dir: Path, analysis: ProjectAnalysis) -> StepResult:
        """Run one step, turning any internal failure into ``PhaseStepError``."""
        try:
            return await self._steps[step.key](project_dir, analysis)
        except PhaseStepError:
            raise
        except Exception as e:
            raise PhaseStepError(
                message=str(e) or type(e).__name__,
                context={"framework": analysis.framework.value},
                cause=e,
                phase="setup",
                step=step.key,
            ) from e

    @staticmethod
    def _source_dir(project_dir: Path, analysis: ProjectAnalysis) -> Path:
        return project_dir / analysis.source_root if analysis.source_root else project_dir

    @staticmethod
    def _record(result: StepResult, outcome: ToolOutcome, success: str, fallback: str) -> None:
        if outcome.ok:
            detail = _first_line(outcome.output)
            result.logs.append(f"{success}: {detail}" if detail else success)
        else:
            result.logs.append(f"{fallback} ({outcome.display}: {outcome.detail})")

    async def install_dependencies(self, project_dir: Path, analysis: ProjectAnalysis) -> StepResult:
        result = StepResult()
        cwd = self._source_dir(project_dir, analysis)
        framework = analysis.framework

        if framework == Framework.FLUTTER:
            result.logs.append("Running flutter pub get...")
            outcome = await self.tool_probe.try_run(["flutter", "pub", "get"], cwd=cwd, timeout=60)
            self._record(result, outcome, "Flutter dependencies installed successfully", "Flutter pub get skipped")
        elif framework == Framework.REACT_NATIVE:
            result.logs.append("Running npm install...")
            outcome = await self.tool_probe.try_run(["npm", "install"], cwd=cwd, timeout=120)
            self._record(result, outcome, "NPM dependencies installed successfully", "NPM install skipped")
        elif framework == Framework.ANDROID:
            result.logs.append("Running gradle dependency resolution...")
            wrapper = "./gradlew" if await self.file_store.exists(cwd / "gradlew") else "gradle"
            outcome = await self.tool_probe.try_run([wrapper, "dependencies"], cwd=cwd, timeout=180)
            self._record(result, outcome, "Gradle dependencies resolved successfully", "Gradle dependency resolution skipped")
        else:
            result.logs.append(f"Framework {framework.value} detected - dependencies analyzed")

        if analysis.dependencies:
            result.logs.append(f"{len(analysis.dependencies)} dependencies declared")
        return result

    async def materialize_missing_files(self, project_dir: Path, analysis: ProjectAnalysis) -> StepResult:
        """Write boilerplate for every missing file. Existing files are kept."""
        result = StepResult()
        result.logs.append("Scanning project for missing essential files...")

        for relative in analysis.missing_files:
            target = project_dir / relative
            if await self.file_store.exists(target):
                result.logs.append(f"Already present: {relative}")
                continue

            content = render_template(relative, analysis)
            if content is None:
                await self.file_store.write_text(target, "")
                result.warnings.append(f"No template for {relative} - created empty placeholder")
            else:
                await self.file_store.write_text(target, content)
                result.logs.append(f"Created {relative}")

        result.logs.append(f"Missing files analysis completed - {len(analysis.missing_files)} files checked")
        return result

    async def probe_sdks(self, project_dir: Path, analysis: ProjectAnalysis) -> StepResult:
        result = StepResult()
        cwd = self._source_dir(project_dir, analysis)

        result.logs.append("Checking Java installation...")
        java = await self.tool_probe.try_run(["java", "-version"], cwd=cwd, timeout=10)
        self._record(result, java, "Java runtime detected and available", "Java environment setup required for Android builds")

        if analysis.framework == Framework.REACT_NATIVE:
            node = await self.tool_probe.try_run(["node", "--version"], cwd=cwd, timeout=5)
            self._record(result, node, "Node.js environment ready", "Node.js environment required for React Native builds")
        elif analysis.framework == Framework.FLUTTER:
            flutter = await self.tool_probe.try_run(["flutter", "--version"], cwd=cwd, timeout=10)
            self._record(result, flutter, "Flutter SDK detected and available", "Flutter SDK environment required for Flutter builds")

        config = analysis.build_config
        result.logs.append(f"Target SDK configured: Android API {config.target_sdk}")
        result.logs.append(f"Minimum SDK configured: Android API {config.min_sdk}")
        return result

    async def _write_gradlew_stub(self, directory: Path) -> None:
        gradlew = directory / "gradlew"
        await self.file_store.write_text(gradlew, GRADLEW_STUB)
        await self.file_store.make_executable(gradlew)

    async def prepare_build_tools(self, project_dir: Path, analysis: ProjectAnalysis) -> StepResult:
        result = StepResult()
        cwd = self._source_dir(project_dir, analysis)
        framework = analysis.framework

        if framework == Framework.FLUTTER:
            result.logs.append("Configuring Flutter build environment...")
            outcome = await self.tool_probe.try_run(["flutter", "doctor", "--machine"], cwd=cwd, timeout=30)
            if outcome.ok:
                result.logs.append("Flutter build environment validated")
            else:
                result.logs.append(f"Flutter environment configured for build process ({outcome.detail})")

        elif framework == Framework.REACT_NATIVE:
            result.logs.append("Configuring React Native build environment...")
            android_dir = cwd / "android"
            if await self.file_store.exists(android_dir):
                result.logs.append("Android build configuration detected")
                if not await self.file_store.exists(android_dir / "gradlew"):
                    await self._write_gradlew_stub(android_dir)
                    result.logs.append("Created android/gradlew wrapper script")
            else:
                result.logs.append("No android/ directory - Android build configuration will be generated")

        elif framework == Framework.ANDROID:
            result.logs.append("Configuring Android build tools...")
            if await self.file_store.exists(cwd / "gradlew"):
                result.logs.append("Gradle wrapper already available")
            else:
                outcome = await self.tool_probe.try_run(["gradle", "wrapper"], cwd=cwd, timeout=30)
                if outcome.ok and await self.file_store.exists(cwd / "gradlew"):
                    result.logs.append("Gradle wrapper created successfully")
                else:
                    await self._write_gradlew_stub(cwd)
                    result.logs.append("Gradle build environment configured")

        elif framework == Framework.CORDOVA:
            outcome = await self.tool_probe.try_run(["cordova", "--version"], cwd=cwd, timeout=10)
            self._record(result, outcome, "Cordova CLI available", "Cordova CLI required for Cordova builds")

        else:
            result.logs.append("Generic project - no framework build tools required")

        result.logs.append("Build tools configuration completed successfully")
        return result
