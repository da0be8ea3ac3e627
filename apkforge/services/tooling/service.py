"""
Tool Probe Service.

Best-effort invocation of external toolchains (flutter, npm, gradle, java,
cordova). Every call has its own timeout. A missing tool, a non-zero exit
and a timeout are soft outcomes; anything else propagates to the caller.
"""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ...core.config import ToolsConfig
from ...core.exceptions import ToolUnavailableError
from ...core.logging import get_logger

logger = get_logger(__name__)

INSTALL_HINTS = {
    "flutter": "https://docs.flutter.dev/get-started/install",
    "npm": "https://nodejs.org/en/download",
    "node": "https://nodejs.org/en/download",
    "java": "Install a JDK (17 or newer)",
    "gradle": "https://gradle.org/install/",
    "cordova": "npm install -g cordova",
}


class ToolStatus(str, Enum):
    SUCCESS = "success"
    UNAVAILABLE = "unavailable"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ToolOutcome:
    """Result of one tool invocation."""

    status: ToolStatus
    command: tuple[str, ...]
    output: str = ""
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == ToolStatus.SUCCESS

    @property
    def display(self) -> str:
        return " ".join(self.command)


class ToolProbe:
    """Runs external commands and classifies their outcome."""

    def __init__(self, config: ToolsConfig) -> None:
        self.config = config

    def _timeout_for(self, executable: str, default: float) -> float:
        return self.config.timeout_overrides.get(Path(executable).name, default)

    def _resolve(self, executable: str, cwd: Path | None) -> str:
        """Locate an executable on PATH, or relative to ``cwd`` for ``./x``.

        Raises:
            ToolUnavailableError: If it cannot be found
        """
        if executable.startswith("./"):
            candidate = (cwd or Path.cwd()) / executable[2:]
            if candidate.is_file():
                return str(candidate)
        else:
            found = shutil.which(executable)
            if found:
                return found
        name = Path(executable).name
        raise ToolUnavailableError(
            message=f"{executable} not found",
            tool_name=name,
            install_hint=INSTALL_HINTS.get(name, ""),
        )

    async def try_run(self, command: list[str], cwd: Path | None = None, timeout: float = 30.0) -> ToolOutcome:
        """Run ``command`` and classify the outcome.

        Args:
            command: Executable followed by its arguments
            cwd: Working directory
            timeout: Seconds before the process is killed

        Returns:
            SUCCESS with combined output, UNAVAILABLE, or TIMED_OUT
        """
        cmd = tuple(command)
        if not self.config.enabled:
            return ToolOutcome(ToolStatus.UNAVAILABLE, cmd, detail="external tools disabled")

        try:
            return await self._run(cmd, cwd, self._timeout_for(cmd[0], timeout))
        except ToolUnavailableError as e:
            logger.debug("Tool unavailable", tool=e.tool_name)
            return ToolOutcome(ToolStatus.UNAVAILABLE, cmd, detail=str(e))

    async def _run(self, cmd: tuple[str, ...], cwd: Path | None, timeout: float) -> ToolOutcome:
        executable = self._resolve(cmd[0], cwd)
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *cmd[1:],
                cwd=str(cwd) if cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ToolUnavailableError(
                message=str(e), tool_name=Path(cmd[0]).name, cause=e
            ) from e

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.info("Tool timed out", command=" ".join(cmd), timeout=timeout)
            return ToolOutcome(ToolStatus.TIMED_OUT, cmd, detail=f"timed out after {timeout:g}s")

        output = stdout.decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            logger.info("Tool exited with error", command=" ".join(cmd), returncode=process.returncode)
            return ToolOutcome(
                ToolStatus.UNAVAILABLE, cmd, output=output, detail=f"exited with status {process.returncode}"
            )
        return ToolOutcome(ToolStatus.SUCCESS, cmd, output=output)
