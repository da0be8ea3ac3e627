"""
apkforge CLI.

Command-line interface for serving the API and converting projects offline.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .core.config import get_config
from .core.logging import setup_logging

app = typer.Typer(
    name="apkforge",
    help="Convert mobile project archives into installable Android packages",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        from . import __version__
        console.print(f"apkforge v{__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """apkforge: mobile project archive to APK conversion."""
    pass


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from config)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port (default from config)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    cfg = get_config()
    setup_logging(cfg)
    console.print(Panel.fit(
        "[bold blue]apkforge[/bold blue]\n"
        "ZIP → Analysis → Setup → APK",
        border_style="blue",
    ))
    uvicorn.run(
        "apkforge.api.app:create_app",
        factory=True,
        host=host or cfg.server.host,
        port=port or cfg.server.port,
        reload=reload,
        log_config=None,
    )


@app.command()
def analyze(
    project_dir: Path = typer.Argument(
        ...,
        help="Path to an extracted project directory",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
) -> None:
    """Detect the framework of a project directory and report its profile."""
    cfg = get_config()
    setup_logging(cfg)

    async def run_async() -> None:
        from .services.analysis import FrameworkAnalyzer
        from .storage import LocalFileStore

        store = LocalFileStore(cfg.storage.uploads_path, cfg.storage.builds_path)
        analysis = await FrameworkAnalyzer(store).analyze(project_dir)

        table = Table(title="Project Analysis")
        table.add_column("Property", style="cyan")
        table.add_column("Value")

        build = analysis.build_config
        table.add_row("Framework", analysis.framework.value)
        table.add_row("Language", analysis.language)
        table.add_row("Project", analysis.project_name or "-")
        table.add_row("Package", analysis.effective_package_name)
        table.add_row("Version", f"{build.version_name} ({build.version_code})")
        table.add_row("SDK (min/target/compile)", f"{build.min_sdk}/{build.target_sdk}/{build.compile_sdk}")
        table.add_row("Dependencies", str(len(analysis.dependencies)))
        table.add_row("Source Files", str(analysis.project_stats.source_files))
        table.add_row("Estimated Build Time", analysis.project_stats.estimated_build_time or "-")
        table.add_row(
            "Structure",
            "[green]valid[/green]" if analysis.has_valid_structure else "[red]invalid[/red]",
        )
        console.print(table)

        if analysis.missing_files:
            console.print("\n[bold]Missing files:[/bold]")
            for path in analysis.missing_files:
                console.print(f"  • {path}")
        for warning in analysis.warnings:
            console.print(f"[yellow]Warning:[/yellow] {warning}")
        for error in analysis.errors:
            console.print(f"[red]Error:[/red] {error}")

        if not analysis.has_valid_structure:
            raise typer.Exit(1)

    asyncio.run(run_async())


@app.command()
def convert(
    archive: Path = typer.Argument(
        ...,
        help="Path to the project ZIP archive",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    show_logs: bool = typer.Option(False, "--logs", help="Print the build log after conversion"),
) -> None:
    """Run upload, analysis, setup and build for an archive without the server."""
    cfg = get_config()
    setup_logging(cfg)

    async def run_async() -> None:
        from .core.exceptions import ApkForgeError
        from .models.project import ProjectStatus
        from .orchestration import PhaseOrchestrator

        orchestrator = PhaseOrchestrator.from_config(cfg)
        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                task = progress.add_task("Converting project...", total=None)
                try:
                    project = await orchestrator.ingest_upload(archive.name, archive.read_bytes(), "application/zip")
                except ApkForgeError as e:
                    console.print(f"[red]Upload failed: {e}[/red]")
                    raise typer.Exit(1)

                if cfg.pipeline.auto_continue:
                    await orchestrator.wait_idle(project.id)
                else:
                    await orchestrator.analyze(project.id, chain=True)
                    await orchestrator.wait_idle(project.id)
                progress.update(task, completed=True)

            project = await orchestrator.repository.get(project.id)
            if show_logs:
                for entry in await orchestrator.repository.list_logs(project.id):
                    style = {"warning": "yellow", "error": "red"}.get(entry.level.value, "dim")
                    console.print(f"[{style}]{entry.message}[/{style}]")

            if project.status == ProjectStatus.COMPLETED:
                console.print("\n[bold green]✓ Conversion completed successfully![/bold green]\n")
                table = Table(title="Conversion Results")
                table.add_column("Metric", style="cyan")
                table.add_column("Value", style="green")
                table.add_row("Project ID", str(project.id))
                table.add_row("Framework", project.framework.value if project.framework else "-")
                table.add_row("APK", project.apk_path or "-")
                table.add_row("APK Size", f"{project.apk_size or 0} bytes")
                console.print(table)
            else:
                console.print("\n[bold red]✗ Conversion failed![/bold red]")
                console.print(f"Status: {project.status.value} ({project.progress}%)")
                raise typer.Exit(1)
        finally:
            await orchestrator.shutdown()

    asyncio.run(run_async())


@app.command()
def config() -> None:
    """Show current configuration."""
    cfg = get_config()

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Log Level", cfg.log_level)
    table.add_row("Server", f"{cfg.server.host}:{cfg.server.port}")
    table.add_row("Uploads Path", str(cfg.storage.uploads_path))
    table.add_row("Builds Path", str(cfg.storage.builds_path))
    table.add_row("Max Upload", f"{cfg.upload.max_size_bytes // (1024 * 1024)} MB")
    table.add_row("External Tools", str(cfg.tools.enabled))
    table.add_row("Auto Continue", str(cfg.pipeline.auto_continue))
    table.add_row("Native Build", str(cfg.pipeline.attempt_native_build))

    console.print(table)

    console.print("\n[dim]Configure via environment variables:[/dim]")
    console.print("  APKFORGE_LOG_LEVEL, APKFORGE_HOST, APKFORGE_PORT")
    console.print("  APKFORGE_UPLOADS_PATH, APKFORGE_BUILDS_PATH, APKFORGE_MAX_UPLOAD_MB")
    console.print("  APKFORGE_TOOLS_ENABLED, APKFORGE_AUTO_CONTINUE, APKFORGE_NATIVE_BUILD")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
