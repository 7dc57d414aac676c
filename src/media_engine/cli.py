"""Command-line interface using Typer."""

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from media_engine import __version__
from media_engine.logging import setup_logging
from media_engine.repositories.tasks import TaskRepository

# Setup logging
setup_logging()

app = typer.Typer(
    name="media-engine",
    help="Media Engine - multi-stage AI media generation CLI",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Media Engine v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Media Engine - turn a photo and a goal into a finished video."""
    pass


def _repository() -> TaskRepository:
    from media_engine.repositories.tasks import SqlAlchemyTaskRepository

    return SqlAlchemyTaskRepository()


def _print_task(task_id: str, status: str, progress: dict | None, result: dict | None) -> None:
    table = Table(title=f"Task {task_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Status", status)
    if progress:
        table.add_row("Step", str(progress.get("current_step")))
        table.add_row("Message", str(progress.get("step_message")))
        table.add_row("Progress", f"{progress.get('percent')}%")
    for key, value in (result or {}).items():
        if key in ("analysis", "stack", "matched_videos"):
            continue
        table.add_row(key, str(value)[:120])

    console.print(table)


@app.command()
def generate(
    provider: str = typer.Argument(
        ...,
        help="Pipeline variant: fitness_video, verse_images, verse_images_streaming, video_library",
    ),
    image: Optional[str] = typer.Option(None, "--image", "-i", help="Reference image URL"),
    target: Optional[str] = typer.Option(
        None, "--target", "-t", help="Target muscle group(s), comma separated"
    ),
    feeling: Optional[str] = typer.Option(None, "--feeling", "-f", help="How the user feels"),
    voice_gender: Optional[str] = typer.Option(None, "--voice-gender", help="male or female"),
    aspect_ratio: str = typer.Option("9:16", "--aspect-ratio", "-a", help="Output aspect ratio"),
    difficulty: Optional[str] = typer.Option(None, "--difficulty", help="easy, medium or hard"),
    queue: bool = typer.Option(False, "--queue", "-q", help="Enqueue on the Celery worker"),
) -> None:
    """Start a generation task and (unless queued) run it to completion."""
    from media_engine.domain.errors import TaskValidationError
    from media_engine.services.lifecycle import TaskLifecycleController
    from media_engine.utils import run_async

    options = {
        "image_input": [image] if image else None,
        "target_muscle_group": target,
        "user_feeling": feeling,
        "voice_gender": voice_gender,
        "aspect_ratio": aspect_ratio,
        "difficulty": difficulty,
    }
    options = {k: v for k, v in options.items() if v is not None}

    controller = TaskLifecycleController(_repository())
    try:
        task = run_async(controller.create(provider, options))
    except TaskValidationError as e:
        console.print(f"[bold red]Invalid task: {e}[/bold red]")
        raise typer.Exit(code=1)

    console.print(f"[green]Task created: {task.id}[/green]")

    if queue:
        from media_engine.jobs.tasks import run_generation_task

        result = run_generation_task.delay(task.id)
        console.print(f"[dim]Enqueued as Celery task {result.id}[/dim]")
        return

    console.print(f"[bold blue]Running {task.provider}...[/bold blue]")
    finished = run_async(controller.execute(task.id))
    if finished is None:
        console.print("[bold red]Task disappeared while running[/bold red]")
        raise typer.Exit(code=1)

    _print_task(
        finished.id,
        str(finished.status),
        finished.progress.to_dict() if finished.progress else None,
        finished.result,
    )
    if str(finished.status) != "success":
        raise typer.Exit(code=1)


@app.command()
def status(
    task_id: str = typer.Argument(..., help="The task ID to check"),
) -> None:
    """Check the status of a task."""
    from media_engine.domain.errors import TaskNotFoundError
    from media_engine.services.status import StatusQueryService
    from media_engine.utils import run_async

    try:
        envelope = run_async(StatusQueryService(_repository()).query(task_id))
    except TaskNotFoundError:
        console.print(f"[bold red]Task not found: {task_id}[/bold red]")
        raise typer.Exit(code=1)

    _print_task(envelope.task_id, envelope.status.value, envelope.progress, envelope.result)
    if envelope.stale:
        console.print("[bold yellow]Task has not progressed recently (stale)[/bold yellow]")


@app.command("sync-pending")
def sync_pending() -> None:
    """Re-query pending and processing tasks and report stale ones."""
    from media_engine.services.sync import PendingTaskSync
    from media_engine.utils import run_async

    report = run_async(PendingTaskSync(_repository()).run())

    table = Table(title="Pending Task Sync")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Processed", str(report.processed))
    table.add_row("Checked", str(report.checked))
    table.add_row("Failed", str(report.failed))
    table.add_row("Stale", str(len(report.stale)))
    console.print(table)

    for task_id in report.stale:
        console.print(f"[yellow]stale: {task_id}[/yellow]")
    for error in report.errors:
        console.print(f"[red]{error}[/red]")


@app.command()
def merge(
    urls: list[str] = typer.Argument(..., help="Two or more video URLs, in order"),
) -> None:
    """Merge videos into one file."""
    from media_engine.domain.errors import MediaEngineError
    from media_engine.services.merge import VideoMergeService
    from media_engine.utils import run_async

    try:
        merged = run_async(VideoMergeService().merge_videos(urls))
    except MediaEngineError as e:
        console.print(f"[bold red]Merge failed: {e}[/bold red]")
        raise typer.Exit(code=1)

    console.print(Panel.fit(
        f"[bold]{merged.url}[/bold]\n\n[cyan]Videos merged:[/cyan] {merged.merged_count}",
        title="Merged video",
        border_style="green",
    ))


@app.command()
def health() -> None:
    """Check the health of all services."""
    import httpx

    from media_engine.config import settings

    url = f"http://{settings.api_host}:{settings.api_port}/health/ready"

    try:
        response = httpx.get(url, timeout=10)
        data = response.json()

        table = Table(title="Service Health")
        table.add_column("Component", style="cyan")
        table.add_column("Status")

        table.add_row("Database", "✓" if data.get("database") else "✗")
        table.add_row("Redis", "✓" if data.get("redis") else "✗")

        console.print(table)

        if data.get("ready"):
            console.print("[bold green]All services healthy![/bold green]")
        else:
            console.print("[bold yellow]Some services unhealthy[/bold yellow]")
            raise typer.Exit(code=1)

    except httpx.RequestError as e:
        console.print(f"[bold red]Cannot connect to API: {e}[/bold red]")
        console.print("[dim]Is the API server running?[/dim]")
        raise typer.Exit(code=1)


@app.command()
def worker(
    beat: bool = typer.Option(False, "--beat", "-B", help="Also run the beat scheduler"),
) -> None:
    """Start a Celery worker (for development)."""
    console.print("[bold blue]Starting Celery worker...[/bold blue]")

    import subprocess
    import sys

    argv = [sys.executable, "-m", "celery", "-A", "media_engine.worker", "worker", "--loglevel=info"]
    if beat:
        argv.append("--beat")
    subprocess.run(argv, check=True)


@app.command()
def api(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Start the API server."""
    import uvicorn

    from media_engine.config import settings

    uvicorn.run(
        "media_engine.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=reload or settings.api_reload,
    )


if __name__ == "__main__":
    app()
