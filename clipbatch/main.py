import typer
from rich.console import Console
import threading
from pathlib import Path
from typing import Optional

from clipbatch.config.loader import load_config
from clipbatch.config.models import AppConfig
from clipbatch.domain.models import IdentityMode, PipelineStatus
from clipbatch.infrastructure.logging import setup_logging
from clipbatch.infrastructure.event_bus import EventBus
from clipbatch.infrastructure.file_scanner import FileScanner
from clipbatch.infrastructure.ffprobe import FFprobeAdapter
from clipbatch.infrastructure.ffmpeg import FFmpegAdapter
from clipbatch.infrastructure.housekeeping import HousekeepingService
from clipbatch.pipeline.merger import BatchCondition
from clipbatch.pipeline.orchestrator import Pipeline
from clipbatch.ui.console import ConsoleReporter, format_status

app = typer.Typer(help="clipbatch - normalize incoming clips to a fixed duration and merge them in batches")


def _load(config_path: Optional[Path]) -> AppConfig:
    try:
        return load_config(config_path)
    except Exception as e:
        typer.secho(f"Error: cannot load config: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _resolve_directory(directory: Optional[Path], config: AppConfig) -> Path:
    if directory is None and config.watch_dir:
        directory = Path(config.watch_dir)
    if directory is None:
        typer.secho("Error: no directory given (argument or 'watch_dir' in config)", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    directory = directory.expanduser()
    if not directory.is_dir():
        typer.secho(f"Error: directory not found: {directory}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return directory.resolve()


def _wait_for_interrupt() -> None:
    """Blocks the main thread until Ctrl+C; all work happens on pipeline threads."""
    idle = threading.Event()
    while not idle.wait(1.0):
        pass


def _build_pipeline(config: AppConfig, bus: EventBus) -> Pipeline:
    return Pipeline(
        config=config,
        event_bus=bus,
        ffprobe_adapter=FFprobeAdapter(timeout=config.transcode.probe_timeout_s),
        ffmpeg_adapter=FFmpegAdapter(event_bus=bus, debug=config.general.debug),
        file_scanner=FileScanner(extensions=config.watch.extensions, pending_tag=config.merge.pending_tag),
        housekeeping=HousekeepingService(),
    )


@app.command()
def watch(
    directory: Optional[Path] = typer.Argument(None, help="Root directory holding the S1--- source groups"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    target: Optional[float] = typer.Option(None, "--target", help="Override target clip duration in seconds"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Override groups per merge"),
    outputs_per_group: Optional[int] = typer.Option(None, "--outputs-per-group", help="Override clips taken from each group"),
    identity: Optional[IdentityMode] = typer.Option(None, "--identity", help="Dedup key mode (path, stat, content)"),
    max_in_flight: Optional[int] = typer.Option(None, "--max-in-flight", help="Concurrent transcodes"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Watch a directory, normalize new clips and merge full batches until Ctrl+C."""
    config = _load(config_path)
    try:
        # Apply CLI overrides
        if target is not None: config.transcode.target_duration_s = target
        if batch_size is not None: config.merge.batch_size = batch_size
        if outputs_per_group is not None: config.merge.outputs_per_group = outputs_per_group
        if identity is not None: config.watch.identity_mode = identity
        if max_in_flight is not None: config.queue.max_in_flight = max_in_flight
        if log_path is not None: config.general.log_path = str(log_path)
        if debug: config.general.debug = True
        config = AppConfig.model_validate(config.model_dump())
    except ValueError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    root = _resolve_directory(directory, config)
    logger = setup_logging(
        root / config.general.temp_dir_name,
        debug=config.general.debug,
        log_path=Path(config.general.log_path) if config.general.log_path else None,
    )

    bus = EventBus()
    ConsoleReporter(bus, show_debug=config.general.debug)
    pipeline = _build_pipeline(config, bus)

    try:
        result = pipeline.start(root)
        if not result.ok:
            typer.secho(f"Error: {result.message}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        logger.info(f"Watching {root} (target {config.transcode.target_duration_s:.0f}s)")
        _wait_for_interrupt()

    except KeyboardInterrupt:
        pipeline.stop()
        typer.secho("\n✓ Watching stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except Exception as e:
        logger.exception("Fatal error")
        pipeline.stop()
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def merge(
    directory: Optional[Path] = typer.Argument(None, help="Root directory holding the S1--- source groups"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Run one merge check now and merge if a full batch is ready."""
    config = _load(config_path)
    if debug: config.general.debug = True
    root = _resolve_directory(directory, config)
    setup_logging(root / config.general.temp_dir_name, debug=config.general.debug)

    bus = EventBus()
    ConsoleReporter(bus, show_debug=config.general.debug)
    pipeline = _build_pipeline(config, bus)
    try:
        result = pipeline.merge_if_due(root)
    except Exception as e:
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if result is None:
        typer.secho("No merge performed.", fg=typer.colors.YELLOW)
        return
    typer.secho(f"Archive written: {result.archive_path}", fg=typer.colors.GREEN)


@app.command()
def status(
    directory: Optional[Path] = typer.Argument(None, help="Root directory holding the S1--- source groups"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Print source groups, their output counts and whether a merge is due."""
    config = _load(config_path)
    root = _resolve_directory(directory, config)

    scanner = FileScanner(extensions=config.watch.extensions, pending_tag=config.merge.pending_tag)
    state = BatchCondition(config.merge, scanner).evaluate(root)
    for group in state.groups:
        mark = "✓" if group in state.ready else " "
        typer.echo(f"[{mark}] {group.name}: {group.output_count} normalized, {len(group.raw_clips)} raw")

    summary = PipelineStatus(
        source_group_count=len(state.groups),
        ready_group_count=len(state.ready),
    )
    Console().print(format_status(summary))
    typer.echo("Merge due" if state.due else "Merge not due")


if __name__ == "__main__":
    app()
